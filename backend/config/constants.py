# backend/config/constants.py

from decimal import Decimal

# -----------------------------
# PLATFORM FEES
# -----------------------------
# Two separate cuts taken at two separate points. Never derive one from
# the other at a call site.

PAYMENT_PLATFORM_FEE_RATE = Decimal("0.05")   # application fee on the payment intent
PAYOUT_PLATFORM_FEE_RATE = Decimal("0.10")    # platform share when a payout is requested

CURRENCY = "usd"

# -----------------------------
# UPLOADS
# -----------------------------

MB = 1024 * 1024

UPLOAD_ROUTES = {
    "sheet-music": {
        "resource_type": "raw",
        "content_types": ("application/pdf",),
        "max_bytes": 4 * MB,
        "folder": "sheet-music",
    },
    "audio": {
        "resource_type": "video",     # cloudinary stores audio under "video"
        "content_types": ("audio/",),
        "max_bytes": 16 * MB,
        "folder": "audio",
    },
    "profile-image": {
        "resource_type": "image",
        "content_types": ("image/",),
        "max_bytes": 4 * MB,
        "folder": "profile-images",
    },
}

# -----------------------------
# AUTH
# -----------------------------

LOGIN_MAX_ATTEMPTS = 10
LOGIN_WINDOW_SECONDS = 300
