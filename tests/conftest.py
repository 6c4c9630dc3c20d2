"""Pytest configuration and shared fixtures.

The app runs against an in-memory Motor database (mongomock-motor), a Stripe
client whose transport is replaced by canned responses, and an uploader that
never leaves the process.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("ENV", "test")

import json
import time
from datetime import datetime

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from main import app
from database import get_db
from models.order import OrderStatus
from utils.cloudinary import get_uploader
from utils.hash import hash_password
from utils.indexes import ensure_indexes
from utils.jwt import create_access_token
from utils.stripe import StripeClient, compute_webhook_signature, get_stripe

WEBHOOK_SECRET = "whsec_test"


class FakeStripe(StripeClient):
    """StripeClient with the HTTP transport swapped for canned responses."""

    def __init__(self):
        super().__init__(secret_key="sk_test_123", webhook_secret=WEBHOOK_SECRET)
        self.calls = []
        self.account = {
            "id": "acct_test",
            "details_submitted": True,
            "charges_enabled": True,
            "payouts_enabled": True,
            "requirements": {"currently_due": []},
        }
        self.fail_with = None

    def _request(self, method, path, params=None, idempotency_key=None):
        self.calls.append({
            "method": method,
            "path": path,
            "params": params or {},
            "idempotency_key": idempotency_key,
        })
        if self.fail_with:
            raise self.fail_with

        if path == "/accounts":
            return {"id": "acct_test"}
        if path == "/account_links":
            return {"url": "https://connect.stripe.test/onboarding/acct_test"}
        if path.startswith("/accounts/"):
            return self.account
        if path == "/payment_intents":
            return {
                "id": "pi_test",
                "client_secret": "pi_test_secret_abc",
                "amount": params["amount"],
            }
        raise AssertionError(f"unexpected Stripe call {method} {path}")


class FakeUploader:
    def __init__(self):
        self.uploads = []

    def __call__(self, file, *, folder, resource_type):
        self.uploads.append({
            "size": len(file.read()),
            "folder": folder,
            "resource_type": resource_type,
        })
        return f"https://res.cloudinary.test/{folder}/file"


@pytest.fixture
async def db():
    database = AsyncMongoMockClient()["tunehire_test"]
    await ensure_indexes(database)
    return database


@pytest.fixture
def stripe():
    return FakeStripe()


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
async def client(db, stripe, uploader):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_stripe] = lambda: stripe
    app.dependency_overrides[get_uploader] = lambda: uploader

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# -------------------------------
# Data helpers
# -------------------------------

_hashes = {}


def _hash(password):
    # bcrypt is slow; hash each test password once
    if password not in _hashes:
        _hashes[password] = hash_password(password)
    return _hashes[password]


async def make_user(db, *, email=None, name="Test User", can_sell=False, password="password123", **extra):
    now = datetime.utcnow()
    user = {
        "email": email or f"user-{ObjectId()}@example.com",
        "name": name,
        "password_hash": _hash(password),
        "role": "user",
        "can_buy": True,
        "can_sell": can_sell,
        "stripe_onboarding_complete": False,
        "created_at": now,
        "last_active_at": now,
        **extra,
    }
    await db.users.insert_one(user)
    return user


async def make_profile(db, user, *, price_per_minute=10.0, instrument="Violin", is_available=True):
    now = datetime.utcnow()
    profile = {
        "user_id": user["_id"],
        "bio": "Session player",
        "instrument": instrument,
        "price_per_minute": price_per_minute,
        "is_available": is_available,
        "profile_image": None,
        "audio_samples": [],
        "created_at": now,
        "updated_at": now,
    }
    await db.profiles.insert_one(profile)
    return profile


async def make_order(db, buyer, seller, *, status=OrderStatus.PENDING, total_price=30.0, **extra):
    now = datetime.utcnow()
    order = {
        "buyer_id": buyer["_id"],
        "seller_id": seller["_id"],
        "title": "Wedding march",
        "tempo": "Andante",
        "notes": None,
        "length_minutes": 3,
        "price_per_minute": 10.0,
        "total_price": total_price,
        "sheet_music_url": None,
        "audio_file_url": None,
        "intended_use": "Ceremony",
        "usage_type": "PERSONAL",
        "status": status.value,
        "stripe_payment_intent_id": None,
        "stripe_transfer_id": None,
        "stripe_transfer_group": None,
        "platform_fee": None,
        "seller_amount": None,
        "created_at": now,
        "updated_at": now,
        **extra,
    }
    await db.orders.insert_one(order)
    return order


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


def signed_event(event: dict, *, secret=WEBHOOK_SECRET, timestamp=None):
    """Serialized body plus a valid Stripe-Signature header for it."""
    body = json.dumps(event).encode("utf-8")
    ts = int(time.time()) if timestamp is None else timestamp
    sig = compute_webhook_signature(payload=body, timestamp=ts, secret=secret)
    return body, {"Stripe-Signature": f"t={ts},v1={sig}", "Content-Type": "application/json"}


@pytest.fixture
async def buyer(db):
    return await make_user(db, email="buyer@example.com", name="Bea Buyer")


@pytest.fixture
async def seller(db):
    user = await make_user(
        db,
        email="seller@example.com",
        name="Sam Seller",
        can_sell=True,
        stripe_account_id="acct_seller",
        stripe_onboarding_complete=True,
    )
    await make_profile(db, user)
    return user


@pytest.fixture
async def outsider(db):
    return await make_user(db, email="outsider@example.com", name="Olly Outsider")
