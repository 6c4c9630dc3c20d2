import base64
import hashlib
import hmac
import json
import logging
import time
from urllib import error, parse, request

from config.env import (
    STRIPE_API_VERSION,
    STRIPE_CONNECT_COUNTRY,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
    STRIPE_WEBHOOK_TOLERANCE_SECONDS,
)
from config.constants import CURRENCY

STRIPE_API_BASE = "https://api.stripe.com/v1"
logger = logging.getLogger(__name__)


class PaymentProviderError(Exception):
    """Stripe rejected a request or could not be reached."""


class InvalidSignature(Exception):
    pass


def _basic_auth_header(secret_key: str) -> str:
    token = f"{secret_key}:".encode("utf-8")
    return "Basic " + base64.b64encode(token).decode("utf-8")


def encode_form(params: dict, prefix: str | None = None) -> list[tuple[str, str]]:
    """
    Flatten nested params into Stripe's bracket form encoding:
    {"transfer_data": {"destination": "acct_1"}} -> transfer_data[destination]=acct_1
    """
    pairs = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for i, item in enumerate(value):
                if isinstance(item, dict):
                    pairs.extend(encode_form(item, f"{name}[{i}]"))
                else:
                    pairs.append((f"{name}[{i}]", str(item)))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))
    return pairs


# =========================================================
# WEBHOOK SIGNATURES
# =========================================================

def _parse_signature_header(header: str) -> tuple[int | None, list[str]]:
    timestamp = None
    signatures = []
    for item in (header or "").split(","):
        k, _, v = item.strip().partition("=")
        if k == "t":
            try:
                timestamp = int(v)
            except ValueError:
                return None, []
        elif k == "v1" and v:
            signatures.append(v)
    return timestamp, signatures


def compute_webhook_signature(*, payload: bytes, timestamp: int, secret: str) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    *,
    payload: bytes,
    header: str | None,
    secret: str,
    tolerance: int = STRIPE_WEBHOOK_TOLERANCE_SECONDS,
    now: int | None = None,
) -> bool:
    timestamp, signatures = _parse_signature_header(header or "")
    if timestamp is None or not signatures:
        return False

    now = int(time.time()) if now is None else now
    if tolerance and abs(now - timestamp) > tolerance:
        return False

    expected = compute_webhook_signature(payload=payload, timestamp=timestamp, secret=secret)
    return any(hmac.compare_digest(expected, sig) for sig in signatures)


# =========================================================
# CLIENT
# =========================================================

class StripeClient:
    """
    Thin Stripe REST client. One instance per process, handed to routes
    through the get_stripe dependency.
    """

    def __init__(
        self,
        *,
        secret_key: str | None,
        webhook_secret: str | None,
        api_version: str = STRIPE_API_VERSION,
        timeout: int = 20,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.api_version = api_version
        self.timeout = timeout

    # ---------------- transport ----------------

    def _request(self, method: str, path: str, params: dict | None = None, idempotency_key: str | None = None) -> dict:
        if not self.secret_key:
            raise PaymentProviderError("Stripe secret key is not configured")

        headers = {
            "Authorization": _basic_auth_header(self.secret_key),
            "Stripe-Version": self.api_version,
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        url = f"{STRIPE_API_BASE}{path}"
        data = None
        if params and method == "GET":
            url = f"{url}?{parse.urlencode(encode_form(params))}"
        elif params:
            data = parse.urlencode(encode_form(params)).encode("utf-8")
            headers["Content-Type"] = "application/x-www-form-urlencoded"

        req = request.Request(url=url, data=data, headers=headers, method=method)

        try:
            with request.urlopen(req, timeout=self.timeout) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except error.HTTPError as e:
            details = e.read().decode("utf-8", errors="ignore")
            logger.error("STRIPE_HTTP_ERROR %s %s status=%s body=%s", method, path, e.code, details)
            raise PaymentProviderError(f"Stripe request failed ({e.code})") from e
        except (error.URLError, TimeoutError, ValueError) as e:
            logger.error("STRIPE_UNREACHABLE %s %s: %s", method, path, e)
            raise PaymentProviderError("Stripe request failed") from e

    # ---------------- connect ----------------

    def create_connected_account(self, *, email: str | None) -> dict:
        return self._request("POST", "/accounts", {
            "type": "express",
            "country": STRIPE_CONNECT_COUNTRY,
            "email": email,
            "capabilities": {
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            "business_profile": {
                "product_description": "Music services and recordings",
                "mcc": "7829",
            },
            "settings": {
                "payouts": {"schedule": {"interval": "daily"}},
            },
        })

    def create_onboarding_link(self, *, account_id: str, refresh_url: str, return_url: str) -> dict:
        return self._request("POST", "/account_links", {
            "account": account_id,
            "refresh_url": refresh_url,
            "return_url": return_url,
            "type": "account_onboarding",
        })

    def retrieve_account(self, account_id: str) -> dict:
        return self._request("GET", f"/accounts/{parse.quote(account_id)}")

    # ---------------- payments ----------------

    def create_payment_intent(
        self,
        *,
        amount_cents: int,
        application_fee_cents: int,
        destination_account: str,
        metadata: dict,
        description: str,
        idempotency_key: str | None = None,
    ) -> dict:
        return self._request(
            "POST",
            "/payment_intents",
            {
                "amount": amount_cents,
                "currency": CURRENCY,
                "application_fee_amount": application_fee_cents,
                "transfer_data": {"destination": destination_account},
                "metadata": metadata,
                "description": description,
            },
            idempotency_key=idempotency_key,
        )

    # ---------------- webhooks ----------------

    def construct_event(self, payload: bytes, signature_header: str | None) -> dict:
        if not self.webhook_secret:
            raise InvalidSignature("Stripe webhook secret is not configured")
        if not verify_webhook_signature(payload=payload, header=signature_header, secret=self.webhook_secret):
            raise InvalidSignature("Signature mismatch")
        try:
            return json.loads(payload.decode("utf-8"))
        except ValueError as e:
            raise InvalidSignature("Unreadable payload") from e


_client: StripeClient | None = None


def get_stripe() -> StripeClient:
    global _client
    if _client is None:
        _client = StripeClient(
            secret_key=STRIPE_SECRET_KEY,
            webhook_secret=STRIPE_WEBHOOK_SECRET,
        )
    return _client
