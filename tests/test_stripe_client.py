"""Unit tests for the Stripe REST client helpers.

Run with: pytest tests/test_stripe_client.py -v
"""

import pytest

from utils.stripe import (
    InvalidSignature,
    PaymentProviderError,
    StripeClient,
    compute_webhook_signature,
    encode_form,
    verify_webhook_signature,
)

SECRET = "whsec_unit"


class TestEncodeForm:
    def test_nested_dicts_use_brackets(self):
        pairs = encode_form({
            "amount": 3000,
            "transfer_data": {"destination": "acct_1"},
            "metadata": {"order_id": "abc"},
        })
        assert ("amount", "3000") in pairs
        assert ("transfer_data[destination]", "acct_1") in pairs
        assert ("metadata[order_id]", "abc") in pairs

    def test_bools_lists_and_none(self):
        pairs = encode_form({
            "capabilities": {"transfers": {"requested": True}},
            "expand": ["a", "b"],
            "email": None,
        })
        assert ("capabilities[transfers][requested]", "true") in pairs
        assert ("expand[0]", "a") in pairs
        assert ("expand[1]", "b") in pairs
        assert all(name != "email" for name, _ in pairs)


class TestWebhookSignature:
    def _header(self, payload, ts, secret=SECRET):
        return f"t={ts},v1={compute_webhook_signature(payload=payload, timestamp=ts, secret=secret)}"

    def test_valid_signature(self):
        body = b'{"id":"evt_1"}'
        header = self._header(body, 1000)
        assert verify_webhook_signature(payload=body, header=header, secret=SECRET, now=1000)

    def test_tampered_body(self):
        header = self._header(b'{"id":"evt_1"}', 1000)
        assert not verify_webhook_signature(payload=b'{"id":"evt_2"}', header=header, secret=SECRET, now=1000)

    def test_wrong_secret(self):
        body = b"{}"
        header = self._header(body, 1000, secret="whsec_other")
        assert not verify_webhook_signature(payload=body, header=header, secret=SECRET, now=1000)

    def test_stale_timestamp(self):
        body = b"{}"
        header = self._header(body, 1000)
        assert not verify_webhook_signature(payload=body, header=header, secret=SECRET, tolerance=300, now=2000)

    @pytest.mark.parametrize("header", [None, "", "garbage", "t=abc,v1=00", "t=1000"])
    def test_malformed_header(self, header):
        assert not verify_webhook_signature(payload=b"{}", header=header, secret=SECRET, now=1000)

    def test_any_v1_signature_may_match(self):
        body = b"{}"
        good = compute_webhook_signature(payload=body, timestamp=1000, secret=SECRET)
        header = f"t=1000,v1=deadbeef,v1={good}"
        assert verify_webhook_signature(payload=body, header=header, secret=SECRET, now=1000)


class TestClient:
    def test_missing_secret_key_raises_provider_error(self):
        client = StripeClient(secret_key=None, webhook_secret=SECRET)
        with pytest.raises(PaymentProviderError):
            client.retrieve_account("acct_1")

    def test_construct_event_without_webhook_secret(self):
        client = StripeClient(secret_key="sk", webhook_secret=None)
        with pytest.raises(InvalidSignature):
            client.construct_event(b"{}", "t=1,v1=x")

    def test_construct_event_rejects_bad_json(self):
        import time

        client = StripeClient(secret_key="sk", webhook_secret=SECRET)
        body = b"not json"
        ts = int(time.time())
        header = f"t={ts},v1={compute_webhook_signature(payload=body, timestamp=ts, secret=SECRET)}"
        with pytest.raises(InvalidSignature):
            client.construct_event(body, header)
