"""Unit tests for access predicates and their HTTP mapping.

Run with: pytest tests/test_guards.py -v
"""

import pytest
from bson import ObjectId
from fastapi import HTTPException

from utils.guards import (
    REASON_NOT_PARTICIPANT,
    REASON_UNAUTHENTICATED,
    can_buy,
    can_sell,
    enforce,
    is_authenticated,
    is_order_buyer,
    is_order_participant,
    is_order_seller,
    is_service_owner,
    parse_object_id,
)


@pytest.fixture
def people():
    buyer = {"_id": ObjectId(), "can_buy": True, "can_sell": False}
    seller = {"_id": ObjectId(), "can_buy": True, "can_sell": True}
    other = {"_id": ObjectId(), "can_buy": True, "can_sell": True}
    order = {"buyer_id": buyer["_id"], "seller_id": seller["_id"]}
    return buyer, seller, other, order


class TestPredicates:
    def test_anonymous_is_unauthenticated_everywhere(self, people):
        *_, order = people
        for result in (
            is_authenticated(None),
            is_order_participant(None, order),
            is_order_seller(None, order),
            is_order_buyer(None, order),
            can_sell(None),
            can_buy(None),
        ):
            assert not result.allowed
            assert result.reason == REASON_UNAUTHENTICATED

    def test_participants(self, people):
        buyer, seller, other, order = people
        assert is_order_participant(buyer, order).allowed
        assert is_order_participant(seller, order).allowed
        assert is_order_participant(other, order).reason == REASON_NOT_PARTICIPANT

    def test_seller_and_buyer_roles_are_distinct(self, people):
        buyer, seller, _, order = people
        assert is_order_seller(seller, order).allowed
        assert not is_order_seller(buyer, order).allowed
        assert is_order_buyer(buyer, order).allowed
        assert not is_order_buyer(seller, order).allowed

    def test_ids_compare_across_types(self, people):
        buyer, _, _, order = people
        as_string = {**buyer, "_id": str(buyer["_id"])}
        assert is_order_buyer(as_string, order).allowed

    def test_capabilities(self, people):
        buyer, seller, *_ = people
        assert not can_sell(buyer).allowed
        assert can_sell(seller).allowed
        assert can_buy(buyer).allowed
        assert not can_buy({**buyer, "can_buy": False}).allowed

    def test_service_owner(self, people):
        _, seller, other, _ = people
        service = {"seller_id": seller["_id"]}
        assert is_service_owner(seller, service).allowed
        assert not is_service_owner(other, service).allowed


class TestEnforce:
    def test_unauthenticated_is_401(self):
        with pytest.raises(HTTPException) as exc:
            enforce(is_authenticated(None))
        assert exc.value.status_code == 401

    def test_denial_is_403_with_detail(self, people):
        *_, other, order = people
        with pytest.raises(HTTPException) as exc:
            enforce(is_order_participant(other, order), "nope")
        assert exc.value.status_code == 403
        assert exc.value.detail == "nope"

    def test_allow_passes(self, people):
        buyer, *_ , order = people
        enforce(is_order_buyer(buyer, order))


class TestParseObjectId:
    @pytest.mark.parametrize("value", [None, "", "not-an-id", "123"])
    def test_rejects_malformed(self, value):
        with pytest.raises(HTTPException) as exc:
            parse_object_id(value, "order_id")
        assert exc.value.status_code == 400
        assert exc.value.detail == "Invalid order_id"

    def test_accepts_hex(self):
        oid = ObjectId()
        assert parse_object_id(str(oid)) == oid
