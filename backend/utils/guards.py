from typing import NamedTuple, Optional

from fastapi import HTTPException, status
from bson import ObjectId

# -------------------------------
# ObjectId Guard
# -------------------------------

def parse_object_id(value: str, name: str = "id") -> ObjectId:
    # ObjectId(None) would mint a fresh id instead of failing
    if not value or not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid {name}")
    return ObjectId(value)


# -------------------------------
# Access predicates
# -------------------------------

REASON_UNAUTHENTICATED = "unauthenticated"
REASON_NOT_PARTICIPANT = "not_order_participant"
REASON_NOT_ORDER_SELLER = "not_order_seller"
REASON_NOT_ORDER_BUYER = "not_order_buyer"
REASON_SELLER_ONLY = "seller_capability_required"
REASON_BUYER_ONLY = "buyer_capability_required"
REASON_NOT_SERVICE_OWNER = "not_service_owner"


class GuardResult(NamedTuple):
    allowed: bool
    reason: Optional[str] = None


ALLOW = GuardResult(True)


def _same_id(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def is_authenticated(user: Optional[dict]) -> GuardResult:
    if not user or not user.get("_id"):
        return GuardResult(False, REASON_UNAUTHENTICATED)
    return ALLOW


def is_order_participant(user: Optional[dict], order: dict) -> GuardResult:
    auth = is_authenticated(user)
    if not auth.allowed:
        return auth
    if _same_id(user["_id"], order.get("buyer_id")) or _same_id(user["_id"], order.get("seller_id")):
        return ALLOW
    return GuardResult(False, REASON_NOT_PARTICIPANT)


def is_order_seller(user: Optional[dict], order: dict) -> GuardResult:
    auth = is_authenticated(user)
    if not auth.allowed:
        return auth
    if _same_id(user["_id"], order.get("seller_id")):
        return ALLOW
    return GuardResult(False, REASON_NOT_ORDER_SELLER)


def is_order_buyer(user: Optional[dict], order: dict) -> GuardResult:
    auth = is_authenticated(user)
    if not auth.allowed:
        return auth
    if _same_id(user["_id"], order.get("buyer_id")):
        return ALLOW
    return GuardResult(False, REASON_NOT_ORDER_BUYER)


def can_sell(user: Optional[dict]) -> GuardResult:
    auth = is_authenticated(user)
    if not auth.allowed:
        return auth
    return ALLOW if user.get("can_sell") else GuardResult(False, REASON_SELLER_ONLY)


def can_buy(user: Optional[dict]) -> GuardResult:
    auth = is_authenticated(user)
    if not auth.allowed:
        return auth
    return ALLOW if user.get("can_buy", True) else GuardResult(False, REASON_BUYER_ONLY)


def is_service_owner(user: Optional[dict], service: dict) -> GuardResult:
    selling = can_sell(user)
    if not selling.allowed:
        return selling
    if _same_id(user["_id"], service.get("seller_id")):
        return ALLOW
    return GuardResult(False, REASON_NOT_SERVICE_OWNER)


def enforce(result: GuardResult, detail: Optional[str] = None) -> None:
    """
    Raise on denial: 401 when there is no session, 403 for anything else.
    """
    if result.allowed:
        return
    if result.reason == REASON_UNAUTHENTICATED:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=detail or "Forbidden",
    )
