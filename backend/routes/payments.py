import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from config.constants import PAYMENT_PLATFORM_FEE_RATE
from config.env import APP_BASE_URL
from database import get_db
from models.order import OrderStatus
from utils.guards import enforce, is_order_buyer
from utils.order_service import get_order_or_404, record_payment_intent
from utils.pricing import as_money, split_payment_fee, to_cents
from utils.security import get_current_user, require_seller
from utils.stripe import PaymentProviderError, get_stripe

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = logging.getLogger(__name__)


class PaymentIntentRequest(BaseModel):
    order_id: str | None = None


def _provider_error(e: Exception) -> HTTPException:
    logger.error("Payment provider call failed: %s", e)
    return HTTPException(500, "Payment provider error")


def _onboarding_complete(account: dict) -> bool:
    return bool(account.get("details_submitted") and account.get("charges_enabled"))


# ======================================================
# CONNECT ONBOARDING (SELLER)
# ======================================================

@router.post("/connect/onboard")
async def connect_onboard(
    seller=Depends(require_seller("Only sellers can set up payouts")),
    db=Depends(get_db),
    stripe=Depends(get_stripe),
):
    account_id = seller.get("stripe_account_id")

    try:
        if not account_id:
            account = await run_in_threadpool(
                stripe.create_connected_account, email=seller.get("email")
            )
            account_id = account["id"]
            await db.users.update_one(
                {"_id": seller["_id"]},
                {"$set": {
                    "stripe_account_id": account_id,
                    "stripe_onboarding_complete": False,
                    "updated_at": datetime.utcnow(),
                }},
            )
            logger.info("Created connected account %s for seller %s", account_id, seller["_id"])

        link = await run_in_threadpool(
            stripe.create_onboarding_link,
            account_id=account_id,
            refresh_url=f"{APP_BASE_URL}/profile?stripe_error=refresh",
            return_url=f"{APP_BASE_URL}/profile?stripe_success=true",
        )
    except PaymentProviderError as e:
        raise _provider_error(e)

    return {"url": link.get("url")}


@router.get("/connect/status")
async def connect_status(
    user=Depends(get_current_user),
    db=Depends(get_db),
    stripe=Depends(get_stripe),
):
    account_id = user.get("stripe_account_id")
    if not account_id:
        return {
            "onboarding_complete": False,
            "charges_enabled": False,
            "payouts_enabled": False,
            "details_submitted": False,
            "requires_action": False,
            "requirements": [],
        }

    try:
        account = await run_in_threadpool(stripe.retrieve_account, account_id)
    except PaymentProviderError as e:
        raise _provider_error(e)

    complete = _onboarding_complete(account)
    if complete != bool(user.get("stripe_onboarding_complete")):
        await db.users.update_one(
            {"_id": user["_id"]},
            {"$set": {"stripe_onboarding_complete": complete, "updated_at": datetime.utcnow()}},
        )

    requirements = (account.get("requirements") or {}).get("currently_due") or []
    return {
        "onboarding_complete": complete,
        "charges_enabled": bool(account.get("charges_enabled")),
        "payouts_enabled": bool(account.get("payouts_enabled")),
        "details_submitted": bool(account.get("details_submitted")),
        "requires_action": bool(requirements),
        "requirements": requirements,
    }


# ======================================================
# PAYMENT INTENT (BUYER)
# ======================================================

@router.post("/intent")
async def create_payment_intent(
    data: PaymentIntentRequest,
    user=Depends(get_current_user),
    db=Depends(get_db),
    stripe=Depends(get_stripe),
):
    if not data.order_id:
        raise HTTPException(400, "order_id is required")

    order = await get_order_or_404(db, data.order_id)
    enforce(is_order_buyer(user, order), "Only the buyer can pay for this order")

    if order["status"] != OrderStatus.PENDING.value:
        raise HTTPException(400, "Order is not awaiting payment")

    seller = await db.users.find_one({"_id": order["seller_id"]})
    if not seller or not seller.get("stripe_account_id") or not seller.get("stripe_onboarding_complete"):
        raise HTTPException(400, "Seller has not completed payment setup")

    split = split_payment_fee(order["total_price"], PAYMENT_PLATFORM_FEE_RATE)
    order_id = str(order["_id"])

    try:
        intent = await run_in_threadpool(
            stripe.create_payment_intent,
            amount_cents=to_cents(order["total_price"]),
            application_fee_cents=to_cents(split.platform_fee),
            destination_account=seller["stripe_account_id"],
            metadata={
                "order_id": order_id,
                "buyer_id": str(order["buyer_id"]),
                "seller_id": str(order["seller_id"]),
                "platform_fee": str(to_cents(split.platform_fee)),
                "seller_amount": str(to_cents(split.seller_amount)),
            },
            description=f"TuneHire order: {order['title']}",
            idempotency_key=f"payment-intent:{order_id}",
        )
    except PaymentProviderError as e:
        raise _provider_error(e)

    await record_payment_intent(db, order=order, intent=intent, split=split)
    logger.info("Payment intent %s created for order %s", intent.get("id"), order_id)

    return {
        "client_secret": intent.get("client_secret"),
        "platform_fee": as_money(split.platform_fee),
        "seller_amount": as_money(split.seller_amount),
    }
