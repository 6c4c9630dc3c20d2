import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request

from database import get_db
from utils.idempotency import (
    reserve_idempotency_key,
    complete_idempotency_key,
    fail_idempotency_key,
)
from utils.order_service import (
    OUTCOME_IGNORED,
    OUTCOME_NOOP,
    OUTCOME_NOT_FOUND,
    OUTCOME_APPLIED,
    attach_transfer,
    mark_payment_failed,
    mark_payment_succeeded,
)
from utils.stripe import InvalidSignature, get_stripe

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = logging.getLogger(__name__)

WEBHOOK_SCOPE = "stripe_webhook"
ACK = {"received": True}


# =========================================================
# EVENT HANDLERS
# =========================================================

async def handle_payment_succeeded(db, payment_intent: dict) -> str:
    return await mark_payment_succeeded(db, payment_intent=payment_intent)


async def handle_payment_failed(db, payment_intent: dict) -> str:
    return await mark_payment_failed(db, payment_intent=payment_intent)


async def handle_account_updated(db, account: dict) -> str:
    user = await db.users.find_one({"stripe_account_id": account.get("id")})
    if not user:
        logger.error("No user found for Stripe account %s", account.get("id"))
        return OUTCOME_NOT_FOUND

    complete = bool(account.get("details_submitted") and account.get("charges_enabled"))
    if complete == bool(user.get("stripe_onboarding_complete")):
        return OUTCOME_NOOP

    await db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"stripe_onboarding_complete": complete, "updated_at": datetime.utcnow()}},
    )
    logger.info("Onboarding status for user %s is now %s", user["_id"], complete)
    return OUTCOME_APPLIED


async def handle_transfer_created(db, transfer: dict) -> str:
    return await attach_transfer(db, transfer=transfer)


EVENT_HANDLERS = {
    "payment_intent.succeeded": handle_payment_succeeded,
    "payment_intent.payment_failed": handle_payment_failed,
    "account.updated": handle_account_updated,
    "transfer.created": handle_transfer_created,
}


# =========================================================
# STRIPE WEBHOOK (SIGNED, IDEMPOTENT)
# =========================================================

@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db=Depends(get_db),
    stripe=Depends(get_stripe),
):
    """
    Stripe event delivery.

    - Signature verified before anything is read or written
    - Each event id is processed once; redeliveries get the stored answer
    - Handler failures are logged and acknowledged, never retried by Stripe
    """
    raw_body = await request.body()

    try:
        event = stripe.construct_event(raw_body, request.headers.get("Stripe-Signature"))
    except InvalidSignature as e:
        logger.warning("Stripe webhook rejected: %s", e)
        raise HTTPException(400, "Invalid signature")

    event_id = event.get("id")
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled Stripe event type: %s", event_type)
        return ACK

    idempotency_key = f"stripe:{event_id}"
    if event_id:
        existing = await reserve_idempotency_key(
            db=db,
            key=idempotency_key,
            scope=WEBHOOK_SCOPE,
        )
        if existing is not None:
            logger.info("Stripe event %s already handled or in flight", event_id)
            return ACK

    try:
        outcome = await handler(db, obj)
    except Exception as e:
        logger.exception("Stripe event %s (%s) handler failed", event_id, event_type)
        if event_id:
            await fail_idempotency_key(
                db=db,
                key=idempotency_key,
                scope=WEBHOOK_SCOPE,
                error=str(e),
            )
        return ACK

    if outcome == OUTCOME_IGNORED:
        logger.info("Stripe event %s (%s) ignored", event_id, event_type)

    if event_id:
        await complete_idempotency_key(
            db=db,
            key=idempotency_key,
            scope=WEBHOOK_SCOPE,
            response={**ACK, "outcome": outcome},
        )
    return ACK
