import logging
from datetime import datetime

from bson import ObjectId
from fastapi import HTTPException
from pymongo import ReturnDocument

from config.constants import PAYMENT_PLATFORM_FEE_RATE
from models.order import OrderCreate, OrderSellerUpdate, OrderStatus
from utils.guards import parse_object_id
from utils.order_state import (
    SELLER_SETTABLE_STATUSES,
    InvalidTransition,
    assert_transition,
    coerce_status,
    is_terminal,
)
from utils.order_timeline import (
    EVENT_CANCELLED,
    EVENT_CREATED,
    EVENT_DELIVERY_ATTACHED,
    EVENT_PAYMENT_FAILED,
    EVENT_PAYMENT_INTENT_CREATED,
    EVENT_PAYMENT_SUCCEEDED,
    EVENT_STATUS_CHANGED,
    EVENT_TRANSFER_CREATED,
    record_order_event,
)
from utils.pricing import as_money, compute_order_total, split_payment_fee

logger = logging.getLogger(__name__)

# webhook outcomes
OUTCOME_APPLIED = "applied"
OUTCOME_NOOP = "noop"
OUTCOME_IGNORED = "ignored"
OUTCOME_NOT_FOUND = "order_not_found"


# ======================================================
# LOOKUPS
# ======================================================

async def get_order_or_404(db, order_id: str) -> dict:
    # a malformed id names no order: 404, same as an unknown one
    if not order_id or not ObjectId.is_valid(order_id):
        raise HTTPException(404, "Order not found")

    order = await db.orders.find_one({"_id": ObjectId(order_id)})
    if not order:
        raise HTTPException(404, "Order not found")
    return order


async def load_participants(db, order: dict) -> tuple[dict | None, dict | None]:
    buyer = await db.users.find_one({"_id": order["buyer_id"]})
    seller = await db.users.find_one({"_id": order["seller_id"]})
    return buyer, seller


async def list_order_messages(db, order_id) -> list[dict]:
    return await db.messages.find(
        {"order_id": order_id},
        sort=[("created_at", 1)],
    ).to_list(None)


async def list_orders_for_user(db, user_id) -> list[dict]:
    return await db.orders.find(
        {"$or": [{"buyer_id": user_id}, {"seller_id": user_id}]},
        sort=[("created_at", -1)],
    ).to_list(None)


async def latest_message(db, order_id) -> dict | None:
    rows = await db.messages.find(
        {"order_id": order_id},
        sort=[("created_at", -1)],
        limit=1,
    ).to_list(1)
    return rows[0] if rows else None


# ======================================================
# CREATE (BUYER)
# ======================================================

async def create_order(db, *, buyer: dict, data: OrderCreate) -> dict:
    seller_oid = parse_object_id(data.seller_id, "seller_id")
    if seller_oid == buyer["_id"]:
        raise HTTPException(400, "You cannot place an order with yourself")

    profile = await db.profiles.find_one({"user_id": seller_oid})
    if not profile:
        raise HTTPException(404, "Seller profile not found")

    seller = await db.users.find_one({"_id": seller_oid})
    if not seller or not seller.get("can_sell"):
        raise HTTPException(404, "Seller profile not found")

    price_per_minute = profile.get("price_per_minute")
    if price_per_minute is None:
        raise HTTPException(400, "Seller has not set a price per minute")

    total_price = compute_order_total(price_per_minute, data.length_minutes)

    now = datetime.utcnow()
    order = {
        "buyer_id": buyer["_id"],
        "seller_id": seller_oid,
        "title": data.title,
        "tempo": data.tempo,
        "notes": data.notes,
        "length_minutes": data.length_minutes,
        "price_per_minute": as_money(price_per_minute),
        "total_price": as_money(total_price),
        "sheet_music_url": data.sheet_music_url,
        "audio_file_url": None,
        "intended_use": data.intended_use,
        "usage_type": data.usage_type.value,
        "status": OrderStatus.PENDING.value,
        "stripe_payment_intent_id": None,
        "stripe_transfer_id": None,
        "stripe_transfer_group": None,
        "platform_fee": None,
        "seller_amount": None,
        "created_at": now,
        "updated_at": now,
    }

    await db.orders.insert_one(order)

    await record_order_event(
        db,
        order_id=order["_id"],
        event=EVENT_CREATED,
        actor_role="buyer",
        actor_id=buyer["_id"],
        to_status=OrderStatus.PENDING.value,
        metadata={"total_price": order["total_price"]},
    )

    logger.info("Order %s created by buyer %s for seller %s", order["_id"], buyer["_id"], seller_oid)
    return order


# ======================================================
# SELLER UPDATE
# ======================================================

async def update_order_as_seller(db, *, order: dict, seller: dict, data: OrderSellerUpdate) -> dict:
    if data.status is None and data.audio_file_url is None:
        raise HTTPException(400, "Nothing to update")

    current = coerce_status(order["status"])
    now = datetime.utcnow()
    updates = {}

    if data.status is not None and data.status != current:
        if data.status not in SELLER_SETTABLE_STATUSES:
            raise HTTPException(400, "Sellers can only set status to IN_PROGRESS or COMPLETED")
        try:
            assert_transition(current, data.status)
        except InvalidTransition as e:
            raise HTTPException(400, str(e))
        updates["status"] = data.status.value
        if data.status == OrderStatus.COMPLETED:
            updates["completed_at"] = now

    if data.audio_file_url is not None:
        if current == OrderStatus.CANCELLED:
            raise HTTPException(400, "Cannot deliver a recording for a cancelled order")
        updates["audio_file_url"] = data.audio_file_url

    if not updates:
        return order

    updates["updated_at"] = now
    updated = await db.orders.find_one_and_update(
        {"_id": order["_id"], "status": current.value},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise HTTPException(409, "Order was modified concurrently, please retry")

    if "status" in updates:
        await record_order_event(
            db,
            order_id=order["_id"],
            event=EVENT_STATUS_CHANGED,
            actor_role="seller",
            actor_id=seller["_id"],
            from_status=current.value,
            to_status=updates["status"],
        )
        logger.info("Order %s moved %s -> %s by seller", order["_id"], current.value, updates["status"])

    if "audio_file_url" in updates:
        await record_order_event(
            db,
            order_id=order["_id"],
            event=EVENT_DELIVERY_ATTACHED,
            actor_role="seller",
            actor_id=seller["_id"],
            metadata={"audio_file_url": updates["audio_file_url"]},
        )

    return updated


# ======================================================
# CANCEL (EITHER PARTY)
# ======================================================

async def cancel_order(db, *, order: dict, actor: dict, reason: str | None = None) -> dict:
    current = coerce_status(order["status"])
    if current == OrderStatus.CANCELLED:
        return order

    try:
        assert_transition(current, OrderStatus.CANCELLED)
    except InvalidTransition as e:
        raise HTTPException(400, str(e))

    actor_role = "seller" if actor["_id"] == order["seller_id"] else "buyer"
    now = datetime.utcnow()
    updated = await db.orders.find_one_and_update(
        {"_id": order["_id"], "status": current.value},
        {"$set": {
            "status": OrderStatus.CANCELLED.value,
            "cancel_reason": reason or f"CANCELLED_BY_{actor_role.upper()}",
            "cancelled_at": now,
            "updated_at": now,
        }},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise HTTPException(409, "Order was modified concurrently, please retry")

    await record_order_event(
        db,
        order_id=order["_id"],
        event=EVENT_CANCELLED,
        actor_role=actor_role,
        actor_id=actor["_id"],
        from_status=current.value,
        to_status=OrderStatus.CANCELLED.value,
        metadata={"reason": reason},
    )
    return updated


# ======================================================
# PAYMENT INTENT BOOKKEEPING
# ======================================================

async def record_payment_intent(db, *, order: dict, intent: dict, split) -> None:
    await db.orders.update_one(
        {"_id": order["_id"]},
        {"$set": {
            "stripe_payment_intent_id": intent.get("id"),
            "platform_fee": as_money(split.platform_fee),
            "seller_amount": as_money(split.seller_amount),
            "updated_at": datetime.utcnow(),
        }},
    )
    await record_order_event(
        db,
        order_id=order["_id"],
        event=EVENT_PAYMENT_INTENT_CREATED,
        actor_role="buyer",
        actor_id=order["buyer_id"],
        metadata={"payment_intent_id": intent.get("id")},
    )


# ======================================================
# WEBHOOK-DRIVEN TRANSITIONS
# ======================================================

async def find_order_for_payment_intent(db, payment_intent: dict) -> dict | None:
    order_id = (payment_intent.get("metadata") or {}).get("order_id")
    if order_id and ObjectId.is_valid(order_id):
        order = await db.orders.find_one({"_id": ObjectId(order_id)})
        if order:
            return order

    intent_id = payment_intent.get("id")
    if intent_id:
        return await db.orders.find_one({"stripe_payment_intent_id": intent_id})
    return None


async def mark_payment_succeeded(db, *, payment_intent: dict) -> str:
    """
    PENDING -> ACCEPTED, recording the intent, transfer group and fee split.

    An order already ACCEPTED or IN_PROGRESS keeps its status: a late or
    repeated event must not roll IN_PROGRESS work back to ACCEPTED. Only a
    missing transfer group is filled in. COMPLETED and CANCELLED orders are
    left alone and logged.
    """
    order = await find_order_for_payment_intent(db, payment_intent)
    if not order:
        logger.error("No order for succeeded payment intent %s", payment_intent.get("id"))
        return OUTCOME_NOT_FOUND

    current = coerce_status(order["status"])
    transfer_group = payment_intent.get("transfer_group")

    if current != OrderStatus.PENDING:
        if is_terminal(current):
            logger.warning(
                "Payment %s succeeded for order %s already %s; leaving it",
                payment_intent.get("id"), order["_id"], current.value,
            )
            return OUTCOME_IGNORED

        if transfer_group and not order.get("stripe_transfer_group"):
            await db.orders.update_one(
                {"_id": order["_id"]},
                {"$set": {"stripe_transfer_group": transfer_group}},
            )
        return OUTCOME_NOOP

    now = datetime.utcnow()
    updates = {
        "status": OrderStatus.ACCEPTED.value,
        "paid_at": now,
        "updated_at": now,
    }
    if payment_intent.get("id"):
        updates["stripe_payment_intent_id"] = payment_intent["id"]
    if transfer_group:
        updates["stripe_transfer_group"] = transfer_group
    if order.get("platform_fee") is None or order.get("seller_amount") is None:
        split = split_payment_fee(order["total_price"], PAYMENT_PLATFORM_FEE_RATE)
        updates["platform_fee"] = as_money(split.platform_fee)
        updates["seller_amount"] = as_money(split.seller_amount)

    res = await db.orders.update_one(
        {"_id": order["_id"], "status": OrderStatus.PENDING.value},
        {"$set": updates},
    )
    if res.modified_count != 1:
        # concurrent delivery already moved it
        return OUTCOME_NOOP

    await record_order_event(
        db,
        order_id=order["_id"],
        event=EVENT_PAYMENT_SUCCEEDED,
        actor_role="system",
        from_status=OrderStatus.PENDING.value,
        to_status=OrderStatus.ACCEPTED.value,
        metadata={"payment_intent_id": payment_intent.get("id")},
    )
    logger.info("Payment succeeded for order %s", order["_id"])
    return OUTCOME_APPLIED


async def mark_payment_failed(db, *, payment_intent: dict) -> str:
    order = await find_order_for_payment_intent(db, payment_intent)
    if not order:
        logger.error("No order for failed payment intent %s", payment_intent.get("id"))
        return OUTCOME_NOT_FOUND

    current = coerce_status(order["status"])
    if is_terminal(current):
        return OUTCOME_NOOP

    failure = (payment_intent.get("last_payment_error") or {}).get("message")
    now = datetime.utcnow()
    res = await db.orders.update_one(
        {"_id": order["_id"], "status": current.value},
        {"$set": {
            "status": OrderStatus.CANCELLED.value,
            "cancel_reason": "PAYMENT_FAILED",
            "cancelled_at": now,
            "updated_at": now,
        }},
    )
    if res.modified_count != 1:
        return OUTCOME_NOOP

    await record_order_event(
        db,
        order_id=order["_id"],
        event=EVENT_PAYMENT_FAILED,
        actor_role="system",
        from_status=current.value,
        to_status=OrderStatus.CANCELLED.value,
        metadata={"payment_intent_id": payment_intent.get("id"), "failure": failure},
    )
    logger.info("Payment failed for order %s", order["_id"])
    return OUTCOME_APPLIED


async def attach_transfer(db, *, transfer: dict) -> str:
    order_id = (transfer.get("metadata") or {}).get("order_id")
    transfer_group = transfer.get("transfer_group")

    if order_id and ObjectId.is_valid(order_id):
        query = {"_id": ObjectId(order_id)}
    elif transfer_group:
        query = {"stripe_transfer_group": transfer_group}
    else:
        logger.info("Transfer %s carries no order reference; ignored", transfer.get("id"))
        return OUTCOME_IGNORED

    order = await db.orders.find_one(query)
    if not order:
        logger.info("Transfer %s matches no order; ignored", transfer.get("id"))
        return OUTCOME_IGNORED

    if order.get("stripe_transfer_id") == transfer.get("id"):
        return OUTCOME_NOOP

    await db.orders.update_one(
        {"_id": order["_id"]},
        {"$set": {"stripe_transfer_id": transfer.get("id"), "updated_at": datetime.utcnow()}},
    )
    await record_order_event(
        db,
        order_id=order["_id"],
        event=EVENT_TRANSFER_CREATED,
        actor_role="system",
        metadata={"transfer_id": transfer.get("id")},
    )
    logger.info("Transfer %s created for order %s", transfer.get("id"), order["_id"])
    return OUTCOME_APPLIED
