import logging
from datetime import datetime

from bson import ObjectId
from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from config.constants import PAYOUT_PLATFORM_FEE_RATE
from models.order import OrderStatus
from models.payout import PayoutStatus
from utils.guards import can_sell, enforce
from utils.pricing import FeeSplit, as_money, split_payment_fee, sum_prices

logger = logging.getLogger(__name__)

OPEN_PAYOUT_STATUSES = (PayoutStatus.PENDING.value, PayoutStatus.PROCESSING.value)

PAYOUT_STATUS_TRANSITIONS = {
    PayoutStatus.PENDING: {PayoutStatus.PROCESSING, PayoutStatus.PAID, PayoutStatus.FAILED},
    PayoutStatus.PROCESSING: {PayoutStatus.PAID, PayoutStatus.FAILED},
    PayoutStatus.PAID: set(),
    PayoutStatus.FAILED: set(),
}


def payout_split(gross) -> FeeSplit:
    """Platform cut and seller net for a payout of `gross`."""
    return split_payment_fee(gross, PAYOUT_PLATFORM_FEE_RATE)


async def list_seller_payouts(db, seller_id) -> list[dict]:
    return await db.payouts.find(
        {"seller_id": seller_id},
        sort=[("created_at", -1)],
    ).to_list(None)


async def _completed_orders(db, seller_id) -> list[dict]:
    return await db.orders.find(
        {"seller_id": seller_id, "status": OrderStatus.COMPLETED.value},
        sort=[("created_at", 1)],
    ).to_list(None)


async def _claimed_order_ids(db, payouts: list[dict], orders: list[dict]) -> set:
    """
    Order ids already spoken for: listed on a payout, or holding a
    payout_claims row. A claim left behind by an interrupted request still
    counts, since the unique index would reject a new claim for it.
    """
    claimed = set()
    for payout in payouts:
        claimed.update(payout.get("order_ids", []))

    if orders:
        rows = await db.payout_claims.find(
            {"order_id": {"$in": [o["_id"] for o in orders]}},
        ).to_list(None)
        claimed.update(row["order_id"] for row in rows)
    return claimed


async def _split_by_claim(db, seller_id) -> tuple[list[dict], list[dict]]:
    """(all COMPLETED orders, the unclaimed subset) for one seller."""
    completed = await _completed_orders(db, seller_id)
    payouts = await list_seller_payouts(db, seller_id)
    claimed = await _claimed_order_ids(db, payouts, completed)
    return completed, [o for o in completed if o["_id"] not in claimed]


async def list_eligible_orders(db, seller_id) -> list[dict]:
    """
    COMPLETED orders of this seller that no payout or claim holds yet.
    """
    _, eligible = await _split_by_claim(db, seller_id)
    return eligible


async def _release_claims(db, payout_id) -> None:
    await db.payout_claims.delete_many({"payout_id": payout_id})


async def request_payout(db, *, seller: dict) -> dict:
    enforce(can_sell(seller), "Only sellers can request payouts")

    eligible = await list_eligible_orders(db, seller["_id"])
    if not eligible:
        raise HTTPException(400, "No completed orders available for payout")

    gross = sum_prices(o["total_price"] for o in eligible)
    split = payout_split(gross)
    order_ids = [o["_id"] for o in eligible]

    payout_id = ObjectId()
    now = datetime.utcnow()

    # claims go in first; the unique index on order_id makes a concurrent
    # request for the same orders fail here instead of double paying
    try:
        for order_id in order_ids:
            await db.payout_claims.insert_one({
                "order_id": order_id,
                "payout_id": payout_id,
                "seller_id": seller["_id"],
                "created_at": now,
            })
    except DuplicateKeyError:
        await _release_claims(db, payout_id)
        logger.warning("Payout request for seller %s lost a claim race", seller["_id"])
        raise HTTPException(409, "A payout for these orders is already being created")

    payout = {
        "_id": payout_id,
        "seller_id": seller["_id"],
        "amount": as_money(split.seller_amount),
        "gross_amount": as_money(gross),
        "platform_fee": as_money(split.platform_fee),
        "order_ids": order_ids,
        "status": PayoutStatus.PENDING.value,
        "created_at": now,
        "updated_at": now,
    }

    try:
        await db.payouts.insert_one(payout)
    except Exception:
        await _release_claims(db, payout_id)
        raise

    logger.info(
        "Payout %s requested by seller %s: %s orders, gross=%s net=%s",
        payout_id, seller["_id"], len(order_ids), payout["gross_amount"], payout["amount"],
    )
    return payout


async def compute_stats(db, seller_id) -> dict:
    # same eligibility source as request_payout
    completed, unpaid = await _split_by_claim(db, seller_id)
    payouts = await list_seller_payouts(db, seller_id)

    total_earnings = sum_prices(o["total_price"] for o in completed)
    earnings_split = payout_split(total_earnings)

    total_paid_out = sum_prices(
        p["amount"] for p in payouts if p.get("status") == PayoutStatus.PAID.value
    )
    pending_payouts = sum_prices(
        p["amount"] for p in payouts if p.get("status") in OPEN_PAYOUT_STATUSES
    )

    available = payout_split(sum_prices(o["total_price"] for o in unpaid)).seller_amount

    return {
        "total_earnings": as_money(total_earnings),
        "platform_fees": as_money(earnings_split.platform_fee),
        "net_earnings": as_money(earnings_split.seller_amount),
        "total_paid_out": as_money(total_paid_out),
        "pending_payouts": as_money(pending_payouts),
        "available_for_payout": as_money(available),
        "completed_orders_count": len(completed),
        "unpaid_orders_count": len(unpaid),
    }


async def set_payout_status(db, *, payout_id: ObjectId, status: PayoutStatus, actor: dict, reason: str | None = None) -> dict:
    payout = await db.payouts.find_one({"_id": payout_id})
    if not payout:
        raise HTTPException(404, "Payout not found")

    current = PayoutStatus(payout["status"])
    if status == current:
        return payout
    if status not in PAYOUT_STATUS_TRANSITIONS[current]:
        raise HTTPException(400, f"Cannot move payout from {current.value} to {status.value}")

    now = datetime.utcnow()
    updates = {"status": status.value, "updated_at": now}
    if status == PayoutStatus.PAID:
        updates["paid_at"] = now
    if status == PayoutStatus.FAILED:
        updates["failed_at"] = now
        updates["failure_reason"] = reason or "Marked failed by admin"

    res = await db.payouts.update_one(
        {"_id": payout_id, "status": current.value},
        {"$set": updates},
    )
    if res.modified_count != 1:
        raise HTTPException(409, "Payout was modified concurrently, please retry")

    logger.info("Payout %s moved %s -> %s by admin %s", payout_id, current.value, status.value, actor["_id"])
    payout.update(updates)
    return payout
