import logging
from datetime import datetime
from bson import ObjectId

logger = logging.getLogger(__name__)

EVENT_CREATED = "ORDER_CREATED"
EVENT_PAYMENT_INTENT_CREATED = "PAYMENT_INTENT_CREATED"
EVENT_PAYMENT_SUCCEEDED = "PAYMENT_SUCCEEDED"
EVENT_PAYMENT_FAILED = "PAYMENT_FAILED"
EVENT_STATUS_CHANGED = "STATUS_CHANGED"
EVENT_DELIVERY_ATTACHED = "DELIVERY_ATTACHED"
EVENT_CANCELLED = "ORDER_CANCELLED"
EVENT_TRANSFER_CREATED = "TRANSFER_CREATED"


async def record_order_event(
    db,
    *,
    order_id,
    event: str,
    actor_role: str,
    actor_id=None,
    from_status: str | None = None,
    to_status: str | None = None,
    metadata: dict | None = None,
):
    """
    Append one event to the order's timeline. The timeline is a log,
    never a source of order state; a failed write is logged and swallowed
    so it cannot undo a transition that already happened.
    """

    doc = {
        "order_id": ObjectId(order_id),
        "event": event,
        "actor_role": actor_role,
        "actor_id": ObjectId(actor_id) if actor_id else None,
        "from_status": from_status,
        "to_status": to_status,
        "metadata": metadata or {},
        "created_at": datetime.utcnow(),
    }

    try:
        await db.order_timeline.insert_one(doc)
    except Exception:
        logger.exception("TIMELINE_ERROR order=%s event=%s", order_id, event)
