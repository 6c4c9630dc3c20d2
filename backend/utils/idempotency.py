from datetime import datetime
from pymongo.errors import DuplicateKeyError

IDEMPOTENCY_TTL_SECONDS = 60 * 60 * 24 * 7  # stripe retries for up to 3 days
IN_PROGRESS_STALE_SECONDS = 60 * 10         # 10 minutes

STATUS_RESERVED = "reserved"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


async def reserve_idempotency_key(
    *,
    db,
    key: str,
    scope: str,
):
    """
    Reserve an idempotency key before doing the work it guards.

    Returns None when the caller owns the key and should proceed.
    Otherwise returns the response to hand back instead:
    - the stored response of a completed run
    - a "processing" marker while another run holds a fresh reservation
    Failed and stale reservations are dropped so the work can run again.
    """
    existing = await db.idempotency_keys.find_one({
        "key": key,
        "scope": scope,
    })

    if existing:
        if existing.get("status") == STATUS_COMPLETED:
            return existing.get("response")

        created_at = existing.get("created_at")
        age_seconds = (
            (datetime.utcnow() - created_at).total_seconds()
            if created_at else 0
        )
        if existing.get("status") == STATUS_RESERVED and age_seconds <= IN_PROGRESS_STALE_SECONDS:
            return {
                "message": "Request already in progress",
                "status": "processing",
            }

        await db.idempotency_keys.delete_one({"_id": existing["_id"]})

    try:
        await db.idempotency_keys.insert_one({
            "key": key,
            "scope": scope,
            "status": STATUS_RESERVED,
            "response": None,
            "created_at": datetime.utcnow(),
        })
    except DuplicateKeyError:
        # a concurrent delivery won the race
        concurrent = await db.idempotency_keys.find_one({"key": key, "scope": scope})
        if concurrent and concurrent.get("status") == STATUS_COMPLETED:
            return concurrent.get("response")
        return {
            "message": "Request already in progress",
            "status": "processing",
        }
    return None


async def complete_idempotency_key(
    *,
    db,
    key: str,
    scope: str,
    response: dict,
):
    await db.idempotency_keys.update_one(
        {
            "key": key,
            "scope": scope,
        },
        {
            "$set": {
                "status": STATUS_COMPLETED,
                "response": response,
                "completed_at": datetime.utcnow(),
            }
        },
    )


async def fail_idempotency_key(
    *,
    db,
    key: str,
    scope: str,
    error: str,
):
    """
    Mark the key failed; the next delivery of the same key runs again.
    """
    await db.idempotency_keys.update_one(
        {"key": key, "scope": scope},
        {
            "$set": {
                "status": STATUS_FAILED,
                "error": error,
                "failed_at": datetime.utcnow(),
            }
        },
    )
