from fastapi import APIRouter, Depends, Query

from database import get_db
from models.payout import PayoutStatus, PayoutStatusUpdate
from utils.guards import parse_object_id
from utils.payouts import set_payout_status
from utils.security import require_role
from utils.serializers import serialize_payout


router = APIRouter(prefix="/admin", tags=["Admin"])


# =====================================================
# PAYOUT QUEUE
# =====================================================

@router.get("/payouts")
async def list_payouts(
    status: PayoutStatus | None = Query(None),
    admin=Depends(require_role("admin")),
    db=Depends(get_db),
):
    query = {"status": status.value} if status else {}
    payouts = await db.payouts.find(query, sort=[("created_at", 1)]).to_list(None)

    return {
        "count": len(payouts),
        "payouts": [serialize_payout(p) for p in payouts],
    }


# =====================================================
# MOVE A PAYOUT (PROCESSING / PAID / FAILED)
# =====================================================

@router.patch("/payouts/{payout_id}")
async def update_payout(
    payout_id: str,
    data: PayoutStatusUpdate,
    admin=Depends(require_role("admin")),
    db=Depends(get_db),
):
    payout = await set_payout_status(
        db,
        payout_id=parse_object_id(payout_id, "payout_id"),
        status=data.status,
        actor=admin,
        reason=data.reason,
    )
    return serialize_payout(payout)
