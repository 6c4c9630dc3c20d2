from fastapi import APIRouter, Depends

from database import get_db
from utils.payouts import compute_stats, list_seller_payouts, request_payout
from utils.security import get_current_user, require_seller
from utils.serializers import serialize_payout

router = APIRouter(prefix="/payouts", tags=["Payouts"])


# ======================================================
# SELLER PAYOUT HISTORY
# ======================================================

@router.get("")
async def my_payouts(
    seller=Depends(require_seller("Only sellers can view payouts")),
    db=Depends(get_db),
):
    payouts = await list_seller_payouts(db, seller["_id"])
    return [serialize_payout(p) for p in payouts]


# ======================================================
# REQUEST PAYOUT
# ======================================================

@router.post("")
async def create_payout(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    # request_payout runs the can_sell guard itself
    payout = await request_payout(db, seller=user)
    return serialize_payout(payout)


# ======================================================
# EARNINGS SUMMARY
# ======================================================

@router.get("/stats")
async def payout_stats(
    seller=Depends(require_seller("Only sellers can view payout stats")),
    db=Depends(get_db),
):
    return await compute_stats(db, seller["_id"])
