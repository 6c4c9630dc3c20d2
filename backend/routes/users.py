from fastapi import APIRouter, Depends
from datetime import datetime
from pymongo import ReturnDocument

from database import get_db
from models.user import CapabilitiesUpdate
from utils.security import get_current_user
from utils.serializers import serialize_user

router = APIRouter(prefix="/users", tags=["Users"])


# ============================================
# TOGGLE SELLING
# ============================================

@router.patch("/capabilities")
async def update_capabilities(
    data: CapabilitiesUpdate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    updated = await db.users.find_one_and_update(
        {"_id": user["_id"]},
        {"$set": {"can_sell": data.can_sell, "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )

    return {"user": serialize_user(updated)}
