from fastapi import APIRouter, Depends, HTTPException
from datetime import datetime
from pymongo import ReturnDocument

from database import get_db
from models.profile import ServiceCreate, ServiceUpdate
from routes.profiles import ensure_profile
from utils.guards import enforce, is_service_owner, parse_object_id
from utils.security import get_current_user, require_seller
from utils.serializers import serialize_doc, serialize_docs

router = APIRouter(prefix="/services", tags=["Services"])


async def _get_owned_service(db, service_id: str, user: dict) -> dict:
    service = await db.services.find_one({"_id": parse_object_id(service_id, "service_id")})
    if not service:
        raise HTTPException(404, "Service not found")
    enforce(is_service_owner(user, service), "You do not own this service")
    return service


# ======================================================
# MY SERVICES
# ======================================================

@router.get("")
async def list_my_services(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    if not user.get("can_sell"):
        return []

    profile = await db.profiles.find_one({"user_id": user["_id"]})
    if not profile:
        return []

    services = await db.services.find(
        {"profile_id": profile["_id"]},
        sort=[("created_at", -1)],
    ).to_list(None)
    return serialize_docs(services)


@router.post("")
async def create_service(
    data: ServiceCreate,
    seller=Depends(require_seller("Only sellers can create services")),
    db=Depends(get_db),
):
    profile = await ensure_profile(db, seller["_id"])

    now = datetime.utcnow()
    service = {
        "profile_id": profile["_id"],
        "seller_id": seller["_id"],
        **data.model_dump(),
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }
    await db.services.insert_one(service)

    return serialize_doc(service)


@router.patch("/{service_id}")
async def update_service(
    service_id: str,
    data: ServiceUpdate,
    seller=Depends(require_seller("Only sellers can update services")),
    db=Depends(get_db),
):
    service = await _get_owned_service(db, service_id, seller)

    fields = data.model_dump(exclude_unset=True, exclude_none=True)
    if not fields:
        return serialize_doc(service)

    fields["updated_at"] = datetime.utcnow()
    updated = await db.services.find_one_and_update(
        {"_id": service["_id"]},
        {"$set": fields},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(updated)


@router.delete("/{service_id}")
async def delete_service(
    service_id: str,
    seller=Depends(require_seller("Only sellers can delete services")),
    db=Depends(get_db),
):
    service = await _get_owned_service(db, service_id, seller)
    await db.services.delete_one({"_id": service["_id"]})
    return {"success": True}
