import re
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo import ReturnDocument

from database import get_db
from models.profile import ProfileUpsert
from utils.guards import parse_object_id
from utils.security import require_seller
from utils.serializers import serialize_doc, serialize_docs, serialize_user_summary

router = APIRouter(prefix="/profiles", tags=["Profiles"])

PROFILE_DEFAULTS = {
    "bio": None,
    "instrument": None,
    "price_per_minute": None,
    "is_available": True,
    "profile_image": None,
    "audio_samples": [],
}


async def ensure_profile(db, user_id) -> dict:
    """Return the user's profile, creating an empty one on first use."""
    now = datetime.utcnow()
    return await db.profiles.find_one_and_update(
        {"user_id": user_id},
        {"$setOnInsert": {"user_id": user_id, "created_at": now, "updated_at": now, **PROFILE_DEFAULTS}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


async def _with_relations(db, profile: dict) -> dict:
    user = await db.users.find_one({"_id": profile["user_id"]})
    services = await db.services.find(
        {"profile_id": profile["_id"], "is_active": True},
        sort=[("created_at", -1)],
    ).to_list(None)

    data = serialize_doc(profile)
    data["user"] = serialize_user_summary(user)
    data["services"] = serialize_docs(services)
    return data


# ======================================================
# BROWSE (PUBLIC)
# ======================================================

@router.get("")
async def list_profiles(
    instrument: str | None = Query(None),
    db=Depends(get_db),
):
    query = {"is_available": True}
    if instrument:
        query["instrument"] = {"$regex": re.escape(instrument.strip()), "$options": "i"}

    profiles = await db.profiles.find(query, sort=[("created_at", -1)]).to_list(None)
    return [await _with_relations(db, p) for p in profiles]


@router.get("/{user_id}")
async def get_profile(user_id: str, db=Depends(get_db)):
    profile = await db.profiles.find_one({"user_id": parse_object_id(user_id, "user_id")})
    if not profile:
        raise HTTPException(404, "Profile not found")
    return await _with_relations(db, profile)


# ======================================================
# UPSERT OWN PROFILE (SELLER)
# ======================================================

@router.post("")
async def upsert_profile(
    data: ProfileUpsert,
    seller=Depends(require_seller("Only sellers can edit a profile")),
    db=Depends(get_db),
):
    now = datetime.utcnow()
    fields = data.model_dump(exclude_unset=True)
    fields["updated_at"] = now

    on_insert = {"user_id": seller["_id"], "created_at": now}
    for key, default in PROFILE_DEFAULTS.items():
        if key not in fields:
            on_insert[key] = default

    profile = await db.profiles.find_one_and_update(
        {"user_id": seller["_id"]},
        {"$set": fields, "$setOnInsert": on_insert},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )

    return serialize_doc(profile)
