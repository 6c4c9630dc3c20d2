from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import datetime
from bson import ObjectId
from jose import JWTError

from utils.jwt import decode_token
from utils.guards import can_sell, enforce, is_authenticated
from database import get_db

# auto_error=False: a missing header must be 401, not FastAPI's default 403
security = HTTPBearer(auto_error=False)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db=Depends(get_db),
):
    """
    Resolve the bearer token to a user document, or None when the request
    carries no usable session.
    """
    if credentials is None:
        return None

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        return None

    user_id = payload.get("sub")
    if not user_id or not ObjectId.is_valid(user_id):
        return None

    user = await db.users.find_one({"_id": ObjectId(user_id)})
    if not user:
        return None

    await db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"last_active_at": datetime.utcnow()}}
    )

    return user


async def get_current_user(user=Depends(get_optional_user)):
    enforce(is_authenticated(user))
    return user


def require_role(required_role: str):
    async def checker(user=Depends(get_current_user)):
        if user.get("role") != required_role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return checker


def require_seller(detail: str = "Seller access only"):
    async def checker(user=Depends(get_current_user)):
        enforce(can_sell(user), detail)
        return user

    return checker
