import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pymongo.errors import DuplicateKeyError

from config.constants import LOGIN_MAX_ATTEMPTS, LOGIN_WINDOW_SECONDS
from config.env import ADMIN_EMAIL
from database import get_db
from models.user import UserCreate, UserInDB, UserLogin, UserRole
from utils.hash import hash_password, verify_password
from utils.jwt import create_access_token
from utils.rate_limit import rate_limit
from utils.security import get_current_user
from utils.serializers import serialize_user

router = APIRouter(prefix="/auth", tags=["Auth"])
logger = logging.getLogger(__name__)


def _role_for(email: str) -> str:
    return UserRole.ADMIN.value if ADMIN_EMAIL and email == ADMIN_EMAIL else UserRole.USER.value


def _token_response(user: dict) -> dict:
    return {
        "access_token": create_access_token(user),
        "token_type": "bearer",
        "user": serialize_user(user),
    }


# ======================
# Signup
# ======================

@router.post("/signup")
async def signup(data: UserCreate, db=Depends(get_db)):
    email = data.email.lower()

    if await db.users.find_one({"email": email}):
        raise HTTPException(400, "An account with this email already exists")

    try:
        password_hash = hash_password(data.password)
    except ValueError as e:
        raise HTTPException(400, str(e))

    now = datetime.utcnow()
    user = UserInDB(
        email=email,
        name=data.name,
        password_hash=password_hash,
        role=_role_for(email),
        can_buy=True,
        can_sell=data.can_sell,
        created_at=now,
        last_active_at=now,
    ).model_dump(exclude_none=True)

    try:
        await db.users.insert_one(user)
    except DuplicateKeyError:
        raise HTTPException(400, "An account with this email already exists")

    logger.info("User %s signed up (can_sell=%s)", user["_id"], user["can_sell"])
    return _token_response(user)


# ======================
# Login
# ======================

@router.post("/login")
async def login(data: UserLogin, db=Depends(get_db)):
    email = data.email.lower()

    await rate_limit(
        db=db,
        key=f"login:{email}",
        max_requests=LOGIN_MAX_ATTEMPTS,
        window_seconds=LOGIN_WINDOW_SECONDS,
    )

    user = await db.users.find_one({"email": email})
    if not user or not verify_password(data.password, user.get("password_hash")):
        raise HTTPException(401, "Invalid email or password")

    role = _role_for(email)
    await db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"last_active_at": datetime.utcnow(), "role": role}}
    )
    user["role"] = role

    return _token_response(user)


# ======================
# Current User
# ======================

@router.get("/me")
async def me(user=Depends(get_current_user)):
    return serialize_user(user)
