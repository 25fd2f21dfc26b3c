"""
Authentication Routes

POST /auth/register - Register new user
POST /auth/login - Login and get access + refresh tokens
POST /auth/refresh - Exchange a refresh token for new tokens
POST /auth/logout - Client-side logout acknowledgement
GET /auth/profile - Get current user's full profile
"""

import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, HTTPException, Depends, status

from app.core.auth import (
    create_token_pair, decode_token, get_current_user, load_active_user, verify_password
)
from app.services.mongo_service import serialize_doc
from app.services.user_service import create_user, users_collection
from app.services.gamification_service import get_profile
from app.services.system_service import security_policy
from app.schemas.schemas import APIResponse, LoginRequest, RefreshRequest, RegisterRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=APIResponse, status_code=201)
async def register(request: RegisterRequest):
    """
    Register a new user account.

    Students must supply a student_id. Tokens are returned right away.
    """
    profile = request.profile.model_dump(exclude_none=True) if request.profile else {}
    user = create_user(
        name=request.name,
        email=request.email,
        password=request.password,
        role=request.role,
        student_id=request.student_id,
        profile=profile,
    )
    logger.info(f"Registered {user['role']} {user['email']}")
    return APIResponse(
        message="User registered successfully",
        data={"user": serialize_doc(user), **create_token_pair(user)},
    )


@router.post("/login", response_model=APIResponse)
async def login(request: LoginRequest):
    """
    Login and receive JWT tokens.

    Include token in requests: Authorization: Bearer <token>
    """
    policy = security_policy()
    max_attempts, lock_minutes = policy["max_login_attempts"], policy["lock_minutes"]
    users = users_collection()
    user = users.find_one({"email": request.email.lower()})

    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account is deactivated")

    now = datetime.utcnow()
    lock_until = user.get("lock_until")
    if lock_until and lock_until > now:
        minutes = max(int((lock_until - now).total_seconds() // 60) + 1, 1)
        raise HTTPException(
            status_code=423,
            detail=f"Account is temporarily locked due to too many failed login attempts. "
                   f"Try again in {minutes} minutes.",
        )

    if not verify_password(request.password, user.get("password_hash")):
        # An expired lock starts a fresh count
        attempts = 1 if lock_until else user.get("login_attempts", 0) + 1
        if attempts >= max_attempts:
            users.update_one(
                {"_id": user["_id"]},
                {"$set": {"login_attempts": attempts, "lock_until": now + timedelta(minutes=lock_minutes)}},
            )
            logger.warning(f"Account {user['email']} locked after {attempts} failed logins")
            raise HTTPException(
                status_code=423,
                detail=f"Account is temporarily locked due to too many failed login attempts. "
                       f"Try again in {lock_minutes} minutes.",
            )
        users.update_one({"_id": user["_id"]}, {"$set": {"login_attempts": attempts, "lock_until": None}})
        remaining = max_attempts - attempts
        raise HTTPException(
            status_code=401,
            detail=f"Invalid credentials. {remaining} login attempts remaining.",
        )

    users.update_one(
        {"_id": user["_id"]},
        {"$set": {"login_attempts": 0, "lock_until": None, "last_login": now}},
    )
    user["last_login"] = now
    logger.info(f"Login {user['email']}")

    return APIResponse(
        message="Login successful",
        data={"user": serialize_doc(user), **create_token_pair(user)},
    )


@router.post("/refresh", response_model=APIResponse)
async def refresh(request: RefreshRequest):
    """Issue a fresh access/refresh pair."""
    payload = decode_token(request.refresh_token, refresh=True)
    if not payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")

    user = load_active_user(payload.get("sub"))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")

    return APIResponse(message="Token refreshed successfully", data=create_token_pair(user))


@router.post("/logout", response_model=APIResponse)
async def logout(user: dict = Depends(get_current_user)):
    """Tokens are stateless; the client just drops them."""
    logger.info(f"Logout {user['email']}")
    return APIResponse(message="Logged out successfully")


@router.get("/profile", response_model=APIResponse)
async def profile(user: dict = Depends(get_current_user)):
    """Get current user's profile with gamification totals."""
    doc = users_collection().find_one({"_id": user["_id"]})
    data = serialize_doc(doc)
    summary = get_profile(user["_id"])
    data["gamification"] = {
        "points": summary["total_points"],
        "level": summary["level"],
        "points_to_next_level": summary["points_to_next_level"],
        "badges": summary["badge_count"],
    }
    return APIResponse(data=data)
