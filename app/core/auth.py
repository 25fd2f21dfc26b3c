"""
Authentication Utility - JWT and Password handling.

Provides:
- Password hashing with bcrypt
- Access / refresh JWT creation and verification
- FastAPI dependencies for protected routes and role guards
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional
from bson import ObjectId
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import get_settings
from app.db.mongodb import get_collection, COLLECTIONS
from app.utils.helpers import is_object_id

logger = logging.getLogger(__name__)

settings = get_settings()

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)

# Bearer token extractor; missing headers are reported by get_current_user
bearer_scheme = HTTPBearer(auto_error=False)

PASSWORD_RULE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{6,}$")
PASSWORD_RULE_MESSAGE = (
    "Password must be at least 6 characters and contain at least one "
    "uppercase letter, one lowercase letter, and one number"
)


def hash_password(password: str) -> str:
    """Hash password with bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def validate_password_strength(password: str) -> str:
    if not PASSWORD_RULE.match(password or ""):
        raise ValueError(PASSWORD_RULE_MESSAGE)
    return password


def _token_claims(user: dict) -> dict:
    claims = {
        "sub": str(user["_id"]),
        "email": user.get("email"),
        "role": user.get("role"),
        "name": user.get("name"),
    }
    if user.get("student_id"):
        claims["student_id"] = user["student_id"]
    return claims


def create_access_token(user: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token (24h by default)."""
    to_encode = _token_claims(user)
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_refresh_token(user: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT refresh token, signed with its own secret."""
    to_encode = {"sub": str(user["_id"])}
    expire = datetime.utcnow() + (expires_delta or timedelta(days=settings.jwt_refresh_expire_days))
    to_encode.update({"exp": expire, "type": "refresh"})
    return jwt.encode(to_encode, settings.jwt_refresh_secret_key, algorithm=settings.jwt_algorithm)


def create_token_pair(user: dict) -> dict:
    return {
        "access_token": create_access_token(user),
        "refresh_token": create_refresh_token(user),
        "token_type": "bearer",
    }


def decode_token(token: str, refresh: bool = False) -> Optional[dict]:
    """Decode and verify JWT token. Returns None for anything unusable."""
    secret = settings.jwt_refresh_secret_key if refresh else settings.jwt_secret_key
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if payload.get("type") != ("refresh" if refresh else "access"):
        return None
    return payload


def load_active_user(user_id: str) -> Optional[dict]:
    """Fetch a user by id string; None when missing or deactivated."""
    if not is_object_id(user_id):
        return None
    user = get_collection(COLLECTIONS["users"]).find_one({"_id": ObjectId(user_id)})
    if not user or not user.get("is_active", True):
        return None
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> dict:
    """
    FastAPI dependency - Get current authenticated user.

    Usage:
        @router.get("/protected")
        async def route(user: dict = Depends(get_current_user)):
            return user
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided, authorization denied",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is not valid",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = load_active_user(payload["sub"])
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User no longer exists or is inactive",
        )

    return {
        "_id": user["_id"],
        "id": str(user["_id"]),
        "email": user["email"],
        "role": user["role"],
        "name": user.get("name"),
        "student_id": user.get("student_id"),
        "profile": user.get("profile") or {},
    }


def authorize(*roles: str):
    """Dependency factory - allow only the given roles."""

    async def role_guard(user: dict = Depends(get_current_user)) -> dict:
        if user["role"] not in roles:
            logger.warning(f"Role {user['role']} denied for user {user['id']} (needs {', '.join(roles)})")
            raise HTTPException(status_code=403, detail="User not authorized to access this route")
        return user

    return role_guard


require_admin = authorize("admin")
require_student = authorize("student")


def is_admin(user: dict) -> bool:
    return user.get("role") == "admin"
