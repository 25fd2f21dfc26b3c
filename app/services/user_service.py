"""
User Service - account creation and lookups shared by auth and admin routes.
"""

import logging
from datetime import datetime
from typing import Optional

from bson import ObjectId

from app.core.auth import hash_password
from app.core.exceptions import APIError
from app.db.mongodb import get_collection, COLLECTIONS
from app.utils.helpers import is_object_id

logger = logging.getLogger(__name__)


def users_collection():
    return get_collection(COLLECTIONS["users"])


def ensure_unique(email: Optional[str] = None, student_id: Optional[str] = None,
                  exclude_id: Optional[ObjectId] = None):
    users = users_collection()
    not_self = {"_id": {"$ne": exclude_id}} if exclude_id else {}
    if email and users.find_one({"email": email.lower(), **not_self}):
        raise APIError("User already exists with this email", 400)
    if student_id and users.find_one({"student_id": student_id, **not_self}):
        raise APIError("Student ID already exists", 400)


def create_user(
    name: str,
    email: str,
    password: str,
    role: str = "student",
    student_id: Optional[str] = None,
    profile: Optional[dict] = None,
    is_active: bool = True,
    created_by: Optional[ObjectId] = None,
) -> dict:
    """Insert a new user after uniqueness checks. Returns the stored document."""
    if role != "student":
        student_id = None
    ensure_unique(email, student_id)

    now = datetime.utcnow()
    doc = {
        "name": name,
        "email": email.lower(),
        "password_hash": hash_password(password),
        "role": role,
        "profile": profile or {},
        "is_active": is_active,
        "gamification": {"points": 0, "level": 1, "badges": 0},
        "login_attempts": 0,
        "lock_until": None,
        "last_login": None,
        "created_by": created_by,
        "created_at": now,
        "updated_at": now,
    }
    # student_id is a sparse unique key, so leave it out when absent
    if student_id:
        doc["student_id"] = student_id
    doc["_id"] = users_collection().insert_one(doc).inserted_id
    logger.info(f"Created {role} account {doc['email']}")
    return doc


def find_student(reference: str) -> Optional[dict]:
    """Find a student by user id or by student_id code."""
    users = users_collection()
    if is_object_id(reference):
        user = users.find_one({"_id": ObjectId(reference)})
        if user:
            return user
    return users.find_one({"student_id": reference})
