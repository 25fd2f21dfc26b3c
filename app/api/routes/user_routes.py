"""
User Routes

GET /users - List users with search, filters and pagination (admin)
POST /users - Create user (admin)
GET /users/profile - Get own profile
PUT /users/profile - Update own profile
GET /users/stats - User statistics (admin)
POST /users/bulk/import - Import students (admin)
GET /users/bulk/export - Export users as CSV (admin)
POST /users/change-password - Change own password
POST /users/register-admin - Create another admin (admin)
GET /users/{user_id} - Get user (admin)
PUT /users/{user_id} - Update user (admin)
DELETE /users/{user_id} - Delete user (admin)
"""

import csv
import io
import logging
import re
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import ValidationError

from app.core.auth import get_current_user, hash_password, require_admin, verify_password
from app.core.exceptions import APIError
from app.services.mongo_service import count_by, paginate, serialize_doc, serialize_docs, touch
from app.services.user_service import create_user, ensure_unique, users_collection
from app.utils.helpers import generate_default_password, to_object_id
from app.schemas.schemas import (
    AdminCreate, APIResponse, BulkImportRequest, ChangePasswordRequest, ProfileUpdate,
    UserCreate, UserImportRow, UserRole, UserUpdate
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

EXPORT_FIELDS = ["student_id", "name", "email", "role", "department", "semester", "phone", "is_active", "created_at"]


def _user_query(search: Optional[str], role: Optional[str], is_active: Optional[bool],
                department: Optional[str], semester: Optional[int]) -> dict:
    query = {}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"name": pattern}, {"email": pattern}, {"student_id": pattern}]
    if role:
        query["role"] = role
    if is_active is not None:
        query["is_active"] = is_active
    if department:
        query["profile.department"] = department
    if semester:
        query["profile.semester"] = semester
    return query


def _profile_changes(profile: dict) -> dict:
    return {f"profile.{key}": value for key, value in profile.items()}


@router.get("", response_model=APIResponse)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, description="Search name, email or student ID"),
    role: Optional[UserRole] = Query(None),
    is_active: Optional[bool] = Query(None),
    department: Optional[str] = Query(None),
    semester: Optional[int] = Query(None, ge=1, le=8),
    admin: dict = Depends(require_admin),
):
    """List all users with filters and pagination."""
    query = _user_query(search, role.value if role else None, is_active, department, semester)
    users, pagination = paginate(users_collection(), query, page, limit, sort=[("created_at", -1)])
    return APIResponse(data={"users": serialize_docs(users), "pagination": pagination})


@router.post("", response_model=APIResponse, status_code=201)
async def create_user_account(request: UserCreate, admin: dict = Depends(require_admin)):
    """Create a user of any role."""
    profile = request.profile.model_dump(exclude_none=True) if request.profile else {}
    user = create_user(
        name=request.name, email=request.email, password=request.password, role=request.role,
        student_id=request.student_id, profile=profile, is_active=request.is_active,
        created_by=admin["_id"],
    )
    return APIResponse(message="User created successfully", data=serialize_doc(user))


@router.get("/profile", response_model=APIResponse)
async def get_own_profile(user: dict = Depends(get_current_user)):
    """Get own profile."""
    return APIResponse(data=serialize_doc(users_collection().find_one({"_id": user["_id"]})))


@router.put("/profile", response_model=APIResponse)
async def update_own_profile(request: ProfileUpdate, user: dict = Depends(get_current_user)):
    """Update own name and contact details."""
    changes = {}
    if request.name is not None:
        changes["name"] = request.name
    if request.profile is not None:
        changes.update(_profile_changes(request.profile.model_dump(exclude_none=True)))
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    users = users_collection()
    users.update_one({"_id": user["_id"]}, {"$set": touch(changes)})
    return APIResponse(
        message="Profile updated successfully",
        data=serialize_doc(users.find_one({"_id": user["_id"]})),
    )


@router.get("/stats", response_model=APIResponse)
async def user_stats(admin: dict = Depends(require_admin)):
    """Counts by role, status, department and semester."""
    users = users_collection()
    by_role = count_by(users, "role")
    total = users.count_documents({})
    active = users.count_documents({"is_active": True})
    student_match = {"role": "student"}
    return APIResponse(data={
        "total_users": total,
        "active_users": active,
        "inactive_users": total - active,
        "students": by_role.get("student", 0),
        "admins": by_role.get("admin", 0),
        "by_department": count_by(users, "profile.department", student_match),
        "by_semester": count_by(users, "profile.semester", student_match),
    })


@router.post("/bulk/import", response_model=APIResponse)
async def bulk_import(request: BulkImportRequest, admin: dict = Depends(require_admin)):
    """
    Import students row by row.

    Each imported student gets a generated default password returned in the response.
    """
    successful = []
    failed = []
    for index, row in enumerate(request.users, start=1):
        try:
            data = UserImportRow.model_validate(row)
            password = generate_default_password()
            profile = data.profile.model_dump(exclude_none=True) if data.profile else {}
            user = create_user(
                name=data.name, email=data.email, password=password, role="student",
                student_id=data.student_id, profile=profile, created_by=admin["_id"],
            )
            successful.append({
                "row": index, "_id": str(user["_id"]), "email": user["email"],
                "student_id": user["student_id"], "default_password": password,
            })
        except ValidationError as e:
            failed.append({"row": index, "data": row, "error": "; ".join(err["msg"] for err in e.errors())})
        except APIError as e:
            failed.append({"row": index, "data": row, "error": e.message})
        except Exception as e:
            logger.error(f"Bulk import row {index} failed: {e}")
            failed.append({"row": index, "data": row, "error": str(e)})

    logger.info(f"Bulk import by {admin['email']}: {len(successful)} created, {len(failed)} failed")
    return APIResponse(
        message=f"Import completed: {len(successful)} successful, {len(failed)} failed",
        data={"successful": successful, "failed": failed},
    )


@router.get("/bulk/export")
async def bulk_export(
    search: Optional[str] = Query(None),
    role: Optional[UserRole] = Query(None),
    is_active: Optional[bool] = Query(None),
    department: Optional[str] = Query(None),
    semester: Optional[int] = Query(None, ge=1, le=8),
    admin: dict = Depends(require_admin),
):
    """Download matching users as CSV."""
    query = _user_query(search, role.value if role else None, is_active, department, semester)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS)
    writer.writeheader()
    for user in users_collection().find(query).sort("created_at", -1):
        profile = user.get("profile") or {}
        writer.writerow({
            "student_id": user.get("student_id", ""),
            "name": user.get("name", ""),
            "email": user.get("email", ""),
            "role": user.get("role", ""),
            "department": profile.get("department", ""),
            "semester": profile.get("semester", ""),
            "phone": profile.get("phone", ""),
            "is_active": user.get("is_active", True),
            "created_at": user["created_at"].isoformat() if user.get("created_at") else "",
        })
    filename = f"users_{datetime.utcnow().strftime('%Y%m%d')}.csv"
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("/change-password", response_model=APIResponse)
async def change_password(request: ChangePasswordRequest, user: dict = Depends(get_current_user)):
    """Change own password."""
    users = users_collection()
    doc = users.find_one({"_id": user["_id"]})
    if not verify_password(request.current_password, doc.get("password_hash")):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    if verify_password(request.new_password, doc.get("password_hash")):
        raise HTTPException(status_code=400, detail="New password must be different from current password")

    users.update_one({"_id": user["_id"]}, {"$set": touch({"password_hash": hash_password(request.new_password)})})
    logger.info(f"Password changed for {user['email']}")
    return APIResponse(message="Password changed successfully")


@router.post("/register-admin", response_model=APIResponse, status_code=201)
async def register_admin(request: AdminCreate, admin: dict = Depends(require_admin)):
    """Create another administrator account."""
    profile = request.profile.model_dump(exclude_none=True) if request.profile else {}
    user = create_user(
        name=request.name, email=request.email, password=request.password, role="admin",
        profile=profile, created_by=admin["_id"],
    )
    logger.info(f"Admin {admin['email']} created admin {user['email']}")
    return APIResponse(message="Admin registered successfully", data=serialize_doc(user))


@router.get("/{user_id}", response_model=APIResponse)
async def get_user(user_id: str, admin: dict = Depends(require_admin)):
    """Get a user by id."""
    user = users_collection().find_one({"_id": to_object_id(user_id)})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return APIResponse(data=serialize_doc(user))


@router.put("/{user_id}", response_model=APIResponse)
async def update_user(user_id: str, request: UserUpdate, admin: dict = Depends(require_admin)):
    """Update any user field except the password."""
    oid = to_object_id(user_id)
    users = users_collection()
    existing = users.find_one({"_id": oid})
    if not existing:
        raise HTTPException(status_code=404, detail="User not found")

    data = request.model_dump(exclude_none=True)
    profile = data.pop("profile", None)
    if "email" in data:
        data["email"] = data["email"].lower()
    # Only students carry a student code
    drop_student_id = data.get("role", existing["role"]) != "student"
    if drop_student_id:
        data.pop("student_id", None)
    ensure_unique(data.get("email"), data.get("student_id"), exclude_id=oid)

    changes = dict(data)
    if profile:
        changes.update(_profile_changes(profile))
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    update = {"$set": touch(changes)}
    if drop_student_id and "student_id" in existing:
        update["$unset"] = {"student_id": ""}
    users.update_one({"_id": oid}, update)
    return APIResponse(message="User updated successfully", data=serialize_doc(users.find_one({"_id": oid})))


@router.delete("/{user_id}", response_model=APIResponse)
async def delete_user(user_id: str, admin: dict = Depends(require_admin)):
    """Delete a user account."""
    oid = to_object_id(user_id)
    if oid == admin["_id"]:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    users = users_collection()
    user = users.find_one({"_id": oid})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    users.delete_one({"_id": oid})
    logger.info(f"Admin {admin['email']} deleted user {user['email']}")
    return APIResponse(message="User deleted successfully")
