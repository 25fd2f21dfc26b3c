"""
Certificate Routes

GET /certificates - List certificates (own for students, all for admins)
POST /certificates - Issue certificate (admin)
GET /certificates/stats - Issue statistics (admin)
GET /certificates/verify/{certificate_number} - Public verification
GET /certificates/{certificate_id} - Get certificate
GET /certificates/{certificate_id}/download - Printable certificate data
PUT /certificates/{certificate_id} - Update certificate (admin)
PUT /certificates/{certificate_id}/revoke - Revoke certificate (admin)
DELETE /certificates/{certificate_id} - Delete certificate (admin)
"""

import hashlib
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import get_current_user, is_admin, require_admin
from app.db.mongodb import get_collection, COLLECTIONS
from app.services.mongo_service import attach_user, count_by, paginate, serialize_doc, serialize_docs, touch
from app.services.notification_service import create_notification
from app.services.system_service import get_section
from app.services.user_service import users_collection
from app.utils.helpers import random_code, to_object_id
from app.schemas.schemas import (
    APIResponse, CertificateCreate, CertificateType, CertificateUpdate, RevokeRequest
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/certificates", tags=["Certificates"])

STUDENT_FIELDS = ("name", "email", "student_id", "profile.department")


def certificates_collection():
    return get_collection(COLLECTIONS["certificates"])


def _get_certificate(certificate_id: str) -> dict:
    certificate = certificates_collection().find_one(
        {"_id": to_object_id(certificate_id, "Certificate not found")}
    )
    if not certificate:
        raise HTTPException(status_code=404, detail="Certificate not found")
    return certificate


def _get_visible_certificate(certificate_id: str, user: dict) -> dict:
    certificate = _get_certificate(certificate_id)
    if not is_admin(user) and certificate["user_id"] != user["_id"]:
        raise HTTPException(status_code=403, detail="Access denied")
    return certificate


def generate_certificate_number() -> str:
    """CERT + year + 8 random characters, unique in the collection."""
    while True:
        number = f"CERT{datetime.utcnow().year}{random_code(8)}"
        if not certificates_collection().find_one({"certificate_number": number}, {"_id": 1}):
            return number


def verification_hash(number: str, user_id, issued_at: datetime) -> str:
    payload = f"{number}:{user_id}:{issued_at.isoformat()}"
    return hashlib.sha256(payload.encode()).hexdigest()


def _is_expired(certificate: dict, now: datetime) -> bool:
    return bool(certificate.get("valid_until")) and certificate["valid_until"] < now


# ============================================================
# LISTING / ISSUE
# ============================================================

@router.get("", response_model=APIResponse)
async def list_certificates(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    type: Optional[CertificateType] = Query(None),
    is_revoked: Optional[bool] = Query(None),
    user_id: Optional[str] = Query(None, description="Admins only"),
    user: dict = Depends(get_current_user),
):
    """Students see their own certificates; admins can filter by student."""
    query = {}
    if not is_admin(user):
        query["user_id"] = user["_id"]
    elif user_id:
        query["user_id"] = to_object_id(user_id, "Student not found")
    if type:
        query["type"] = type.value
    if is_revoked is not None:
        query["is_revoked"] = is_revoked

    certificates, pagination = paginate(certificates_collection(), query, page, limit, sort=[("issued_at", -1)])
    attach_user(certificates, fields=STUDENT_FIELDS)
    return APIResponse(data={"certificates": serialize_docs(certificates), "pagination": pagination})


@router.post("", response_model=APIResponse, status_code=201)
async def issue_certificate(request: CertificateCreate, admin: dict = Depends(require_admin)):
    """Issue a certificate to a student and notify them."""
    student = users_collection().find_one({"_id": to_object_id(request.user_id, "Student not found")})
    if not student or student.get("role") != "student":
        raise HTTPException(status_code=404, detail="Student not found")

    now = datetime.utcnow()
    number = generate_certificate_number()
    metadata = request.metadata.model_dump(exclude_none=True)
    metadata.setdefault("department", (student.get("profile") or {}).get("department"))
    metadata["institution"] = get_section("general")["institution_name"]

    certificate = {
        "certificate_number": number,
        "user_id": student["_id"],
        "type": request.type,
        "title": request.title,
        "description": request.description,
        "metadata": metadata,
        "issued_at": now,
        "valid_until": request.valid_until,
        "issued_by": admin["_id"],
        "verification_hash": verification_hash(number, student["_id"], now),
        "is_revoked": False,
        "revoked_at": None,
        "revoked_reason": None,
        "verification_count": 0,
        "download_count": 0,
        "created_at": now,
        "updated_at": now,
    }
    certificate["_id"] = certificates_collection().insert_one(certificate).inserted_id

    create_notification(
        student["_id"],
        "Certificate Issued",
        f"Your certificate \"{request.title}\" has been issued. Certificate number: {number}.",
        type="success", category="certificate", priority="high",
        action_url=f"/certificates/{certificate['_id']}", action_text="View Certificate",
        data={"certificate_id": str(certificate["_id"]), "certificate_number": number},
        created_by=admin["_id"],
    )
    logger.info(f"Admin {admin['email']} issued certificate {number} to {student['email']}")
    return APIResponse(message="Certificate issued successfully", data=serialize_doc(certificate))


@router.get("/stats", response_model=APIResponse)
async def certificate_stats(admin: dict = Depends(require_admin)):
    certificates = certificates_collection()
    total = certificates.count_documents({})
    revoked = certificates.count_documents({"is_revoked": True})
    top = list(certificates.aggregate([
        {"$match": {"is_revoked": False}},
        {"$group": {"_id": "$user_id", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
        {"$limit": 5},
    ]))
    attach_user(top, key="_id", fields=("name", "student_id"))
    return APIResponse(data={
        "total_certificates": total,
        "issued": total - revoked,
        "revoked": revoked,
        "by_type": count_by(certificates, "type"),
        "top_students": serialize_docs(
            {"user_id": row["_id"], "count": row["count"], "student": row["user"]} for row in top
        ),
    })


# ============================================================
# VERIFICATION (PUBLIC)
# ============================================================

@router.get("/verify/{certificate_number}", response_model=APIResponse)
async def verify_certificate(certificate_number: str):
    """Check a certificate number without logging in."""
    certificates = certificates_collection()
    certificate = certificates.find_one({"certificate_number": certificate_number.strip().upper()})
    if not certificate:
        raise HTTPException(status_code=404, detail="Certificate not found")
    if certificate.get("is_revoked"):
        raise HTTPException(status_code=400, detail="Certificate is not valid")
    if _is_expired(certificate, datetime.utcnow()):
        raise HTTPException(status_code=400, detail="Certificate has expired")

    certificates.update_one({"_id": certificate["_id"]}, {"$inc": {"verification_count": 1}})
    student = users_collection().find_one({"_id": certificate["user_id"]}, {"name": 1, "student_id": 1})
    return APIResponse(message="Certificate is valid", data={
        "certificate_number": certificate["certificate_number"],
        "type": certificate["type"],
        "title": certificate["title"],
        "issued_at": certificate["issued_at"],
        "valid_until": certificate.get("valid_until"),
        "student": serialize_doc(student),
        "metadata": certificate.get("metadata", {}),
        "verification_hash": certificate["verification_hash"],
    })


# ============================================================
# SINGLE CERTIFICATE
# ============================================================

@router.get("/{certificate_id}", response_model=APIResponse)
async def get_certificate(certificate_id: str, user: dict = Depends(get_current_user)):
    certificate = _get_visible_certificate(certificate_id, user)
    attach_user([certificate], fields=STUDENT_FIELDS)
    return APIResponse(data=serialize_doc(certificate))


@router.get("/{certificate_id}/download", response_model=APIResponse)
async def download_certificate(certificate_id: str, user: dict = Depends(get_current_user)):
    """Data for rendering the printable certificate."""
    certificate = _get_visible_certificate(certificate_id, user)
    if certificate.get("is_revoked"):
        raise HTTPException(status_code=400, detail="Revoked certificates cannot be downloaded")

    certificates_collection().update_one({"_id": certificate["_id"]}, {"$inc": {"download_count": 1}})
    student = users_collection().find_one({"_id": certificate["user_id"]}, {"name": 1, "student_id": 1})
    return APIResponse(data={
        "certificate_number": certificate["certificate_number"],
        "title": certificate["title"],
        "description": certificate.get("description"),
        "type": certificate["type"],
        "student_name": (student or {}).get("name"),
        "student_id": (student or {}).get("student_id"),
        "issued_at": certificate["issued_at"],
        "valid_until": certificate.get("valid_until"),
        "metadata": certificate.get("metadata", {}),
        "verification_url": f"/api/certificates/verify/{certificate['certificate_number']}",
        "verification_hash": certificate["verification_hash"],
    })


@router.put("/{certificate_id}", response_model=APIResponse)
async def update_certificate(certificate_id: str, request: CertificateUpdate, admin: dict = Depends(require_admin)):
    """Update title, description, validity or details; the number never changes."""
    certificate = _get_certificate(certificate_id)
    if certificate.get("is_revoked"):
        raise HTTPException(status_code=400, detail="Revoked certificates cannot be updated")
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    if "metadata" in changes:
        # Keep issuer-set fields such as the institution
        changes["metadata"] = {**certificate.get("metadata", {}), **changes["metadata"]}

    certificates_collection().update_one({"_id": certificate["_id"]}, {"$set": touch(changes)})
    return APIResponse(
        message="Certificate updated successfully",
        data=serialize_doc(_get_certificate(certificate_id)),
    )


@router.put("/{certificate_id}/revoke", response_model=APIResponse)
async def revoke_certificate(certificate_id: str, request: RevokeRequest, admin: dict = Depends(require_admin)):
    certificate = _get_certificate(certificate_id)
    now = datetime.utcnow()
    result = certificates_collection().update_one(
        {"_id": certificate["_id"], "is_revoked": False},
        {"$set": {"is_revoked": True, "revoked_at": now, "revoked_reason": request.reason,
                  "revoked_by": admin["_id"], "updated_at": now}},
    )
    if result.modified_count == 0:
        raise HTTPException(status_code=400, detail="Certificate is already revoked")

    create_notification(
        certificate["user_id"],
        "Certificate Revoked",
        f"Your certificate \"{certificate['title']}\" has been revoked. Reason: {request.reason}",
        type="warning", category="certificate", priority="high",
        data={"certificate_id": str(certificate["_id"])}, created_by=admin["_id"],
    )
    logger.info(f"Admin {admin['email']} revoked certificate {certificate['certificate_number']}")
    return APIResponse(
        message="Certificate revoked successfully",
        data=serialize_doc(_get_certificate(certificate_id)),
    )


@router.delete("/{certificate_id}", response_model=APIResponse)
async def delete_certificate(certificate_id: str, admin: dict = Depends(require_admin)):
    certificate = _get_certificate(certificate_id)
    certificates_collection().delete_one({"_id": certificate["_id"]})
    logger.info(f"Admin {admin['email']} deleted certificate {certificate['certificate_number']}")
    return APIResponse(message="Certificate deleted successfully")
