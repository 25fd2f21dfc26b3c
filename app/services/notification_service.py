"""
Notification Service - direct fan-out writes into the notifications collection.

There is no queue: each recipient gets its own document, written
immediately. Bulk sends isolate failures per row.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pydantic import ValidationError

from app.core.exceptions import APIError
from app.db.mongodb import get_collection, COLLECTIONS
from app.schemas.schemas import NotificationCreate
from app.utils.helpers import is_object_id

logger = logging.getLogger(__name__)


def build_notification(
    user_id: ObjectId,
    title: str,
    message: str,
    type: str = "info",
    category: str = "system",
    priority: str = "medium",
    action_url: Optional[str] = None,
    action_text: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
    expires_at: Optional[datetime] = None,
    created_by: Optional[ObjectId] = None,
) -> dict:
    now = datetime.utcnow()
    return {
        "user_id": user_id,
        "title": title,
        "message": message,
        "type": type,
        "category": category,
        "priority": priority,
        "is_read": False,
        "read_at": None,
        "action_url": action_url,
        "action_text": action_text,
        "data": data or {},
        "expires_at": expires_at,
        "created_by": created_by,
        "created_at": now,
        "updated_at": now,
    }


def create_notification(user_id: ObjectId, title: str, message: str, **kwargs) -> ObjectId:
    """Write a single notification and return its id."""
    doc = build_notification(user_id, title, message, **kwargs)
    result = get_collection(COLLECTIONS["notifications"]).insert_one(doc)
    return result.inserted_id


def notify_many(user_ids: Iterable[ObjectId], title: str, message: str, **kwargs) -> int:
    """Same notification for every user id. Returns number written."""
    docs = [build_notification(uid, title, message, **kwargs) for uid in user_ids]
    if not docs:
        return 0
    get_collection(COLLECTIONS["notifications"]).insert_many(docs)
    return len(docs)


def resolve_recipients(
    recipient_type: str,
    recipients: Optional[List[str]] = None,
    department: Optional[str] = None,
    semester: Optional[int] = None,
) -> List[ObjectId]:
    """
    Turn a recipient description into active user ids.

    - all: every active student
    - department / semester: active students in that cohort
    - specific: the listed user ids
    """
    users = get_collection(COLLECTIONS["users"])
    base = {"role": "student", "is_active": True}

    if recipient_type == "all":
        query = base
    elif recipient_type == "department" and department:
        query = {**base, "profile.department": department}
    elif recipient_type == "semester" and semester:
        query = {**base, "profile.semester": semester}
    elif recipient_type == "specific" and recipients:
        if not all(is_object_id(r) for r in recipients):
            raise APIError("Invalid recipient configuration", 400)
        query = {"_id": {"$in": [ObjectId(r) for r in recipients]}, "is_active": True}
    else:
        raise APIError("Invalid recipient configuration", 400)

    return [user["_id"] for user in users.find(query, {"_id": 1})]


def send_notification(payload: NotificationCreate, created_by: Optional[ObjectId] = None) -> int:
    """Fan one admin notification out to its resolved recipients."""
    user_ids = resolve_recipients(
        payload.recipient_type, payload.recipients, payload.department, payload.semester
    )
    if not user_ids:
        raise APIError("No recipients found", 400)
    return notify_many(
        user_ids,
        payload.title,
        payload.message,
        type=payload.type,
        category=payload.category,
        priority=payload.priority,
        action_url=payload.action_url,
        action_text=payload.action_text,
        data=payload.data,
        expires_at=payload.expires_at,
        created_by=created_by,
    )


def send_bulk_notifications(rows: List[Dict[str, Any]], created_by: Optional[ObjectId] = None) -> dict:
    """
    Send many notification payloads.

    A failing row is recorded as "Row N: reason" and skipped; the rest still go out.
    """
    sent = 0
    errors = []
    for index, row in enumerate(rows, start=1):
        try:
            payload = NotificationCreate.model_validate(row)
            sent += send_notification(payload, created_by)
        except ValidationError as e:
            reason = "; ".join(err["msg"] for err in e.errors())
            errors.append(f"Row {index}: {reason}")
        except APIError as e:
            errors.append(f"Row {index}: {e.message}")
        except Exception as e:
            logger.error(f"Bulk notification row {index} failed: {e}")
            errors.append(f"Row {index}: {e}")

    logger.info(f"Bulk notifications: {sent} sent, {len(errors)} failed rows")
    return {"sent": sent, "errors": errors}
