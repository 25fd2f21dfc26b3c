"""
Notification Routes

POST /notifications - Send notification to a recipient group (admin)
POST /notifications/bulk - Send many notifications (admin)
GET /notifications/my - Own unexpired notifications
GET /notifications/unread-count - Own unread count
PATCH /notifications/mark-all-read - Mark own notifications read
GET /notifications/all - All notifications (admin)
GET /notifications/stats - Delivery and read statistics (admin)
GET /notifications/{notification_id} - Get notification
PATCH /notifications/{notification_id}/read - Mark as read (recipient)
PUT /notifications/{notification_id} - Update notification (admin)
DELETE /notifications/{notification_id} - Delete notification (admin)
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import get_current_user, is_admin, require_admin
from app.db.mongodb import get_collection, COLLECTIONS
from app.services.mongo_service import attach_user, count_by, paginate, serialize_doc, serialize_docs, touch
from app.services.notification_service import send_bulk_notifications, send_notification
from app.utils.helpers import to_object_id
from app.schemas.schemas import (
    APIResponse, BulkNotificationRequest, NotificationCategory, NotificationCreate,
    NotificationType, NotificationUpdate, Priority, StatsPeriod
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])

PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}


def notifications_collection():
    return get_collection(COLLECTIONS["notifications"])


def _get_notification(notification_id: str) -> dict:
    notification = notifications_collection().find_one(
        {"_id": to_object_id(notification_id, "Notification not found")}
    )
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


def _unexpired(now: datetime) -> dict:
    return {"$or": [{"expires_at": None}, {"expires_at": {"$gt": now}}]}


@router.post("", response_model=APIResponse, status_code=201)
async def create_notification(request: NotificationCreate, admin: dict = Depends(require_admin)):
    """Fan a notification out to all students, a department, a semester or specific users."""
    sent = send_notification(request, created_by=admin["_id"])
    logger.info(f"Admin {admin['email']} sent '{request.title}' to {sent} users")
    return APIResponse(message=f"Notification sent to {sent} users", data={"sent": sent})


@router.post("/bulk", response_model=APIResponse, status_code=201)
async def bulk_notifications(request: BulkNotificationRequest, admin: dict = Depends(require_admin)):
    """Send several notification payloads; bad rows are reported, not fatal."""
    result = send_bulk_notifications(request.notifications, created_by=admin["_id"])
    return APIResponse(message=f"{result['sent']} notifications sent", data=result)


@router.get("/my", response_model=APIResponse)
async def my_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    is_read: Optional[bool] = Query(None),
    unread_only: bool = Query(False),
    type: Optional[NotificationType] = Query(None),
    category: Optional[NotificationCategory] = Query(None),
    priority: Optional[Priority] = Query(None),
    user: dict = Depends(get_current_user),
):
    """Own notifications that have not expired, newest first."""
    query = {"user_id": user["_id"], **_unexpired(datetime.utcnow())}
    if unread_only:
        query["is_read"] = False
    elif is_read is not None:
        query["is_read"] = is_read
    if type:
        query["type"] = type.value
    if category:
        query["category"] = category.value
    if priority:
        query["priority"] = priority.value

    notifications, pagination = paginate(notifications_collection(), query, page, limit, sort=[("created_at", -1)])
    unread = notifications_collection().count_documents(
        {"user_id": user["_id"], "is_read": False, **_unexpired(datetime.utcnow())}
    )
    return APIResponse(data={
        "notifications": serialize_docs(notifications),
        "pagination": pagination,
        "unread_count": unread,
    })


@router.get("/unread-count", response_model=APIResponse)
async def unread_count(user: dict = Depends(get_current_user)):
    count = notifications_collection().count_documents(
        {"user_id": user["_id"], "is_read": False, **_unexpired(datetime.utcnow())}
    )
    return APIResponse(data={"unread_count": count})


@router.patch("/mark-all-read", response_model=APIResponse)
async def mark_all_read(user: dict = Depends(get_current_user)):
    """Mark every unread notification of the caller as read."""
    now = datetime.utcnow()
    result = notifications_collection().update_many(
        {"user_id": user["_id"], "is_read": False},
        {"$set": {"is_read": True, "read_at": now, "updated_at": now}},
    )
    return APIResponse(
        message=f"{result.modified_count} notifications marked as read",
        data={"modified": result.modified_count},
    )


@router.get("/all", response_model=APIResponse)
async def all_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: Optional[str] = Query(None),
    type: Optional[NotificationType] = Query(None),
    category: Optional[NotificationCategory] = Query(None),
    is_read: Optional[bool] = Query(None),
    admin: dict = Depends(require_admin),
):
    """Every notification with its recipient."""
    query = {}
    if user_id:
        query["user_id"] = to_object_id(user_id, "User not found")
    if type:
        query["type"] = type.value
    if category:
        query["category"] = category.value
    if is_read is not None:
        query["is_read"] = is_read
    notifications, pagination = paginate(notifications_collection(), query, page, limit, sort=[("created_at", -1)])
    attach_user(notifications, fields=("name", "email", "student_id"))
    return APIResponse(data={"notifications": serialize_docs(notifications), "pagination": pagination})


@router.get("/stats", response_model=APIResponse)
async def notification_stats(
    period: StatsPeriod = Query(StatsPeriod.month),
    admin: dict = Depends(require_admin),
):
    """Sent and read counts for the period, broken down by type, category and priority."""
    match = {"created_at": {"$gte": datetime.utcnow() - timedelta(days=PERIOD_DAYS[period.value])}}
    collection = notifications_collection()
    total = collection.count_documents(match)
    read = collection.count_documents({**match, "is_read": True})
    return APIResponse(data={
        "period": period.value,
        "total_sent": total,
        "total_read": read,
        "read_rate": round(read / total * 100, 2) if total else 0,
        "by_type": count_by(collection, "type", match),
        "by_category": count_by(collection, "category", match),
        "by_priority": count_by(collection, "priority", match),
    })


@router.get("/{notification_id}", response_model=APIResponse)
async def get_notification(notification_id: str, user: dict = Depends(get_current_user)):
    """Get one notification; students only see their own."""
    notification = _get_notification(notification_id)
    if not is_admin(user) and notification["user_id"] != user["_id"]:
        raise HTTPException(status_code=403, detail="Not authorized to view this notification")
    return APIResponse(data=serialize_doc(notification))


@router.patch("/{notification_id}/read", response_model=APIResponse)
async def mark_read(notification_id: str, user: dict = Depends(get_current_user)):
    notification = _get_notification(notification_id)
    if notification["user_id"] != user["_id"]:
        raise HTTPException(status_code=403, detail="Not authorized to update this notification")
    if not notification.get("is_read"):
        now = datetime.utcnow()
        notifications_collection().update_one(
            {"_id": notification["_id"]},
            {"$set": {"is_read": True, "read_at": now, "updated_at": now}},
        )
    return APIResponse(message="Notification marked as read", data=serialize_doc(_get_notification(notification_id)))


@router.put("/{notification_id}", response_model=APIResponse)
async def update_notification(
    notification_id: str, request: NotificationUpdate, admin: dict = Depends(require_admin)
):
    notification = _get_notification(notification_id)
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    notifications_collection().update_one({"_id": notification["_id"]}, {"$set": touch(changes)})
    return APIResponse(
        message="Notification updated successfully",
        data=serialize_doc(_get_notification(notification_id)),
    )


@router.delete("/{notification_id}", response_model=APIResponse)
async def delete_notification(notification_id: str, admin: dict = Depends(require_admin)):
    notification = _get_notification(notification_id)
    notifications_collection().delete_one({"_id": notification["_id"]})
    return APIResponse(message="Notification deleted successfully")
