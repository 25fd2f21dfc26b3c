"""
Reminder Jobs - the scheduled sweeps.

- send_due_date_reminders: fees due in 7/3/1/0 days (notifications.fee_reminder_days)
- send_overdue_notifications: fees past their due date
- sweep_overdue_borrows: library books past their due date

Each job is a plain scan-and-write. A failure on one document is logged
and the sweep moves on. Jobs take an optional `now` so they can be run
for any point in time.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from app.db.mongodb import get_collection, COLLECTIONS
from app.services.notification_service import create_notification
from app.services.system_service import get_section, library_policy
from app.utils.helpers import calculate_fine, start_of_day

logger = logging.getLogger(__name__)

REMINDER_COOLDOWN = timedelta(hours=24)


def reminder_priority(days_until_due: int) -> str:
    if days_until_due == 0:
        return "urgent"
    if days_until_due <= 3:
        return "high"
    return "medium"


def reminder_title(days_until_due: int) -> str:
    if days_until_due == 0:
        return "Fee Due Today"
    return f"Fee Due in {days_until_due} day{'s' if days_until_due > 1 else ''}"


def reminder_message(fee: dict, days_until_due: int) -> str:
    amount = round(fee["amount"] - fee.get("paid_amount", 0), 2)
    fee_type = fee.get("fee_type", "").capitalize()
    due = fee["due_date"].strftime("%d %b %Y")
    if days_until_due == 0:
        return f"Your {fee_type} fee of ₹{amount} is due today. Please pay now to avoid late charges."
    if days_until_due == 1:
        return f"Your {fee_type} fee of ₹{amount} is due tomorrow ({due}). Please make the payment on time."
    return f"Reminder: your {fee_type} fee of ₹{amount} is due in {days_until_due} days on {due}."


def send_due_date_reminders(now: Optional[datetime] = None) -> int:
    """Remind students of pending fees due in exactly one of the configured day counts."""
    now = now or datetime.utcnow()
    reminder_days = sorted(set(get_section("notifications")["fee_reminder_days"]), reverse=True)
    fees = get_collection(COLLECTIONS["fees"])
    today = start_of_day(now)
    sent = 0

    for days in reminder_days:
        window_start = today + timedelta(days=days)
        window_end = window_start + timedelta(days=1)
        query = {
            "status": {"$in": ["pending", "partial"]},
            "due_date": {"$gte": window_start, "$lt": window_end},
            "$or": [
                {"last_reminder_sent": None},
                {"last_reminder_sent": {"$lt": now - REMINDER_COOLDOWN}},
            ],
        }
        for fee in fees.find(query):
            try:
                create_notification(
                    fee["user_id"],
                    reminder_title(days),
                    reminder_message(fee, days),
                    type="warning",
                    category="fee",
                    priority=reminder_priority(days),
                    action_url="/fees",
                    action_text="Pay Now",
                    data={"fee_id": str(fee["_id"]), "days_until_due": days},
                )
                fees.update_one(
                    {"_id": fee["_id"]},
                    {"$set": {"last_reminder_sent": now}, "$inc": {"reminder_count": 1}},
                )
                sent += 1
            except Exception as e:
                logger.error(f"Due reminder failed for fee {fee.get('_id')}: {e}")

    logger.info(f"Fee due reminders sent: {sent}")
    return sent


def send_overdue_notifications(now: Optional[datetime] = None) -> int:
    """Flag unpaid fees past due and notify, at most once per configured interval per fee."""
    now = now or datetime.utcnow()
    cooldown = timedelta(days=get_section("notifications")["overdue_reminder_interval_days"])
    fees = get_collection(COLLECTIONS["fees"])
    query = {
        "status": {"$in": ["pending", "partial", "overdue"]},
        "due_date": {"$lt": start_of_day(now)},
        "$or": [
            {"last_reminder_sent": None},
            {"last_reminder_sent": {"$lt": now - cooldown}},
        ],
    }
    sent = 0
    for fee in fees.find(query):
        try:
            days_overdue = max((now - fee["due_date"]).days, 1)
            amount = round(fee["amount"] - fee.get("paid_amount", 0), 2)
            create_notification(
                fee["user_id"],
                "Fee Overdue",
                f"Your {fee.get('fee_type', '')} fee of ₹{amount} is overdue by {days_overdue} "
                f"day{'s' if days_overdue > 1 else ''}. Please pay immediately to avoid penalties.",
                type="error",
                category="fee",
                priority="urgent",
                action_url="/fees",
                action_text="Pay Now",
                data={"fee_id": str(fee["_id"]), "days_overdue": days_overdue},
            )
            fees.update_one(
                {"_id": fee["_id"]},
                {"$set": {"status": "overdue", "last_reminder_sent": now}, "$inc": {"reminder_count": 1}},
            )
            sent += 1
        except Exception as e:
            logger.error(f"Overdue notification failed for fee {fee.get('_id')}: {e}")

    logger.info(f"Fee overdue notifications sent: {sent}")
    return sent


def sweep_overdue_borrows(now: Optional[datetime] = None) -> int:
    """Mark late borrow records overdue, notify once, and keep fines current."""
    now = now or datetime.utcnow()
    records = get_collection(COLLECTIONS["borrow_records"])
    books = get_collection(COLLECTIONS["books"])
    fine_per_day = library_policy()["fine_per_day"]
    flagged = 0

    for record in records.find({"status": {"$in": ["borrowed", "overdue"]}, "due_date": {"$lt": now}}):
        try:
            fine = calculate_fine(record["due_date"], now, fine_per_day)
            changes = {"fine": fine, "updated_at": now}
            newly_overdue = record["status"] == "borrowed"
            if newly_overdue:
                changes["status"] = "overdue"
            records.update_one({"_id": record["_id"]}, {"$set": changes})

            if newly_overdue:
                book = books.find_one({"_id": record["book_id"]}, {"title": 1}) or {}
                create_notification(
                    record["user_id"],
                    "Library Book Overdue",
                    f"\"{book.get('title', 'A borrowed book')}\" was due on "
                    f"{record['due_date'].strftime('%d %b %Y')}. Current fine: ₹{fine}.",
                    type="reminder",
                    category="library",
                    priority="high",
                    action_url="/library",
                    data={"borrow_id": str(record["_id"]), "fine": fine},
                )
                flagged += 1
        except Exception as e:
            logger.error(f"Library overdue sweep failed for record {record.get('_id')}: {e}")

    logger.info(f"Library records newly overdue: {flagged}")
    return flagged


JOBS = {
    "fee_due_reminders": send_due_date_reminders,
    "fee_overdue_notifications": send_overdue_notifications,
    "library_overdue_sweep": sweep_overdue_borrows,
}
