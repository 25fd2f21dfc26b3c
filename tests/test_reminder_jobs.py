from datetime import datetime, timedelta

import pytest

from app.services.reminder_jobs import (
    reminder_priority, reminder_title, send_due_date_reminders, send_overdue_notifications,
    sweep_overdue_borrows
)
from app.services.system_service import update_config

NOW = datetime(2025, 3, 10, 9, 0)


@pytest.fixture
def add_fee(mongo_db, student):
    def _add(due_date, status="pending", amount=1200, paid_amount=0, **extra):
        doc = {
            "user_id": student["_id"], "fee_type": "tuition", "amount": amount, "paid_amount": paid_amount,
            "due_date": due_date, "status": status, "created_at": NOW, "updated_at": NOW, **extra,
        }
        doc["_id"] = mongo_db.fees.insert_one(doc).inserted_id
        return doc
    return _add


def titles(mongo_db):
    return [n["title"] for n in mongo_db.notifications.find({})]


def test_fee_due_in_three_days(add_fee, mongo_db):
    fee = add_fee(NOW + timedelta(days=3, hours=5))

    assert send_due_date_reminders(NOW) == 1

    notification = mongo_db.notifications.find_one({})
    assert notification["title"] == "Fee Due in 3 days"
    assert notification["priority"] == "high"
    assert notification["data"] == {"fee_id": str(fee["_id"]), "days_until_due": 3}
    stored = mongo_db.fees.find_one({"_id": fee["_id"]})
    assert stored["last_reminder_sent"] == NOW
    assert stored["reminder_count"] == 1


def test_reminder_cooldown(add_fee):
    add_fee(NOW + timedelta(days=1))

    assert send_due_date_reminders(NOW) == 1
    assert send_due_date_reminders(NOW + timedelta(hours=2)) == 0


def test_fee_due_today_is_urgent(add_fee, mongo_db):
    add_fee(NOW.replace(hour=18), status="partial", paid_amount=200)

    send_due_date_reminders(NOW)

    notification = mongo_db.notifications.find_one({})
    assert notification["title"] == "Fee Due Today"
    assert notification["priority"] == "urgent"
    assert "1000" in notification["message"]


def test_no_reminder_outside_windows(add_fee, mongo_db):
    add_fee(NOW + timedelta(days=5))
    add_fee(NOW + timedelta(days=3), status="paid", paid_amount=1200)

    assert send_due_date_reminders(NOW) == 0
    assert titles(mongo_db) == []


def test_reminder_days_follow_config(add_fee, mongo_db):
    update_config({"notifications": {"fee_reminder_days": [5]}})
    add_fee(NOW + timedelta(days=5))
    add_fee(NOW + timedelta(days=3))

    assert send_due_date_reminders(NOW) == 1
    assert titles(mongo_db) == ["Fee Due in 5 days"]


def test_overdue_interval_follows_config(add_fee):
    update_config({"notifications": {"overdue_reminder_interval_days": 2}})
    add_fee(NOW - timedelta(days=4))

    assert send_overdue_notifications(NOW) == 1
    assert send_overdue_notifications(NOW + timedelta(days=1)) == 0
    assert send_overdue_notifications(NOW + timedelta(days=2, hours=1)) == 1


def test_overdue_fee_flagged(add_fee, mongo_db):
    fee = add_fee(NOW - timedelta(days=4))

    assert send_overdue_notifications(NOW) == 1
    assert mongo_db.fees.find_one({"_id": fee["_id"]})["status"] == "overdue"
    notification = mongo_db.notifications.find_one({})
    assert notification["title"] == "Fee Overdue"
    assert "overdue by 4 days" in notification["message"]

    # Weekly at most
    assert send_overdue_notifications(NOW + timedelta(days=1)) == 0
    assert send_overdue_notifications(NOW + timedelta(days=8)) == 1


def test_fee_due_today_is_not_overdue(add_fee):
    add_fee(NOW.replace(hour=1))

    assert send_overdue_notifications(NOW) == 0


def test_library_sweep(mongo_db, student):
    book_id = mongo_db.books.insert_one({"title": "Dune", "isbn": "9780441013593"}).inserted_id
    late = mongo_db.borrow_records.insert_one({
        "user_id": student["_id"], "book_id": book_id, "status": "borrowed",
        "borrow_date": NOW - timedelta(days=16), "due_date": NOW - timedelta(days=2), "fine": 0,
    }).inserted_id
    mongo_db.borrow_records.insert_one({
        "user_id": student["_id"], "book_id": book_id, "status": "borrowed",
        "borrow_date": NOW, "due_date": NOW + timedelta(days=14), "fine": 0,
    })

    assert sweep_overdue_borrows(NOW) == 1
    record = mongo_db.borrow_records.find_one({"_id": late})
    assert record["status"] == "overdue"
    assert record["fine"] == 10
    assert titles(mongo_db) == ["Library Book Overdue"]

    # Later sweeps grow the fine without notifying again
    assert sweep_overdue_borrows(NOW + timedelta(days=1)) == 0
    assert mongo_db.borrow_records.find_one({"_id": late})["fine"] == 15
    assert len(titles(mongo_db)) == 1


@pytest.mark.parametrize("days, priority, title", [
    (7, "medium", "Fee Due in 7 days"),
    (3, "high", "Fee Due in 3 days"),
    (1, "high", "Fee Due in 1 day"),
    (0, "urgent", "Fee Due Today"),
])
def test_reminder_wording(days, priority, title):
    assert reminder_priority(days) == priority
    assert reminder_title(days) == title
