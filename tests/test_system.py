from datetime import datetime, timedelta

import pytest
from bson import ObjectId


def test_config_defaults(client, student_headers):
    response = client.get("/api/system/config", headers=student_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["library"]["fine_per_day"] == 5
    assert data["notifications"]["fee_reminder_days"] == [7, 3, 1, 0]
    assert data["updated_by"] is None


def test_update_config_merges_sections(client, admin, admin_headers):
    response = client.put("/api/system/config", headers=admin_headers,
                          json={"library": {"fine_per_day": 10}, "general": {"academic_year": "2025-2026"}})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["library"]["fine_per_day"] == 10
    assert data["library"]["borrow_duration_days"] == 14
    assert data["general"]["academic_year"] == "2025-2026"
    assert data["general"]["institution_name"] == "University Student Portal"
    assert data["updated_by"] == str(admin["_id"])


def test_update_config_needs_a_section(client, admin_headers):
    response = client.put("/api/system/config", headers=admin_headers, json={})

    assert response.status_code == 400


@pytest.mark.parametrize("updates", [
    {"library": {"max_books_per_student": "five"}},
    {"library": {"fine_per_day": -5}},
    {"security": {"max_login_attempts": 0}},
    {"notifications": {"fee_reminder_days": []}},
    {"library": {"fines_per_day": 10}},
    {"hostel": {"rent": 100}},
])
def test_invalid_config_rejected(client, admin_headers, student_headers, updates):
    response = client.put("/api/system/config", headers=admin_headers, json=updates)

    assert response.status_code == 400
    assert response.json()["success"] is False
    # The stored policy is untouched, so borrowing still works
    book = client.post("/api/library/books", headers=admin_headers, json={
        "title": "Domain-Driven Design", "author": "Eric Evans", "isbn": "0321125215", "category": "Software",
    }).json()["data"]
    assert client.post("/api/library/borrow", headers=student_headers,
                       json={"book_id": book["_id"]}).status_code == 201


def test_students_cannot_update_config(client, student_headers):
    response = client.put("/api/system/config", headers=student_headers, json={"library": {"fine_per_day": 0}})

    assert response.status_code == 403


def test_new_fine_rate_applies_to_returns(client, admin_headers, student_headers, mongo_db):
    client.put("/api/system/config", headers=admin_headers, json={"library": {"fine_per_day": 10}})
    book = client.post("/api/library/books", headers=admin_headers, json={
        "title": "Refactoring", "author": "Martin Fowler", "isbn": "0134757599", "category": "Software",
    }).json()["data"]
    record = client.post("/api/library/borrow", headers=student_headers, json={"book_id": book["_id"]}).json()["data"]
    mongo_db.borrow_records.update_one(
        {"_id": ObjectId(record["_id"])}, {"$set": {"due_date": datetime.utcnow() - timedelta(hours=30)}}
    )

    response = client.post("/api/library/return", headers=student_headers, json={"borrow_id": record["_id"]})

    assert response.json()["data"]["fine"] == 20


def test_system_stats(client, admin_headers, student):
    data = client.get("/api/system/stats", headers=admin_headers).json()["data"]

    assert data["collections"]["users"] == 2
    assert data["collections"]["fees"] == 0
    assert "generated_at" in data


def test_run_job(client, admin_headers, student, mongo_db):
    mongo_db.fees.insert_one({
        "user_id": student["_id"], "fee_type": "library", "amount": 100, "paid_amount": 0,
        "status": "pending", "due_date": datetime.utcnow() - timedelta(days=3),
    })

    response = client.post("/api/system/jobs/fee_overdue_notifications/run", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["data"] == {"job": "fee_overdue_notifications", "processed": 1}
    assert mongo_db.fees.find_one({})["status"] == "overdue"


def test_run_unknown_job(client, admin_headers):
    response = client.post("/api/system/jobs/make_coffee/run", headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["message"] == "Unknown job 'make_coffee'"


def test_health(client):
    for path in ("/health", "/api/health"):
        response = client.get(path)
        assert response.status_code == 200
        assert "mongodb" in response.json()["databases"]


def test_root(client):
    body = client.get("/").json()

    assert body["success"] is True
