from datetime import datetime, timedelta

import pytest

from app.services.notification_service import create_notification


def send(client, headers, **payload):
    body = {"title": "Campus Notice", "message": "The library closes early on Friday."}
    body.update(payload)
    return client.post("/api/notifications", headers=headers, json=body)


@pytest.fixture
def inbox(student):
    """Three notifications for the student: one read, one expired"""
    create_notification(student["_id"], "Fee reminder", "Pay your fee", category="fee", priority="high")
    read_id = create_notification(student["_id"], "Welcome", "Welcome aboard")
    create_notification(student["_id"], "Old news", "Gone", expires_at=datetime.utcnow() - timedelta(days=1))
    return {"read_id": read_id}


def test_send_to_all_students(client, admin_headers, student, make_student, mongo_db):
    make_student()

    response = send(client, admin_headers)

    assert response.status_code == 201
    assert response.json()["message"] == "Notification sent to 2 users"
    assert response.json()["data"] == {"sent": 2}
    # Admins are not part of "all"
    assert mongo_db.notifications.count_documents({}) == 2


def test_send_to_department(client, admin_headers, make_student, mongo_db):
    civil = make_student(department="Civil")
    make_student(department="Mechanical")

    response = send(client, admin_headers, recipient_type="department", department="Civil")

    assert response.json()["data"]["sent"] == 1
    assert mongo_db.notifications.find_one({})["user_id"] == civil["_id"]


def test_send_to_specific_users(client, admin_headers, student, make_student):
    make_student()

    response = send(client, admin_headers, recipient_type="specific", recipients=[str(student["_id"])])

    assert response.json()["data"]["sent"] == 1


def test_no_recipients(client, admin_headers, student):
    response = send(client, admin_headers, recipient_type="department", department="Astronomy")

    assert response.status_code == 400
    assert response.json()["message"] == "No recipients found"


def test_invalid_recipient_configuration(client, admin_headers, student):
    response = send(client, admin_headers, recipient_type="department")
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid recipient configuration"

    response = send(client, admin_headers, recipient_type="specific", recipients=["nope"])
    assert response.json()["message"] == "Invalid recipient configuration"


def test_students_cannot_send(client, student_headers):
    response = send(client, student_headers)

    assert response.status_code == 403


def test_bulk_send_reports_bad_rows(client, admin_headers, student):
    response = client.post("/api/notifications/bulk", headers=admin_headers, json={"notifications": [
        {"title": "One", "message": "First"},
        {"message": "Missing title"},
        {"title": "Three", "message": "Third", "recipient_type": "semester"},
    ]})

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["sent"] == 1
    assert data["errors"][0].startswith("Row 2: ")
    assert data["errors"][1] == "Row 3: Invalid recipient configuration"


def test_my_notifications_skip_expired(client, student_headers, inbox):
    client.patch(f"/api/notifications/{inbox['read_id']}/read", headers=student_headers)

    data = client.get("/api/notifications/my", headers=student_headers).json()["data"]
    assert {n["title"] for n in data["notifications"]} == {"Fee reminder", "Welcome"}
    assert data["unread_count"] == 1

    unread = client.get("/api/notifications/my", params={"unread_only": True}, headers=student_headers)
    assert [n["title"] for n in unread.json()["data"]["notifications"]] == ["Fee reminder"]

    by_category = client.get("/api/notifications/my", params={"category": "fee"}, headers=student_headers)
    assert len(by_category.json()["data"]["notifications"]) == 1


def test_unread_count_and_mark_all(client, student_headers, inbox):
    assert client.get("/api/notifications/unread-count", headers=student_headers).json()["data"] == {"unread_count": 2}

    response = client.patch("/api/notifications/mark-all-read", headers=student_headers)

    # The expired one is unread too
    assert response.json()["data"] == {"modified": 3}
    assert client.get("/api/notifications/unread-count", headers=student_headers).json()["data"] == {"unread_count": 0}


def test_mark_read_is_recipient_only(client, admin_headers, inbox, make_student, auth_headers):
    url = f"/api/notifications/{inbox['read_id']}/read"

    assert client.patch(url, headers=auth_headers(make_student())).status_code == 403
    assert client.patch(url, headers=admin_headers).status_code == 403


def test_mark_read(client, student_headers, inbox):
    response = client.patch(f"/api/notifications/{inbox['read_id']}/read", headers=student_headers)

    assert response.status_code == 200
    assert response.json()["data"]["is_read"] is True
    assert response.json()["data"]["read_at"] is not None


def test_view_other_users_notification(client, admin_headers, inbox, make_student, auth_headers):
    url = f"/api/notifications/{inbox['read_id']}"

    response = client.get(url, headers=auth_headers(make_student()))
    assert response.status_code == 403
    assert response.json()["message"] == "Not authorized to view this notification"

    assert client.get(url, headers=admin_headers).status_code == 200


def test_admin_edits_and_deletes(client, admin_headers, inbox, mongo_db):
    url = f"/api/notifications/{inbox['read_id']}"

    response = client.put(url, headers=admin_headers, json={"priority": "urgent"})
    assert response.json()["data"]["priority"] == "urgent"

    client.delete(url, headers=admin_headers)
    assert mongo_db.notifications.count_documents({}) == 2


def test_all_notifications(client, admin_headers, student, inbox):
    response = client.get("/api/notifications/all", params={"user_id": str(student["_id"])}, headers=admin_headers)

    data = response.json()["data"]
    assert data["pagination"]["total_items"] == 3
    assert data["notifications"][0]["user"]["email"] == student["email"]


def test_notification_stats(client, admin_headers, student_headers, inbox):
    client.patch(f"/api/notifications/{inbox['read_id']}/read", headers=student_headers)

    data = client.get("/api/notifications/stats", params={"period": "week"}, headers=admin_headers).json()["data"]

    assert data["period"] == "week"
    assert data["total_sent"] == 3
    assert data["total_read"] == 1
    assert data["read_rate"] == 33.33
    assert data["by_category"] == {"fee": 1, "system": 2}
    assert data["by_priority"] == {"high": 1, "medium": 2}
