from datetime import datetime, timedelta

import pytest
from bson import ObjectId

from app.api.routes import course_routes


def course_payload(**overrides):
    payload = {
        "code": "cs501",
        "name": "Distributed Systems",
        "department": "Computer Science",
        "semester": 5,
        "credits": 4,
        "type": "core",
        "instructor": {"name": "Dr. Meera Iyer", "email": "meera.iyer@example.com"},
        "max_capacity": 2,
        "schedule": [{"day": "Monday", "time": "09:00-10:30", "room": "B-204"}],
        "description": "Consensus, replication and fault tolerance.",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_course(client, admin_headers):
    def _create(**overrides):
        response = client.post("/api/courses", headers=admin_headers, json=course_payload(**overrides))
        assert response.status_code == 201
        return response.json()["data"]

    return _create


@pytest.fixture
def course(create_course):
    return create_course()


def enroll(client, headers, course_id):
    return client.post(f"/api/courses/{course_id}/enroll", headers=headers)


def test_create_course_normalizes_code(course):
    assert course["code"] == "CS501"
    assert course["enrolled_count"] == 0
    assert course["status"] == "active"


def test_duplicate_code_rejected(client, admin_headers, course):
    response = client.post("/api/courses", headers=admin_headers, json=course_payload(code="CS501"))

    assert response.status_code == 400
    assert response.json()["message"] == "Course code already exists"


def test_invalid_schedule_rejected(client, admin_headers):
    schedule = [{"day": "Funday", "time": "9-10", "room": "B-204"}]
    response = client.post("/api/courses", headers=admin_headers, json=course_payload(schedule=schedule))

    assert response.status_code == 400


def test_students_cannot_create_courses(client, student_headers):
    response = client.post("/api/courses", headers=student_headers, json=course_payload())

    assert response.status_code == 403


def test_enroll(client, student, student_headers, course, mongo_db):
    response = enroll(client, student_headers, course["_id"])

    assert response.status_code == 201
    assert response.json()["message"] == "Successfully enrolled in course"
    assert response.json()["data"]["status"] == "enrolled"
    assert mongo_db.courses.find_one({"_id": ObjectId(course["_id"])})["enrolled_count"] == 1

    notification = mongo_db.notifications.find_one({"user_id": student["_id"]})
    assert notification["title"] == "Course Enrollment Successful"
    assert notification["category"] == "academic"


def test_cannot_enroll_twice(client, student_headers, course):
    enroll(client, student_headers, course["_id"])
    response = enroll(client, student_headers, course["_id"])

    assert response.status_code == 400
    assert response.json()["message"] == "Already enrolled in this course"


def test_full_course_rejected(client, make_student, auth_headers, create_course):
    single = create_course(code="CS502", max_capacity=1)
    enroll(client, auth_headers(make_student()), single["_id"])

    response = enroll(client, auth_headers(make_student()), single["_id"])

    assert response.status_code == 400
    assert response.json()["message"] == "Course is at full capacity"


def test_inactive_course_not_enrollable(client, student_headers, create_course):
    upcoming = create_course(code="CS503", status="upcoming")

    response = enroll(client, student_headers, upcoming["_id"])

    assert response.status_code == 404
    assert response.json()["message"] == "Course not found or not available for enrollment"


def test_prerequisites_enforced(client, admin_headers, student_headers, create_course):
    basics = create_course(code="CS301", semester=3)
    advanced = create_course(code="CS601", semester=6, prerequisites=["cs301"])

    check = client.get(f"/api/courses/{advanced['_id']}/check-prerequisites", headers=student_headers)
    assert check.json()["data"] == {"can_enroll": False, "prerequisites": [{"course_code": "CS301", "satisfied": False}]}

    response = enroll(client, student_headers, advanced["_id"])
    assert response.status_code == 400
    assert response.json()["message"] == "Prerequisites not met for this course"

    enroll(client, student_headers, basics["_id"])
    client.put(f"/api/courses/{basics['_id']}", headers=admin_headers, json={"status": "completed"})

    assert enroll(client, student_headers, advanced["_id"]).status_code == 201


def test_semester_course_limit(client, student_headers, create_course):
    courses = [create_course(code=f"CS51{i}", credits=3, max_capacity=10) for i in range(5)]
    for c in courses[:4]:
        assert enroll(client, student_headers, c["_id"]).status_code == 201

    response = enroll(client, student_headers, courses[4]["_id"])

    assert response.status_code == 400
    assert response.json()["message"] == "Maximum enrollment limit reached for semester 5 (4 courses)"


def test_semester_credit_limit(client, student_headers, create_course, monkeypatch):
    monkeypatch.setattr(course_routes, "MAX_CREDITS_PER_SEMESTER", 10)
    first = create_course(code="CS521", credits=6, max_capacity=10)
    second = create_course(code="CS522", credits=5, max_capacity=10)
    assert enroll(client, student_headers, first["_id"]).status_code == 201

    response = enroll(client, student_headers, second["_id"])

    assert response.status_code == 400
    assert response.json()["message"] == "Credit limit exceeded for semester 5 (max 10 credits)"


def test_drop_and_reenroll(client, student_headers, course, mongo_db):
    enroll(client, student_headers, course["_id"])

    response = client.delete(f"/api/courses/{course['_id']}/drop", headers=student_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Successfully dropped course"
    assert mongo_db.courses.find_one({"_id": ObjectId(course["_id"])})["enrolled_count"] == 0

    response = enroll(client, student_headers, course["_id"])
    assert response.status_code == 201
    assert response.json()["message"] == "Successfully re-enrolled in course"
    assert mongo_db.course_enrollments.count_documents({}) == 1


def test_drop_twice(client, student_headers, course):
    enroll(client, student_headers, course["_id"])
    client.delete(f"/api/courses/{course['_id']}/drop", headers=student_headers)

    response = client.delete(f"/api/courses/{course['_id']}/drop", headers=student_headers)

    assert response.status_code == 404
    assert response.json()["message"] == "Enrollment not found or already dropped"


def test_drop_period_expired(client, student_headers, course, mongo_db):
    enroll(client, student_headers, course["_id"])
    mongo_db.course_enrollments.update_one({}, {"$set": {"enrolled_at": datetime.utcnow() - timedelta(days=15)}})

    response = client.delete(f"/api/courses/{course['_id']}/drop", headers=student_headers)

    assert response.status_code == 400
    assert "Drop period has expired" in response.json()["message"]


def test_available_courses_excludes_enrolled(client, student_headers, create_course):
    taken = create_course(code="CS531")
    open_course = create_course(code="CS532")
    create_course(code="ME501", department="Mechanical")
    enroll(client, student_headers, taken["_id"])

    response = client.get("/api/courses/available", headers=student_headers)

    data = response.json()["data"]
    assert [c["code"] for c in data] == ["CS532"]
    assert data[0]["seats_left"] == open_course["max_capacity"]


def test_my_courses(client, student_headers, course):
    enroll(client, student_headers, course["_id"])

    response = client.get("/api/courses/my-courses", headers=student_headers)

    data = response.json()["data"]
    assert len(data) == 1
    assert data[0]["course"]["code"] == "CS501"


def test_completing_course_completes_enrollments(client, admin_headers, student_headers, course, mongo_db):
    enroll(client, student_headers, course["_id"])

    client.put(f"/api/courses/{course['_id']}", headers=admin_headers, json={"status": "completed"})

    assert mongo_db.course_enrollments.find_one({})["status"] == "completed"
    response = client.post(f"/api/courses/{course['_id']}/enroll", headers=student_headers)
    assert response.status_code == 404


def test_capacity_cannot_drop_below_enrollment(client, admin_headers, make_student, auth_headers, course):
    enroll(client, auth_headers(make_student()), course["_id"])
    enroll(client, auth_headers(make_student()), course["_id"])

    response = client.put(f"/api/courses/{course['_id']}", headers=admin_headers, json={"max_capacity": 1})

    assert response.status_code == 400


def test_cannot_delete_course_with_students(client, admin_headers, student_headers, course):
    enroll(client, student_headers, course["_id"])

    response = client.delete(f"/api/courses/{course['_id']}", headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Cannot delete a course with enrolled students"


def test_course_students_and_stats(client, admin_headers, student, student_headers, course):
    enroll(client, student_headers, course["_id"])

    students = client.get(f"/api/courses/{course['_id']}/students", headers=admin_headers).json()["data"]
    assert students["students"][0]["user"]["email"] == student["email"]

    stats = client.get("/api/courses/stats", headers=admin_headers).json()["data"]
    assert stats["total_courses"] == 1
    assert stats["total_capacity"] == 2
    assert stats["total_enrolled"] == 1
    assert stats["utilization_rate"] == 50.0
    assert stats["by_type"] == {"core": 1}
