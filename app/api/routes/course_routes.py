"""
Course Routes

GET /courses - List courses (admin)
POST /courses - Create course (admin)
GET /courses/stats - Capacity and enrollment statistics (admin)
GET /courses/available - Open courses for the student's department
GET /courses/my-courses - Own enrollments
GET /courses/{course_id} - Get course
PUT /courses/{course_id} - Update course (admin)
DELETE /courses/{course_id} - Delete course (admin)
POST /courses/{course_id}/enroll - Enroll (student)
DELETE /courses/{course_id}/drop - Drop within the drop period (student)
GET /courses/{course_id}/check-prerequisites - Which prerequisites are met
GET /courses/{course_id}/students - Enrolled students (admin)

Seat rule: a course's enrolled_count is the number of its enrollments in
"enrolled". Marking a course completed completes those enrollments.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import get_current_user, require_admin, require_student
from app.db.mongodb import get_collection, COLLECTIONS
from app.services.mongo_service import attach_user, count_by, paginate, serialize_doc, serialize_docs, touch
from app.services.notification_service import create_notification
from app.utils.helpers import to_object_id
from app.schemas.schemas import APIResponse, CourseCreate, CourseStatus, CourseUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/courses", tags=["Courses"])

MAX_COURSES_PER_SEMESTER = 4
MAX_CREDITS_PER_SEMESTER = 24
DROP_PERIOD = timedelta(days=14)
COURSE_SUMMARY_FIELDS = {"code": 1, "name": 1, "department": 1, "semester": 1, "credits": 1, "status": 1}


def courses_collection():
    return get_collection(COLLECTIONS["courses"])


def enrollments_collection():
    return get_collection(COLLECTIONS["enrollments"])


def _get_course(course_id: str) -> dict:
    course = courses_collection().find_one({"_id": to_object_id(course_id, "Course not found")})
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return course


def _completed_codes(user_id) -> set:
    course_ids = [e["course_id"] for e in enrollments_collection().find(
        {"user_id": user_id, "status": "completed"}, {"course_id": 1}
    )]
    return {c["code"] for c in courses_collection().find({"_id": {"$in": course_ids}}, {"code": 1})}


def _semester_load(user_id, semester: int):
    """(courses, credits) the student is currently enrolled in for a semester."""
    course_ids = [e["course_id"] for e in enrollments_collection().find(
        {"user_id": user_id, "status": "enrolled"}, {"course_id": 1}
    )]
    courses = list(courses_collection().find({"_id": {"$in": course_ids}, "semester": semester}, {"credits": 1}))
    return len(courses), sum(c.get("credits", 0) for c in courses)


def _attach_courses(docs: list) -> list:
    courses = {c["_id"]: c for c in courses_collection().find(
        {"_id": {"$in": [d["course_id"] for d in docs]}}, COURSE_SUMMARY_FIELDS
    )}
    for doc in docs:
        doc["course"] = courses.get(doc["course_id"])
    return docs


# ============================================================
# CATALOGUE (ADMIN)
# ============================================================

@router.get("", response_model=APIResponse)
async def list_courses(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    department: Optional[str] = Query(None),
    semester: Optional[int] = Query(None, ge=1, le=8),
    status: Optional[CourseStatus] = Query(None),
    search: Optional[str] = Query(None),
    admin: dict = Depends(require_admin),
):
    """List courses ordered by code."""
    query = {}
    if department:
        query["department"] = department
    if semester:
        query["semester"] = semester
    if status:
        query["status"] = status.value
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"code": pattern}, {"name": pattern}, {"instructor.name": pattern}]
    courses, pagination = paginate(courses_collection(), query, page, limit, sort=[("code", 1)])
    return APIResponse(data={"courses": serialize_docs(courses), "pagination": pagination})


@router.post("", response_model=APIResponse, status_code=201)
async def create_course(request: CourseCreate, admin: dict = Depends(require_admin)):
    """Add a course to the catalogue."""
    if courses_collection().find_one({"code": request.code}):
        raise HTTPException(status_code=400, detail="Course code already exists")
    now = datetime.utcnow()
    course = request.model_dump()
    course.update({"enrolled_count": 0, "created_by": admin["_id"], "created_at": now, "updated_at": now})
    course["_id"] = courses_collection().insert_one(course).inserted_id
    return APIResponse(message="Course created successfully", data=serialize_doc(course))


@router.get("/stats", response_model=APIResponse)
async def course_stats(admin: dict = Depends(require_admin)):
    courses = courses_collection()
    docs = list(courses.find({}, {"max_capacity": 1, "enrolled_count": 1}))
    capacity = sum(c.get("max_capacity", 0) for c in docs)
    enrolled = sum(c.get("enrolled_count", 0) for c in docs)
    return APIResponse(data={
        "total_courses": len(docs),
        "active_courses": courses.count_documents({"status": "active"}),
        "total_capacity": capacity,
        "total_enrolled": enrolled,
        "utilization_rate": round(enrolled / capacity * 100, 2) if capacity else 0,
        "by_department": count_by(courses, "department"),
        "by_type": count_by(courses, "type"),
    })


# ============================================================
# STUDENT VIEWS
# ============================================================

@router.get("/available", response_model=APIResponse)
async def available_courses(
    semester: Optional[int] = Query(None, ge=1, le=8),
    search: Optional[str] = Query(None),
    student: dict = Depends(require_student),
):
    """Active courses of the student's department they are not enrolled in."""
    department = (student.get("profile") or {}).get("department")
    if not department:
        return APIResponse(data=[])

    query = {"status": "active", "department": department}
    if semester:
        query["semester"] = semester
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"code": pattern}, {"name": pattern}]
    taken = [e["course_id"] for e in enrollments_collection().find(
        {"user_id": student["_id"], "status": {"$in": ["enrolled", "completed"]}}, {"course_id": 1}
    )]
    query["_id"] = {"$nin": taken}

    courses = list(courses_collection().find(query).sort("code", 1))
    for course in courses:
        course["seats_left"] = max(course["max_capacity"] - course.get("enrolled_count", 0), 0)
    return APIResponse(data=serialize_docs(courses))


@router.get("/my-courses", response_model=APIResponse)
async def my_courses(
    status: Optional[str] = Query(None, pattern="^(enrolled|dropped|completed)$"),
    user: dict = Depends(get_current_user),
):
    """Own enrollments, newest first."""
    query = {"user_id": user["_id"]}
    if status:
        query["status"] = status
    enrollments = list(enrollments_collection().find(query).sort("enrolled_at", -1))
    _attach_courses(enrollments)
    return APIResponse(data=serialize_docs(enrollments))


# ============================================================
# SINGLE COURSE
# ============================================================

@router.get("/{course_id}", response_model=APIResponse)
async def get_course(course_id: str, user: dict = Depends(get_current_user)):
    """Get a course."""
    return APIResponse(data=serialize_doc(_get_course(course_id)))


@router.put("/{course_id}", response_model=APIResponse)
async def update_course(course_id: str, request: CourseUpdate, admin: dict = Depends(require_admin)):
    """Update a course; completing it completes every current enrollment."""
    course = _get_course(course_id)
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    if changes.get("max_capacity", course["max_capacity"]) < course.get("enrolled_count", 0):
        raise HTTPException(status_code=400, detail="Capacity cannot be lower than current enrollment")
    if "prerequisites" in changes:
        changes["prerequisites"] = sorted({c.strip().upper() for c in changes["prerequisites"] if c.strip()})

    courses_collection().update_one({"_id": course["_id"]}, {"$set": touch(changes)})

    if changes.get("status") == "completed" and course["status"] != "completed":
        now = datetime.utcnow()
        result = enrollments_collection().update_many(
            {"course_id": course["_id"], "status": "enrolled"},
            {"$set": {"status": "completed", "completed_at": now, "updated_at": now}},
        )
        logger.info(f"Course {course['code']} completed: {result.modified_count} enrollments closed")

    return APIResponse(message="Course updated successfully", data=serialize_doc(_get_course(course_id)))


@router.delete("/{course_id}", response_model=APIResponse)
async def delete_course(course_id: str, admin: dict = Depends(require_admin)):
    """Delete a course nobody is enrolled in."""
    course = _get_course(course_id)
    if enrollments_collection().count_documents({"course_id": course["_id"], "status": "enrolled"}):
        raise HTTPException(status_code=400, detail="Cannot delete a course with enrolled students")
    enrollments_collection().delete_many({"course_id": course["_id"]})
    courses_collection().delete_one({"_id": course["_id"]})
    logger.info(f"Admin {admin['email']} deleted course {course['code']}")
    return APIResponse(message="Course deleted successfully")


@router.get("/{course_id}/check-prerequisites", response_model=APIResponse)
async def check_prerequisites(course_id: str, user: dict = Depends(get_current_user)):
    course = _get_course(course_id)
    completed = _completed_codes(user["_id"])
    checks = [{"course_code": code, "satisfied": code in completed} for code in course.get("prerequisites", [])]
    can_enroll = all(c["satisfied"] for c in checks)
    if not checks:
        message = "No prerequisites required"
    else:
        message = "Prerequisites satisfied" if can_enroll else "Prerequisites not met"
    return APIResponse(message=message, data={"can_enroll": can_enroll, "prerequisites": checks})


@router.post("/{course_id}/enroll", response_model=APIResponse, status_code=201)
async def enroll(course_id: str, student: dict = Depends(require_student)):
    """
    Enroll in an active course.

    Checks seats, prerequisites and the per-semester limits. A dropped
    enrollment is reopened rather than duplicated.
    """
    course = courses_collection().find_one({"_id": to_object_id(course_id, "Course not found")})
    if not course or course["status"] != "active":
        raise HTTPException(status_code=404, detail="Course not found or not available for enrollment")
    if course.get("enrolled_count", 0) >= course["max_capacity"]:
        raise HTTPException(status_code=400, detail="Course is at full capacity")

    enrollments = enrollments_collection()
    existing = enrollments.find_one({"user_id": student["_id"], "course_id": course["_id"]})
    if existing and existing["status"] == "enrolled":
        raise HTTPException(status_code=400, detail="Already enrolled in this course")
    if existing and existing["status"] == "completed":
        raise HTTPException(status_code=400, detail="Course already completed. Cannot re-enroll.")

    missing = set(course.get("prerequisites", [])) - _completed_codes(student["_id"])
    if missing:
        raise HTTPException(status_code=400, detail="Prerequisites not met for this course")

    count, credits = _semester_load(student["_id"], course["semester"])
    if count >= MAX_COURSES_PER_SEMESTER:
        raise HTTPException(
            status_code=400,
            detail=f"Maximum enrollment limit reached for semester {course['semester']} ({MAX_COURSES_PER_SEMESTER} courses)",
        )
    if credits + course["credits"] > MAX_CREDITS_PER_SEMESTER:
        raise HTTPException(
            status_code=400,
            detail=f"Credit limit exceeded for semester {course['semester']} (max {MAX_CREDITS_PER_SEMESTER} credits)",
        )

    # Conditional increment so two students can't take the last seat
    result = courses_collection().update_one(
        {"_id": course["_id"], "enrolled_count": {"$lt": course["max_capacity"]}},
        {"$inc": {"enrolled_count": 1}},
    )
    if result.modified_count == 0:
        raise HTTPException(status_code=400, detail="Course is at full capacity")

    now = datetime.utcnow()
    if existing:
        enrollments.update_one(
            {"_id": existing["_id"]},
            {"$set": {"status": "enrolled", "enrolled_at": now, "dropped_at": None, "updated_at": now}},
        )
        enrollment = enrollments.find_one({"_id": existing["_id"]})
        message, title = "Successfully re-enrolled in course", "Course Re-enrollment Successful"
    else:
        enrollment = {
            "user_id": student["_id"],
            "course_id": course["_id"],
            "status": "enrolled",
            "enrolled_at": now,
            "dropped_at": None,
            "completed_at": None,
            "created_at": now,
            "updated_at": now,
        }
        enrollment["_id"] = enrollments.insert_one(enrollment).inserted_id
        message, title = "Successfully enrolled in course", "Course Enrollment Successful"

    create_notification(
        student["_id"],
        title,
        f"You are enrolled in {course['name']} ({course['code']}).",
        type="success", category="academic", action_url="/courses/my-courses", action_text="View Course",
        data={"course_id": str(course["_id"]), "enrollment_id": str(enrollment["_id"])},
    )
    logger.info(f"Student {student['id']} enrolled in course {course['code']}")
    return APIResponse(message=message, data=serialize_doc(enrollment))


@router.delete("/{course_id}/drop", response_model=APIResponse)
async def drop_course(course_id: str, student: dict = Depends(require_student)):
    """Drop a course within 14 days of enrolling."""
    course = _get_course(course_id)
    enrollments = enrollments_collection()
    enrollment = enrollments.find_one({"user_id": student["_id"], "course_id": course["_id"], "status": "enrolled"})
    if not enrollment:
        raise HTTPException(status_code=404, detail="Enrollment not found or already dropped")

    now = datetime.utcnow()
    if now > enrollment["enrolled_at"] + DROP_PERIOD:
        raise HTTPException(
            status_code=400,
            detail="Drop period has expired. Courses can only be dropped within 14 days of enrollment.",
        )

    result = enrollments.update_one(
        {"_id": enrollment["_id"], "status": "enrolled"},
        {"$set": {"status": "dropped", "dropped_at": now, "updated_at": now}},
    )
    if result.modified_count:
        courses_collection().update_one(
            {"_id": course["_id"], "enrolled_count": {"$gt": 0}}, {"$inc": {"enrolled_count": -1}}
        )
    logger.info(f"Student {student['id']} dropped course {course['code']}")
    return APIResponse(message="Successfully dropped course")


@router.get("/{course_id}/students", response_model=APIResponse)
async def course_students(course_id: str, admin: dict = Depends(require_admin)):
    """Currently enrolled students."""
    course = _get_course(course_id)
    enrollments = list(enrollments_collection().find(
        {"course_id": course["_id"], "status": "enrolled"}
    ).sort("enrolled_at", 1))
    attach_user(enrollments, fields=("name", "email", "student_id", "profile.department"))
    return APIResponse(data={"course": serialize_doc(course), "students": serialize_docs(enrollments)})
