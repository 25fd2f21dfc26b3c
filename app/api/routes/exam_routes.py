"""
Exam Routes

GET /exams/timetable - Scheduled exams for the student's department and semester
GET /exams/results - Own exam results
GET /exams/transcript - Semester-wise transcript with CGPA
GET /exams - List exams (admin)
POST /exams - Create exam (admin)
GET /exams/{exam_id} - Get exam
PUT /exams/{exam_id} - Update exam (admin)
DELETE /exams/{exam_id} - Delete exam and its results (admin)
POST /exams/{exam_id}/results - Publish results (admin)
GET /exams/{exam_id}/results - Results of one exam (admin)
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import get_current_user, is_admin, require_admin
from app.db.mongodb import get_collection, COLLECTIONS
from app.services.mongo_service import attach_user, paginate, serialize_doc, serialize_docs, touch
from app.services.notification_service import create_notification
from app.services.system_service import get_section
from app.services.user_service import find_student
from app.utils.helpers import calculate_grade, to_object_id
from app.schemas.schemas import APIResponse, ExamCreate, ExamStatus, ExamUpdate, ResultsSubmit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exams", tags=["Exams"])

EXAM_SUMMARY_FIELDS = {
    "title": 1, "subject": 1, "course_code": 1, "semester": 1, "exam_type": 1,
    "exam_date": 1, "max_marks": 1, "passing_marks": 1, "credits": 1,
}


def exams_collection():
    return get_collection(COLLECTIONS["exams"])


def results_collection():
    return get_collection(COLLECTIONS["exam_results"])


def _get_exam(exam_id: str) -> dict:
    exam = exams_collection().find_one({"_id": to_object_id(exam_id, "Exam not found")})
    if not exam:
        raise HTTPException(status_code=404, detail="Exam not found")
    return exam


def _student_results(user_id) -> list:
    results = list(results_collection().find({"user_id": user_id}))
    exams = {e["_id"]: e for e in exams_collection().find(
        {"_id": {"$in": [r["exam_id"] for r in results]}}, EXAM_SUMMARY_FIELDS
    )}
    for result in results:
        result["exam"] = exams.get(result["exam_id"])
    return [r for r in results if r["exam"]]


def course_results(results: list) -> list:
    """One result per (semester, course_code): the final exam if there is one, else the latest."""
    chosen = {}
    for result in results:
        exam = result["exam"]
        key = (exam.get("semester"), exam.get("course_code"))
        rank = (exam.get("exam_type") == "final", exam.get("exam_date") or datetime.min)
        if key not in chosen or rank > chosen[key][0]:
            chosen[key] = (rank, result)
    return [result for _, result in chosen.values()]


def build_transcript(results: list, course_credits: Optional[dict] = None) -> dict:
    """
    Group results by semester and compute SGPA per semester plus CGPA.

    Each course counts once. Credits come from the course catalogue when
    the course code is known there, otherwise from the exam.
    """
    course_credits = course_credits or {}
    semesters = {}
    for result in course_results(results):
        exam = result["exam"]
        semester = exam.get("semester")
        credits = course_credits.get(exam.get("course_code")) or exam.get("credits") or 3
        semesters.setdefault(semester, []).append({
            "course_code": exam.get("course_code"),
            "subject": exam.get("subject"),
            "exam_type": exam.get("exam_type"),
            "credits": credits,
            "marks_obtained": result["marks_obtained"],
            "max_marks": result["max_marks"],
            "percentage": result["percentage"],
            "grade": result["grade"],
            "grade_point": result["grade_point"],
            "passed": result["passed"],
        })

    breakdown = []
    total_points = 0
    total_credits = 0
    for semester in sorted(semesters, key=lambda s: (s is None, s)):
        subjects = semesters[semester]
        credits = sum(s["credits"] for s in subjects)
        points = sum(s["grade_point"] * s["credits"] for s in subjects)
        total_points += points
        total_credits += credits
        breakdown.append({
            "semester": semester,
            "subjects": subjects,
            "credits": credits,
            "sgpa": round(points / credits, 2) if credits else 0,
        })

    return {
        "semesters": breakdown,
        "total_credits": total_credits,
        "cgpa": round(total_points / total_credits, 2) if total_credits else 0,
    }


# ============================================================
# STUDENT VIEWS
# ============================================================

@router.get("/timetable", response_model=APIResponse)
async def exam_timetable(
    department: Optional[str] = Query(None, description="Admins only"),
    semester: Optional[int] = Query(None, ge=1, le=8, description="Admins only"),
    user: dict = Depends(get_current_user),
):
    """Scheduled exams for the caller's department and semester, soonest first."""
    if not is_admin(user):
        profile = user.get("profile") or {}
        department, semester = profile.get("department"), profile.get("semester")
        if not department or not semester:
            return APIResponse(data=[])

    query = {"status": "scheduled"}
    if department:
        query["department"] = department
    if semester:
        query["semester"] = semester
    exams = list(exams_collection().find(query).sort("exam_date", 1))
    return APIResponse(data=serialize_docs(exams))


@router.get("/results", response_model=APIResponse)
async def my_results(user: dict = Depends(get_current_user)):
    """Own results, latest exam first."""
    results = _student_results(user["_id"])
    results.sort(key=lambda r: r["exam"].get("exam_date") or datetime.min, reverse=True)
    return APIResponse(data=serialize_docs(results))


@router.get("/transcript", response_model=APIResponse)
async def transcript(user: dict = Depends(get_current_user)):
    """Semester-wise grades and CGPA."""
    results = _student_results(user["_id"])
    codes = list({r["exam"].get("course_code") for r in results})
    catalogue = get_collection(COLLECTIONS["courses"]).find({"code": {"$in": codes}}, {"code": 1, "credits": 1})
    data = build_transcript(results, {c["code"]: c.get("credits") for c in catalogue})
    data["student"] = {
        "name": user.get("name"),
        "student_id": user.get("student_id"),
        "department": (user.get("profile") or {}).get("department"),
    }
    data["generated_at"] = datetime.utcnow()
    return APIResponse(data=data)


# ============================================================
# ADMIN MANAGEMENT
# ============================================================

@router.get("", response_model=APIResponse)
async def list_exams(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    department: Optional[str] = Query(None),
    semester: Optional[int] = Query(None, ge=1, le=8),
    status: Optional[ExamStatus] = Query(None),
    admin: dict = Depends(require_admin),
):
    """List exams, latest date first."""
    query = {}
    if department:
        query["department"] = department
    if semester:
        query["semester"] = semester
    if status:
        query["status"] = status.value
    exams, pagination = paginate(exams_collection(), query, page, limit, sort=[("exam_date", -1)])
    return APIResponse(data={"exams": serialize_docs(exams), "pagination": pagination})


@router.post("", response_model=APIResponse, status_code=201)
async def create_exam(request: ExamCreate, admin: dict = Depends(require_admin)):
    """Create an exam."""
    now = datetime.utcnow()
    exam = request.model_dump()
    academic = get_section("academic")
    if exam["credits"] is None:
        exam["credits"] = academic["default_credits"]
    if exam["passing_marks"] is None:
        exam["passing_marks"] = round(exam["max_marks"] * academic["passing_percentage"] / 100, 2)
    exam.update({"created_by": admin["_id"], "created_at": now, "updated_at": now})
    exam["_id"] = exams_collection().insert_one(exam).inserted_id
    return APIResponse(message="Exam created successfully", data=serialize_doc(exam))


@router.get("/{exam_id}", response_model=APIResponse)
async def get_exam(exam_id: str, user: dict = Depends(get_current_user)):
    """Get an exam."""
    return APIResponse(data=serialize_doc(_get_exam(exam_id)))


@router.put("/{exam_id}", response_model=APIResponse)
async def update_exam(exam_id: str, request: ExamUpdate, admin: dict = Depends(require_admin)):
    """Update an exam."""
    exam = _get_exam(exam_id)
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    merged = {**exam, **changes}
    if merged["passing_marks"] > merged["max_marks"]:
        raise HTTPException(status_code=400, detail="Passing marks cannot exceed maximum marks")
    if merged["end_time"] <= merged["start_time"]:
        raise HTTPException(status_code=400, detail="End time must be after start time")

    exams_collection().update_one({"_id": exam["_id"]}, {"$set": touch(changes)})
    return APIResponse(message="Exam updated successfully", data=serialize_doc(_get_exam(exam_id)))


@router.delete("/{exam_id}", response_model=APIResponse)
async def delete_exam(exam_id: str, admin: dict = Depends(require_admin)):
    """Delete an exam together with its results."""
    exam = _get_exam(exam_id)
    removed = results_collection().delete_many({"exam_id": exam["_id"]}).deleted_count
    exams_collection().delete_one({"_id": exam["_id"]})
    logger.info(f"Admin {admin['email']} deleted exam {exam['_id']} ({removed} results)")
    return APIResponse(message="Exam deleted successfully")


@router.post("/{exam_id}/results", response_model=APIResponse)
async def publish_results(exam_id: str, request: ResultsSubmit, admin: dict = Depends(require_admin)):
    """
    Record marks for students; re-submitting a student's marks replaces them.

    Rows with unknown students or out-of-range marks are reported back.
    """
    exam = _get_exam(exam_id)
    max_marks = exam["max_marks"]
    now = datetime.utcnow()
    saved = []
    errors = []

    for entry in request.results:
        student = find_student(entry.student_id)
        if not student or student.get("role") != "student":
            errors.append(f"Student {entry.student_id} not found")
            continue
        if entry.marks_obtained > max_marks:
            errors.append(f"Marks for {entry.student_id} exceed maximum of {max_marks}")
            continue

        percentage = round(entry.marks_obtained / max_marks * 100, 2)
        grade, grade_point = calculate_grade(percentage)
        result = {
            "marks_obtained": entry.marks_obtained,
            "max_marks": max_marks,
            "percentage": percentage,
            "grade": grade,
            "grade_point": grade_point,
            "passed": entry.marks_obtained >= exam.get("passing_marks", 0),
            "remarks": entry.remarks,
            "published_by": admin["_id"],
            "published_at": now,
        }
        results_collection().update_one(
            {"exam_id": exam["_id"], "user_id": student["_id"]},
            {"$set": result, "$setOnInsert": {"created_at": now}},
            upsert=True,
        )
        create_notification(
            student["_id"],
            "Exam Result Published",
            f"Your result for {exam['subject']} ({exam['course_code']}) is out: grade {grade}.",
            type="info", category="exam", action_url="/exams/results",
            data={"exam_id": str(exam["_id"]), "grade": grade}, created_by=admin["_id"],
        )
        saved.append({"student_id": entry.student_id, "user_id": student["_id"], **result})

    if exam.get("status") in ("scheduled", "ongoing") and saved:
        exams_collection().update_one({"_id": exam["_id"]}, {"$set": touch({"status": "completed"})})

    logger.info(f"Results for exam {exam['_id']}: {len(saved)} saved, {len(errors)} errors")
    return APIResponse(
        message=f"Results saved for {len(saved)} students",
        data={"processed": len(saved), "results": serialize_docs(saved), "errors": errors},
    )


@router.get("/{exam_id}/results", response_model=APIResponse)
async def exam_results(exam_id: str, admin: dict = Depends(require_admin)):
    """All results of one exam with student details."""
    exam = _get_exam(exam_id)
    results = list(results_collection().find({"exam_id": exam["_id"]}).sort("marks_obtained", -1))
    attach_user(results, fields=("name", "student_id", "email"))
    return APIResponse(data={"exam": serialize_doc(exam), "results": serialize_docs(results)})
