"""
Placement Routes

GET /placements/jobs - List jobs (students see open jobs only)
POST /placements/jobs - Create job (admin)
PUT /placements/jobs/bulk-update - Set status on many jobs (admin)
GET /placements/jobs/{job_id} - Get job
PUT /placements/jobs/{job_id} - Update job (admin)
DELETE /placements/jobs/{job_id} - Delete job and its applications (admin)
POST /placements/jobs/{job_id}/apply - Apply to job (student)
GET /placements/applications - List applications (admin)
GET /placements/applications/my - Own applications
PUT /placements/applications/{application_id} - Update application status (admin)
POST /placements/applications/{application_id}/interview - Schedule interview (admin)
GET /placements/interviews/my - Own interviews
GET /placements/recommendations - Open jobs the student is eligible for
GET /placements/stats - Placement statistics (admin)
"""

import logging
import re
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import get_current_user, is_admin, require_admin, require_student
from app.db.mongodb import get_collection, COLLECTIONS
from app.services.gamification_service import award_points
from app.services.mongo_service import (
    attach_user, count_by, paginate, serialize_doc, serialize_docs, touch, users_by_id
)
from app.services.notification_service import create_notification
from app.utils.helpers import to_object_id
from app.schemas.schemas import (
    APIResponse, ApplicationStatus, ApplicationStatusUpdate, ApplyRequest, BulkJobStatus,
    InterviewSchedule, JobCreate, JobStatus, JobType, JobUpdate
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/placements", tags=["Placements"])

SELECTION_POINTS = 50
JOB_SUMMARY_FIELDS = {"title": 1, "company": 1, "location": 1, "job_type": 1, "application_deadline": 1, "status": 1}


def jobs_collection():
    return get_collection(COLLECTIONS["jobs"])


def applications_collection():
    return get_collection(COLLECTIONS["applications"])


def interviews_collection():
    return get_collection(COLLECTIONS["interviews"])


def _get_job(job_id: str) -> dict:
    job = jobs_collection().find_one({"_id": to_object_id(job_id, "Job not found")})
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


def _get_application(application_id: str) -> dict:
    application = applications_collection().find_one(
        {"_id": to_object_id(application_id, "Application not found")}
    )
    if not application:
        raise HTTPException(status_code=404, detail="Application not found")
    return application


def _open_jobs_query(now: datetime) -> dict:
    return {"status": "active", "application_deadline": {"$gte": now}}


def _attach_jobs(docs: list) -> list:
    jobs = {j["_id"]: j for j in jobs_collection().find(
        {"_id": {"$in": [d["job_id"] for d in docs]}}, JOB_SUMMARY_FIELDS
    )}
    for doc in docs:
        doc["job"] = jobs.get(doc["job_id"])
    return docs


def eligibility_problem(job: dict, profile: dict) -> Optional[str]:
    """None when the student profile meets the job's eligibility, else the reason."""
    eligibility = job.get("eligibility") or {}
    cgpa_min = eligibility.get("cgpa_min")
    if cgpa_min is not None and (profile.get("cgpa") is None or profile["cgpa"] < cgpa_min):
        return f"Minimum CGPA of {cgpa_min} required"
    departments = eligibility.get("departments") or []
    if departments and profile.get("department") not in departments:
        return "Your department is not eligible for this job"
    return None


def _parse_salary(salary: str):
    match = re.match(r"^\s*(\d+(?:\.\d+)?)?\s*-\s*(\d+(?:\.\d+)?)?\s*$", salary)
    if not match:
        raise HTTPException(status_code=400, detail="Salary filter must look like min-max")
    low, high = match.groups()
    return (float(low) if low else None, float(high) if high else None)


# ============================================================
# JOBS
# ============================================================

@router.get("/jobs", response_model=APIResponse)
async def list_jobs(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    company: Optional[str] = Query(None),
    location: Optional[str] = Query(None),
    job_type: Optional[JobType] = Query(None),
    status: Optional[JobStatus] = Query(None, description="Admins only"),
    salary: Optional[str] = Query(None, description="Range like 300000-800000"),
    user: dict = Depends(get_current_user),
):
    """List jobs with filters; students only see open postings."""
    now = datetime.utcnow()
    query = {}
    if not is_admin(user):
        query.update(_open_jobs_query(now))
    elif status:
        query["status"] = status.value
    if company:
        query["company"] = {"$regex": re.escape(company), "$options": "i"}
    if location:
        query["location"] = {"$regex": re.escape(location), "$options": "i"}
    if job_type:
        query["job_type"] = job_type.value
    if salary:
        low, high = _parse_salary(salary)
        if low is not None:
            query["salary.max"] = {"$gte": low}
        if high is not None:
            query["salary.min"] = {"$lte": high}

    jobs, pagination = paginate(jobs_collection(), query, page, limit, sort=[("created_at", -1)])
    if not is_admin(user):
        applied = {a["job_id"] for a in applications_collection().find(
            {"user_id": user["_id"], "job_id": {"$in": [j["_id"] for j in jobs]}}, {"job_id": 1}
        )}
        for job in jobs:
            job["has_applied"] = job["_id"] in applied
    return APIResponse(data={"jobs": serialize_docs(jobs), "pagination": pagination})


@router.post("/jobs", response_model=APIResponse, status_code=201)
async def create_job(request: JobCreate, admin: dict = Depends(require_admin)):
    """Post a job."""
    now = datetime.utcnow()
    job = request.model_dump()
    job.update({"applications_count": 0, "posted_by": admin["_id"], "created_at": now, "updated_at": now})
    job["_id"] = jobs_collection().insert_one(job).inserted_id
    return APIResponse(message="Job created successfully", data=serialize_doc(job))


@router.put("/jobs/bulk-update", response_model=APIResponse)
async def bulk_update_jobs(request: BulkJobStatus, admin: dict = Depends(require_admin)):
    """Set the same status on several jobs."""
    ids = [to_object_id(job_id, "Job not found") for job_id in request.job_ids]
    result = jobs_collection().update_many(
        {"_id": {"$in": ids}}, {"$set": touch({"status": request.status})}
    )
    return APIResponse(
        message=f"{result.modified_count} jobs updated successfully",
        data={"matched": result.matched_count, "modified": result.modified_count},
    )


@router.get("/jobs/{job_id}", response_model=APIResponse)
async def get_job(job_id: str, user: dict = Depends(get_current_user)):
    """Get a job."""
    job = _get_job(job_id)
    if not is_admin(user):
        if job["status"] != "active":
            raise HTTPException(status_code=403, detail="Job not available")
        job["has_applied"] = applications_collection().find_one(
            {"job_id": job["_id"], "user_id": user["_id"]}
        ) is not None
        job["eligibility_issue"] = eligibility_problem(job, user.get("profile") or {})
    return APIResponse(data=serialize_doc(job))


@router.put("/jobs/{job_id}", response_model=APIResponse)
async def update_job(job_id: str, request: JobUpdate, admin: dict = Depends(require_admin)):
    """Update a job."""
    job = _get_job(job_id)
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    jobs_collection().update_one({"_id": job["_id"]}, {"$set": touch(changes)})
    return APIResponse(message="Job updated successfully", data=serialize_doc(_get_job(job_id)))


@router.delete("/jobs/{job_id}", response_model=APIResponse)
async def delete_job(job_id: str, admin: dict = Depends(require_admin)):
    """Delete a job with its applications and interviews."""
    job = _get_job(job_id)
    application_ids = [a["_id"] for a in applications_collection().find({"job_id": job["_id"]}, {"_id": 1})]
    interviews_collection().delete_many({"application_id": {"$in": application_ids}})
    applications_collection().delete_many({"job_id": job["_id"]})
    jobs_collection().delete_one({"_id": job["_id"]})
    logger.info(f"Admin {admin['email']} deleted job {job['_id']} ({len(application_ids)} applications)")
    return APIResponse(message="Job deleted successfully")


@router.post("/jobs/{job_id}/apply", response_model=APIResponse, status_code=201)
async def apply_to_job(job_id: str, request: ApplyRequest, student: dict = Depends(require_student)):
    """Apply to an open job you are eligible for."""
    job = _get_job(job_id)
    now = datetime.utcnow()
    if job["status"] != "active":
        raise HTTPException(status_code=400, detail="Job is not accepting applications")
    if job["application_deadline"] < now:
        raise HTTPException(status_code=400, detail="Application deadline has passed")

    applications = applications_collection()
    if applications.find_one({"job_id": job["_id"], "user_id": student["_id"]}):
        raise HTTPException(status_code=400, detail="You have already applied for this job")

    problem = eligibility_problem(job, student.get("profile") or {})
    if problem:
        raise HTTPException(status_code=400, detail=f"Not eligible: {problem}")

    application = {
        "job_id": job["_id"],
        "user_id": student["_id"],
        "cover_letter": request.cover_letter,
        "resume_url": request.resume_url,
        "status": "applied",
        "feedback": None,
        "applied_at": now,
        "reviewed_at": None,
        "reviewed_by": None,
        "status_history": [{"status": "applied", "at": now}],
        "created_at": now,
        "updated_at": now,
    }
    application["_id"] = applications.insert_one(application).inserted_id
    jobs_collection().update_one({"_id": job["_id"]}, {"$inc": {"applications_count": 1}})

    create_notification(
        student["_id"],
        "Application Submitted",
        f"Your application for {job['title']} at {job['company']} has been submitted.",
        type="success", category="placement", action_url="/placements",
        data={"job_id": str(job["_id"]), "application_id": str(application["_id"])},
    )
    return APIResponse(message="Application submitted successfully", data=serialize_doc(application))


# ============================================================
# APPLICATIONS & INTERVIEWS
# ============================================================

@router.get("/applications", response_model=APIResponse)
async def list_applications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    job_id: Optional[str] = Query(None),
    status: Optional[ApplicationStatus] = Query(None),
    admin: dict = Depends(require_admin),
):
    """All applications with student and job details."""
    query = {}
    if job_id:
        query["job_id"] = to_object_id(job_id, "Job not found")
    if status:
        query["status"] = status.value
    applications, pagination = paginate(applications_collection(), query, page, limit, sort=[("applied_at", -1)])
    _attach_jobs(applications)
    attach_user(applications, fields=("name", "email", "student_id", "profile.department", "profile.cgpa"))
    return APIResponse(data={"applications": serialize_docs(applications), "pagination": pagination})


@router.get("/applications/my", response_model=APIResponse)
async def my_applications(user: dict = Depends(get_current_user)):
    """Own applications, newest first."""
    applications = list(applications_collection().find({"user_id": user["_id"]}).sort("applied_at", -1))
    _attach_jobs(applications)
    return APIResponse(data=serialize_docs(applications))


@router.put("/applications/{application_id}", response_model=APIResponse)
async def update_application_status(
    application_id: str, request: ApplicationStatusUpdate, admin: dict = Depends(require_admin)
):
    """Move an application along and tell the student."""
    application = _get_application(application_id)
    job = jobs_collection().find_one({"_id": application["job_id"]}, JOB_SUMMARY_FIELDS) or {}
    now = datetime.utcnow()
    changes = {"status": request.status, "reviewed_at": now, "reviewed_by": admin["_id"], "updated_at": now}
    if request.feedback is not None:
        changes["feedback"] = request.feedback
    applications_collection().update_one(
        {"_id": application["_id"]},
        {"$set": changes, "$push": {"status_history": {"status": request.status, "at": now, "by": admin["_id"]}}},
    )

    create_notification(
        application["user_id"],
        "Application Status Updated",
        f"Your application for {job.get('title', 'a job')} at {job.get('company', '')} is now "
        f"{request.status.replace('_', ' ')}.",
        type="success" if request.status == "selected" else "info",
        category="placement", action_url="/placements",
        data={"application_id": str(application["_id"]), "status": request.status},
        created_by=admin["_id"],
    )
    if request.status == "selected" and application["status"] != "selected":
        award_points(
            application["user_id"], SELECTION_POINTS, "placement_activity",
            f"Selected for {job.get('title', 'a job')} at {job.get('company', '')}", awarded_by=admin["_id"],
        )

    return APIResponse(
        message="Application status updated successfully",
        data=serialize_doc(_get_application(application_id)),
    )


@router.post("/applications/{application_id}/interview", response_model=APIResponse)
async def schedule_interview(application_id: str, request: InterviewSchedule, admin: dict = Depends(require_admin)):
    """Create or reschedule the interview for an application."""
    application = _get_application(application_id)
    if application["status"] in ("rejected", "withdrawn", "selected"):
        raise HTTPException(status_code=400, detail=f"Cannot schedule an interview for a {application['status']} application")
    job = jobs_collection().find_one({"_id": application["job_id"]}, JOB_SUMMARY_FIELDS) or {}

    now = datetime.utcnow()
    schedule = request.model_dump()
    interviews_collection().update_one(
        {"application_id": application["_id"]},
        {
            "$set": {**schedule, "job_id": application["job_id"], "user_id": application["user_id"],
                     "scheduled_by": admin["_id"], "updated_at": now},
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
    )
    applications_collection().update_one(
        {"_id": application["_id"]},
        {"$set": {"status": "interview_scheduled", "updated_at": now},
         "$push": {"status_history": {"status": "interview_scheduled", "at": now, "by": admin["_id"]}}},
    )

    where = request.link if request.mode == "online" and request.link else (request.location or request.mode)
    create_notification(
        application["user_id"],
        "Interview Scheduled",
        f"Your interview for {job.get('title', 'a job')} at {job.get('company', '')} is on "
        f"{request.date.strftime('%d %b %Y')} at {request.time} ({where}).",
        type="info", category="placement", priority="high", action_url="/placements",
        data={"application_id": str(application["_id"])}, created_by=admin["_id"],
    )
    interview = interviews_collection().find_one({"application_id": application["_id"]})
    return APIResponse(message="Interview scheduled successfully", data=serialize_doc(interview))


@router.get("/interviews/my", response_model=APIResponse)
async def my_interviews(user: dict = Depends(get_current_user)):
    """Own interviews, soonest first."""
    interviews = list(interviews_collection().find({"user_id": user["_id"]}).sort("date", 1))
    _attach_jobs(interviews)
    return APIResponse(data=serialize_docs(interviews))


@router.get("/recommendations", response_model=APIResponse)
async def recommendations(
    limit: int = Query(10, ge=1, le=50),
    student: dict = Depends(require_student),
):
    """Open jobs the student qualifies for and hasn't applied to, closest deadline first."""
    now = datetime.utcnow()
    applied = {a["job_id"] for a in applications_collection().find({"user_id": student["_id"]}, {"job_id": 1})}
    profile = student.get("profile") or {}
    jobs = [
        job for job in jobs_collection().find(_open_jobs_query(now)).sort("application_deadline", 1)
        if job["_id"] not in applied and eligibility_problem(job, profile) is None
    ]
    return APIResponse(data=serialize_docs(jobs[:limit]))


@router.get("/stats", response_model=APIResponse)
async def placement_stats(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    admin: dict = Depends(require_admin),
):
    """Jobs, applications by status, top companies and placements by department."""
    job_query = {}
    if year:
        job_query["created_at"] = {"$gte": datetime(year, 1, 1), "$lt": datetime(year + 1, 1, 1)}
    jobs = {j["_id"]: j for j in jobs_collection().find(job_query, {"company": 1, "status": 1})}
    app_match = {"job_id": {"$in": list(jobs)}}
    applications = list(applications_collection().find(app_match, {"job_id": 1, "user_id": 1, "status": 1}))

    companies = {}
    for application in applications:
        company = jobs[application["job_id"]].get("company")
        companies[company] = companies.get(company, 0) + 1
    top_companies = sorted(
        ({"company": name, "applications": count} for name, count in companies.items()),
        key=lambda row: -row["applications"],
    )[:5]

    selected = [a for a in applications if a["status"] == "selected"]
    students = users_by_id((a["user_id"] for a in selected), ("profile.department",))
    by_department = {}
    for application in selected:
        department = (students.get(application["user_id"], {}).get("profile") or {}).get("department") or "Unknown"
        by_department[department] = by_department.get(department, 0) + 1

    return APIResponse(data={
        "total_jobs": len(jobs),
        "active_jobs": sum(1 for j in jobs.values() if j.get("status") == "active"),
        "total_applications": len(applications),
        "applications_by_status": count_by(applications_collection(), "status", app_match),
        "top_companies": top_companies,
        "placements_by_department": by_department,
        "total_placed": len(selected),
    })
