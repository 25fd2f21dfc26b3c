from datetime import datetime, timedelta

import pytest
from bson import ObjectId

from app.api.routes.placement_routes import eligibility_problem


def job_payload(**overrides):
    payload = {
        "title": "Backend Engineer",
        "company": "Acme Systems",
        "description": "Build and run the services behind our products.",
        "location": "Bengaluru",
        "job_type": "full_time",
        "salary": {"min": 600000, "max": 900000},
        "application_deadline": (datetime.utcnow() + timedelta(days=15)).isoformat(),
        "eligibility": {"cgpa_min": 7.0, "departments": ["Computer Science"]},
    }
    payload.update(overrides)
    return payload


def create_job(client, headers, **overrides):
    response = client.post("/api/placements/jobs", headers=headers, json=job_payload(**overrides))
    assert response.status_code == 201
    return response.json()["data"]


def apply(client, headers, job_id):
    return client.post(f"/api/placements/jobs/{job_id}/apply", headers=headers,
                       json={"cover_letter": "I would love to join the team."})


@pytest.fixture
def job(client, admin_headers):
    return create_job(client, admin_headers)


@pytest.fixture
def application(client, student_headers, job):
    response = apply(client, student_headers, job["_id"])
    assert response.status_code == 201
    return response.json()["data"]


def test_students_only_see_open_jobs(client, admin_headers, student_headers, job, application):
    create_job(client, admin_headers, title="Closed Role", status="closed")
    create_job(client, admin_headers, title="Expired Role",
               application_deadline=(datetime.utcnow() - timedelta(days=1)).isoformat())

    response = client.get("/api/placements/jobs", headers=student_headers)

    jobs = response.json()["data"]["jobs"]
    assert [j["title"] for j in jobs] == ["Backend Engineer"]
    assert jobs[0]["has_applied"] is True

    everything = client.get("/api/placements/jobs", headers=admin_headers)
    assert everything.json()["data"]["pagination"]["total_items"] == 3


def test_salary_filter(client, admin_headers, student_headers, job):
    create_job(client, admin_headers, title="Intern", job_type="internship", salary={"min": 100000, "max": 200000})

    response = client.get("/api/placements/jobs", params={"salary": "500000-"}, headers=student_headers)
    assert [j["title"] for j in response.json()["data"]["jobs"]] == ["Backend Engineer"]

    response = client.get("/api/placements/jobs", params={"salary": "lots"}, headers=student_headers)
    assert response.status_code == 400


def test_job_detail_shows_eligibility(client, student_headers, make_student, auth_headers, job):
    response = client.get(f"/api/placements/jobs/{job['_id']}", headers=student_headers)
    assert response.json()["data"]["eligibility_issue"] is None
    assert response.json()["data"]["has_applied"] is False

    weak = auth_headers(make_student(cgpa=6.1))
    response = client.get(f"/api/placements/jobs/{job['_id']}", headers=weak)
    assert response.json()["data"]["eligibility_issue"] == "Minimum CGPA of 7.0 required"


def test_inactive_job_hidden_from_students(client, admin_headers, student_headers):
    draft = create_job(client, admin_headers, status="draft")

    response = client.get(f"/api/placements/jobs/{draft['_id']}", headers=student_headers)

    assert response.status_code == 403
    assert response.json()["message"] == "Job not available"


def test_apply(application, job, student, mongo_db):
    assert application["status"] == "applied"
    assert application["user_id"] == str(student["_id"])
    assert mongo_db.jobs.find_one({"_id": ObjectId(job["_id"])})["applications_count"] == 1
    assert mongo_db.notifications.find_one({"user_id": student["_id"], "title": "Application Submitted"})


def test_apply_twice(client, student_headers, job, application):
    response = apply(client, student_headers, job["_id"])

    assert response.status_code == 400
    assert response.json()["message"] == "You have already applied for this job"


def test_apply_from_other_department(client, job, make_student, auth_headers):
    response = apply(client, auth_headers(make_student(department="Civil")), job["_id"])

    assert response.status_code == 400
    assert response.json()["message"] == "Not eligible: Your department is not eligible for this job"


def test_apply_after_deadline(client, admin_headers, student_headers):
    expired = create_job(client, admin_headers,
                         application_deadline=(datetime.utcnow() - timedelta(hours=1)).isoformat())

    response = apply(client, student_headers, expired["_id"])

    assert response.status_code == 400
    assert response.json()["message"] == "Application deadline has passed"


def test_apply_to_closed_job(client, admin_headers, student_headers):
    closed = create_job(client, admin_headers, status="closed")

    response = apply(client, student_headers, closed["_id"])

    assert response.status_code == 400
    assert response.json()["message"] == "Job is not accepting applications"


def test_admins_cannot_apply(client, admin_headers, job):
    response = apply(client, admin_headers, job["_id"])

    assert response.status_code == 403


def test_selection_awards_points_once(client, admin_headers, application, student, mongo_db):
    url = f"/api/placements/applications/{application['_id']}"

    response = client.put(url, headers=admin_headers, json={"status": "selected", "feedback": "Great interview"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "selected"
    assert [h["status"] for h in data["status_history"]] == ["applied", "selected"]

    client.put(url, headers=admin_headers, json={"status": "selected"})
    assert mongo_db.users.find_one({"_id": student["_id"]})["gamification"]["points"] == 50
    assert mongo_db.notifications.count_documents(
        {"user_id": student["_id"], "title": "Application Status Updated"}
    ) == 2


def test_schedule_interview(client, admin_headers, student_headers, application, student, mongo_db):
    url = f"/api/placements/applications/{application['_id']}/interview"
    when = (datetime.utcnow() + timedelta(days=3)).isoformat()

    response = client.post(url, headers=admin_headers, json={
        "date": when, "time": "11:30", "mode": "online", "link": "https://meet.example.com/abc",
    })
    assert response.status_code == 200
    # Rescheduling keeps a single interview
    client.post(url, headers=admin_headers, json={"date": when, "time": "15:00", "mode": "offline",
                                                  "location": "Placement Cell"})

    assert mongo_db.interviews.count_documents({}) == 1
    assert mongo_db.applications.find_one({})["status"] == "interview_scheduled"
    notification = mongo_db.notifications.find_one({"user_id": student["_id"], "title": "Interview Scheduled"})
    assert notification["priority"] == "high"

    interviews = client.get("/api/placements/interviews/my", headers=student_headers).json()["data"]
    assert interviews[0]["time"] == "15:00"
    assert interviews[0]["job"]["company"] == "Acme Systems"


def test_no_interview_for_rejected_application(client, admin_headers, application):
    client.put(f"/api/placements/applications/{application['_id']}", headers=admin_headers,
               json={"status": "rejected"})

    response = client.post(f"/api/placements/applications/{application['_id']}/interview", headers=admin_headers,
                           json={"date": datetime.utcnow().isoformat(), "time": "10:00"})

    assert response.status_code == 400


def test_my_applications(client, student_headers, application):
    response = client.get("/api/placements/applications/my", headers=student_headers)

    assert response.json()["data"][0]["job"]["title"] == "Backend Engineer"


def test_recommendations(client, admin_headers, student_headers, job, application):
    create_job(client, admin_headers, title="Data Analyst", eligibility={"cgpa_min": 6.0})
    create_job(client, admin_headers, title="Site Engineer", eligibility={"departments": ["Civil"]})

    response = client.get("/api/placements/recommendations", headers=student_headers)

    assert [j["title"] for j in response.json()["data"]] == ["Data Analyst"]


def test_bulk_update_and_delete(client, admin_headers, job, application, mongo_db):
    other = create_job(client, admin_headers, title="QA Engineer")

    response = client.put("/api/placements/jobs/bulk-update", headers=admin_headers,
                          json={"job_ids": [job["_id"], other["_id"]], "status": "closed"})
    assert response.json()["data"]["modified"] == 2

    client.delete(f"/api/placements/jobs/{job['_id']}", headers=admin_headers)
    assert mongo_db.applications.count_documents({}) == 0
    assert mongo_db.jobs.count_documents({}) == 1


def test_placement_stats(client, admin_headers, application, make_student, auth_headers, job):
    apply(client, auth_headers(make_student()), job["_id"])
    client.put(f"/api/placements/applications/{application['_id']}", headers=admin_headers,
               json={"status": "selected"})

    data = client.get("/api/placements/stats", headers=admin_headers).json()["data"]

    assert data["total_jobs"] == 1
    assert data["active_jobs"] == 1
    assert data["total_applications"] == 2
    assert data["applications_by_status"] == {"applied": 1, "selected": 1}
    assert data["top_companies"] == [{"company": "Acme Systems", "applications": 2}]
    assert data["placements_by_department"] == {"Computer Science": 1}
    assert data["total_placed"] == 1


def test_eligibility_problem():
    job = {"eligibility": {"cgpa_min": 8, "departments": ["Computer Science"]}}

    assert eligibility_problem(job, {"cgpa": 8.5, "department": "Computer Science"}) is None
    assert eligibility_problem(job, {"department": "Computer Science"}) == "Minimum CGPA of 8 required"
    assert eligibility_problem(job, {"cgpa": 9, "department": "Civil"}) == \
        "Your department is not eligible for this job"
    assert eligibility_problem({}, {}) is None
