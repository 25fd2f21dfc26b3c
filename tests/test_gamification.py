import pytest

from app.services import gamification_service


def add_points(client, headers, user, points, multiplier=1):
    return client.post("/api/gamification/add-points", headers=headers, json={
        "user_id": str(user["_id"]), "points": points, "multiplier": multiplier,
        "description": "Hackathon volunteer",
    })


@pytest.fixture
def badge(client, admin_headers):
    response = client.post("/api/gamification/badges", headers=admin_headers, json={
        "name": "Bookworm", "description": "Borrowed ten books", "points": 25,
        "category": "academic", "rarity": "rare",
    })
    assert response.status_code == 201
    return response.json()["data"]


def test_add_points_with_multiplier(client, admin_headers, student, student_headers, mongo_db):
    response = add_points(client, admin_headers, student, 60, multiplier=2)

    assert response.status_code == 200
    assert response.json()["message"] == "120 points added successfully"
    assert response.json()["data"]["summary"] == {"points": 120, "level": 2, "badges": 0}
    assert mongo_db.users.find_one({"_id": student["_id"]})["gamification"]["level"] == 2

    profile = client.get("/api/gamification/points", headers=student_headers).json()["data"]
    assert profile["total_points"] == 120
    assert profile["points_to_next_level"] == 80
    assert profile["recent_activities"][0]["type"] == "manual_award"


def test_add_points_unknown_user(client, admin_headers):
    response = client.post("/api/gamification/add-points", headers=admin_headers, json={
        "user_id": "64b7f0c2a1b2c3d4e5f60718", "points": 10, "description": "Ghost",
    })

    assert response.status_code == 404
    assert response.json()["message"] == "User not found"


def test_students_cannot_add_points(client, student, student_headers):
    assert add_points(client, student_headers, student, 10).status_code == 403


def test_duplicate_badge_name(client, admin_headers, badge):
    response = client.post("/api/gamification/badges", headers=admin_headers,
                           json={"name": "Bookworm", "description": "Again"})

    assert response.status_code == 400
    assert response.json()["message"] == "Badge with this name already exists"


def test_list_badges(client, student_headers, badge):
    response = client.get("/api/gamification/badges", params={"rarity": "rare"}, headers=student_headers)
    assert [b["name"] for b in response.json()["data"]["badges"]] == ["Bookworm"]

    response = client.get("/api/gamification/badges", params={"category": "social"}, headers=student_headers)
    assert response.json()["data"]["badges"] == []


def test_award_badge(client, admin_headers, student, student_headers, badge, mongo_db):
    response = client.post("/api/gamification/award-badge", headers=admin_headers, json={
        "user_id": str(student["_id"]), "badge_id": badge["_id"], "reason": "Library champion",
    })

    assert response.status_code == 200
    assert response.json()["message"] == "Badge awarded successfully"
    assert response.json()["data"]["summary"] == {"points": 25, "level": 1, "badges": 1}
    assert mongo_db.notifications.find_one({"user_id": student["_id"]})["title"] == "New Badge Earned!"

    profile = client.get("/api/gamification/achievements", headers=student_headers).json()["data"]
    assert profile["badge_count"] == 1
    assert profile["recent_badges"][0]["name"] == "Bookworm"


def test_award_badge_twice(client, admin_headers, student, badge):
    payload = {"user_id": str(student["_id"]), "badge_id": badge["_id"]}
    client.post("/api/gamification/award-badge", headers=admin_headers, json=payload)

    response = client.post("/api/gamification/award-badge", headers=admin_headers, json=payload)

    assert response.status_code == 400
    assert response.json()["message"] == "User already has this badge"


def test_award_missing_badge(client, admin_headers, student):
    response = client.post("/api/gamification/award-badge", headers=admin_headers, json={
        "user_id": str(student["_id"]), "badge_id": "64b7f0c2a1b2c3d4e5f60718",
    })

    assert response.status_code == 404
    assert response.json()["message"] == "Badge not found"


def test_admin_views_other_profile(client, admin_headers, student, make_student, auth_headers):
    gamification_service.award_points(student["_id"], 30, "exam_score", "Top of class")
    url = "/api/gamification/points/my"

    mine = client.get(url, params={"user_id": str(student["_id"])}, headers=admin_headers).json()["data"]
    assert mine["total_points"] == 30

    # Students cannot look up someone else
    other = client.get(url, params={"user_id": str(student["_id"])}, headers=auth_headers(make_student()))
    assert other.json()["data"]["total_points"] == 0


def test_leaderboard(client, admin, student, student_headers, make_student):
    leader = make_student(name="Ada Leader", department="Civil")
    gamification_service.award_points(leader["_id"], 300, "manual_award", "Winner")
    gamification_service.award_points(student["_id"], 40, "library_activity", "Reader")
    gamification_service.award_points(admin["_id"], 1000, "manual_award", "Admins are not ranked")

    data = client.get("/api/gamification/leaderboard", headers=student_headers).json()["data"]

    assert data["period"] == "all"
    assert [e["user_id"] for e in data["leaderboard"]] == [str(leader["_id"]), str(student["_id"])]
    assert data["leaderboard"][0]["level"] == 4
    assert data["leaderboard"][0]["activity_count"] == 1
    assert data["my_rank"] == 2

    civil = client.get("/api/gamification/leaderboard", params={"department": "Civil"},
                       headers=student_headers).json()["data"]
    assert [e["name"] for e in civil["leaderboard"]] == ["Ada Leader"]
    assert civil["my_rank"] is None
