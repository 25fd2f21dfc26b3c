from datetime import timedelta

from app.core.auth import create_access_token, create_refresh_token
from app.services.system_service import update_config

STUDENT_PASSWORD = "Student123"


def register_payload(**overrides):
    payload = {
        "name": "Asha Verma",
        "email": "Asha.Verma@Example.com",
        "password": "Secret12",
        "student_id": "CS2024001",
        "profile": {"department": "Computer Science", "semester": 3},
    }
    payload.update(overrides)
    return payload


def test_register_student(client):
    """Test student registration returns user and tokens"""
    response = client.post("/api/auth/register", json=register_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "User registered successfully"
    user = body["data"]["user"]
    assert user["email"] == "asha.verma@example.com"
    assert user["role"] == "student"
    assert user["student_id"] == "CS2024001"
    assert "password_hash" not in user
    assert body["data"]["access_token"]
    assert body["data"]["refresh_token"]
    assert body["data"]["token_type"] == "bearer"


def test_register_student_requires_student_id(client):
    response = client.post("/api/auth/register", json=register_payload(student_id=None))

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "Student ID is required for students" in body["message"]


def test_register_weak_password(client):
    response = client.post("/api/auth/register", json=register_payload(password="secret"))

    assert response.status_code == 400
    assert "Password must be at least 6 characters" in response.json()["message"]


def test_register_duplicate_email(client):
    """Test registration with duplicate email"""
    client.post("/api/auth/register", json=register_payload())
    response = client.post("/api/auth/register", json=register_payload(student_id="CS2024002"))

    assert response.status_code == 400
    assert response.json()["message"] == "User already exists with this email"


def test_register_duplicate_student_id(client):
    client.post("/api/auth/register", json=register_payload())
    response = client.post("/api/auth/register", json=register_payload(email="other@example.com"))

    assert response.status_code == 400
    assert response.json()["message"] == "Student ID already exists"


def test_register_admin_drops_student_id(client, mongo_db):
    response = client.post("/api/auth/register", json=register_payload(role="admin", student_id="STU999"))

    assert response.status_code == 201
    assert "student_id" not in response.json()["data"]["user"]
    assert "student_id" not in mongo_db.users.find_one({"role": "admin"})

    # The code stays free for a real student
    response = client.post("/api/auth/register", json=register_payload(email="student@example.com", student_id="STU999"))
    assert response.status_code == 201


def test_register_unknown_role(client):
    response = client.post("/api/auth/register", json=register_payload(role="faculty"))

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_login_success(client, student):
    """Test successful login"""
    response = client.post("/api/auth/login", json={"email": student["email"], "password": STUDENT_PASSWORD})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["user"]["email"] == student["email"]
    assert "login_attempts" not in data["user"]


def test_login_unknown_email(client):
    response = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "Secret12"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


def test_login_wrong_password_counts_attempts(client, student):
    response = client.post("/api/auth/login", json={"email": student["email"], "password": "Wrong123"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials. 4 login attempts remaining."


def test_login_locks_after_five_failures(client, student, mongo_db):
    for _ in range(4):
        assert client.post(
            "/api/auth/login", json={"email": student["email"], "password": "Wrong123"}
        ).status_code == 401

    response = client.post("/api/auth/login", json={"email": student["email"], "password": "Wrong123"})
    assert response.status_code == 423
    assert "temporarily locked" in response.json()["message"]

    # Correct password is refused while locked
    response = client.post("/api/auth/login", json={"email": student["email"], "password": STUDENT_PASSWORD})
    assert response.status_code == 423

    stored = mongo_db.users.find_one({"_id": student["_id"]})
    assert stored["login_attempts"] == 5
    assert stored["lock_until"] is not None


def test_lockout_follows_security_config(client, student):
    update_config({"security": {"max_login_attempts": 2, "lock_minutes": 5}})

    first = client.post("/api/auth/login", json={"email": student["email"], "password": "Wrong123"})
    assert first.json()["message"] == "Invalid credentials. 1 login attempts remaining."

    response = client.post("/api/auth/login", json={"email": student["email"], "password": "Wrong123"})
    assert response.status_code == 423
    assert "Try again in 5 minutes" in response.json()["message"]


def test_successful_login_resets_attempts(client, student, mongo_db):
    client.post("/api/auth/login", json={"email": student["email"], "password": "Wrong123"})
    client.post("/api/auth/login", json={"email": student["email"], "password": STUDENT_PASSWORD})

    stored = mongo_db.users.find_one({"_id": student["_id"]})
    assert stored["login_attempts"] == 0
    assert stored["last_login"] is not None


def test_login_deactivated_account(client, student, mongo_db):
    mongo_db.users.update_one({"_id": student["_id"]}, {"$set": {"is_active": False}})

    response = client.post("/api/auth/login", json={"email": student["email"], "password": STUDENT_PASSWORD})

    assert response.status_code == 401
    assert response.json()["message"] == "Account is deactivated"


def test_refresh_token(client, student):
    response = client.post("/api/auth/refresh", json={"refresh_token": create_refresh_token(student)})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["access_token"]
    assert data["refresh_token"]


def test_refresh_rejects_access_token(client, student_headers):
    access_token = student_headers["Authorization"].split(" ", 1)[1]
    response = client.post("/api/auth/refresh", json={"refresh_token": access_token})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid refresh token"


def test_profile_requires_token(client):
    """Test accessing protected route without auth"""
    response = client.get("/api/auth/profile")

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "No token provided, authorization denied"}


def test_profile_rejects_bad_token(client):
    response = client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json()["message"] == "Token is not valid"


def test_profile_rejects_expired_token(client, student):
    token = create_access_token(student, expires_delta=timedelta(seconds=-1))

    response = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["message"] == "Token is not valid"


def test_profile_rejects_refresh_token(client, student):
    """Refresh tokens are signed with their own secret and cannot authorize requests"""
    token = create_refresh_token(student)

    response = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["message"] == "Token is not valid"


def test_profile_for_deleted_user(client, student, student_headers, mongo_db):
    mongo_db.users.delete_one({"_id": student["_id"]})

    response = client.get("/api/auth/profile", headers=student_headers)

    assert response.status_code == 401
    assert response.json()["message"] == "User no longer exists or is inactive"


def test_profile_includes_gamification(client, student, student_headers):
    response = client.get("/api/auth/profile", headers=student_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["_id"] == str(student["_id"])
    assert data["gamification"] == {"points": 0, "level": 1, "points_to_next_level": 100, "badges": 0}


def test_logout(client, student_headers):
    response = client.post("/api/auth/logout", headers=student_headers)

    assert response.status_code == 200
    assert response.json()["message"] == "Logged out successfully"


def test_unknown_route_uses_envelope(client):
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Route /api/does-not-exist not found"}
