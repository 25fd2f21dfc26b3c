"""
Student Portal - Test Configuration and Fixtures
"""
import os
import pytest
import mongomock
from faker import Faker
from fastapi.testclient import TestClient

# Set testing environment
os.environ['MONGODB_DB'] = 'student_portal_test'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['JWT_REFRESH_SECRET_KEY'] = 'test-jwt-refresh-secret-for-testing'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['SCHEDULER_ENABLED'] = 'false'
os.environ['DEEPSEEK_API_KEY'] = ''
os.environ['PAYMENT_FAILURE_RATE'] = '0'

from app.main import app
from app.db import mongodb
from app.core.auth import create_access_token
from app.services.user_service import create_user

fake = Faker()

STUDENT_PASSWORD = 'Student123'
ADMIN_PASSWORD = 'Admin123'


@pytest.fixture(autouse=True)
def mongo_db():
    """Fresh in-memory MongoDB for each test"""
    mongodb._client = mongomock.MongoClient()
    mongodb._db = None
    mongodb.init_mongo_indexes()
    yield mongodb.get_mongo_db()
    mongodb._client = None
    mongodb._db = None


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def make_student():
    """Factory for student accounts"""
    counter = {'n': 0}

    def _make(department='Computer Science', semester=5, cgpa=8.2, **overrides):
        counter['n'] += 1
        data = {
            'name': fake.name()[:50],
            'email': fake.unique.email(),
            'password': STUDENT_PASSWORD,
            'role': 'student',
            'student_id': f"STU{fake.unique.random_number(digits=6, fix_len=True)}",
            'profile': {'department': department, 'semester': semester, 'cgpa': cgpa},
        }
        data.update(overrides)
        return create_user(**data)

    return _make


@pytest.fixture
def student(make_student) -> dict:
    return make_student()


@pytest.fixture
def admin() -> dict:
    return create_user(
        name=fake.name()[:50],
        email=fake.unique.email(),
        password=ADMIN_PASSWORD,
        role='admin',
    )


def headers_for(user: dict) -> dict:
    """Authorization header carrying a fresh access token for user"""
    return {'Authorization': f'Bearer {create_access_token(user)}'}


@pytest.fixture
def student_headers(student) -> dict:
    return headers_for(student)


@pytest.fixture
def admin_headers(admin) -> dict:
    return headers_for(admin)


@pytest.fixture
def auth_headers():
    """headers_for as a fixture, for tests that need tokens for extra users"""
    return headers_for
