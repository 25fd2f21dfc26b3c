"""
MongoDB Connection Utility

Every portal entity lives in its own collection:
- users, fees, transactions
- books, borrow_records
- exams, exam_results
- rooms, hostel_allocations, service_requests
- jobs, applications, interviews
- notifications
- badges, user_badges, gamification_points
- system_config
"""
import logging

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from app.core.config import get_settings

logger = logging.getLogger(__name__)

# Global client (connection pooling handled internally by pymongo)
_client: MongoClient = None
_db: Database = None


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        settings = get_settings()
        _client = MongoClient(settings.mongodb_uri, serverSelectionTimeoutMS=5000)
    return _client


def get_mongo_db() -> Database:
    """Get the portal database"""
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[get_settings().mongodb_db]
    return _db


def get_collection(name: str) -> Collection:
    """Get a specific collection by its real name (see COLLECTIONS)."""
    db = get_mongo_db()
    return db[name]


def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        client = get_mongo_client()
        # ping command checks connection
        client.admin.command('ping')
        return True
    except Exception as e:
        logger.error(f"MongoDB connection failed: {e}")
        return False


# Collection name constants (avoid typos)
COLLECTIONS = {
    "users": "users",
    "fees": "fees",
    "transactions": "transactions",
    "books": "books",
    "borrow_records": "borrow_records",
    "exams": "exams",
    "exam_results": "exam_results",
    "courses": "courses",
    "enrollments": "course_enrollments",
    "certificates": "certificates",
    "rooms": "rooms",
    "allocations": "hostel_allocations",
    "service_requests": "service_requests",
    "jobs": "jobs",
    "applications": "applications",
    "interviews": "interviews",
    "notifications": "notifications",
    "badges": "badges",
    "user_badges": "user_badges",
    "points": "gamification_points",
    "system_config": "system_config",
}


def init_mongo_indexes():
    """
    Create indexes for uniqueness and common lookups.
    Call this once during app startup.
    """
    db = get_mongo_db()

    db[COLLECTIONS["users"]].create_index("email", unique=True)
    db[COLLECTIONS["users"]].create_index("student_id", unique=True, sparse=True)
    db[COLLECTIONS["users"]].create_index([("role", ASCENDING), ("profile.department", ASCENDING)])

    db[COLLECTIONS["fees"]].create_index([("user_id", ASCENDING), ("status", ASCENDING)])
    db[COLLECTIONS["fees"]].create_index([("due_date", ASCENDING), ("status", ASCENDING)])
    db[COLLECTIONS["transactions"]].create_index("transaction_id", unique=True)
    db[COLLECTIONS["transactions"]].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])

    db[COLLECTIONS["books"]].create_index("isbn", unique=True)
    db[COLLECTIONS["books"]].create_index("qr_code", unique=True, sparse=True)
    db[COLLECTIONS["borrow_records"]].create_index([("user_id", ASCENDING), ("status", ASCENDING)])
    db[COLLECTIONS["borrow_records"]].create_index([("due_date", ASCENDING), ("status", ASCENDING)])

    db[COLLECTIONS["exams"]].create_index([("department", ASCENDING), ("semester", ASCENDING), ("exam_date", ASCENDING)])
    db[COLLECTIONS["exam_results"]].create_index([("exam_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
    db[COLLECTIONS["courses"]].create_index("code", unique=True)
    db[COLLECTIONS["courses"]].create_index([("department", ASCENDING), ("semester", ASCENDING), ("status", ASCENDING)])
    db[COLLECTIONS["enrollments"]].create_index([("user_id", ASCENDING), ("course_id", ASCENDING)], unique=True)
    db[COLLECTIONS["certificates"]].create_index("certificate_number", unique=True)
    db[COLLECTIONS["certificates"]].create_index([("user_id", ASCENDING), ("type", ASCENDING)])

    db[COLLECTIONS["rooms"]].create_index("room_number", unique=True)
    db[COLLECTIONS["allocations"]].create_index([("user_id", ASCENDING), ("status", ASCENDING)])
    db[COLLECTIONS["service_requests"]].create_index([("user_id", ASCENDING), ("status", ASCENDING)])

    db[COLLECTIONS["jobs"]].create_index([("status", ASCENDING), ("application_deadline", ASCENDING)])
    db[COLLECTIONS["applications"]].create_index([("job_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
    db[COLLECTIONS["interviews"]].create_index("application_id", unique=True)

    db[COLLECTIONS["notifications"]].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    db[COLLECTIONS["notifications"]].create_index([("user_id", ASCENDING), ("is_read", ASCENDING)])

    db[COLLECTIONS["badges"]].create_index("name", unique=True)
    db[COLLECTIONS["user_badges"]].create_index([("user_id", ASCENDING), ("badge_id", ASCENDING)], unique=True)
    db[COLLECTIONS["points"]].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])

    logger.info("MongoDB indexes created successfully")
