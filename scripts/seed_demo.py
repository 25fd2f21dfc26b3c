#!/usr/bin/env python3
"""
Demo Data Script

Wipes the portal collections and loads a small demo dataset:
one admin, five students, books, fees, rooms, a job and badges.
Usage: python scripts/seed_demo.py
"""
import sys
sys.path.insert(0, '.')

from datetime import datetime, timedelta

from app.db.mongodb import get_mongo_db, init_mongo_indexes, test_mongo_connection, COLLECTIONS
from app.services.user_service import create_user
from app.services import system_service

BOOKS = [
    ("Introduction to Algorithms", "Thomas H. Cormen", "9780262033848", "Computer Science", 5),
    ("Clean Code", "Robert C. Martin", "9780132350884", "Software Engineering", 3),
    ("Design Patterns", "Gang of Four", "9780201633612", "Software Engineering", 2),
    ("Microelectronic Circuits", "Adel S. Sedra", "9780199339136", "Electronics", 4),
]

BADGES = [
    ("Newcomer", "Joined the portal", 10, "milestone", "common"),
    ("Library Lover", "Returned ten books on time", 50, "academic", "uncommon"),
    ("Placed", "Selected in a placement drive", 100, "achievement", "rare"),
]


def main():
    print("=" * 50)
    print("STUDENT PORTAL - DEMO DATA")
    print("=" * 50)

    if not test_mongo_connection():
        print("❌ MongoDB not reachable, aborting")
        return

    db = get_mongo_db()
    for name in COLLECTIONS.values():
        db[name].delete_many({})
    init_mongo_indexes()
    system_service.get_config()
    print("\n[1] Cleared collections and created indexes")

    now = datetime.utcnow()
    admin = create_user("Admin User", "admin@studentportal.com", "Admin123", role="admin")
    students = []
    for i in range(1, 6):
        students.append(create_user(
            f"Student {i}",
            f"student{i}@studentportal.com",
            "Student123",
            student_id=f"STU2024{i:03d}",
            profile={
                "department": "Computer Science" if i <= 3 else "Electronics",
                "semester": 5,
                "cgpa": round(6.5 + i * 0.5, 1),
                "admission_year": 2022,
            },
            created_by=admin["_id"],
        ))
    print(f"\n[2] Users: 1 admin, {len(students)} students")
    print("    admin@studentportal.com / Admin123")
    print("    student1@studentportal.com / Student123")

    db[COLLECTIONS["books"]].insert_many([
        {
            "title": title, "author": author, "isbn": isbn, "category": category,
            "language": "English", "tags": [], "total_copies": copies, "available_copies": copies,
            "qr_code": f"BOOK-{isbn}", "created_at": now, "updated_at": now,
        }
        for title, author, isbn, category, copies in BOOKS
    ])
    print(f"\n[3] Books: {len(BOOKS)}")

    db[COLLECTIONS["fees"]].insert_many([
        {
            "user_id": student["_id"], "fee_type": "tuition", "amount": 45000, "paid_amount": 0,
            "description": "Semester 5 tuition", "due_date": now + timedelta(days=7),
            "status": "pending", "academic_year": "2024-2025", "semester": 5, "adjustments": [],
            "created_by": admin["_id"], "created_at": now, "updated_at": now,
        }
        for student in students
    ])
    print(f"\n[4] Fees: {len(students)} tuition fees due in 7 days")

    db[COLLECTIONS["rooms"]].insert_many([
        {
            "room_number": f"{block}-{number}", "block": block, "floor": number // 100, "type": "double",
            "capacity": 2, "current_occupancy": 0, "amenities": ["wifi", "study table"], "rent": 6000,
            "deposit": 10000, "is_active": True, "created_at": now, "updated_at": now,
        }
        for block in ("A", "B") for number in (101, 102, 201)
    ])
    print("\n[5] Rooms: 6 double rooms in blocks A and B")

    db[COLLECTIONS["jobs"]].insert_one({
        "title": "Graduate Software Engineer", "company": "Acme Systems",
        "description": "Work on the services behind our products.", "location": "Bengaluru",
        "job_type": "full_time", "salary": {"min": 800000, "max": 1200000, "currency": "INR"},
        "application_deadline": now + timedelta(days=21),
        "eligibility": {"cgpa_min": 7.0, "departments": ["Computer Science", "Electronics"]},
        "requirements": ["Python", "SQL"], "total_positions": 5, "status": "active",
        "applications_count": 0, "posted_by": admin["_id"], "created_at": now, "updated_at": now,
    })
    print("\n[6] Jobs: 1 open posting")

    db[COLLECTIONS["badges"]].insert_many([
        {
            "name": name, "description": description, "points": points, "category": category,
            "rarity": rarity, "criteria": {}, "is_active": True, "created_by": admin["_id"],
            "created_at": now, "updated_at": now,
        }
        for name, description, points, category, rarity in BADGES
    ])
    print(f"\n[7] Badges: {len(BADGES)}")

    print("\n" + "=" * 50)
    print("Demo data loaded!")
    print("=" * 50)


if __name__ == "__main__":
    main()
