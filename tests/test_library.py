from datetime import datetime, timedelta

import pytest
from bson import ObjectId

from app.api.routes import library_routes
from app.services import system_service


def book_payload(**overrides):
    payload = {
        "title": "Clean Architecture",
        "author": "Robert C. Martin",
        "isbn": "978-0-13-449416-6",
        "category": "Software Engineering",
        "tags": ["design", "architecture"],
        "published_year": 2017,
        "total_copies": 2,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def book(client, admin_headers):
    response = client.post("/api/library/books", headers=admin_headers, json=book_payload())
    assert response.status_code == 201
    return response.json()["data"]


def borrow(client, headers, book_id):
    return client.post("/api/library/borrow", headers=headers, json={"book_id": book_id})


def test_create_book_normalizes_isbn(book):
    assert book["isbn"] == "9780134494166"
    assert book["qr_code"] == "BOOK-9780134494166"
    assert book["available_copies"] == 2


def test_duplicate_isbn_rejected(client, admin_headers, book):
    response = client.post("/api/library/books", headers=admin_headers, json=book_payload(title="Copy"))

    assert response.status_code == 400
    assert response.json()["message"] == "Book with this ISBN already exists"


def test_invalid_isbn_rejected(client, admin_headers):
    response = client.post("/api/library/books", headers=admin_headers, json=book_payload(isbn="12345"))

    assert response.status_code == 400
    assert "ISBN must be 10 or 13 digits" in response.json()["message"]


def test_students_cannot_add_books(client, student_headers):
    response = client.post("/api/library/books", headers=student_headers, json=book_payload())

    assert response.status_code == 403


def test_search_books(client, admin_headers, student_headers, book):
    client.post("/api/library/books", headers=admin_headers,
                json=book_payload(title="Database Systems", author="Ramez Elmasri", isbn="0133970779", tags=["db"]))

    response = client.get("/api/library/books", params={"search": "martin"}, headers=student_headers)
    assert [b["title"] for b in response.json()["data"]["books"]] == ["Clean Architecture"]

    response = client.get("/api/library/books", params={"tags": "db"}, headers=student_headers)
    assert [b["title"] for b in response.json()["data"]["books"]] == ["Database Systems"]


def test_borrow_book(client, student_headers, book, mongo_db):
    response = borrow(client, student_headers, book["_id"])

    assert response.status_code == 201
    record = response.json()["data"]
    assert record["status"] == "borrowed"
    assert record["book"]["title"] == "Clean Architecture"
    assert mongo_db.books.find_one({"_id": ObjectId(book["_id"])})["available_copies"] == 1

    due = datetime.fromisoformat(record["due_date"])
    borrowed = datetime.fromisoformat(record["borrow_date"])
    assert due - borrowed == timedelta(days=14)


def test_cannot_borrow_same_book_twice(client, student_headers, book):
    borrow(client, student_headers, book["_id"])
    response = borrow(client, student_headers, book["_id"])

    assert response.status_code == 400
    assert response.json()["message"] == "You have already borrowed this book"


def test_cannot_borrow_unavailable_book(client, admin_headers, make_student, auth_headers):
    single = client.post("/api/library/books", headers=admin_headers,
                         json=book_payload(isbn="0262033844", total_copies=1)).json()["data"]
    borrow(client, auth_headers(make_student()), single["_id"])

    response = borrow(client, auth_headers(make_student()), single["_id"])

    assert response.status_code == 400
    assert response.json()["message"] == "Book is not available for borrowing"


def test_borrow_limit_follows_config(client, admin_headers, student_headers, book):
    system_service.update_config({"library": {"max_books_per_student": 1}})
    other = client.post("/api/library/books", headers=admin_headers,
                        json=book_payload(isbn="0262033844")).json()["data"]
    borrow(client, student_headers, book["_id"])

    response = borrow(client, student_headers, other["_id"])

    assert response.status_code == 400
    assert response.json()["message"] == "You have reached the maximum limit of 1 books"


def test_return_on_time_awards_points(client, student, student_headers, book, mongo_db):
    record = borrow(client, student_headers, book["_id"]).json()["data"]

    response = client.post("/api/library/return", headers=student_headers, json={"borrow_id": record["_id"]})

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "returned"
    assert response.json()["data"]["fine"] == 0
    assert mongo_db.books.find_one({"_id": ObjectId(book["_id"])})["available_copies"] == 2
    assert mongo_db.users.find_one({"_id": student["_id"]})["gamification"]["points"] == 5


def test_late_return_is_fined(client, student_headers, book, mongo_db):
    record = borrow(client, student_headers, book["_id"]).json()["data"]
    mongo_db.borrow_records.update_one(
        {"_id": ObjectId(record["_id"])},
        {"$set": {"due_date": datetime.utcnow() - timedelta(days=3, hours=2)}},
    )

    response = client.post("/api/library/return", headers=student_headers, json={"borrow_id": record["_id"]})

    # Four started days at 5 per day
    assert response.json()["data"]["fine"] == 20
    assert "Late return fine" in response.json()["message"]


def test_return_twice(client, student_headers, book):
    record = borrow(client, student_headers, book["_id"]).json()["data"]
    client.post("/api/library/return", headers=student_headers, json={"borrow_id": record["_id"]})

    response = client.post("/api/library/return", headers=student_headers, json={"borrow_id": record["_id"]})

    assert response.status_code == 404
    assert response.json()["message"] == "Borrow record not found or book already returned"


def test_concurrent_return_restores_one_copy(client, student_headers, book, mongo_db, monkeypatch):
    record = borrow(client, student_headers, book["_id"]).json()["data"]
    record_id = ObjectId(record["_id"])

    # Another request returns the book after this one has loaded the record
    def returned_elsewhere(due_date, now, fine_per_day):
        mongo_db.borrow_records.update_one({"_id": record_id}, {"$set": {"status": "returned"}})
        mongo_db.books.update_one({"_id": ObjectId(book["_id"])}, {"$inc": {"available_copies": 1}})
        return 0

    monkeypatch.setattr(library_routes, "calculate_fine", returned_elsewhere)

    response = client.post("/api/library/return", headers=student_headers, json={"borrow_id": record["_id"]})

    assert response.status_code == 404
    assert mongo_db.books.find_one({"_id": ObjectId(book["_id"])})["available_copies"] == 2


def test_renew_until_limit(client, student_headers, book):
    record = borrow(client, student_headers, book["_id"]).json()["data"]

    first = client.post("/api/library/renew", headers=student_headers, json={"borrow_id": record["_id"]})
    assert first.json()["data"]["renewal_count"] == 1
    extended = datetime.fromisoformat(first.json()["data"]["due_date"]) - datetime.fromisoformat(record["due_date"])
    assert abs(extended - timedelta(days=14)) < timedelta(seconds=1)

    client.post("/api/library/renew", headers=student_headers, json={"borrow_id": record["_id"]})
    third = client.post("/api/library/renew", headers=student_headers, json={"borrow_id": record["_id"]})

    assert third.status_code == 400
    assert third.json()["message"] == "Renewal limit of 2 reached"


def test_overdue_book_cannot_be_renewed(client, student_headers, book, mongo_db):
    record = borrow(client, student_headers, book["_id"]).json()["data"]
    mongo_db.borrow_records.update_one(
        {"_id": ObjectId(record["_id"])}, {"$set": {"due_date": datetime.utcnow() - timedelta(days=1)}}
    )

    response = client.post("/api/library/renew", headers=student_headers, json={"borrow_id": record["_id"]})

    assert response.status_code == 400
    assert "Overdue books cannot be renewed" in response.json()["message"]


def test_cannot_delete_borrowed_book(client, admin_headers, student_headers, book):
    borrow(client, student_headers, book["_id"])

    response = client.delete(f"/api/library/books/{book['_id']}", headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Cannot delete a book that is currently borrowed"


def test_reducing_copies_shifts_availability(client, admin_headers, student_headers, book):
    borrow(client, student_headers, book["_id"])

    response = client.put(f"/api/library/books/{book['_id']}", headers=admin_headers, json={"total_copies": 5})
    assert response.json()["data"]["available_copies"] == 4

    response = client.put(f"/api/library/books/{book['_id']}", headers=admin_headers, json={"total_copies": 0})
    assert response.status_code == 400


def test_history_and_alias(client, student_headers, book):
    borrow(client, student_headers, book["_id"])

    history = client.get("/api/library/history", headers=student_headers).json()["data"]
    alias = client.get("/api/library/borrow-history", headers=student_headers).json()["data"]

    assert len(history["records"]) == 1
    assert history["records"][0]["book"]["title"] == "Clean Architecture"
    assert alias["records"] == history["records"]


def test_library_stats(client, student_headers, book):
    borrow(client, student_headers, book["_id"])

    response = client.get("/api/library/stats", headers=student_headers)

    data = response.json()["data"]
    assert data["total_books"] == 1
    assert data["total_copies"] == 2
    assert data["available_books"] == 1
    assert data["borrowed_books"] == 1
    assert data["popular_books"][0]["title"] == "Clean Architecture"
