"""
Library Routes

GET /library/books - Search and filter the catalogue
POST /library/books - Add book (admin)
GET /library/books/{book_id} - Get book
PUT /library/books/{book_id} - Update book (admin)
DELETE /library/books/{book_id} - Delete book (admin)
GET /library/stats - Catalogue and circulation statistics
POST /library/borrow - Borrow a book
POST /library/return - Return a borrowed book
POST /library/renew - Renew a loan
GET /library/history - Borrow history (own, or all for admins)
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import get_current_user, is_admin, require_admin
from app.db.mongodb import get_collection, COLLECTIONS
from app.services.gamification_service import award_points
from app.services.mongo_service import attach_user, paginate, serialize_doc, serialize_docs, touch
from app.services.system_service import library_policy
from app.utils.helpers import calculate_fine, to_object_id
from app.schemas.schemas import (
    APIResponse, BookCreate, BookUpdate, BorrowActionRequest, BorrowRequest, BorrowStatus
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/library", tags=["Library"])

ACTIVE_STATUSES = ["borrowed", "overdue"]
ON_TIME_RETURN_POINTS = 5


def books_collection():
    return get_collection(COLLECTIONS["books"])


def records_collection():
    return get_collection(COLLECTIONS["borrow_records"])


def _regex(value: str) -> dict:
    return {"$regex": re.escape(value), "$options": "i"}


def _get_book(book_id: str) -> dict:
    book = books_collection().find_one({"_id": to_object_id(book_id, "Book not found")})
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


def _attach_books(records: list) -> list:
    books = {b["_id"]: b for b in books_collection().find(
        {"_id": {"$in": [r["book_id"] for r in records]}},
        {"title": 1, "author": 1, "isbn": 1, "category": 1},
    )}
    for record in records:
        record["book"] = books.get(record["book_id"])
    return records


# ============================================================
# CATALOGUE
# ============================================================

@router.get("/books", response_model=APIResponse)
async def list_books(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, description="Title, author or ISBN"),
    category: Optional[str] = Query(None),
    author: Optional[str] = Query(None),
    availability: Optional[str] = Query(None, pattern="^(available|unavailable)$"),
    language: Optional[str] = Query(None),
    tags: Optional[str] = Query(None, description="Comma separated"),
    published_after: Optional[int] = Query(None),
    published_before: Optional[int] = Query(None),
    sort_by: str = Query("title", pattern="^(title|author|published_year|created_at)$"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    user: dict = Depends(get_current_user),
):
    """Search the catalogue."""
    query = {}
    if search:
        query["$or"] = [{"title": _regex(search)}, {"author": _regex(search)}, {"isbn": _regex(search)}]
    if category:
        query["category"] = category
    if author:
        query["author"] = _regex(author)
    if availability == "available":
        query["available_copies"] = {"$gt": 0}
    elif availability == "unavailable":
        query["available_copies"] = 0
    if language:
        query["language"] = language
    if tags:
        query["tags"] = {"$in": [t.strip() for t in tags.split(",") if t.strip()]}
    if published_after or published_before:
        query["published_year"] = {}
        if published_after:
            query["published_year"]["$gte"] = published_after
        if published_before:
            query["published_year"]["$lte"] = published_before

    direction = 1 if sort_order == "asc" else -1
    books, pagination = paginate(books_collection(), query, page, limit, sort=[(sort_by, direction)])
    return APIResponse(data={"books": serialize_docs(books), "pagination": pagination})


@router.post("/books", response_model=APIResponse, status_code=201)
async def create_book(request: BookCreate, admin: dict = Depends(require_admin)):
    """Add a book to the catalogue."""
    books = books_collection()
    if books.find_one({"isbn": request.isbn}):
        raise HTTPException(status_code=400, detail="Book with this ISBN already exists")

    now = datetime.utcnow()
    book = request.model_dump()
    if book["available_copies"] is None:
        book["available_copies"] = book["total_copies"]
    book.update({
        "qr_code": f"BOOK-{request.isbn}",
        "added_by": admin["_id"],
        "created_at": now,
        "updated_at": now,
    })
    book["_id"] = books.insert_one(book).inserted_id
    return APIResponse(message="Book added successfully", data=serialize_doc(book))


@router.get("/books/{book_id}", response_model=APIResponse)
async def get_book(book_id: str, user: dict = Depends(get_current_user)):
    """Get a book."""
    book = _get_book(book_id)
    book["active_borrows"] = records_collection().count_documents(
        {"book_id": book["_id"], "status": {"$in": ACTIVE_STATUSES}}
    )
    return APIResponse(data=serialize_doc(book))


@router.put("/books/{book_id}", response_model=APIResponse)
async def update_book(book_id: str, request: BookUpdate, admin: dict = Depends(require_admin)):
    """Update a book; changing total copies shifts available copies by the same amount."""
    book = _get_book(book_id)
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    if "isbn" in changes and changes["isbn"] != book["isbn"]:
        if books_collection().find_one({"isbn": changes["isbn"], "_id": {"$ne": book["_id"]}}):
            raise HTTPException(status_code=400, detail="Book with this ISBN already exists")
        changes["qr_code"] = f"BOOK-{changes['isbn']}"

    if "total_copies" in changes:
        available = book["available_copies"] + changes["total_copies"] - book["total_copies"]
        if available < 0:
            raise HTTPException(status_code=400, detail="Cannot reduce copies below the number currently borrowed")
        changes["available_copies"] = available

    books_collection().update_one({"_id": book["_id"]}, {"$set": touch(changes)})
    return APIResponse(message="Book updated successfully", data=serialize_doc(_get_book(book_id)))


@router.delete("/books/{book_id}", response_model=APIResponse)
async def delete_book(book_id: str, admin: dict = Depends(require_admin)):
    """Remove a book that nobody currently holds."""
    book = _get_book(book_id)
    if records_collection().count_documents({"book_id": book["_id"], "status": {"$in": ACTIVE_STATUSES}}):
        raise HTTPException(status_code=400, detail="Cannot delete a book that is currently borrowed")
    books_collection().delete_one({"_id": book["_id"]})
    logger.info(f"Admin {admin['email']} deleted book {book['isbn']}")
    return APIResponse(message="Book deleted successfully")


@router.get("/stats", response_model=APIResponse)
async def library_stats(user: dict = Depends(get_current_user)):
    """Catalogue size, circulation and the most borrowed titles."""
    books = books_collection()
    records = records_collection()
    now = datetime.utcnow()

    copies = list(books.aggregate([{"$group": {
        "_id": None,
        "total_copies": {"$sum": "$total_copies"},
        "available_copies": {"$sum": "$available_copies"},
    }}]))
    copies = copies[0] if copies else {"total_copies": 0, "available_copies": 0}

    popular_rows = list(records.aggregate([
        {"$group": {"_id": "$book_id", "borrow_count": {"$sum": 1}}},
    ]))
    popular_rows.sort(key=lambda row: -row["borrow_count"])
    popular_rows = popular_rows[:5]
    titles = {b["_id"]: b for b in books.find(
        {"_id": {"$in": [row["_id"] for row in popular_rows]}}, {"title": 1, "author": 1}
    )}
    popular = [
        {"book_id": row["_id"], "title": titles.get(row["_id"], {}).get("title"),
         "author": titles.get(row["_id"], {}).get("author"), "borrow_count": row["borrow_count"]}
        for row in popular_rows
    ]

    return APIResponse(data=serialize_doc({
        "total_books": books.count_documents({}),
        "total_copies": copies["total_copies"],
        "available_books": copies["available_copies"],
        "borrowed_books": records.count_documents({"status": {"$in": ACTIVE_STATUSES}}),
        "overdue_books": records.count_documents({
            "$or": [{"status": "overdue"}, {"status": "borrowed", "due_date": {"$lt": now}}]
        }),
        "popular_books": popular,
    }))


# ============================================================
# CIRCULATION
# ============================================================

@router.post("/borrow", response_model=APIResponse, status_code=201)
async def borrow_book(request: BorrowRequest, user: dict = Depends(get_current_user)):
    """Borrow a book for the configured loan period."""
    book = _get_book(request.book_id)
    policy = library_policy()
    records = records_collection()

    if book["available_copies"] <= 0:
        raise HTTPException(status_code=400, detail="Book is not available for borrowing")
    if records.find_one({"user_id": user["_id"], "book_id": book["_id"], "status": {"$in": ACTIVE_STATUSES}}):
        raise HTTPException(status_code=400, detail="You have already borrowed this book")
    active = records.count_documents({"user_id": user["_id"], "status": {"$in": ACTIVE_STATUSES}})
    if active >= policy["max_books_per_student"]:
        raise HTTPException(
            status_code=400,
            detail=f"You have reached the maximum limit of {policy['max_books_per_student']} books",
        )

    # Conditional decrement so two borrowers can't take the last copy
    result = books_collection().update_one(
        {"_id": book["_id"], "available_copies": {"$gt": 0}}, {"$inc": {"available_copies": -1}}
    )
    if result.modified_count == 0:
        raise HTTPException(status_code=400, detail="Book is not available for borrowing")

    now = datetime.utcnow()
    record = {
        "user_id": user["_id"],
        "book_id": book["_id"],
        "borrow_date": now,
        "due_date": now + timedelta(days=policy["borrow_duration_days"]),
        "return_date": None,
        "status": "borrowed",
        "renewal_count": 0,
        "fine": 0,
        "fine_paid": False,
        "created_at": now,
        "updated_at": now,
    }
    record["_id"] = records.insert_one(record).inserted_id
    record["book"] = {"_id": book["_id"], "title": book["title"], "author": book["author"]}
    logger.info(f"User {user['id']} borrowed book {book['_id']}")
    return APIResponse(message="Book borrowed successfully", data=serialize_doc(record))


@router.post("/return", response_model=APIResponse)
async def return_book(request: BorrowActionRequest, user: dict = Depends(get_current_user)):
    """Return a book; late returns are fined per started day."""
    records = records_collection()
    query = {"_id": to_object_id(request.borrow_id), "status": {"$in": ACTIVE_STATUSES}}
    if not is_admin(user):
        query["user_id"] = user["_id"]
    record = records.find_one(query)
    if not record:
        raise HTTPException(status_code=404, detail="Borrow record not found or book already returned")

    now = datetime.utcnow()
    fine = calculate_fine(record["due_date"], now, library_policy()["fine_per_day"])
    changes = {"status": "returned", "return_date": now, "fine": fine, "updated_at": now}
    # Conditional update so a concurrent return can't restore the copy twice
    result = records.update_one(
        {"_id": record["_id"], "status": {"$in": ACTIVE_STATUSES}}, {"$set": changes}
    )
    if result.modified_count == 0:
        raise HTTPException(status_code=404, detail="Borrow record not found or book already returned")
    books_collection().update_one({"_id": record["book_id"]}, {"$inc": {"available_copies": 1}})
    record.update(changes)

    if fine == 0:
        award_points(record["user_id"], ON_TIME_RETURN_POINTS, "library_activity", "Returned a book on time")

    message = "Book returned successfully"
    if fine:
        message += f". Late return fine: ₹{fine}"
    return APIResponse(message=message, data=serialize_doc(record))


@router.post("/renew", response_model=APIResponse)
async def renew_book(request: BorrowActionRequest, user: dict = Depends(get_current_user)):
    """Extend a loan by another loan period."""
    records = records_collection()
    record = records.find_one({"_id": to_object_id(request.borrow_id), "user_id": user["_id"]})
    if not record:
        raise HTTPException(status_code=404, detail="Borrow record not found")

    policy = library_policy()
    now = datetime.utcnow()
    if record["status"] == "overdue" or (record["status"] == "borrowed" and record["due_date"] < now):
        raise HTTPException(status_code=400, detail="Overdue books cannot be renewed. Please return the book")
    if record["status"] != "borrowed":
        raise HTTPException(status_code=400, detail="Only borrowed books can be renewed")
    if record.get("renewal_count", 0) >= policy["renewal_limit"]:
        raise HTTPException(status_code=400, detail=f"Renewal limit of {policy['renewal_limit']} reached")

    changes = {
        "due_date": record["due_date"] + timedelta(days=policy["borrow_duration_days"]),
        "renewal_count": record.get("renewal_count", 0) + 1,
        "updated_at": now,
    }
    records.update_one({"_id": record["_id"]}, {"$set": changes})
    record.update(changes)
    return APIResponse(message="Book renewed successfully", data=serialize_doc(record))


@router.get("/history", response_model=APIResponse)
@router.get("/borrow-history", response_model=APIResponse, include_in_schema=False)
async def borrow_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[BorrowStatus] = Query(None),
    user: dict = Depends(get_current_user),
):
    """Borrow records, newest first."""
    query = {} if is_admin(user) else {"user_id": user["_id"]}
    if status:
        query["status"] = status.value
    records, pagination = paginate(records_collection(), query, page, limit, sort=[("borrow_date", -1)])
    _attach_books(records)
    if is_admin(user):
        attach_user(records)
    return APIResponse(data={"records": serialize_docs(records), "pagination": pagination})
