"""
MongoDB Service - shared document helpers used by every route module.

- serialize_doc / serialize_docs: make documents JSON-safe (ObjectId -> str)
- paginate: run a filtered, sorted, paged find and build the pagination block
- find_or_404: fetch one document or raise
- users_by_id: batch lookup used instead of $lookup joins
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from bson import ObjectId
from pymongo.collection import Collection

from app.core.exceptions import APIError
from app.db.mongodb import get_collection, COLLECTIONS

# Never leave the API
SENSITIVE_USER_FIELDS = ("password_hash", "login_attempts", "lock_until")


# ============================================================
# HELPER: Convert ObjectId to string for JSON serialization
# ============================================================

def _convert(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: _convert(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_convert(item) for item in value]
    return value


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    """Convert MongoDB document to JSON-serializable dict."""
    if doc is None:
        return None
    doc = _convert(doc)
    for field in SENSITIVE_USER_FIELDS:
        doc.pop(field, None)
    return doc


def serialize_docs(docs: Iterable[dict]) -> List[dict]:
    """Convert list of MongoDB documents to JSON-serializable list."""
    return [serialize_doc(doc) for doc in docs]


# ============================================================
# QUERY HELPERS
# ============================================================

def paginate(
    collection: Collection,
    query: dict,
    page: int = 1,
    limit: int = 10,
    sort: Optional[List[Tuple[str, int]]] = None,
    projection: Optional[dict] = None,
) -> Tuple[List[dict], Dict[str, int]]:
    """
    Paged find.

    Returns (documents, pagination) where pagination is
    {"current_page", "total_pages", "total_items", "items_per_page"}.
    """
    total = collection.count_documents(query)
    cursor = collection.find(query, projection)
    if sort:
        cursor = cursor.sort(sort)
    docs = list(cursor.skip((page - 1) * limit).limit(limit))
    pagination = {
        "current_page": page,
        "total_pages": (total + limit - 1) // limit if limit else 1,
        "total_items": total,
        "items_per_page": limit,
    }
    return docs, pagination


def find_or_404(collection: Collection, doc_id: ObjectId, message: str = "Resource not found") -> dict:
    doc = collection.find_one({"_id": doc_id})
    if not doc:
        raise APIError(message, 404)
    return doc


def users_by_id(user_ids: Iterable[ObjectId], fields: Tuple[str, ...] = ("name", "email", "student_id")) -> Dict[ObjectId, dict]:
    """Fetch a set of users in one query, keyed by _id."""
    ids = list({uid for uid in user_ids if uid is not None})
    if not ids:
        return {}
    projection = {field: 1 for field in fields}
    users = get_collection(COLLECTIONS["users"]).find({"_id": {"$in": ids}}, projection)
    return {user["_id"]: user for user in users}


def attach_user(docs: List[dict], key: str = "user_id", target: str = "user",
                fields: Tuple[str, ...] = ("name", "email", "student_id")) -> List[dict]:
    """Embed a small user summary under `target` for each document."""
    lookup = users_by_id((doc.get(key) for doc in docs), fields)
    for doc in docs:
        doc[target] = lookup.get(doc.get(key))
    return docs


def count_by(collection: Collection, field: str, match: Optional[dict] = None) -> Dict[str, int]:
    """{value: count} grouping on a single field."""
    pipeline = []
    if match:
        pipeline.append({"$match": match})
    pipeline.append({"$group": {"_id": f"${field}", "count": {"$sum": 1}}})
    return {str(row["_id"]): row["count"] for row in collection.aggregate(pipeline)}


def touch(update: dict) -> dict:
    """Stamp updated_at on a $set payload."""
    update["updated_at"] = datetime.utcnow()
    return update
