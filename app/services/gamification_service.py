"""
Gamification Service - points ledger, levels, badges and leaderboard.

Every award is a document in gamification_points carrying
awarded = points * multiplier. Totals are sums over that ledger and are
mirrored onto users.gamification after each write.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from bson import ObjectId

from app.core.exceptions import APIError
from app.db.mongodb import get_collection, COLLECTIONS
from app.services.mongo_service import find_or_404, users_by_id
from app.services.notification_service import create_notification
from app.utils.helpers import calculate_level, points_to_next_level

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}


def total_points(user_id: ObjectId, since: Optional[datetime] = None) -> int:
    match = {"user_id": user_id}
    if since:
        match["created_at"] = {"$gte": since}
    rows = list(get_collection(COLLECTIONS["points"]).aggregate([
        {"$match": match},
        {"$group": {"_id": "$user_id", "total": {"$sum": "$awarded"}}},
    ]))
    return int(rows[0]["total"]) if rows else 0


def sync_user_totals(user_id: ObjectId) -> dict:
    """Recompute points/level/badge count and store them on the user."""
    total = total_points(user_id)
    badges = get_collection(COLLECTIONS["user_badges"]).count_documents({"user_id": user_id})
    summary = {"points": total, "level": calculate_level(total), "badges": badges}
    get_collection(COLLECTIONS["users"]).update_one(
        {"_id": user_id}, {"$set": {"gamification": summary}}
    )
    return summary


def award_points(
    user_id: ObjectId,
    points: int,
    type: str,
    description: str,
    multiplier: float = 1,
    badge_id: Optional[ObjectId] = None,
    awarded_by: Optional[ObjectId] = None,
) -> dict:
    """Append to the ledger and refresh the user's totals."""
    record = {
        "user_id": user_id,
        "type": type,
        "points": points,
        "multiplier": multiplier,
        "awarded": int(round(points * multiplier)),
        "description": description,
        "badge_id": badge_id,
        "awarded_by": awarded_by,
        "created_at": datetime.utcnow(),
    }
    record["_id"] = get_collection(COLLECTIONS["points"]).insert_one(record).inserted_id
    summary = sync_user_totals(user_id)
    logger.info(f"Awarded {record['awarded']} points ({type}) to user {user_id}")
    return {"record": record, "summary": summary}


def get_profile(user_id: ObjectId) -> dict:
    user = find_or_404(get_collection(COLLECTIONS["users"]), user_id, "User not found")
    total = total_points(user_id)

    user_badges = list(
        get_collection(COLLECTIONS["user_badges"]).find({"user_id": user_id}).sort("earned_at", -1)
    )
    badge_docs = {
        b["_id"]: b for b in get_collection(COLLECTIONS["badges"]).find(
            {"_id": {"$in": [ub["badge_id"] for ub in user_badges]}}
        )
    }
    recent_badges = []
    for ub in user_badges[:5]:
        badge = badge_docs.get(ub["badge_id"])
        if badge:
            recent_badges.append({**badge, "earned_at": ub["earned_at"]})

    activities = list(
        get_collection(COLLECTIONS["points"]).find({"user_id": user_id}).sort("created_at", -1).limit(10)
    )

    return {
        "user": {"_id": user["_id"], "name": user.get("name"), "student_id": user.get("student_id")},
        "total_points": total,
        "level": calculate_level(total),
        "points_to_next_level": points_to_next_level(total),
        "badge_count": len(user_badges),
        "recent_badges": recent_badges,
        "recent_activities": activities,
    }


def award_badge(user_id: ObjectId, badge_id: ObjectId, reason: Optional[str] = None,
                awarded_by: Optional[ObjectId] = None) -> dict:
    find_or_404(get_collection(COLLECTIONS["users"]), user_id, "User not found")
    badge = find_or_404(get_collection(COLLECTIONS["badges"]), badge_id, "Badge not found")

    user_badges = get_collection(COLLECTIONS["user_badges"])
    if user_badges.find_one({"user_id": user_id, "badge_id": badge_id}):
        raise APIError("User already has this badge", 400)

    user_badges.insert_one({
        "user_id": user_id,
        "badge_id": badge_id,
        "reason": reason,
        "awarded_by": awarded_by,
        "earned_at": datetime.utcnow(),
    })

    result = award_points(
        user_id, badge.get("points", 0), "badge_earned",
        f"Earned badge: {badge['name']}", badge_id=badge_id, awarded_by=awarded_by,
    )

    create_notification(
        user_id,
        "New Badge Earned!",
        f"Congratulations! You earned the \"{badge['name']}\" badge.",
        type="achievement",
        category="gamification",
        data={"badge_id": str(badge_id), "points": badge.get("points", 0)},
        created_by=awarded_by,
    )
    return {"badge": badge, "summary": result["summary"]}


def leaderboard(period: str = "all", limit: int = 10, department: Optional[str] = None) -> List[dict]:
    """Students ranked by points earned in the period."""
    match = {}
    if period in PERIOD_DAYS:
        match["created_at"] = {"$gte": datetime.utcnow() - timedelta(days=PERIOD_DAYS[period])}

    pipeline = []
    if match:
        pipeline.append({"$match": match})
    pipeline.append({"$group": {"_id": "$user_id", "total": {"$sum": "$awarded"}, "activities": {"$sum": 1}}})
    rows = list(get_collection(COLLECTIONS["points"]).aggregate(pipeline))

    users = users_by_id(
        (row["_id"] for row in rows),
        ("name", "student_id", "role", "is_active", "profile.department", "profile.semester"),
    )

    badge_counts = {}
    for ub in get_collection(COLLECTIONS["user_badges"]).find({}, {"user_id": 1}):
        badge_counts[ub["user_id"]] = badge_counts.get(ub["user_id"], 0) + 1

    entries = []
    for row in rows:
        user = users.get(row["_id"])
        if not user or user.get("role") != "student" or not user.get("is_active", True):
            continue
        profile = user.get("profile") or {}
        if department and profile.get("department") != department:
            continue
        total = int(row["total"])
        entries.append({
            "user_id": row["_id"],
            "name": user.get("name"),
            "student_id": user.get("student_id"),
            "department": profile.get("department"),
            "semester": profile.get("semester"),
            "total_points": total,
            "level": calculate_level(total),
            "badge_count": badge_counts.get(row["_id"], 0),
            "activity_count": row["activities"],
        })

    entries.sort(key=lambda e: (-e["total_points"], e["name"] or ""))
    entries = entries[:limit]
    for rank, entry in enumerate(entries, start=1):
        entry["rank"] = rank
    return entries
