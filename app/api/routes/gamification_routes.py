"""
Gamification Routes

GET /gamification/points - Points profile (admins may pass user_id)
GET /gamification/points/my - Alias of /points
GET /gamification/achievements - Alias of /points
GET /gamification/badges - List badges
POST /gamification/badges - Create badge (admin)
POST /gamification/award-badge - Award badge to user (admin)
POST /gamification/add-points - Add points to user (admin)
GET /gamification/leaderboard - Student leaderboard
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import get_current_user, is_admin, require_admin
from app.db.mongodb import get_collection, COLLECTIONS
from app.services import gamification_service
from app.services.mongo_service import find_or_404, paginate, serialize_doc, serialize_docs
from app.utils.helpers import to_object_id
from app.schemas.schemas import (
    AddPointsRequest, APIResponse, AwardBadgeRequest, BadgeCategory, BadgeCreate,
    BadgeRarity, LeaderboardPeriod
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gamification", tags=["Gamification"])


def badges_collection():
    return get_collection(COLLECTIONS["badges"])


async def points_profile(
    user_id: Optional[str] = Query(None, description="Admins only"),
    user: dict = Depends(get_current_user),
):
    """Total points, level, recent badges and recent activity."""
    target = user["_id"]
    if user_id and is_admin(user):
        target = to_object_id(user_id, "User not found")
    return APIResponse(data=serialize_doc(gamification_service.get_profile(target)))


router.add_api_route("/points", points_profile, methods=["GET"], response_model=APIResponse)
router.add_api_route("/points/my", points_profile, methods=["GET"], response_model=APIResponse)
router.add_api_route("/achievements", points_profile, methods=["GET"], response_model=APIResponse)


@router.get("/badges", response_model=APIResponse)
async def list_badges(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[BadgeCategory] = Query(None),
    rarity: Optional[BadgeRarity] = Query(None),
    is_active: Optional[bool] = Query(None),
    user: dict = Depends(get_current_user),
):
    query = {}
    if category:
        query["category"] = category.value
    if rarity:
        query["rarity"] = rarity.value
    if is_active is not None:
        query["is_active"] = is_active
    badges, pagination = paginate(badges_collection(), query, page, limit, sort=[("points", -1), ("name", 1)])
    return APIResponse(data={"badges": serialize_docs(badges), "pagination": pagination})


@router.post("/badges", response_model=APIResponse, status_code=201)
async def create_badge(request: BadgeCreate, admin: dict = Depends(require_admin)):
    """Create a badge; names are unique."""
    if badges_collection().find_one({"name": request.name}):
        raise HTTPException(status_code=400, detail="Badge with this name already exists")
    now = datetime.utcnow()
    badge = request.model_dump()
    badge.update({"created_by": admin["_id"], "created_at": now, "updated_at": now})
    badge["_id"] = badges_collection().insert_one(badge).inserted_id
    return APIResponse(message="Badge created successfully", data=serialize_doc(badge))


@router.post("/award-badge", response_model=APIResponse)
async def award_badge(request: AwardBadgeRequest, admin: dict = Depends(require_admin)):
    result = gamification_service.award_badge(
        to_object_id(request.user_id, "User not found"),
        to_object_id(request.badge_id, "Badge not found"),
        reason=request.reason,
        awarded_by=admin["_id"],
    )
    logger.info(f"Admin {admin['email']} awarded badge '{result['badge']['name']}' to {request.user_id}")
    return APIResponse(message="Badge awarded successfully", data=serialize_doc(result))


@router.post("/add-points", response_model=APIResponse)
async def add_points(request: AddPointsRequest, admin: dict = Depends(require_admin)):
    """Credit points (times multiplier) to a user."""
    user_id = to_object_id(request.user_id, "User not found")
    find_or_404(get_collection(COLLECTIONS["users"]), user_id, "User not found")
    result = gamification_service.award_points(
        user_id, request.points, request.type, request.description,
        multiplier=request.multiplier, awarded_by=admin["_id"],
    )
    return APIResponse(
        message=f"{result['record']['awarded']} points added successfully",
        data=serialize_doc(result),
    )


@router.get("/leaderboard", response_model=APIResponse)
async def leaderboard(
    period: LeaderboardPeriod = Query(LeaderboardPeriod.all),
    limit: int = Query(10, ge=1, le=100),
    department: Optional[str] = Query(None),
    user: dict = Depends(get_current_user),
):
    """Students ranked by points earned in the period."""
    entries = gamification_service.leaderboard(period.value, limit, department)
    my_rank = next((e["rank"] for e in entries if e["user_id"] == user["_id"]), None)
    return APIResponse(data={
        "period": period.value,
        "leaderboard": serialize_docs(entries),
        "my_rank": my_rank,
    })
