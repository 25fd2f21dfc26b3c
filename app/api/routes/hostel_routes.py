"""
Hostel Routes

GET /hostel/rooms - List rooms
POST /hostel/rooms - Create room (admin)
GET /hostel/rooms/{room_id} - Get room with occupants
PUT /hostel/rooms/{room_id} - Update room (admin)
DELETE /hostel/rooms/{room_id} - Delete room (admin)
GET /hostel/stats - Occupancy statistics
GET /hostel/my-room - Own current room
GET /hostel/allocations - Allocations (own, or all for admins)
POST /hostel/allocations - Request a room
PUT /hostel/allocations/{allocation_id} - Change allocation status / room
DELETE /hostel/allocations/{allocation_id} - Delete allocation (admin)
PUT /hostel/reassign-room - Move a resident to another room (admin)
GET /hostel/service-requests - Service requests (own, or all for admins)
POST /hostel/service-requests - Raise a service request
PUT /hostel/service-requests/{request_id} - Update service request (admin)
DELETE /hostel/service-requests/{request_id} - Delete service request (admin)
POST /hostel/change-request - Ask for a room change

Occupancy rule: a room's current_occupancy is the number of its
allocations in "allocated" or "checked_in".
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import get_current_user, is_admin, require_admin
from app.db.mongodb import get_collection, COLLECTIONS
from app.services.mongo_service import (
    attach_user, count_by, paginate, serialize_doc, serialize_docs, touch, users_by_id
)
from app.services.notification_service import create_notification
from app.utils.helpers import to_object_id
from app.schemas.schemas import (
    AllocationRequest, AllocationStatus, AllocationUpdate, APIResponse, ReassignRequest,
    RoomChangeRequest, RoomCreate, RoomType, RoomUpdate, ServiceRequestCreate,
    ServiceRequestStatus, ServiceRequestType, ServiceRequestUpdate
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hostel", tags=["Hostel"])

OCCUPYING = ("allocated", "checked_in")
OPEN_ALLOCATION = ("pending", "allocated", "checked_in")
OPEN_REQUEST = ("submitted", "acknowledged", "in_progress")

# Moves a student may make on their own allocation
STUDENT_TRANSITIONS = {
    "allocated": {"checked_in", "cancelled"},
    "checked_in": {"checked_out"},
}

STATUS_DATE_FIELDS = {
    "allocated": "allocated_at",
    "checked_in": "check_in_date",
    "checked_out": "check_out_date",
    "cancelled": "cancelled_at",
}


def rooms_collection():
    return get_collection(COLLECTIONS["rooms"])


def allocations_collection():
    return get_collection(COLLECTIONS["allocations"])


def requests_collection():
    return get_collection(COLLECTIONS["service_requests"])


def _get_room(room_id) -> dict:
    room = rooms_collection().find_one({"_id": to_object_id(room_id, "Room not found")})
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room


def _get_allocation(allocation_id: str) -> dict:
    allocation = allocations_collection().find_one({"_id": to_object_id(allocation_id, "Allocation not found")})
    if not allocation:
        raise HTTPException(status_code=404, detail="Allocation not found")
    return allocation


def has_space(room: dict) -> bool:
    return room.get("is_active", True) and room.get("current_occupancy", 0) < room["capacity"]


def occupy(room_id) -> None:
    """Take one bed; refuses when the room is full."""
    room = _get_room(room_id)
    if not has_space(room):
        raise HTTPException(status_code=400, detail="Room is already at full capacity")
    # Compare-and-set on the occupancy we just read
    result = rooms_collection().update_one(
        {"_id": room["_id"], "current_occupancy": room.get("current_occupancy", 0)},
        {"$inc": {"current_occupancy": 1}, "$set": {"updated_at": datetime.utcnow()}},
    )
    if result.modified_count == 0:
        raise HTTPException(status_code=400, detail="Room is already at full capacity")


def release(room_id) -> None:
    if room_id is None:
        return
    rooms_collection().update_one(
        {"_id": room_id, "current_occupancy": {"$gt": 0}},
        {"$inc": {"current_occupancy": -1}, "$set": {"updated_at": datetime.utcnow()}},
    )


def _active_allocation(user_id) -> Optional[dict]:
    return allocations_collection().find_one({"user_id": user_id, "status": {"$in": list(OCCUPYING)}})


def _attach_rooms(docs: list, key: str = "room_id") -> list:
    rooms = {r["_id"]: r for r in rooms_collection().find(
        {"_id": {"$in": [d.get(key) for d in docs if d.get(key)]}},
        {"room_number": 1, "block": 1, "floor": 1, "type": 1},
    )}
    for doc in docs:
        doc["room"] = rooms.get(doc.get(key))
    return docs


# ============================================================
# ROOMS
# ============================================================

@router.get("/rooms", response_model=APIResponse)
async def list_rooms(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    block: Optional[str] = Query(None),
    type: Optional[RoomType] = Query(None),
    floor: Optional[int] = Query(None, ge=0),
    available_only: bool = Query(False),
    user: dict = Depends(get_current_user),
):
    """List rooms ordered by block and number."""
    query = {}
    if block:
        query["block"] = block
    if type:
        query["type"] = type.value
    if floor is not None:
        query["floor"] = floor
    if not is_admin(user):
        query["is_active"] = True

    rooms = list(rooms_collection().find(query).sort([("block", 1), ("room_number", 1)]))
    if available_only:
        rooms = [room for room in rooms if has_space(room)]
    total = len(rooms)
    rooms = rooms[(page - 1) * limit: page * limit]
    for room in rooms:
        room["available_beds"] = max(room["capacity"] - room.get("current_occupancy", 0), 0)

    pagination = {
        "current_page": page,
        "total_pages": (total + limit - 1) // limit,
        "total_items": total,
        "items_per_page": limit,
    }
    return APIResponse(data={"rooms": serialize_docs(rooms), "pagination": pagination})


@router.post("/rooms", response_model=APIResponse, status_code=201)
async def create_room(request: RoomCreate, admin: dict = Depends(require_admin)):
    """Add a room."""
    if rooms_collection().find_one({"room_number": request.room_number}):
        raise HTTPException(status_code=400, detail="Room number already exists")
    now = datetime.utcnow()
    room = request.model_dump()
    room.update({"current_occupancy": 0, "created_at": now, "updated_at": now})
    room["_id"] = rooms_collection().insert_one(room).inserted_id
    return APIResponse(message="Room created successfully", data=serialize_doc(room))


@router.get("/rooms/{room_id}", response_model=APIResponse)
async def get_room(room_id: str, user: dict = Depends(get_current_user)):
    """Get a room and its current residents."""
    room = _get_room(room_id)
    residents = list(allocations_collection().find({"room_id": room["_id"], "status": {"$in": list(OCCUPYING)}}))
    users = users_by_id(a["user_id"] for a in residents)
    room["occupants"] = [
        {"name": users.get(a["user_id"], {}).get("name"), "student_id": users.get(a["user_id"], {}).get("student_id"),
         "status": a["status"]}
        for a in residents
    ]
    return APIResponse(data=serialize_doc(room))


@router.put("/rooms/{room_id}", response_model=APIResponse)
async def update_room(room_id: str, request: RoomUpdate, admin: dict = Depends(require_admin)):
    """Update a room; capacity can't drop below current occupancy."""
    room = _get_room(room_id)
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    if changes.get("capacity") is not None and changes["capacity"] < room.get("current_occupancy", 0):
        raise HTTPException(status_code=400, detail="Capacity cannot be less than current occupancy")
    rooms_collection().update_one({"_id": room["_id"]}, {"$set": touch(changes)})
    return APIResponse(message="Room updated successfully", data=serialize_doc(_get_room(room_id)))


@router.delete("/rooms/{room_id}", response_model=APIResponse)
async def delete_room(room_id: str, admin: dict = Depends(require_admin)):
    """Delete a room with no open allocations."""
    room = _get_room(room_id)
    if allocations_collection().count_documents({"room_id": room["_id"], "status": {"$in": list(OPEN_ALLOCATION)}}):
        raise HTTPException(status_code=400, detail="Cannot delete a room with active allocations")
    rooms_collection().delete_one({"_id": room["_id"]})
    logger.info(f"Admin {admin['email']} deleted room {room['room_number']}")
    return APIResponse(message="Room deleted successfully")


@router.get("/stats", response_model=APIResponse)
async def hostel_stats(user: dict = Depends(get_current_user)):
    """Room and bed occupancy plus allocation and request counts."""
    rooms = list(rooms_collection().find({}, {"capacity": 1, "current_occupancy": 1, "is_active": 1}))
    capacity = sum(r["capacity"] for r in rooms)
    occupancy = sum(r.get("current_occupancy", 0) for r in rooms)
    return APIResponse(data={
        "total_rooms": len(rooms),
        "occupied_rooms": sum(1 for r in rooms if r.get("current_occupancy", 0) > 0),
        "available_rooms": sum(1 for r in rooms if has_space(r)),
        "total_capacity": capacity,
        "current_occupancy": occupancy,
        "occupancy_rate": round(occupancy / capacity * 100, 2) if capacity else 0,
        "allocations": count_by(allocations_collection(), "status"),
        "open_service_requests": requests_collection().count_documents({"status": {"$in": list(OPEN_REQUEST)}}),
    })


@router.get("/my-room", response_model=APIResponse)
async def my_room(user: dict = Depends(get_current_user)):
    """Own allocated or checked-in room with roommates."""
    allocation = _active_allocation(user["_id"])
    if not allocation:
        raise HTTPException(status_code=404, detail="No active room allocation found")
    room = rooms_collection().find_one({"_id": allocation["room_id"]})
    mates = allocations_collection().find({
        "room_id": allocation["room_id"], "status": {"$in": list(OCCUPYING)}, "user_id": {"$ne": user["_id"]}
    })
    users = users_by_id(m["user_id"] for m in mates)
    return APIResponse(data=serialize_doc({
        "allocation": allocation,
        "room": room,
        "roommates": [{"name": u.get("name"), "student_id": u.get("student_id")} for u in users.values()],
    }))


# ============================================================
# ALLOCATIONS
# ============================================================

@router.get("/allocations", response_model=APIResponse)
async def list_allocations(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[AllocationStatus] = Query(None),
    user: dict = Depends(get_current_user),
):
    """Allocations, newest first."""
    query = {} if is_admin(user) else {"user_id": user["_id"]}
    if status:
        query["status"] = status.value
    allocations, pagination = paginate(allocations_collection(), query, page, limit, sort=[("created_at", -1)])
    _attach_rooms(allocations)
    if is_admin(user):
        attach_user(allocations)
    return APIResponse(data={"allocations": serialize_docs(allocations), "pagination": pagination})


@router.post("/allocations", response_model=APIResponse, status_code=201)
async def request_allocation(request: AllocationRequest, user: dict = Depends(get_current_user)):
    """Request a room (optionally a specific one)."""
    allocations = allocations_collection()
    if allocations.find_one({"user_id": user["_id"], "status": {"$in": list(OPEN_ALLOCATION)}}):
        raise HTTPException(status_code=400, detail="You already have an active allocation")

    room_id = None
    if request.room_id:
        room = _get_room(request.room_id)
        if not has_space(room):
            raise HTTPException(status_code=400, detail="Room is already at full capacity")
        room_id = room["_id"]

    now = datetime.utcnow()
    allocation = {
        "user_id": user["_id"],
        "room_id": room_id,
        "status": "pending",
        "preferences": request.preferences or {},
        "notes": request.notes,
        "history": [{"status": "pending", "at": now, "by": user["_id"]}],
        "created_at": now,
        "updated_at": now,
    }
    allocation["_id"] = allocations.insert_one(allocation).inserted_id
    return APIResponse(message="Room request submitted successfully", data=serialize_doc(allocation))


@router.put("/allocations/{allocation_id}", response_model=APIResponse)
async def update_allocation(allocation_id: str, request: AllocationUpdate, user: dict = Depends(get_current_user)):
    """
    Move an allocation through its lifecycle.

    Students can cancel, check in or check out their own allocation;
    admins can set any status and assign the room.
    """
    allocation = _get_allocation(allocation_id)
    current = allocation["status"]
    target = request.status or current
    admin = is_admin(user)

    if not admin:
        if allocation["user_id"] != user["_id"]:
            raise HTTPException(status_code=403, detail="Not authorized to update this allocation")
        if request.room_id:
            raise HTTPException(status_code=403, detail="Only admins can assign rooms")
        if target != current and target not in ("checked_in", "checked_out", "cancelled"):
            raise HTTPException(status_code=403, detail="Students can only check in, check out or cancel")
        if target == "cancelled" and current != "allocated":
            raise HTTPException(status_code=400, detail="You can only cancel allocated bookings")
        if target != current and target not in STUDENT_TRANSITIONS.get(current, set()):
            raise HTTPException(status_code=400, detail=f"Cannot change status from {current} to {target}")

    old_room = allocation.get("room_id")
    new_room = to_object_id(request.room_id, "Room not found") if request.room_id else old_room
    was_occupying = current in OCCUPYING
    will_occupy = target in OCCUPYING

    if will_occupy and new_room is None:
        raise HTTPException(status_code=400, detail="Assign a room before allocating")
    if request.room_id:
        _get_room(new_room)

    # Occupancy follows the rule in the module docstring
    if will_occupy and (not was_occupying or new_room != old_room):
        occupy(new_room)
    if was_occupying and (not will_occupy or new_room != old_room):
        release(old_room)

    now = datetime.utcnow()
    changes = {"status": target, "room_id": new_room, "updated_at": now}
    if request.notes is not None:
        changes["notes"] = request.notes
    if target != current and target in STATUS_DATE_FIELDS:
        changes[STATUS_DATE_FIELDS[target]] = now
    allocations_collection().update_one(
        {"_id": allocation["_id"]},
        {"$set": changes, "$push": {"history": {"status": target, "room_id": new_room, "at": now, "by": user["_id"]}}},
    )

    if admin and allocation["user_id"] != user["_id"] and (target != current or new_room != old_room):
        create_notification(
            allocation["user_id"],
            "Hostel Allocation Update",
            f"Your hostel allocation is now {target.replace('_', ' ')}.",
            type="info", category="hostel", action_url="/hostel",
            data={"allocation_id": str(allocation["_id"])}, created_by=user["_id"],
        )

    return APIResponse(
        message="Allocation updated successfully",
        data=serialize_doc(_get_allocation(allocation_id)),
    )


@router.delete("/allocations/{allocation_id}", response_model=APIResponse)
async def delete_allocation(allocation_id: str, admin: dict = Depends(require_admin)):
    """Delete an allocation, freeing its bed if occupied."""
    allocation = _get_allocation(allocation_id)
    if allocation["status"] in OCCUPYING:
        release(allocation.get("room_id"))
    allocations_collection().delete_one({"_id": allocation["_id"]})
    return APIResponse(message="Allocation deleted successfully")


@router.put("/reassign-room", response_model=APIResponse)
async def reassign_room(request: ReassignRequest, admin: dict = Depends(require_admin)):
    """Move an active resident to another room."""
    allocation = _get_allocation(request.allocation_id)
    if allocation["status"] not in OCCUPYING:
        raise HTTPException(status_code=400, detail="Only active allocations can be reassigned")
    new_room = _get_room(request.new_room_id)
    if new_room["_id"] == allocation.get("room_id"):
        raise HTTPException(status_code=400, detail="Student is already in this room")

    occupy(new_room["_id"])
    release(allocation.get("room_id"))

    now = datetime.utcnow()
    allocations_collection().update_one(
        {"_id": allocation["_id"]},
        {
            "$set": {"room_id": new_room["_id"], "updated_at": now},
            "$push": {"history": {
                "status": allocation["status"], "room_id": new_room["_id"], "at": now,
                "by": admin["_id"], "reason": request.reason,
            }},
        },
    )
    create_notification(
        allocation["user_id"],
        "Room Reassigned by Admin",
        f"You have been moved to room {new_room['room_number']} (Block {new_room['block']})."
        + (f" Reason: {request.reason}" if request.reason else ""),
        type="info", category="hostel", priority="high", action_url="/hostel",
        data={"allocation_id": str(allocation["_id"]), "room_id": str(new_room["_id"])},
        created_by=admin["_id"],
    )
    logger.info(f"Allocation {allocation['_id']} moved to room {new_room['room_number']}")
    return APIResponse(
        message="Room reassigned successfully",
        data=serialize_doc(_get_allocation(request.allocation_id)),
    )


# ============================================================
# SERVICE REQUESTS
# ============================================================

@router.get("/service-requests", response_model=APIResponse)
async def list_service_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[ServiceRequestStatus] = Query(None),
    type: Optional[ServiceRequestType] = Query(None),
    user: dict = Depends(get_current_user),
):
    """Service requests, newest first."""
    query = {} if is_admin(user) else {"user_id": user["_id"]}
    if status:
        query["status"] = status.value
    if type:
        query["type"] = type.value
    requests, pagination = paginate(requests_collection(), query, page, limit, sort=[("created_at", -1)])
    _attach_rooms(requests)
    if is_admin(user):
        attach_user(requests)
    return APIResponse(data={"requests": serialize_docs(requests), "pagination": pagination})


def _new_request(user: dict, room_id, type: str, title: str, description: str,
                 priority: str = "medium", extra: Optional[dict] = None) -> dict:
    now = datetime.utcnow()
    doc = {
        "user_id": user["_id"],
        "room_id": room_id,
        "type": type,
        "title": title,
        "description": description,
        "priority": priority,
        "status": "submitted",
        "admin_notes": None,
        "resolved_at": None,
        "created_at": now,
        "updated_at": now,
        **(extra or {}),
    }
    doc["_id"] = requests_collection().insert_one(doc).inserted_id
    return doc


@router.post("/service-requests", response_model=APIResponse, status_code=201)
async def create_service_request(request: ServiceRequestCreate, user: dict = Depends(get_current_user)):
    """Raise a maintenance or other request for your room."""
    if request.room_id:
        room_id = _get_room(request.room_id)["_id"]
    else:
        allocation = _active_allocation(user["_id"])
        if not allocation:
            raise HTTPException(status_code=400, detail="You need an active room allocation to raise a service request")
        room_id = allocation["room_id"]

    doc = _new_request(user, room_id, request.type, request.title, request.description, request.priority)
    return APIResponse(message="Service request submitted successfully", data=serialize_doc(doc))


@router.put("/service-requests/{request_id}", response_model=APIResponse)
async def update_service_request(request_id: str, request: ServiceRequestUpdate, admin: dict = Depends(require_admin)):
    """Update status, priority or notes; resolving notifies the requester."""
    requests = requests_collection()
    doc = requests.find_one({"_id": to_object_id(request_id, "Service request not found")})
    if not doc:
        raise HTTPException(status_code=404, detail="Service request not found")

    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    resolved_now = changes.get("status") == "resolved" and doc["status"] != "resolved"
    if resolved_now:
        changes["resolved_at"] = datetime.utcnow()
        changes["resolved_by"] = admin["_id"]
    requests.update_one({"_id": doc["_id"]}, {"$set": touch(changes)})

    if resolved_now:
        create_notification(
            doc["user_id"],
            "Service Request Resolved",
            f"Your request \"{doc['title']}\" has been resolved.",
            type="success", category="hostel", action_url="/hostel",
            data={"request_id": str(doc["_id"])}, created_by=admin["_id"],
        )
    return APIResponse(message="Service request updated successfully", data=serialize_doc(requests.find_one({"_id": doc["_id"]})))


@router.delete("/service-requests/{request_id}", response_model=APIResponse)
async def delete_service_request(request_id: str, admin: dict = Depends(require_admin)):
    """Delete a service request."""
    result = requests_collection().delete_one({"_id": to_object_id(request_id, "Service request not found")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Service request not found")
    return APIResponse(message="Service request deleted successfully")


@router.post("/change-request", response_model=APIResponse, status_code=201)
async def room_change_request(request: RoomChangeRequest, user: dict = Depends(get_current_user)):
    """Ask to be moved to another room; one open request at a time."""
    allocation = _active_allocation(user["_id"])
    if not allocation:
        raise HTTPException(status_code=400, detail="You need an active room allocation to request a room change")
    if requests_collection().find_one({
        "user_id": user["_id"], "type": "room_change", "status": {"$in": list(OPEN_REQUEST)}
    }):
        raise HTTPException(status_code=400, detail="You already have a pending room change request")

    preferred = _get_room(request.preferred_room_id)["_id"] if request.preferred_room_id else None
    doc = _new_request(
        user, allocation["room_id"], "room_change", "Room change request", request.reason,
        extra={"preferred_room_id": preferred, "allocation_id": allocation["_id"]},
    )
    return APIResponse(message="Room change request submitted successfully", data=serialize_doc(doc))
