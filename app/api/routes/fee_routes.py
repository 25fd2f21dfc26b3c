"""
Fee Routes

GET /fees - List fees (own fees for students, all for admins)
POST /fees - Create fee (admin)
GET /fees/summary - Totals by status, overdue and upcoming counts
GET /fees/payments - Completed payment history
GET /fees/payments/{transaction_id}/receipt - Payment receipt
POST /fees/payments/{transaction_id}/refund - Refund a payment (admin)
POST /fees/bulk - Create the same fee for many students (admin)
GET /fees/{fee_id} - Get fee
PUT /fees/{fee_id} - Update fee (admin)
DELETE /fees/{fee_id} - Delete fee (admin)
POST /fees/{fee_id}/pay - Pay a fee through the mocked gateway
POST /fees/{fee_id}/discount-waiver - Apply a discount or waiver (admin)
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import get_current_user, is_admin, require_admin
from app.db.mongodb import get_collection, COLLECTIONS
from app.services.mongo_service import attach_user, paginate, serialize_doc, serialize_docs, touch
from app.services.notification_service import create_notification
from app.services.payment_service import compute_fee_status, process_fee_payment, refund_transaction
from app.services.user_service import find_student
from app.services.system_service import get_section
from app.utils.helpers import naive_utc, to_object_id
from app.schemas.schemas import (
    APIResponse, BulkFeeCreate, DiscountWaiverRequest, FeeCreate, FeeStatus, FeeType,
    FeeUpdate, PaymentRequest, RefundRequest, TransactionStatus
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fees", tags=["Fees"])


def fees_collection():
    return get_collection(COLLECTIONS["fees"])


def _scope(user: dict) -> dict:
    """Students only ever see their own fees."""
    return {} if is_admin(user) else {"user_id": user["_id"]}


def _new_fee(user_id, data: dict, created_by) -> dict:
    now = datetime.utcnow()
    fee = {
        "user_id": user_id,
        "fee_type": data["fee_type"],
        "amount": round(data["amount"], 2),
        "paid_amount": 0,
        "description": data.get("description"),
        "due_date": data["due_date"],
        "academic_year": data.get("academic_year") or get_section("general")["academic_year"],
        "semester": data.get("semester"),
        "adjustments": [],
        "reminder_count": 0,
        "last_reminder_sent": None,
        "paid_at": None,
        "payment_method": None,
        "transaction_id": None,
        "created_by": created_by,
        "created_at": now,
        "updated_at": now,
    }
    fee["status"] = compute_fee_status(fee, now)
    return fee


def _get_fee_for(fee_id: str, user: dict) -> dict:
    fee = fees_collection().find_one({"_id": to_object_id(fee_id), **_scope(user)})
    if not fee:
        raise HTTPException(status_code=404, detail="Fee not found")
    return fee


@router.get("", response_model=APIResponse)
async def list_fees(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[FeeStatus] = Query(None),
    fee_type: Optional[FeeType] = Query(None),
    user_id: Optional[str] = Query(None, description="Admins only: filter by student"),
    user: dict = Depends(get_current_user),
):
    """List fees, newest first."""
    query = _scope(user)
    if is_admin(user) and user_id:
        query["user_id"] = to_object_id(user_id)
    if status:
        query["status"] = status.value
    if fee_type:
        query["fee_type"] = fee_type.value

    fees, pagination = paginate(fees_collection(), query, page, limit, sort=[("created_at", -1)])
    if is_admin(user):
        attach_user(fees)
    return APIResponse(data={"fees": serialize_docs(fees), "pagination": pagination})


@router.post("", response_model=APIResponse, status_code=201)
async def create_fee(request: FeeCreate, admin: dict = Depends(require_admin)):
    """Create a fee for one student."""
    student = find_student(request.user_id)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")

    fee = _new_fee(student["_id"], request.model_dump(), admin["_id"])
    fee["_id"] = fees_collection().insert_one(fee).inserted_id
    create_notification(
        student["_id"],
        "New Fee Assigned",
        f"A {fee['fee_type']} fee of ₹{fee['amount']} is due on {fee['due_date'].strftime('%d %b %Y')}.",
        type="info", category="fee", action_url="/fees",
        data={"fee_id": str(fee["_id"])}, created_by=admin["_id"],
    )
    return APIResponse(message="Fee created successfully", data=serialize_doc(fee))


@router.get("/summary", response_model=APIResponse)
async def fee_summary(user: dict = Depends(get_current_user)):
    """Per-status counts and totals plus overdue / upcoming counts."""
    fees = fees_collection()
    scope = _scope(user)
    pipeline = []
    if scope:
        pipeline.append({"$match": scope})
    pipeline.append({"$group": {
        "_id": "$status",
        "count": {"$sum": 1},
        "total_amount": {"$sum": "$amount"},
        "paid_amount": {"$sum": "$paid_amount"},
    }})
    by_status = {
        row["_id"]: {"count": row["count"], "total_amount": row["total_amount"], "paid_amount": row["paid_amount"]}
        for row in fees.aggregate(pipeline)
    }

    now = datetime.utcnow()
    window = timedelta(days=get_section("fees")["upcoming_window_days"])
    overdue = fees.count_documents({
        **scope, "status": {"$in": ["pending", "partial", "overdue"]}, "due_date": {"$lt": now}
    })
    upcoming = fees.count_documents({
        **scope, "status": "pending", "due_date": {"$gte": now, "$lte": now + window}
    })
    total_amount = sum(row["total_amount"] for row in by_status.values())
    total_paid = sum(row["paid_amount"] for row in by_status.values())

    return APIResponse(data={
        "summary": by_status,
        "overdue_fees": overdue,
        "upcoming_fees": upcoming,
        "total_amount": round(total_amount, 2),
        "total_paid": round(total_paid, 2),
        "total_outstanding": round(total_amount - total_paid, 2),
    })


@router.get("/payments", response_model=APIResponse)
async def payment_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: TransactionStatus = Query(TransactionStatus.completed),
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    user: dict = Depends(get_current_user),
):
    """Transactions (completed by default), newest first."""
    query = {"status": status.value, **_scope(user)}
    if from_date or to_date:
        query["created_at"] = {}
        if from_date:
            query["created_at"]["$gte"] = naive_utc(from_date)
        if to_date:
            query["created_at"]["$lte"] = naive_utc(to_date)

    transactions = get_collection(COLLECTIONS["transactions"])
    payments, pagination = paginate(transactions, query, page, limit, sort=[("created_at", -1)])
    fees = {f["_id"]: f for f in fees_collection().find(
        {"_id": {"$in": [p["fee_id"] for p in payments]}},
        {"fee_type": 1, "description": 1, "amount": 1, "due_date": 1},
    )}
    for payment in payments:
        payment["fee"] = fees.get(payment["fee_id"])
    return APIResponse(data={"payments": serialize_docs(payments), "pagination": pagination})


@router.get("/payments/{transaction_id}/receipt", response_model=APIResponse)
async def payment_receipt(transaction_id: str, user: dict = Depends(get_current_user)):
    """Receipt for a completed (or later refunded) payment."""
    txn = get_collection(COLLECTIONS["transactions"]).find_one({"_id": to_object_id(transaction_id)})
    if not txn:
        raise HTTPException(status_code=404, detail="Payment not found")
    if not is_admin(user) and txn["user_id"] != user["_id"]:
        raise HTTPException(status_code=403, detail="Not authorized to view this receipt")
    if txn["status"] not in ("completed", "refunded"):
        raise HTTPException(status_code=400, detail="Receipt is only available for completed payments")

    fee = fees_collection().find_one({"_id": txn["fee_id"]}) or {}
    student = get_collection(COLLECTIONS["users"]).find_one({"_id": txn["user_id"]}) or {}
    receipt = {
        "receipt_number": f"RCP-{txn['_id']}",
        "institution": get_section("general")["institution_name"],
        "issued_at": datetime.utcnow(),
        "student": {
            "name": student.get("name"),
            "email": student.get("email"),
            "student_id": student.get("student_id"),
            "department": (student.get("profile") or {}).get("department"),
        },
        "fee": {
            "fee_type": fee.get("fee_type"),
            "description": fee.get("description"),
            "amount": fee.get("amount"),
            "due_date": fee.get("due_date"),
            "academic_year": fee.get("academic_year"),
            "semester": fee.get("semester"),
        },
        "payment": {
            "transaction_id": txn["transaction_id"],
            "amount": txn["amount"],
            "currency": txn.get("currency", "INR"),
            "payment_method": txn["payment_method"],
            "status": txn["status"],
            "paid_at": txn.get("completed_at"),
            "refund_amount": txn.get("refund_amount", 0),
        },
    }
    return APIResponse(data=serialize_doc(receipt))


@router.post("/payments/{transaction_id}/refund", response_model=APIResponse)
async def refund_payment(transaction_id: str, request: RefundRequest, admin: dict = Depends(require_admin)):
    """Refund all or part of a completed payment."""
    txn = refund_transaction(to_object_id(transaction_id), request.reason, request.refund_amount, admin["_id"])
    return APIResponse(message="Refund processed successfully", data=serialize_doc(txn))


@router.post("/bulk", response_model=APIResponse, status_code=201)
async def bulk_create_fees(request: BulkFeeCreate, admin: dict = Depends(require_admin)):
    """Create one fee per listed student; unknown students are reported, not fatal."""
    data = request.fee_data.model_dump()
    created = []
    errors = []
    for reference in request.student_ids:
        student = find_student(reference)
        if not student or student.get("role") != "student":
            errors.append(f"Student {reference} not found")
            continue
        fee = _new_fee(student["_id"], data, admin["_id"])
        fee["_id"] = fees_collection().insert_one(fee).inserted_id
        created.append(fee)

    logger.info(f"Bulk fee creation by {admin['email']}: {len(created)} created, {len(errors)} errors")
    return APIResponse(
        message=f"{len(created)} fees created successfully",
        data={"created": len(created), "fees": serialize_docs(created), "errors": errors},
    )


@router.get("/{fee_id}", response_model=APIResponse)
async def get_fee(fee_id: str, user: dict = Depends(get_current_user)):
    """Get a fee with its payments."""
    fee = _get_fee_for(fee_id, user)
    fee["transactions"] = list(
        get_collection(COLLECTIONS["transactions"]).find({"fee_id": fee["_id"]}).sort("created_at", -1)
    )
    return APIResponse(data=serialize_doc(fee))


@router.put("/{fee_id}", response_model=APIResponse)
async def update_fee(fee_id: str, request: FeeUpdate, admin: dict = Depends(require_admin)):
    """Update fee details; status follows the amounts unless given explicitly."""
    fee = _get_fee_for(fee_id, admin)
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    fee.update(changes)
    if "status" not in changes and fee["status"] != "waived":
        changes["status"] = compute_fee_status(fee)
    fees_collection().update_one({"_id": fee["_id"]}, {"$set": touch(changes)})
    return APIResponse(
        message="Fee updated successfully",
        data=serialize_doc(fees_collection().find_one({"_id": fee["_id"]})),
    )


@router.delete("/{fee_id}", response_model=APIResponse)
async def delete_fee(fee_id: str, admin: dict = Depends(require_admin)):
    """Delete a fee."""
    fee = _get_fee_for(fee_id, admin)
    fees_collection().delete_one({"_id": fee["_id"]})
    logger.info(f"Admin {admin['email']} deleted fee {fee['_id']}")
    return APIResponse(message="Fee deleted successfully")


@router.post("/{fee_id}/pay", response_model=APIResponse)
async def pay_fee(fee_id: str, request: PaymentRequest, user: dict = Depends(get_current_user)):
    """Pay a fee (in full by default) through the mocked gateway."""
    fee = fees_collection().find_one({"_id": to_object_id(fee_id)})
    if not fee:
        raise HTTPException(status_code=404, detail="Fee not found")
    if not is_admin(user) and fee["user_id"] != user["_id"]:
        raise HTTPException(status_code=403, detail="You can only pay your own fees")

    result = process_fee_payment(
        fee, user, request.payment_method, request.amount, request.transaction_id
    )
    return APIResponse(message="Payment processed successfully", data=serialize_doc(result))


@router.post("/{fee_id}/discount-waiver", response_model=APIResponse)
async def apply_discount_waiver(fee_id: str, request: DiscountWaiverRequest, admin: dict = Depends(require_admin)):
    """Reduce what is owed on a fee and record why."""
    fee = _get_fee_for(fee_id, admin)
    if fee["status"] in ("paid", "waived"):
        raise HTTPException(status_code=400, detail="Cannot adjust a fee that is already settled")

    if request.type == "discount" and request.percentage is not None:
        reduction = fee["amount"] * request.percentage / 100
    else:
        reduction = request.amount

    paid = fee.get("paid_amount", 0)
    new_amount = round(max(fee["amount"] - reduction, paid), 2)
    applied = round(fee["amount"] - new_amount, 2)
    if applied <= 0:
        raise HTTPException(status_code=400, detail="Adjustment has no effect on the outstanding amount")

    now = datetime.utcnow()
    adjustment = {
        "type": request.type,
        "amount": applied,
        "percentage": request.percentage,
        "reason": request.reason,
        "previous_amount": fee["amount"],
        "applied_by": admin["_id"],
        "applied_at": now,
    }
    fee["amount"] = new_amount
    if new_amount <= paid:
        status = "waived" if paid == 0 else "paid"
    else:
        status = compute_fee_status(fee, now)

    fees_collection().update_one(
        {"_id": fee["_id"]},
        {"$set": {"amount": new_amount, "status": status, "updated_at": now}, "$push": {"adjustments": adjustment}},
    )
    create_notification(
        fee["user_id"],
        f"Fee {request.type.capitalize()} Applied",
        f"A {request.type} of ₹{applied} was applied to your {fee['fee_type']} fee. "
        f"Amount due is now ₹{round(new_amount - paid, 2)}.",
        type="success", category="fee", action_url="/fees",
        data={"fee_id": str(fee["_id"])}, created_by=admin["_id"],
    )
    logger.info(f"{request.type} of {applied} applied to fee {fee['_id']} by {admin['email']}")
    return APIResponse(
        message=f"{request.type.capitalize()} applied successfully",
        data=serialize_doc(fees_collection().find_one({"_id": fee["_id"]})),
    )
