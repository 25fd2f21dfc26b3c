"""
Payment Service - mocked payment gateway plus the fee/transaction bookkeeping.

No real provider is called. MockPaymentGateway approves or declines a
charge based on the configured failure rate and the rest of the module
records what happened.
"""

import logging
import random
from datetime import datetime
from typing import Optional

from bson import ObjectId

from app.core.config import get_settings
from app.core.exceptions import APIError
from app.db.mongodb import get_collection, COLLECTIONS
from app.services.gamification_service import award_points
from app.services.notification_service import create_notification
from app.services.system_service import get_section
from app.utils.helpers import generate_transaction_id, random_code

logger = logging.getLogger(__name__)

# Money comparisons tolerate float noise below a paisa
EPSILON = 0.005
ON_TIME_PAYMENT_POINTS = 10


class MockPaymentGateway:
    """Simulated gateway; declines a charge with probability failure_rate."""

    def __init__(self, failure_rate: float = 0.0):
        self.failure_rate = failure_rate

    def charge(self, amount: float, method: str) -> dict:
        approved = random.random() >= self.failure_rate
        return {
            "approved": approved,
            "reference": f"GW{random_code(12)}",
            "message": "Payment approved" if approved else "Payment declined by gateway",
            "amount": amount,
            "method": method,
            "processed_at": datetime.utcnow(),
        }


def get_gateway() -> MockPaymentGateway:
    return MockPaymentGateway(get_settings().payment_failure_rate)


def outstanding_amount(fee: dict) -> float:
    return round(fee["amount"] - fee.get("paid_amount", 0), 2)


def compute_fee_status(fee: dict, now: Optional[datetime] = None) -> str:
    """Status implied by the amounts and due date."""
    now = now or datetime.utcnow()
    paid = fee.get("paid_amount", 0)
    if paid >= fee["amount"] - EPSILON:
        return "paid"
    if paid > 0:
        return "partial"
    if fee.get("due_date") and fee["due_date"] < now:
        return "overdue"
    return "pending"


def process_fee_payment(fee: dict, payer: dict, payment_method: str,
                        amount: Optional[float] = None, transaction_id: Optional[str] = None) -> dict:
    """
    Charge (part of) a fee.

    Raises APIError 400 for invalid amounts or ids and 402 when the
    gateway declines. Returns {"fee", "transaction"} on success.
    """
    if fee["status"] in ("paid", "waived"):
        raise APIError("Fee is already paid", 400)

    balance = outstanding_amount(fee)
    pay_amount = round(amount if amount is not None else balance, 2)
    if pay_amount > balance + EPSILON:
        raise APIError(f"Payment amount exceeds outstanding balance of {balance}", 400)

    transactions = get_collection(COLLECTIONS["transactions"])
    transaction_id = transaction_id or generate_transaction_id()
    if transactions.find_one({"transaction_id": transaction_id}):
        raise APIError("Transaction ID already exists", 400)

    result = get_gateway().charge(pay_amount, payment_method)
    now = datetime.utcnow()
    txn = {
        "transaction_id": transaction_id,
        "fee_id": fee["_id"],
        "user_id": fee["user_id"],
        "paid_by": payer["_id"],
        "amount": pay_amount,
        "currency": get_section("fees")["currency"],
        "payment_method": payment_method,
        "status": "completed" if result["approved"] else "failed",
        "gateway_response": result,
        "refund_amount": 0,
        "created_at": now,
        "completed_at": now if result["approved"] else None,
    }
    txn["_id"] = transactions.insert_one(txn).inserted_id

    if not result["approved"]:
        logger.warning(f"Payment {transaction_id} declined for fee {fee['_id']}")
        raise APIError("Payment failed. Please try again.", 402, data={"transaction_id": transaction_id})

    paid_amount = round(fee.get("paid_amount", 0) + pay_amount, 2)
    updated = {**fee, "paid_amount": paid_amount}
    status = compute_fee_status(updated, now)
    changes = {
        "paid_amount": paid_amount,
        "status": status,
        "payment_method": payment_method,
        "transaction_id": transaction_id,
        "updated_at": now,
    }
    if status == "paid":
        changes["paid_at"] = now
    get_collection(COLLECTIONS["fees"]).update_one({"_id": fee["_id"]}, {"$set": changes})
    updated.update(changes)

    logger.info(f"Payment {transaction_id}: {pay_amount} towards fee {fee['_id']} ({status})")

    create_notification(
        fee["user_id"],
        "Payment Successful",
        f"Your payment of ₹{pay_amount} for {fee['fee_type']} fee has been processed. "
        f"Transaction ID: {transaction_id}",
        type="success",
        category="fee",
        data={"fee_id": str(fee["_id"]), "transaction_id": transaction_id},
    )

    if status == "paid" and fee.get("due_date") and now <= fee["due_date"]:
        award_points(fee["user_id"], ON_TIME_PAYMENT_POINTS, "fee_payment",
                     f"On-time payment of {fee['fee_type']} fee")

    return {"fee": updated, "transaction": txn}


def refund_transaction(txn_id: ObjectId, reason: str, refund_amount: Optional[float] = None,
                       refunded_by: Optional[ObjectId] = None) -> dict:
    transactions = get_collection(COLLECTIONS["transactions"])
    txn = transactions.find_one({"_id": txn_id})
    if not txn:
        raise APIError("Transaction not found", 404)
    if txn["status"] not in ("completed", "refunded"):
        raise APIError("Only completed transactions can be refunded", 400)

    refundable = round(txn["amount"] - txn.get("refund_amount", 0), 2)
    if refundable <= EPSILON:
        raise APIError("Transaction already fully refunded", 400)
    amount = round(refund_amount if refund_amount is not None else refundable, 2)
    if amount > refundable + EPSILON:
        raise APIError(f"Refund amount cannot exceed {refundable}", 400)

    now = datetime.utcnow()
    txn_changes = {
        "status": "refunded",
        "refund_amount": round(txn.get("refund_amount", 0) + amount, 2),
        "refund_reason": reason,
        "refunded_at": now,
        "refunded_by": refunded_by,
    }
    transactions.update_one({"_id": txn_id}, {"$set": txn_changes})
    txn.update(txn_changes)

    fees = get_collection(COLLECTIONS["fees"])
    fee = fees.find_one({"_id": txn["fee_id"]})
    if fee:
        fee["paid_amount"] = max(round(fee.get("paid_amount", 0) - amount, 2), 0)
        fee_changes = {"paid_amount": fee["paid_amount"], "status": compute_fee_status(fee, now), "updated_at": now}
        if fee_changes["status"] != "paid":
            fee_changes["paid_at"] = None
        fees.update_one({"_id": fee["_id"]}, {"$set": fee_changes})

    create_notification(
        txn["user_id"],
        "Refund Processed",
        f"A refund of ₹{amount} for transaction {txn['transaction_id']} has been processed.",
        type="info",
        category="fee",
        data={"transaction_id": txn["transaction_id"], "amount": amount},
        created_by=refunded_by,
    )
    logger.info(f"Refunded {amount} on transaction {txn['transaction_id']}")
    return txn
