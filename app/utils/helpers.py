"""
Small shared helpers: ObjectId parsing, id generation, grading.
"""

import math
import random
import string
import time
from datetime import datetime, timezone
from typing import Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId

from app.core.exceptions import APIError


def to_object_id(value, message: str = "Resource not found") -> ObjectId:
    """Parse a path/body id, turning malformed ids into a 404."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise APIError(message, 404)


def is_object_id(value) -> bool:
    return isinstance(value, str) and ObjectId.is_valid(value)


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Mongo hands back naive UTC datetimes, so everything we store is naive UTC too."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def random_code(length: int = 9, alphabet: str = string.ascii_uppercase + string.digits) -> str:
    return "".join(random.choices(alphabet, k=length))


def generate_transaction_id() -> str:
    """TXN + epoch millis + 9 random characters"""
    return f"TXN{int(time.time() * 1000)}{random_code(9)}"


def generate_default_password() -> str:
    """Default password for bulk-imported students (meets the strength rule)."""
    return "Student" + random_code(6, string.ascii_lowercase) + str(random.randint(10, 99))


# Percentage cutoffs -> (letter grade, grade point)
GRADE_SCALE = [
    (90, "A+", 10),
    (80, "A", 9),
    (70, "B+", 8),
    (60, "B", 7),
    (50, "C", 6),
    (40, "D", 5),
]


def calculate_grade(percentage: float) -> Tuple[str, int]:
    """Map a percentage to (grade, grade_point)."""
    for cutoff, grade, point in GRADE_SCALE:
        if percentage >= cutoff:
            return grade, point
    return "F", 0


def calculate_level(total_points: int) -> int:
    return total_points // 100 + 1


def points_to_next_level(total_points: int) -> int:
    return 100 - total_points % 100


def calculate_fine(due_date: datetime, returned_at: datetime, fine_per_day: float) -> float:
    """Fine for each started day past the due date."""
    if returned_at <= due_date:
        return 0
    days_late = math.ceil((returned_at - due_date).total_seconds() / 86400)
    return days_late * fine_per_day
