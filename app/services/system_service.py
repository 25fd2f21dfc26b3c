"""
System Config Service - a single settings document shared by every module.

The document is created with defaults the first time it is read.
"""

import copy
from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId

from app.db.mongodb import get_collection, COLLECTIONS

CONFIG_KEY = "system"

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "general": {
        "institution_name": "University Student Portal",
        "academic_year": "2024-2025",
    },
    "notifications": {
        "fee_reminder_days": [7, 3, 1, 0],
        "overdue_reminder_interval_days": 7,
    },
    "security": {
        "max_login_attempts": 5,
        "lock_minutes": 30,
    },
    "academic": {
        "default_credits": 3,
        "passing_percentage": 40,
    },
    "fees": {
        "currency": "INR",
        "upcoming_window_days": 7,
    },
    "library": {
        "max_books_per_student": 5,
        "borrow_duration_days": 14,
        "renewal_limit": 2,
        "fine_per_day": 5,
    },
}


def _merge(base: dict, updates: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_config() -> dict:
    """Current config, with defaults filled in for missing keys."""
    collection = get_collection(COLLECTIONS["system_config"])
    doc = collection.find_one({"key": CONFIG_KEY})
    if doc is None:
        doc = {"key": CONFIG_KEY, **copy.deepcopy(DEFAULT_CONFIG), "updated_at": datetime.utcnow()}
        collection.insert_one(doc)
    stored = {section: doc.get(section) or {} for section in DEFAULT_CONFIG}
    config = _merge(DEFAULT_CONFIG, stored)
    config["updated_at"] = doc.get("updated_at")
    config["updated_by"] = doc.get("updated_by")
    return config


def update_config(updates: Dict[str, Optional[dict]], updated_by: Optional[ObjectId] = None) -> dict:
    """Deep-merge the given sections into the stored config."""
    current = get_config()
    changes = {}
    for section, values in updates.items():
        if values is None or section not in DEFAULT_CONFIG:
            continue
        changes[section] = _merge(current[section], values)
    changes["updated_at"] = datetime.utcnow()
    changes["updated_by"] = updated_by
    get_collection(COLLECTIONS["system_config"]).update_one(
        {"key": CONFIG_KEY}, {"$set": changes}, upsert=True
    )
    return get_config()


def get_section(section: str) -> dict:
    return get_config()[section]


def library_policy() -> dict:
    return get_section("library")


def security_policy() -> dict:
    return get_section("security")
