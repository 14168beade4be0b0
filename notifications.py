"""
Per-user notification mailbox embedded in the user document.

There is no external transport: a notification exists once it has been
appended to the user's `notifications` list.
"""

import logging
from typing import Any, Dict, List

from bson import ObjectId
from pymongo.database import Database

from database import utcnow
from errors import NotFound, ValidationError
from schemas import NOTIFICATION_TYPES, Notification

logger = logging.getLogger(__name__)


def notify(db: Database, user_id: ObjectId, message: str, type: str = "info") -> bool:
    """Append an unread notification; returns False when the user does not exist"""
    if type not in NOTIFICATION_TYPES:
        raise ValidationError(f"Unknown notification type: {type}", field="type")

    entry = Notification(message=message, type=type, created_at=utcnow())
    result = db["user"].update_one(
        {"_id": user_id},
        {"$push": {"notifications": entry.model_dump(by_alias=True)}},
    )
    if result.matched_count == 0:
        logger.warning("Notification for unknown user %s dropped", user_id)
        return False
    return True


def list_notifications(db: Database, user_id: ObjectId) -> List[Dict[str, Any]]:
    user = db["user"].find_one({"_id": user_id}, {"notifications": 1})
    if not user:
        raise NotFound("User not found")
    # later appends win ties on created_at
    entries = list(reversed(user.get("notifications") or []))
    return sorted(entries, key=lambda n: n["created_at"], reverse=True)


def mark_all_read(db: Database, user_id: ObjectId) -> int:
    """Flag every notification as read in one update; returns how many entries it touched"""
    user = db["user"].find_one({"_id": user_id}, {"notifications": 1})
    if not user:
        raise NotFound("User not found")
    entries = user.get("notifications") or []
    if not entries:
        return 0
    # entries are never removed, so indexes stay valid while new ones are appended
    db["user"].update_one(
        {"_id": user_id},
        {"$set": {f"notifications.{i}.read": True for i in range(len(entries))}},
    )
    return len(entries)
