"""
Hostel announcements. Admins post and retire them; nobody edits them.
"""

import logging
from typing import Any, Dict, List

from bson import ObjectId
from pymongo.database import Database

from database import NEWEST_FIRST, create_document, get_documents, parse_object_id, utcnow
from schemas import Announcement, AnnouncementCreateRequest, Identity
from settings import settings

logger = logging.getLogger(__name__)

COLLECTION = "announcement"


def create_announcement(db: Database, author: Identity, payload: AnnouncementCreateRequest) -> Dict[str, Any]:
    announcement = Announcement(
        title=payload.title,
        message=payload.message,
        type=payload.type,
        author=author.object_id,
        author_name=author.name,
        expires_at=payload.expires_at,
    )
    announcement_id = create_document(db, COLLECTION, announcement)
    logger.info("Announcement %s posted by %s", announcement_id, author.id)
    return db[COLLECTION].find_one({"_id": ObjectId(announcement_id)})


def list_active_announcements(db: Database, limit: int = 0) -> List[Dict[str, Any]]:
    return get_documents(
        db,
        COLLECTION,
        {"is_active": True},
        limit=limit or settings.ANNOUNCEMENTS_LIMIT,
        sort=NEWEST_FIRST,
    )


def deactivate_announcement(db: Database, announcement_id: Any) -> bool:
    """Soft delete. Any admin may retire any announcement; repeats are harmless."""
    oid = parse_object_id(announcement_id)
    if not oid:
        return False
    result = db[COLLECTION].update_one(
        {"_id": oid},
        {"$set": {"is_active": False, "updated_at": utcnow()}},
    )
    if result.modified_count:
        logger.info("Announcement %s deactivated", oid)
    return result.matched_count > 0
