"""
Complaint lifecycle: filing, triage, engagement and statistics.

Status rules
------------
Complaints start as "Pending". Admins may move a complaint to any status;
there is no enforced ordering. The first move into "Resolved" stamps
`resolved_at`, which is never rewritten afterwards. Every update whose
resulting status differs from the previous one sends the owning student a
notification (`success` for Resolved, `info` otherwise).

Ownership
---------
Rating is limited to the owning student and reports NotFound for anyone
else, so callers cannot probe for other students' complaints.
"""

import logging
import math
import re
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import NEWEST_FIRST, create_document, get_documents, parse_object_id, utcnow
from errors import NotFound, ValidationError
from notifications import notify
from schemas import (
    CATEGORIES,
    PRIORITIES,
    STATUSES,
    Comment,
    Complaint,
    ComplaintCreateRequest,
    ComplaintUpdateRequest,
    Identity,
)

logger = logging.getLogger(__name__)

COLLECTION = "complaint"
RESOLVED = "Resolved"
DEFAULT_PAGE_SIZE = 20


def _required(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError("Title, category and description required", field=field)
    return str(value).strip()


def _find(db: Database, complaint_id: Any) -> Dict[str, Any]:
    oid = parse_object_id(complaint_id)
    complaint = db[COLLECTION].find_one({"_id": oid}) if oid else None
    if not complaint:
        raise NotFound("Complaint not found")
    return complaint


def _equality_filters(status: Optional[str], category: Optional[str], priority: Optional[str]) -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    if status:
        filt["status"] = status
    if category:
        filt["category"] = category
    if priority:
        filt["priority"] = priority
    return filt


def create_complaint(db: Database, student: Identity, payload: ComplaintCreateRequest) -> Dict[str, Any]:
    title = _required(payload.title, "title")
    category = _required(payload.category, "category")
    description = _required(payload.description, "description")
    if category not in CATEGORIES:
        raise ValidationError(f"Unknown category: {category}", field="category")
    if payload.priority is not None and payload.priority not in PRIORITIES:
        raise ValidationError(f"Unknown priority: {payload.priority}", field="priority")

    complaint = Complaint(
        student=student.object_id,
        student_name=student.name,
        student_room=student.room_number,
        student_block=student.hostel_block,
        title=title,
        category=category,
        description=description,
        priority=payload.priority or "Medium",
        location=payload.location,
        tags=payload.tags or [],
        images=payload.images or [],
        is_public=True if payload.is_public is None else payload.is_public,
    )
    complaint_id = create_document(db, COLLECTION, complaint)
    logger.info("Complaint %s filed by %s (%s)", complaint_id, student.id, category)
    return db[COLLECTION].find_one({"_id": ObjectId(complaint_id)})


def list_my_complaints(
    db: Database,
    student: Identity,
    status: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
) -> List[Dict[str, Any]]:
    filt = _equality_filters(status, category, priority)
    filt["student"] = student.object_id
    return get_documents(db, COLLECTION, filt, sort=NEWEST_FIRST)


def list_all_complaints(
    db: Database,
    status: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    """Admin listing, newest first, with a total count for the pager"""
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive", field="page" if page < 1 else "limit")

    filt = _equality_filters(status, category, priority)
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        filt["$or"] = [
            {"title": pattern},
            {"description": pattern},
            {"student_name": pattern},
        ]

    total = db[COLLECTION].count_documents(filt)
    complaints = get_documents(
        db, COLLECTION, filt, limit=limit, sort=NEWEST_FIRST, skip=(page - 1) * limit
    )
    return {
        "complaints": complaints,
        "total": total,
        "pages": math.ceil(total / limit),
        "page": page,
    }


def update_complaint(db: Database, complaint_id: Any, payload: ComplaintUpdateRequest) -> Dict[str, Any]:
    """Apply admin fields and the status rules.

    Falsy values (None, "") leave the stored field unchanged, so this
    endpoint cannot clear admin_note or assigned_to back to empty.
    """
    complaint = _find(db, complaint_id)
    old_status = complaint.get("status", "Pending")
    if payload.status and payload.status not in STATUSES:
        raise ValidationError(f"Unknown status: {payload.status}", field="status")

    new_status = payload.status or old_status
    now = utcnow()
    changes: Dict[str, Any] = {"status": new_status, "updated_at": now}
    if payload.admin_note:
        changes["admin_note"] = payload.admin_note
    if payload.assigned_to:
        changes["assigned_to"] = payload.assigned_to
    if payload.expected_resolution:
        changes["expected_resolution"] = payload.expected_resolution
    if payload.rejection_reason:
        changes["rejection_reason"] = payload.rejection_reason
    if payload.status == RESOLVED and not complaint.get("resolved_at"):
        changes["resolved_at"] = now

    db[COLLECTION].update_one({"_id": complaint["_id"]}, {"$set": changes})
    updated = db[COLLECTION].find_one({"_id": complaint["_id"]})

    if old_status != new_status:
        logger.info("Complaint %s: %s -> %s", complaint["_id"], old_status, new_status)
        message = f'Your complaint "{complaint["title"]}" status changed to {new_status}'
        kind = "success" if new_status == RESOLVED else "info"
        try:
            notify(db, complaint["student"], message, kind)
        except PyMongoError:
            # the status change is already committed; the student just misses the ping
            logger.warning("Could not notify student %s about complaint %s", complaint["student"], complaint["_id"], exc_info=True)

    return updated


def toggle_upvote(db: Database, user: Identity, complaint_id: Any) -> Dict[str, Any]:
    """Add or remove the caller's upvote.

    Read-then-write on the whole list: two different users toggling the same
    complaint at once can race, and the last write wins.
    """
    complaint = _find(db, complaint_id)
    if complaint["student"] == user.object_id:
        raise ValidationError("Can't upvote your own complaint")

    upvotes = list(complaint.get("upvotes") or [])
    if user.object_id in upvotes:
        upvotes = [u for u in upvotes if u != user.object_id]
        upvoted = False
    else:
        upvotes.append(user.object_id)
        upvoted = True

    db[COLLECTION].update_one({"_id": complaint["_id"]}, {"$set": {"upvotes": upvotes, "updated_at": utcnow()}})
    return {"upvotes": len(upvotes), "upvoted": upvoted}


def rate_complaint(
    db: Database, student: Identity, complaint_id: Any, rating: int, rating_note: Optional[str] = None
) -> Dict[str, Any]:
    """Owner-only rating of a resolved complaint. Rating again overwrites."""
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5", field="rating")

    oid = parse_object_id(complaint_id)
    updated = None
    if oid:
        updated = db[COLLECTION].find_one_and_update(
            {"_id": oid, "student": student.object_id, "status": RESOLVED},
            {"$set": {"rating": rating, "rating_note": rating_note, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    if not updated:
        raise NotFound("Not found or not resolved yet")
    return updated


def add_comment(db: Database, user: Identity, complaint_id: Any, text: Optional[str]) -> List[Dict[str, Any]]:
    if not text or not text.strip():
        raise ValidationError("Comment text required", field="text")
    complaint = _find(db, complaint_id)

    comment = Comment(
        author=user.object_id,
        author_name=user.name,
        author_role=user.role,
        text=text.strip(),
        created_at=utcnow(),
    )
    db[COLLECTION].update_one(
        {"_id": complaint["_id"]},
        {"$push": {"comments": comment.model_dump(by_alias=True)}, "$set": {"updated_at": utcnow()}},
    )
    updated = db[COLLECTION].find_one({"_id": complaint["_id"]}, {"comments": 1})
    return updated.get("comments", [])


def _group_counts(db: Database, field: str) -> Dict[str, int]:
    rows = db[COLLECTION].aggregate([{"$group": {"_id": f"${field}", "count": {"$sum": 1}}}])
    return {row["_id"]: row["count"] for row in rows if row["_id"] is not None}


def complaint_stats(db: Database) -> Dict[str, Any]:
    collection = db[COLLECTION]
    total = collection.count_documents({})
    by_status = _group_counts(db, "status")

    rating_rows = list(collection.aggregate([
        {"$match": {"rating": {"$ne": None}}},
        {"$group": {"_id": None, "avg": {"$avg": "$rating"}}},
    ]))
    avg_rating = round(rating_rows[0]["avg"], 1) if rating_rows and rating_rows[0]["avg"] is not None else 0

    resolved = get_documents(
        db,
        COLLECTION,
        {"status": RESOLVED, "resolved_at": {"$ne": None}},
        projection={"created_at": 1, "resolved_at": 1},
    )
    if resolved:
        total_seconds = sum((c["resolved_at"] - c["created_at"]).total_seconds() for c in resolved)
        avg_resolution_hrs = round(total_seconds / len(resolved) / 3600, 1)
    else:
        avg_resolution_hrs = 0

    return {
        "total": total,
        "pending": by_status.get("Pending", 0),
        "in_progress": by_status.get("In Progress", 0),
        "resolved": by_status.get("Resolved", 0),
        "rejected": by_status.get("Rejected", 0),
        "on_hold": by_status.get("On Hold", 0),
        "urgent": collection.count_documents({"priority": "Urgent", "status": {"$ne": RESOLVED}}),
        "avg_rating": avg_rating,
        "avg_resolution_hrs": avg_resolution_hrs,
        "by_category": _group_counts(db, "category"),
        "by_status": by_status,
        "by_priority": _group_counts(db, "priority"),
    }


def delete_complaint(db: Database, complaint_id: Any) -> bool:
    """Hard delete. Unknown ids are not an error."""
    oid = parse_object_id(complaint_id)
    if not oid:
        return False
    deleted = db[COLLECTION].delete_one({"_id": oid}).deleted_count > 0
    if deleted:
        logger.info("Complaint %s deleted", oid)
    return deleted
