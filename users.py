"""
Identity store: registration, login and profile maintenance.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import NEWEST_FIRST, create_document, get_documents, utcnow
from errors import NotFound, Unauthenticated, ValidationError
from schemas import ProfileUpdateRequest, RegisterRequest, User
from security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

PUBLIC_FIELDS = (
    "name",
    "email",
    "role",
    "room_number",
    "hostel_block",
    "phone",
    "avatar",
    "is_active",
    "last_login",
    "created_at",
)
# never leaves the store
PRIVATE_PROJECTION = {"password": 0, "notifications": 0}


def normalize_email(email: str) -> str:
    return email.strip().lower()


def public_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    profile: Dict[str, Any] = {"_id": user["_id"]}
    for key in PUBLIC_FIELDS:
        if key in user:
            profile[key] = user[key]
    return profile


def register_user(db: Database, payload: RegisterRequest) -> Tuple[str, Dict[str, Any]]:
    name = payload.name.strip()
    if not name:
        raise ValidationError("Name cannot be empty", field="name")
    email = normalize_email(payload.email)
    if db["user"].find_one({"email": email}, {"_id": 1}):
        raise ValidationError("Email already registered", field="email")

    user = User(
        name=name,
        email=email,
        password=hash_password(payload.password),
        role="student",
        room_number=payload.room_number,
        hostel_block=payload.hostel_block,
        phone=payload.phone,
    )
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        # lost a race with a concurrent registration
        raise ValidationError("Email already registered", field="email")

    logger.info("Registered student %s", user_id)
    created = db["user"].find_one({"_id": ObjectId(user_id)}, PRIVATE_PROJECTION)
    return create_access_token(user_id), public_profile(created)


def authenticate(db: Database, email: str, password: str) -> Tuple[str, Dict[str, Any]]:
    user = db["user"].find_one({"email": normalize_email(email)})
    if not user or not verify_password(password, user.get("password", "")):
        raise Unauthenticated("Invalid credentials")
    if not user.get("is_active", True):
        raise Unauthenticated("Invalid credentials")

    now = utcnow()
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"last_login": now, "updated_at": now}})
    user["last_login"] = now
    logger.info("User %s logged in", user["_id"])
    return create_access_token(str(user["_id"])), public_profile(user)


def get_profile(db: Database, user_id: ObjectId) -> Dict[str, Any]:
    user = db["user"].find_one({"_id": user_id}, PRIVATE_PROJECTION)
    if not user:
        raise NotFound("User not found")
    return public_profile(user)


def update_profile(db: Database, user_id: ObjectId, payload: ProfileUpdateRequest) -> Dict[str, Any]:
    """Change only the provided fields. Complaint snapshots keep the old values."""
    changes = payload.model_dump(exclude_none=True)
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if not changes["name"]:
            raise ValidationError("Name cannot be empty", field="name")
    if changes:
        changes["updated_at"] = utcnow()
        db["user"].update_one({"_id": user_id}, {"$set": changes})
    return get_profile(db, user_id)


def list_students(db: Database, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    users = get_documents(db, "user", {"role": "student"}, limit=limit, sort=NEWEST_FIRST, projection=PRIVATE_PROJECTION)
    return [public_profile(u) for u in users]
