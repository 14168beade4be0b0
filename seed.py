"""
Default accounts created on first start.
"""

import logging
from typing import Any, Dict, List

from pymongo.database import Database

from database import create_document
from schemas import User
from security import hash_password

logger = logging.getLogger(__name__)

DEFAULT_USERS: List[Dict[str, Any]] = [
    {
        "name": "Admin User",
        "email": "admin@hostel.com",
        "password": "admin123",
        "role": "admin",
    },
    {
        "name": "Rahul Kumar",
        "email": "student@hostel.com",
        "password": "123456",
        "role": "student",
        "room_number": "A-101",
        "hostel_block": "Block A",
        "phone": "9876543210",
    },
]


def ensure_default_users(db: Database) -> int:
    """Insert the default admin and demo student if they are missing"""
    created = 0
    for account in DEFAULT_USERS:
        if db["user"].find_one({"email": account["email"]}, {"_id": 1}):
            continue
        fields = dict(account)
        fields["password"] = hash_password(fields["password"])
        create_document(db, "user", User(**fields))
        logger.info("Default %s created: %s", account["role"], account["email"])
        created += 1
    return created
