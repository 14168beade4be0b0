"""
MongoDB access helpers.

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; request
handlers get the database through the `get_db` dependency so tests can swap
in another store.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from errors import ServiceUnavailable
from settings import settings

logger = logging.getLogger(__name__)

NEWEST_FIRST: List[Tuple[str, int]] = [("created_at", DESCENDING), ("_id", DESCENDING)]

client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.database_configured():
    client = MongoClient(settings.DATABASE_URL)
    db = client[settings.DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise ServiceUnavailable("Database not configured")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_object_id(value: Any) -> Optional[ObjectId]:
    """Return an ObjectId, or None when the value cannot be one"""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with timestamps and return its id as a string"""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True)
    else:
        data_dict = dict(data)

    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now

    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
    skip: int = 0,
    projection: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(list(sort))
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Database) -> None:
    database["user"].create_index([("email", ASCENDING)], unique=True)
    complaints = database["complaint"]
    complaints.create_index([("student", ASCENDING)])
    complaints.create_index([("status", ASCENDING)])
    complaints.create_index([("category", ASCENDING)])
    complaints.create_index([("priority", ASCENDING)])
    complaints.create_index([("created_at", DESCENDING)])
    database["announcement"].create_index([("is_active", ASCENDING), ("created_at", DESCENDING)])
    logger.info("Indexes ensured on %s", database.name)


def serialize(value: Any) -> Any:
    """Make a stored document JSON friendly: _id -> id, ObjectId -> str, dates -> ISO"""
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if k == "_id":
                out["id"] = str(v)
            else:
                out[k] = serialize(v)
        return out
    if isinstance(value, list):
        return [serialize(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
