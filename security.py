"""
Authorization gate: password hashing, signed tokens and the FastAPI
dependencies that resolve a bearer token to an Identity.

Ownership rules are not checked here; the complaint operations compare the
resolved identity against the record they touch.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pymongo.database import Database

from database import get_db, parse_object_id
from errors import Forbidden, Unauthenticated
from schemas import Identity
from settings import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password cannot be empty")
    salt = bcrypt.gensalt(rounds=settings.PASSWORD_BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8")[:_BCRYPT_MAX_BYTES], salt).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(
            password.encode("utf-8")[:_BCRYPT_MAX_BYTES],
            hashed_password.encode("utf-8"),
        )
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Signed token carrying the user id, valid for ACCESS_TOKEN_EXPIRE_DAYS by default"""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)
    )
    to_encode: Dict[str, Any] = {"sub": str(user_id), "exp": expire}
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> str:
    """Return the user id from a token; expired or tampered tokens are Unauthenticated"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise Unauthenticated("Not authorized, token failed")
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated("Not authorized, token failed")
    return user_id


def identity_from_user(user: Dict[str, Any]) -> Identity:
    return Identity(
        id=str(user["_id"]),
        name=user["name"],
        email=user["email"],
        role=user.get("role", "student"),
        room_number=user.get("room_number"),
        hostel_block=user.get("hostel_block"),
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Database = Depends(get_db),
) -> Identity:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Not authorized, no token")

    user_id = parse_object_id(decode_access_token(credentials.credentials))
    user = db["user"].find_one({"_id": user_id}, {"password": 0, "notifications": 0}) if user_id else None
    if not user or not user.get("is_active", True):
        raise Unauthenticated("Not authorized, user not found")
    return identity_from_user(user)


def require_admin(identity: Identity = Depends(get_current_user)) -> Identity:
    if not identity.is_admin:
        raise Forbidden("Admin access required")
    return identity
