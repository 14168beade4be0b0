"""
HostelOps API - Test Configuration and Fixtures
"""
import os

# Set testing environment before the app reads its settings
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)
os.environ["ENVIRONMENT"] = "testing"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-for-testing"
os.environ["PASSWORD_BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SEED_DEFAULT_USERS"] = "false"

from typing import Any, Callable, Dict

import mongomock
import pytest
from bson import ObjectId
from faker import Faker
from fastapi.testclient import TestClient

from database import create_document, ensure_indexes, get_db
from main import app
from schemas import User
from security import create_access_token, hash_password

fake = Faker()

DEFAULT_PASSWORD = "secret123"


@pytest.fixture
def mongo_db():
    """Fresh in-memory database for each test"""
    db = mongomock.MongoClient()["hostelops_test"]
    ensure_indexes(db)
    return db


@pytest.fixture
def client(mongo_db):
    """Test client with the database dependency pointed at mongo_db"""
    app.dependency_overrides[get_db] = lambda: mongo_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(mongo_db) -> Callable[..., Dict[str, Any]]:
    """Insert a user and return its id, document fields and auth headers"""

    def _make_user(role: str = "student", **overrides) -> Dict[str, Any]:
        fields = {
            "name": fake.name(),
            "email": f"{fake.unique.user_name()}@hostelops.in".lower(),
            "password": hash_password(DEFAULT_PASSWORD),
            "role": role,
            "room_number": f"{fake.random_uppercase_letter()}-{fake.random_int(100, 499)}",
            "hostel_block": f"Block {fake.random_uppercase_letter()}",
            "phone": fake.msisdn()[:10],
        }
        fields.update(overrides)
        user_id = create_document(mongo_db, "user", User(**fields))
        token = create_access_token(user_id)
        return {
            "id": user_id,
            "oid": ObjectId(user_id),
            "name": fields["name"],
            "email": fields["email"],
            "room_number": fields["room_number"],
            "hostel_block": fields["hostel_block"],
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _make_user


@pytest.fixture
def student(make_user):
    return make_user("student")


@pytest.fixture
def other_student(make_user):
    return make_user("student")


@pytest.fixture
def admin(make_user):
    return make_user("admin", name="Warden Admin")


@pytest.fixture
def complaint_payload() -> Dict[str, Any]:
    return {
        "title": "Ceiling fan not working",
        "category": "Electrical",
        "description": "The fan stopped spinning since last night.",
        "location": "Room ceiling",
    }


@pytest.fixture
def file_complaint(client, complaint_payload):
    """POST a complaint as the given user and return the stored complaint"""

    def _file(user: Dict[str, Any], **overrides) -> Dict[str, Any]:
        body = dict(complaint_payload)
        body.update(overrides)
        response = client.post("/complaints", json=body, headers=user["headers"])
        assert response.status_code == 201, response.text
        return response.json()["complaint"]

    return _file
