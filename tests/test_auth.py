from datetime import timedelta

from bson import ObjectId

from conftest import DEFAULT_PASSWORD
from security import create_access_token


def _register(client, **overrides):
    body = {
        "name": "Asha Verma",
        "email": "asha@hostelops.in",
        "password": "hunter22",
        "room_number": "B-204",
        "hostel_block": "Block B",
        "phone": "9000000001",
    }
    body.update(overrides)
    return client.post("/auth/register", json=body)


def test_register_user(client, mongo_db):
    """Registration returns a token and a public profile"""
    response = _register(client)

    assert response.status_code == 201
    data = response.json()
    assert data["token"]
    assert data["user"]["email"] == "asha@hostelops.in"
    assert data["user"]["role"] == "student"
    assert "password" not in data["user"]
    assert "notifications" not in data["user"]

    stored = mongo_db["user"].find_one({"email": "asha@hostelops.in"})
    assert stored["password"] != "hunter22"


def test_register_cannot_choose_admin_role(client):
    response = _register(client, role="admin")

    assert response.status_code == 201
    assert response.json()["user"]["role"] == "student"


def test_register_duplicate_email_is_case_insensitive(client):
    _register(client)
    response = _register(client, email="ASHA@HostelOps.in")

    assert response.status_code == 400
    assert response.json()["detail"] == "Email already registered"
    assert response.json()["field"] == "email"


def test_register_rejects_short_password(client):
    response = _register(client, password="123")

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "password"


def test_register_requires_name(client):
    response = _register(client, name="")

    assert response.status_code == 400


def test_register_rejects_blank_name(client, mongo_db):
    response = _register(client, name="   ")

    assert response.status_code == 400
    assert response.json()["field"] == "name"
    assert mongo_db["user"].count_documents({}) == 0


def test_login_success_stamps_last_login(client, student, mongo_db):
    assert mongo_db["user"].find_one({"_id": student["oid"]}).get("last_login") is None

    response = client.post(
        "/auth/login",
        json={"email": student["email"].upper(), "password": DEFAULT_PASSWORD},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["token"]
    assert data["user"]["id"] == student["id"]
    assert mongo_db["user"].find_one({"_id": student["oid"]})["last_login"] is not None


def test_login_token_opens_protected_routes(client, student):
    token = client.post(
        "/auth/login",
        json={"email": student["email"], "password": DEFAULT_PASSWORD},
    ).json()["token"]

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json()["user"]["email"] == student["email"]


def test_login_invalid_credentials(client, student):
    response = client.post(
        "/auth/login",
        json={"email": student["email"], "password": "wrongpassword"},
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


def test_login_unknown_email(client):
    response = client.post(
        "/auth/login",
        json={"email": "nobody@hostelops.in", "password": "whatever"},
    )

    assert response.status_code == 401


def test_login_inactive_account(client, make_user):
    user = make_user("student", is_active=False)

    response = client.post(
        "/auth/login",
        json={"email": user["email"], "password": DEFAULT_PASSWORD},
    )

    assert response.status_code == 401


def test_me_requires_token(client):
    response = client.get("/auth/me")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_me_rejects_garbage_token(client):
    response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_me_rejects_expired_token(client, student):
    token = create_access_token(student["id"], expires_delta=timedelta(seconds=-10))

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_me_rejects_token_for_missing_user(client):
    token = create_access_token(str(ObjectId()))

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_me_rejects_deactivated_user(client, student, mongo_db):
    mongo_db["user"].update_one({"_id": student["oid"]}, {"$set": {"is_active": False}})

    response = client.get("/auth/me", headers=student["headers"])

    assert response.status_code == 401


def test_me_returns_profile(client, student):
    response = client.get("/auth/me", headers=student["headers"])

    assert response.status_code == 200
    user = response.json()["user"]
    assert user["id"] == student["id"]
    assert user["room_number"] == student["room_number"]
    assert "password" not in user


def test_update_profile_changes_only_given_fields(client, student):
    response = client.put(
        "/auth/profile",
        json={"phone": "9111111111"},
        headers=student["headers"],
    )

    assert response.status_code == 200
    user = response.json()["user"]
    assert user["phone"] == "9111111111"
    assert user["name"] == student["name"]
    assert user["room_number"] == student["room_number"]


def test_profile_edit_leaves_complaint_snapshot_alone(client, student, admin, file_complaint):
    complaint = file_complaint(student)

    client.put(
        "/auth/profile",
        json={"name": "Renamed Student", "room_number": "Z-999"},
        headers=student["headers"],
    )

    listed = client.get("/complaints", headers=admin["headers"]).json()["complaints"]
    stored = next(c for c in listed if c["id"] == complaint["id"])
    assert stored["student_name"] == student["name"]
    assert stored["student_room"] == student["room_number"]


def test_list_users_admin_only(client, student, admin, other_student):
    forbidden = client.get("/auth/users", headers=student["headers"])
    assert forbidden.status_code == 403

    response = client.get("/auth/users", headers=admin["headers"])

    assert response.status_code == 200
    users = response.json()["users"]
    ids = [u["id"] for u in users]
    assert ids == [other_student["id"], student["id"]]
    assert admin["id"] not in ids
    assert all("password" not in u for u in users)


def test_notifications_newest_first_and_mark_read(client, student, admin, file_complaint):
    complaint = file_complaint(student)
    client.put(f"/complaints/{complaint['id']}", json={"status": "In Progress"}, headers=admin["headers"])
    client.put(f"/complaints/{complaint['id']}", json={"status": "Resolved"}, headers=admin["headers"])

    notifications = client.get("/auth/notifications", headers=student["headers"]).json()["notifications"]

    assert [n["type"] for n in notifications] == ["success", "info"]
    assert notifications[0]["message"] == 'Your complaint "Ceiling fan not working" status changed to Resolved'
    assert all(n["read"] is False for n in notifications)

    response = client.put("/auth/notifications/read", headers=student["headers"])
    assert response.status_code == 200

    notifications = client.get("/auth/notifications", headers=student["headers"]).json()["notifications"]
    assert len(notifications) == 2
    assert all(n["read"] is True for n in notifications)


def test_mark_read_with_no_notifications(client, student):
    response = client.put("/auth/notifications/read", headers=student["headers"])

    assert response.status_code == 200
    assert client.get("/auth/notifications", headers=student["headers"]).json()["notifications"] == []
