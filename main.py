import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database
from pymongo.errors import PyMongoError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

import database
from announcements import create_announcement, deactivate_announcement, list_active_announcements
from complaints import (
    DEFAULT_PAGE_SIZE,
    add_comment,
    complaint_stats,
    create_complaint,
    delete_complaint,
    list_all_complaints,
    list_my_complaints,
    rate_complaint,
    toggle_upvote,
    update_complaint,
)
from database import ensure_indexes, get_db, serialize
from errors import register_exception_handlers
from logging_config import log_requests, setup_logging
from notifications import list_notifications, mark_all_read
from schemas import (
    AnnouncementCreateRequest,
    Category,
    CommentRequest,
    ComplaintCreateRequest,
    ComplaintUpdateRequest,
    Identity,
    LoginRequest,
    Priority,
    ProfileUpdateRequest,
    RateRequest,
    RegisterRequest,
    Status,
)
from security import get_current_user, require_admin
from seed import ensure_default_users
from settings import settings
from users import authenticate, get_profile, list_students, register_user, update_profile

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create indexes and seed default accounts before serving"""
    if database.db is None:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; store-backed routes will return 503")
    else:
        ensure_indexes(database.db)
        if settings.SEED_DEFAULT_USERS:
            ensure_default_users(database.db)
    yield


app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG, lifespan=lifespan)
app.state.limiter = limiter

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(log_requests)

register_exception_handlers(app)
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ----------------------
# Auth & profile
# ----------------------

@app.post("/auth/register", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_AUTH)
def register(request: Request, payload: RegisterRequest, db: Database = Depends(get_db)):
    token, user = register_user(db, payload)
    return {"token": token, "user": serialize(user)}


@app.post("/auth/login")
@limiter.limit(settings.RATE_LIMIT_AUTH)
def login(request: Request, payload: LoginRequest, db: Database = Depends(get_db)):
    token, user = authenticate(db, payload.email, payload.password)
    return {"token": token, "user": serialize(user)}


@app.get("/auth/me")
def me(identity: Identity = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"user": serialize(get_profile(db, identity.object_id))}


@app.put("/auth/profile")
def edit_profile(
    payload: ProfileUpdateRequest,
    identity: Identity = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return {"user": serialize(update_profile(db, identity.object_id, payload))}


@app.get("/auth/notifications")
def my_notifications(identity: Identity = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"notifications": serialize(list_notifications(db, identity.object_id))}


@app.put("/auth/notifications/read")
def read_notifications(identity: Identity = Depends(get_current_user), db: Database = Depends(get_db)):
    mark_all_read(db, identity.object_id)
    return {"message": "All notifications marked as read"}


@app.get("/auth/users")
def all_students(identity: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    return {"users": serialize(list_students(db))}


# ----------------------
# Complaints
# ----------------------

@app.post("/complaints", status_code=status.HTTP_201_CREATED)
def file_complaint(
    payload: ComplaintCreateRequest,
    identity: Identity = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return {"complaint": serialize(create_complaint(db, identity, payload))}


@app.get("/complaints/my")
def my_complaints(
    status: Optional[Status] = Query(None),
    category: Optional[Category] = Query(None),
    priority: Optional[Priority] = Query(None),
    identity: Identity = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    docs = list_my_complaints(db, identity, status=status, category=category, priority=priority)
    return {"complaints": serialize(docs)}


@app.get("/complaints/stats")
def stats(identity: Identity = Depends(require_admin), db: Database = Depends(get_db)):
    return complaint_stats(db)


@app.get("/complaints")
def all_complaints(
    status: Optional[Status] = Query(None),
    category: Optional[Category] = Query(None),
    priority: Optional[Priority] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    identity: Identity = Depends(require_admin),
    db: Database = Depends(get_db),
):
    result = list_all_complaints(
        db,
        status=status,
        category=category,
        priority=priority,
        search=search,
        page=page,
        limit=limit,
    )
    result["complaints"] = serialize(result["complaints"])
    return result


@app.put("/complaints/{complaint_id}")
def triage_complaint(
    complaint_id: str,
    payload: ComplaintUpdateRequest,
    identity: Identity = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return {"complaint": serialize(update_complaint(db, complaint_id, payload))}


@app.delete("/complaints/{complaint_id}")
def remove_complaint(
    complaint_id: str,
    identity: Identity = Depends(require_admin),
    db: Database = Depends(get_db),
):
    delete_complaint(db, complaint_id)
    return {"message": "Deleted"}


@app.post("/complaints/{complaint_id}/upvote")
def upvote(complaint_id: str, identity: Identity = Depends(get_current_user), db: Database = Depends(get_db)):
    return toggle_upvote(db, identity, complaint_id)


@app.post("/complaints/{complaint_id}/rate")
def rate(
    complaint_id: str,
    payload: RateRequest,
    identity: Identity = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    complaint = rate_complaint(db, identity, complaint_id, payload.rating, payload.rating_note)
    return {"complaint": serialize(complaint)}


@app.post("/complaints/{complaint_id}/comment")
def comment(
    complaint_id: str,
    payload: CommentRequest,
    identity: Identity = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return {"comments": serialize(add_comment(db, identity, complaint_id, payload.text))}


# ----------------------
# Announcements
# ----------------------

@app.get("/announcements")
def announcements(identity: Identity = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"announcements": serialize(list_active_announcements(db))}


@app.post("/announcements", status_code=status.HTTP_201_CREATED)
def post_announcement(
    payload: AnnouncementCreateRequest,
    identity: Identity = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return {"announcement": serialize(create_announcement(db, identity, payload))}


@app.delete("/announcements/{announcement_id}")
def retire_announcement(
    announcement_id: str,
    identity: Identity = Depends(require_admin),
    db: Database = Depends(get_db),
):
    deactivate_announcement(db, announcement_id)
    return {"message": "Removed"}


# ----------------------
# Health
# ----------------------

@app.get("/health")
@limiter.exempt
def health():
    response = {
        "status": "ok",
        "database": "not configured",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if database.db is not None:
        try:
            database.db.command("ping")
            response["database"] = "connected"
        except PyMongoError as e:
            response["database"] = f"error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT, log_config=None)
