"""
Database Schemas for the HostelOps complaint desk

Each collection model maps to a MongoDB collection with the lowercase class name:
- User -> "user" (notifications are embedded)
- Complaint -> "complaint" (comments are embedded)
- Announcement -> "announcement"

Request payloads live at the bottom of the module.
"""

from datetime import datetime
from typing import List, Literal, Optional, get_args

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["student", "admin"]
NotificationType = Literal["info", "success", "warning", "error"]
Category = Literal[
    "Electrical",
    "Plumbing",
    "Furniture",
    "Cleaning",
    "Network",
    "Security",
    "Pest Control",
    "Water Supply",
    "Other",
]
Priority = Literal["Low", "Medium", "High", "Urgent"]
Status = Literal["Pending", "In Progress", "Resolved", "Rejected", "On Hold"]
AnnouncementType = Literal["info", "warning", "maintenance", "urgent"]

CATEGORIES = get_args(Category)
PRIORITIES = get_args(Priority)
STATUSES = get_args(Status)
NOTIFICATION_TYPES = get_args(NotificationType)


class _Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class Notification(_Document):
    """In-store mailbox entry owned by one user"""
    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    message: str
    type: NotificationType = "info"
    read: bool = False
    created_at: datetime


class User(_Document):
    """Accounts for students and admins"""
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Lower-cased, unique")
    password: str = Field(..., description="bcrypt hash")
    role: Role = Field("student", description="User role")
    room_number: Optional[str] = None
    hostel_block: Optional[str] = None
    phone: Optional[str] = None
    avatar: str = ""
    is_active: bool = True
    last_login: Optional[datetime] = None
    notifications: List[Notification] = Field(default_factory=list)


class Comment(_Document):
    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    author: ObjectId
    author_name: str
    author_role: Role
    text: str
    created_at: datetime


class Complaint(_Document):
    """Maintenance complaint filed by a student.

    student_name / student_room / student_block are copied from the profile
    when the complaint is filed and never follow later profile edits.
    """
    student: ObjectId
    student_name: str
    student_room: Optional[str] = None
    student_block: Optional[str] = None

    title: str
    category: Category
    description: str
    priority: Priority = "Medium"
    location: Optional[str] = None

    status: Status = "Pending"
    assigned_to: str = ""
    admin_note: str = ""
    rejection_reason: str = ""
    expected_resolution: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    images: List[str] = Field(default_factory=list)
    upvotes: List[ObjectId] = Field(default_factory=list)
    rating: Optional[int] = Field(None, ge=1, le=5)
    rating_note: Optional[str] = None
    comments: List[Comment] = Field(default_factory=list)
    views: int = 0
    is_public: bool = True
    tags: List[str] = Field(default_factory=list)


class Announcement(_Document):
    """Hostel-wide notice; is_active=False is a soft delete"""
    title: str
    message: str
    type: AnnouncementType = "info"
    author: ObjectId
    author_name: str
    is_active: bool = True
    expires_at: Optional[datetime] = None


class Identity(BaseModel):
    """The authenticated caller, resolved from a bearer token"""
    id: str
    name: str
    email: str
    role: Role
    room_number: Optional[str] = None
    hostel_block: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def object_id(self) -> ObjectId:
        return ObjectId(self.id)


# ----------------------
# Request payloads
# ----------------------

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    room_number: Optional[str] = None
    hostel_block: Optional[str] = None
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    room_number: Optional[str] = None
    hostel_block: Optional[str] = None


class ComplaintCreateRequest(BaseModel):
    title: str
    category: Category
    description: str
    priority: Optional[Priority] = None
    location: Optional[str] = None
    tags: List[str] = []
    images: List[str] = []
    is_public: Optional[bool] = None


class ComplaintUpdateRequest(BaseModel):
    status: Optional[Status] = None
    admin_note: Optional[str] = None
    assigned_to: Optional[str] = None
    expected_resolution: Optional[datetime] = None
    rejection_reason: Optional[str] = None


class RateRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    rating_note: Optional[str] = None


class CommentRequest(BaseModel):
    text: str = ""


class AnnouncementCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    type: AnnouncementType = "info"
    expires_at: Optional[datetime] = None
