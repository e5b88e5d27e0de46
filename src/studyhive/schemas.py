"""
schemas.py

Pydantic schemas for request/response validation in the StudyHive backend.
JSON payloads use camelCase field names (inviteCode, assignedTo, ...); the
Python side keeps snake_case through aliases.
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal
from datetime import datetime, timezone
import re

UserRole = Literal["admin", "mentor", "learner"]
GoalStatus = Literal["not_started", "ongoing", "completed"]
ReviewStatus = Literal["reviewed", "revision_required"]
ResourceType = Literal["file", "link", "note"]
ResourceSort = Literal["recent", "oldest", "title"]

PASSWORD_RULE = "Password must be at least 8 characters long and include uppercase, lowercase, number and special character."


def check_password_strength(v: str) -> str:
    if (
        len(v) < 8 or
        not re.search(r"[A-Z]", v) or
        not re.search(r"[a-z]", v) or
        not re.search(r"\d", v) or
        not re.search(r"[^A-Za-z0-9]", v)
    ):
        raise ValueError(PASSWORD_RULE)
    return v


def to_naive_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is not None and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


class PartialUpdate(CamelModel):
    """Update payloads must carry at least one field."""

    @model_validator(mode="after")
    def at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be updated")
        return self


# Auth Schemas
class UserCreate(CamelModel):
    """Schema for user registration."""
    name: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str
    role: UserRole = "learner"

    @field_validator("password")
    def password_strength(cls, v):
        return check_password_strength(v)

    @field_validator("email")
    def lowercase_email(cls, v):
        return v.lower()


class UserLogin(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    def lowercase_email(cls, v):
        return v.lower()


class EmailRequest(CamelModel):
    """Schema for resend-verification and forgot-password requests."""
    email: EmailStr

    @field_validator("email")
    def lowercase_email(cls, v):
        return v.lower()


class ResetPassword(CamelModel):
    new_password: str

    @field_validator("new_password")
    def password_strength(cls, v):
        return check_password_strength(v)


class ChangePassword(CamelModel):
    old_password: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    def password_strength(cls, v):
        return check_password_strength(v)


class RefreshTokenRequest(CamelModel):
    refresh_token: Optional[str] = None


class UserResponse(CamelModel):
    """Public view of a user; never includes hashes or tokens."""
    id: int
    name: str
    email: str
    role: str
    is_email_verified: bool
    created_at: datetime
    updated_at: datetime


class UserSummary(CamelModel):
    id: int
    name: str
    email: str


# Group Schemas
class GroupCreate(CamelModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=1)


class GroupJoin(CamelModel):
    invite_code: str = Field(..., min_length=1, max_length=32)


class GroupUpdate(PartialUpdate):
    new_name: Optional[str] = Field(None, min_length=1, max_length=100)
    new_description: Optional[str] = Field(None, min_length=1)

    @model_validator(mode="after")
    def needs_a_value(self):
        if not self.new_name and not self.new_description:
            raise ValueError("At least one of newName or newDescription must be provided")
        return self


class GroupCreated(CamelModel):
    group_id: int
    name: str
    invite_code: str


class JoinedGroup(CamelModel):
    group_id: int
    name: str
    role: str


class GroupDetail(CamelModel):
    group_id: int
    name: str
    description: Optional[str]
    mentor_id: int
    created_at: datetime


class GroupMemberResponse(CamelModel):
    user_id: int
    name: str
    email: str
    role: str
    joined_at: datetime


# Goal Schemas
class GoalCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    assigned_to: List[int] = Field(..., min_length=1)


class GoalUpdate(PartialUpdate):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[GoalStatus] = None
    assigned_to: Optional[List[int]] = Field(None, min_length=1)


class GoalResponse(CamelModel):
    id: int
    title: str
    description: Optional[str]
    group_id: int
    group_name: Optional[str] = None
    status: str
    created_by: Optional[UserSummary]
    assigned_to: List[UserSummary]
    created_at: datetime


# Assignment Schemas
class AssignmentCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    reference_materials: List[str] = []
    max_marks: int = Field(100, ge=1)

    @field_validator("deadline")
    def normalize_deadline(cls, v):
        return to_naive_utc(v)


class AssignmentUpdate(PartialUpdate):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    reference_materials: Optional[List[str]] = None
    max_marks: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None

    @field_validator("deadline")
    def normalize_deadline(cls, v):
        return to_naive_utc(v)


class AssignmentResponse(CamelModel):
    id: int
    title: str
    description: Optional[str]
    goal_id: int
    group_id: int
    created_by: int
    deadline: Optional[datetime]
    reference_materials: List[str]
    max_marks: int
    is_active: bool


class AssignmentListItem(CamelModel):
    id: int
    title: str
    deadline: Optional[datetime]
    max_marks: int


# Submission Schemas
class ReviewRequest(CamelModel):
    status: ReviewStatus
    feedback: Optional[str] = None
    marks_obtained: Optional[int] = Field(None, ge=0)


class SubmissionReceipt(CamelModel):
    submission_id: int
    status: str
    submitted_at: Optional[datetime] = None


class ReviewReceipt(CamelModel):
    submission_id: int
    status: str
    reviewed_at: datetime


class SubmissionResponse(CamelModel):
    id: int
    user: UserSummary
    status: str
    submitted_file: Optional[str]
    submitted_text: Optional[str]
    marks_obtained: Optional[int]
    feedback: Optional[str]
    submitted_at: Optional[datetime]
    reviewed_at: Optional[datetime]


class SubmissionList(CamelModel):
    count: int
    submissions: List[SubmissionResponse]


# Resource Schemas
class ResourceCreated(CamelModel):
    resource_id: int
    title: str
    type: str
    uploaded_by: int
    created_at: datetime


class ResourceResponse(CamelModel):
    id: int
    title: str
    description: Optional[str]
    type: str
    group_id: int
    uploaded_by: UserSummary
    file_url: Optional[str]
    file_name: Optional[str]
    file_size: Optional[int]
    link_url: Optional[str]
    created_at: datetime


# Health
class HealthStatus(CamelModel):
    status: str
    database: str
    uptime: float
    timestamp: datetime
