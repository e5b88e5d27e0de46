"""
models.py

SQLAlchemy ORM models for the StudyHive backend.
Defines User, Group, GroupMember, Goal, GoalAssignee, Assignment, Submission and Resource.
Uniqueness rules live here as database constraints so concurrent requests
for the same key collide in the database rather than in application code.
"""
from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Text, Boolean, JSON, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base

from .utils import utcnow

Base = declarative_base()

RESOURCE_TYPES = ("file", "link", "note")


class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class User(TimestampMixin, Base):
    """
    User model: a platform account with a global role (admin, mentor, learner).
    Holds the credential material: password hash, the single active refresh
    token hash, and the hashed one-time tokens for email verification and
    password reset.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    email = Column(String(120), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default="learner", nullable=False)
    is_email_verified = Column(Boolean, default=False, nullable=False)
    refresh_token_hash = Column(String(64), nullable=True)
    forgot_password_token = Column(String(64), nullable=True, index=True)
    forgot_password_expiry = Column(DateTime, nullable=True)
    email_verification_token = Column(String(64), nullable=True, index=True)
    email_verification_expiry = Column(DateTime, nullable=True)


class Group(TimestampMixin, Base):
    """
    Group model: a mentor's classroom. Membership is not stored here;
    group_members is the only membership record.
    """
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    mentor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    invite_code = Column(String(32), unique=True, index=True, nullable=False)


class GroupMember(TimestampMixin, Base):
    """GroupMember model: (group, user) pair with the role held inside that group."""
    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),)

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # mentor, learner
    joined_at = Column(DateTime, default=utcnow, nullable=False)


class Goal(TimestampMixin, Base):
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), default="not_started", nullable=False)  # not_started, ongoing, completed
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)


class GoalAssignee(Base):
    """Association rows for Goal.assignedTo."""
    __tablename__ = "goal_assignees"
    __table_args__ = (UniqueConstraint("goal_id", "user_id", name="uq_goal_assignees_goal_user"),)

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)


class Assignment(TimestampMixin, Base):
    """
    Assignment model: work attached to a goal. group_id is copied from the goal.
    is_active=False is the soft-delete marker.
    """
    __tablename__ = "assignments"
    __table_args__ = (Index("ix_assignments_goal_active", "goal_id", "is_active"),)

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    deadline = Column(DateTime, nullable=True, index=True)
    reference_materials = Column(JSON, default=list, nullable=False)
    max_marks = Column(Integer, default=100, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Submission(TimestampMixin, Base):
    __tablename__ = "submissions"
    __table_args__ = (UniqueConstraint("assignment_id", "user_id", name="uq_submissions_assignment_user"),)

    id = Column(Integer, primary_key=True, index=True)
    assignment_id = Column(Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    submitted_file_url = Column(String(500), nullable=True)
    submitted_file_public_id = Column(String(255), nullable=True)
    submitted_file_resource_type = Column(String(20), nullable=True)
    submitted_text = Column(Text, nullable=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, submitted, reviewed, revision_required
    marks_obtained = Column(Integer, nullable=True)
    feedback = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)


class Resource(TimestampMixin, Base):
    """
    Resource model: files, links and notes shared in a group.
    type decides which content field is mandatory (file_url, link_url, description).
    """
    __tablename__ = "resources"
    __table_args__ = (UniqueConstraint("group_id", "title", name="uq_resources_group_title"),)

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=True)
    type = Column(String(10), nullable=False)  # file, link, note
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    file_url = Column(String(500), nullable=True)
    file_name = Column(String(255), nullable=True)
    file_size = Column(Integer, nullable=True)
    cloudinary_public_id = Column(String(255), nullable=True)
    cloudinary_resource_type = Column(String(20), nullable=True)
    link_url = Column(String(500), nullable=True)
