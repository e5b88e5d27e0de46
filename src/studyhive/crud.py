"""
crud.py

Async lookups shared by the StudyHive services.
Each getter returns None when the row is missing; the *_or_404 variants raise
NotFound with the caller's message.
"""
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .errors import Conflict, NotFound


async def commit_or_conflict(db: AsyncSession, message: str) -> None:
    """Commit, turning a unique-index collision into Conflict."""
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict(message)


# User

async def get_user_by_email(db: AsyncSession, email: str) -> Optional[models.User]:
    """Asynchronously retrieve a user by (lowercased) email address."""
    result = await db.execute(select(models.User).filter(models.User.email == email.lower()))
    return result.scalars().first()


async def get_users_by_ids(db: AsyncSession, user_ids: Iterable[int]) -> List[models.User]:
    ids = set(user_ids)
    if not ids:
        return []
    result = await db.execute(select(models.User).where(models.User.id.in_(ids)))
    return list(result.scalars().all())


# Group

async def get_group_or_404(db: AsyncSession, group_id: int, message: str = "Group not found") -> models.Group:
    group = await db.get(models.Group, group_id)
    if not group:
        raise NotFound(message)
    return group


async def get_group_by_invite_code(db: AsyncSession, invite_code: str) -> Optional[models.Group]:
    result = await db.execute(select(models.Group).where(models.Group.invite_code == invite_code))
    return result.scalars().first()


async def get_membership(db: AsyncSession, group_id: int, user_id: int) -> Optional[models.GroupMember]:
    result = await db.execute(
        select(models.GroupMember).where(
            models.GroupMember.group_id == group_id,
            models.GroupMember.user_id == user_id,
        )
    )
    return result.scalars().first()


async def get_member_ids(db: AsyncSession, group_id: int) -> set:
    result = await db.execute(
        select(models.GroupMember.user_id).where(models.GroupMember.group_id == group_id)
    )
    return set(result.scalars().all())


# Goal

async def get_goal_or_404(db: AsyncSession, goal_id: int, message: str = "Goal not found") -> models.Goal:
    goal = await db.get(models.Goal, goal_id)
    if not goal:
        raise NotFound(message)
    return goal


# Assignment

async def get_active_assignment_or_404(
    db: AsyncSession, assignment_id: int, message: str = "Assignment not found or inactive"
) -> models.Assignment:
    """Inactive (soft-deleted) assignments are reported exactly like missing ones."""
    assignment = await db.get(models.Assignment, assignment_id)
    if not assignment or not assignment.is_active:
        raise NotFound(message)
    return assignment


# Submission

async def get_submission(db: AsyncSession, assignment_id: int, user_id: int) -> Optional[models.Submission]:
    result = await db.execute(
        select(models.Submission).where(
            models.Submission.assignment_id == assignment_id,
            models.Submission.user_id == user_id,
        )
    )
    return result.scalars().first()
