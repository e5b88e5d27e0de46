"""
Group and membership lifecycle.

group_members is the only membership record. A group is created together with
its mentor's membership row, and deleting a group removes everything scoped to
it in one transaction before any blob cleanup runs.
"""
import logging
import secrets
from typing import List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud, models, schemas
from ..cloudinary_utils import purge_blobs
from ..errors import Conflict, NotFound, ValidationFailed
from ..permissions import Action, Actor, Target, ensure_can, group_target

logger = logging.getLogger(__name__)


def generate_invite_code() -> str:
    return secrets.token_hex(6)


async def create_group(db: AsyncSession, actor: Actor, data: schemas.GroupCreate) -> models.Group:
    ensure_can(actor, Action.GROUP_CREATE, Target(), "Only mentors can create groups")

    group = models.Group(
        name=data.name,
        description=data.description,
        mentor_id=actor.user_id,
        invite_code=generate_invite_code(),
    )
    db.add(group)
    await db.flush()
    db.add(models.GroupMember(group_id=group.id, user_id=actor.user_id, role="mentor"))
    await crud.commit_or_conflict(db, "Failed to create group, please retry")
    await db.refresh(group)
    logger.info("User %s created group %s", actor.user_id, group.id)
    return group


async def join_group(db: AsyncSession, actor: Actor, invite_code: str) -> Tuple[models.Group, models.GroupMember]:
    group = await crud.get_group_by_invite_code(db, invite_code)
    if not group:
        raise NotFound("Invalid or expired invite code")

    target = await group_target(db, actor, group.id)
    if target.is_member:
        raise Conflict("You are already a member")
    ensure_can(actor, Action.GROUP_JOIN, target)

    membership = models.GroupMember(group_id=group.id, user_id=actor.user_id, role="learner")
    db.add(membership)
    # the unique (group_id, user_id) index settles concurrent joins by the same user
    await crud.commit_or_conflict(db, "You are already a member")
    await db.refresh(membership)
    return group, membership


async def list_joined_groups(db: AsyncSession, actor: Actor) -> List[schemas.JoinedGroup]:
    result = await db.execute(
        select(models.Group.id, models.Group.name, models.GroupMember.role)
        .join(models.GroupMember, models.GroupMember.group_id == models.Group.id)
        .where(models.GroupMember.user_id == actor.user_id)
        .order_by(models.GroupMember.joined_at.desc(), models.Group.id.desc())
    )
    return [schemas.JoinedGroup(group_id=gid, name=name, role=role) for gid, name, role in result.all()]


async def get_group(db: AsyncSession, actor: Actor, group_id: int) -> models.Group:
    group = await crud.get_group_or_404(db, group_id, "Group does not exist")
    ensure_can(actor, Action.GROUP_VIEW, await group_target(db, actor, group.id), "Access denied")
    return group


async def update_group(db: AsyncSession, actor: Actor, group_id: int, data: schemas.GroupUpdate) -> models.Group:
    group = await crud.get_group_or_404(db, group_id)
    ensure_can(actor, Action.GROUP_UPDATE, await group_target(db, actor, group.id), "User not allowed to make changes")

    if data.new_name:
        group.name = data.new_name
    if data.new_description:
        group.description = data.new_description
    await db.commit()
    await db.refresh(group)
    return group


async def get_invite_code(db: AsyncSession, actor: Actor, group_id: int) -> str:
    group = await crud.get_group_or_404(db, group_id, "Failed to fetch group details")
    ensure_can(actor, Action.GROUP_INVITE, await group_target(db, actor, group.id), "Not authorized to generate invite code")
    return group.invite_code


async def list_members(db: AsyncSession, actor: Actor, group_id: int) -> List[schemas.GroupMemberResponse]:
    group = await crud.get_group_or_404(db, group_id)
    ensure_can(actor, Action.GROUP_VIEW_MEMBERS, await group_target(db, actor, group.id), "Not authorized to get members data")

    result = await db.execute(
        select(models.GroupMember, models.User)
        .join(models.User, models.User.id == models.GroupMember.user_id)
        .where(models.GroupMember.group_id == group.id)
        .order_by(models.GroupMember.joined_at, models.GroupMember.id)
    )
    return [
        schemas.GroupMemberResponse(
            user_id=user.id, name=user.name, email=user.email, role=member.role, joined_at=member.joined_at
        )
        for member, user in result.all()
    ]


async def remove_member(db: AsyncSession, actor: Actor, group_id: int, user_id: int) -> None:
    group = await crud.get_group_or_404(db, group_id)
    ensure_can(actor, Action.GROUP_REMOVE_MEMBER, await group_target(db, actor, group.id), "Only mentors can remove group members")

    if user_id == actor.user_id:
        raise ValidationFailed("Mentor cannot remove themselves")

    membership = await crud.get_membership(db, group.id, user_id)
    if not membership:
        raise NotFound("Group member not found")

    goal_ids = select(models.Goal.id).where(models.Goal.group_id == group.id)
    await db.execute(
        delete(models.GoalAssignee).where(
            models.GoalAssignee.user_id == user_id,
            models.GoalAssignee.goal_id.in_(goal_ids),
        )
    )
    await db.delete(membership)
    await db.commit()


async def _collect_blobs(db: AsyncSession, group_id: int) -> List[Tuple[str, Optional[str]]]:
    resources = await db.execute(
        select(models.Resource.cloudinary_public_id, models.Resource.cloudinary_resource_type).where(
            models.Resource.group_id == group_id,
            models.Resource.cloudinary_public_id.is_not(None),
        )
    )
    submissions = await db.execute(
        select(models.Submission.submitted_file_public_id, models.Submission.submitted_file_resource_type)
        .join(models.Assignment, models.Assignment.id == models.Submission.assignment_id)
        .where(
            models.Assignment.group_id == group_id,
            models.Submission.submitted_file_public_id.is_not(None),
        )
    )
    return [tuple(row) for row in resources.all()] + [tuple(row) for row in submissions.all()]


async def delete_group(db: AsyncSession, actor: Actor, group_id: int) -> None:
    group = await crud.get_group_or_404(db, group_id)
    ensure_can(actor, Action.GROUP_DELETE, await group_target(db, actor, group.id), "Only the group mentor can delete the group")

    blobs = await _collect_blobs(db, group.id)
    assignment_ids = select(models.Assignment.id).where(models.Assignment.group_id == group.id)
    goal_ids = select(models.Goal.id).where(models.Goal.group_id == group.id)

    # children first, all inside the session's single transaction
    await db.execute(delete(models.Submission).where(models.Submission.assignment_id.in_(assignment_ids)))
    await db.execute(delete(models.Assignment).where(models.Assignment.group_id == group.id))
    await db.execute(delete(models.GoalAssignee).where(models.GoalAssignee.goal_id.in_(goal_ids)))
    await db.execute(delete(models.Goal).where(models.Goal.group_id == group.id))
    await db.execute(delete(models.Resource).where(models.Resource.group_id == group.id))
    await db.execute(delete(models.GroupMember).where(models.GroupMember.group_id == group.id))
    await db.delete(group)
    await db.commit()
    logger.info("User %s deleted group %s", actor.user_id, group_id)

    await purge_blobs(blobs, f"group {group_id}")
