"""
permissions.py

Authorization decisions for group-scoped entities.

can_perform() is a pure function of the actor, the action and the relationship
facts a service looked up for the target (the actor's role inside the target's
group, the target's owner, the goal assignees). Services load the target first,
so a missing entity is reported as NotFound before any Forbidden.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .errors import Forbidden


class Action(str, Enum):
    GROUP_CREATE = "group.create"
    GROUP_VIEW = "group.view"
    GROUP_UPDATE = "group.update"
    GROUP_DELETE = "group.delete"
    GROUP_INVITE = "group.invite"
    GROUP_VIEW_MEMBERS = "group.view_members"
    GROUP_REMOVE_MEMBER = "group.remove_member"
    GROUP_JOIN = "group.join"
    GOAL_CREATE = "goal.create"
    GOAL_LIST = "goal.list"
    GOAL_UPDATE = "goal.update"
    GOAL_DELETE = "goal.delete"
    GOAL_VIEW_OWN = "goal.view_own"
    ASSIGNMENT_CREATE = "assignment.create"
    ASSIGNMENT_LIST = "assignment.list"
    ASSIGNMENT_UPDATE = "assignment.update"
    ASSIGNMENT_DELETE = "assignment.delete"
    SUBMISSION_CREATE = "submission.create"
    SUBMISSION_REVIEW = "submission.review"
    SUBMISSION_LIST = "submission.list"
    RESOURCE_UPLOAD = "resource.upload"
    RESOURCE_VIEW = "resource.view"
    RESOURCE_DELETE = "resource.delete"


@dataclass(frozen=True)
class Actor:
    """Authenticated identity: user id plus the global platform role."""
    user_id: int
    role: str

    @classmethod
    def from_user(cls, user: models.User) -> "Actor":
        return cls(user_id=user.id, role=user.role)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class Target:
    group_role: Optional[str] = None  # actor's GroupMember.role in the target's group
    owner_id: Optional[int] = None  # createdBy / uploadedBy
    assignee_ids: FrozenSet[int] = field(default_factory=frozenset)

    @property
    def is_member(self) -> bool:
        return self.group_role is not None

    @property
    def is_group_mentor(self) -> bool:
        return self.group_role == "mentor"


def _group_mentor(actor: Actor, target: Target) -> bool:
    return target.is_group_mentor


def _member(actor: Actor, target: Target) -> bool:
    return target.is_member


def _member_or_admin(actor: Actor, target: Target) -> bool:
    return actor.is_admin or target.is_member


def _owner(actor: Actor, target: Target) -> bool:
    return target.owner_id is not None and target.owner_id == actor.user_id


RULES: Dict[Action, Callable[[Actor, Target], bool]] = {
    Action.GROUP_CREATE: lambda actor, target: actor.role == "mentor",
    Action.GROUP_VIEW: _member_or_admin,
    Action.GROUP_UPDATE: _group_mentor,
    Action.GROUP_DELETE: lambda actor, target: actor.is_admin or target.is_group_mentor,
    Action.GROUP_INVITE: _group_mentor,
    Action.GROUP_VIEW_MEMBERS: _group_mentor,
    Action.GROUP_REMOVE_MEMBER: _group_mentor,
    Action.GROUP_JOIN: lambda actor, target: not target.is_member,
    Action.GOAL_CREATE: _group_mentor,
    Action.GOAL_LIST: _group_mentor,
    Action.GOAL_UPDATE: _group_mentor,
    Action.GOAL_DELETE: _group_mentor,
    Action.GOAL_VIEW_OWN: lambda actor, target: actor.user_id in target.assignee_ids,
    Action.ASSIGNMENT_CREATE: _group_mentor,
    Action.ASSIGNMENT_LIST: _member_or_admin,
    Action.ASSIGNMENT_UPDATE: _owner,
    Action.ASSIGNMENT_DELETE: _owner,
    Action.SUBMISSION_CREATE: _member,
    Action.SUBMISSION_REVIEW: _group_mentor,
    Action.SUBMISSION_LIST: _group_mentor,
    Action.RESOURCE_UPLOAD: _group_mentor,
    Action.RESOURCE_VIEW: _member_or_admin,
    # admin skips the membership requirement; everyone else must be a member and the uploader
    Action.RESOURCE_DELETE: lambda actor, target: actor.is_admin or (target.is_member and _owner(actor, target)),
}


def can_perform(actor: Actor, action: Action, target: Target) -> bool:
    return RULES[action](actor, target)


def ensure_can(actor: Actor, action: Action, target: Target, message: Optional[str] = None) -> None:
    if not can_perform(actor, action, target):
        raise Forbidden(message or "You do not have permission to perform this action")


async def membership_role(db: AsyncSession, group_id: int, user_id: int) -> Optional[str]:
    """Role the user holds inside the group, or None when not a member."""
    result = await db.execute(
        select(models.GroupMember.role).where(
            models.GroupMember.group_id == group_id,
            models.GroupMember.user_id == user_id,
        )
    )
    return result.scalars().first()


async def group_target(db: AsyncSession, actor: Actor, group_id: int, **facts) -> Target:
    return Target(group_role=await membership_role(db, group_id, actor.user_id), **facts)
