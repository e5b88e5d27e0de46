"""
Goal lifecycle. Assignees must be current members of the goal's group
whenever they are set, on create and on update.
"""
import logging
from typing import Dict, List, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud, models, schemas
from ..cloudinary_utils import purge_blobs
from ..errors import InvalidAssignment
from ..permissions import Action, Actor, Target, can_perform, ensure_can, group_target

logger = logging.getLogger(__name__)


async def _validated_assignees(db: AsyncSession, group_id: int, assigned_to: Sequence[int]) -> List[int]:
    """Deduplicated assignee ids, all of them members of the group."""
    member_ids = await crud.get_member_ids(db, group_id)
    strangers = [user_id for user_id in assigned_to if user_id not in member_ids]
    if strangers:
        raise InvalidAssignment(
            errors=[{"field": "assignedTo", "message": f"User {user_id} is not a member of this group"} for user_id in strangers]
        )
    return list(dict.fromkeys(assigned_to))


async def _replace_assignees(db: AsyncSession, goal_id: int, user_ids: Sequence[int]) -> None:
    await db.execute(delete(models.GoalAssignee).where(models.GoalAssignee.goal_id == goal_id))
    db.add_all([models.GoalAssignee(goal_id=goal_id, user_id=user_id) for user_id in user_ids])


async def _to_responses(
    db: AsyncSession, goals: Sequence[models.Goal], assignees: Dict[int, List[int]], with_group: bool = False
) -> List[schemas.GoalResponse]:
    user_ids = {goal.created_by for goal in goals}
    for ids in assignees.values():
        user_ids.update(ids)
    users = {user.id: schemas.UserSummary.model_validate(user) for user in await crud.get_users_by_ids(db, user_ids)}

    group_names = {}
    if with_group and goals:
        result = await db.execute(
            select(models.Group.id, models.Group.name).where(models.Group.id.in_({goal.group_id for goal in goals}))
        )
        group_names = dict(result.all())

    return [
        schemas.GoalResponse(
            id=goal.id,
            title=goal.title,
            description=goal.description,
            group_id=goal.group_id,
            group_name=group_names.get(goal.group_id),
            status=goal.status,
            created_by=users.get(goal.created_by),
            assigned_to=[users[user_id] for user_id in assignees.get(goal.id, []) if user_id in users],
            created_at=goal.created_at,
        )
        for goal in goals
    ]


async def _assignee_map(db: AsyncSession, goal_ids: Sequence[int]) -> Dict[int, List[int]]:
    mapping: Dict[int, List[int]] = {goal_id: [] for goal_id in goal_ids}
    if not goal_ids:
        return mapping
    result = await db.execute(
        select(models.GoalAssignee.goal_id, models.GoalAssignee.user_id)
        .where(models.GoalAssignee.goal_id.in_(goal_ids))
        .order_by(models.GoalAssignee.id)
    )
    for goal_id, user_id in result.all():
        mapping[goal_id].append(user_id)
    return mapping


async def create_goal(db: AsyncSession, actor: Actor, group_id: int, data: schemas.GoalCreate) -> schemas.GoalResponse:
    group = await crud.get_group_or_404(db, group_id)
    ensure_can(actor, Action.GOAL_CREATE, await group_target(db, actor, group.id), "User is not authorised to create new goal")

    assignee_ids = await _validated_assignees(db, group.id, data.assigned_to)
    goal = models.Goal(
        title=data.title,
        description=data.description,
        group_id=group.id,
        status="not_started",
        created_by=actor.user_id,
    )
    db.add(goal)
    await db.flush()
    await _replace_assignees(db, goal.id, assignee_ids)
    await db.commit()
    await db.refresh(goal)
    return (await _to_responses(db, [goal], {goal.id: assignee_ids}))[0]


async def list_group_goals(db: AsyncSession, actor: Actor, group_id: int) -> List[schemas.GoalResponse]:
    group = await crud.get_group_or_404(db, group_id)
    ensure_can(actor, Action.GOAL_LIST, await group_target(db, actor, group.id), "User is not authorised to view goals of this group")

    result = await db.execute(
        select(models.Goal).where(models.Goal.group_id == group.id).order_by(models.Goal.created_at.desc(), models.Goal.id.desc())
    )
    goals = list(result.scalars().all())
    return await _to_responses(db, goals, await _assignee_map(db, [goal.id for goal in goals]))


async def list_my_goals(db: AsyncSession, actor: Actor) -> List[schemas.GoalResponse]:
    result = await db.execute(
        select(models.Goal)
        .join(models.GoalAssignee, models.GoalAssignee.goal_id == models.Goal.id)
        .where(models.GoalAssignee.user_id == actor.user_id)
        .order_by(models.Goal.created_at.desc(), models.Goal.id.desc())
    )
    goals = list(result.scalars().unique().all())
    assignees = await _assignee_map(db, [goal.id for goal in goals])
    visible = [
        goal for goal in goals
        if can_perform(actor, Action.GOAL_VIEW_OWN, Target(assignee_ids=frozenset(assignees[goal.id])))
    ]
    return await _to_responses(db, visible, assignees, with_group=True)


async def update_goal(db: AsyncSession, actor: Actor, goal_id: int, data: schemas.GoalUpdate) -> schemas.GoalResponse:
    goal = await crud.get_goal_or_404(db, goal_id)
    ensure_can(actor, Action.GOAL_UPDATE, await group_target(db, actor, goal.group_id), "User not authorized to update this goal")

    if data.assigned_to is not None:
        assignee_ids = await _validated_assignees(db, goal.group_id, data.assigned_to)
        await _replace_assignees(db, goal.id, assignee_ids)
    if data.title:
        goal.title = data.title
    if data.description is not None:
        goal.description = data.description
    if data.status:
        goal.status = data.status

    await db.commit()
    await db.refresh(goal)
    assignees = await _assignee_map(db, [goal.id])
    return (await _to_responses(db, [goal], assignees))[0]


async def delete_goal(db: AsyncSession, actor: Actor, goal_id: int) -> None:
    goal = await crud.get_goal_or_404(db, goal_id)
    ensure_can(actor, Action.GOAL_DELETE, await group_target(db, actor, goal.group_id), "User not authorized to delete this goal")

    assignment_ids = select(models.Assignment.id).where(models.Assignment.goal_id == goal.id)
    result = await db.execute(
        select(models.Submission.submitted_file_public_id, models.Submission.submitted_file_resource_type).where(
            models.Submission.assignment_id.in_(assignment_ids),
            models.Submission.submitted_file_public_id.is_not(None),
        )
    )
    blobs = [tuple(row) for row in result.all()]

    await db.execute(delete(models.Submission).where(models.Submission.assignment_id.in_(assignment_ids)))
    await db.execute(delete(models.Assignment).where(models.Assignment.goal_id == goal.id))
    await db.execute(delete(models.GoalAssignee).where(models.GoalAssignee.goal_id == goal.id))
    await db.delete(goal)
    await db.commit()
    logger.info("User %s deleted goal %s", actor.user_id, goal_id)
    await purge_blobs(blobs, f"goal {goal_id}")
