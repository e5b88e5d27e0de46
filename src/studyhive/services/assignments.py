"""
Assignment lifecycle. Creation is open to the group's mentor; afterwards only
the creator may change or retire an assignment. Delete is a soft delete.
"""
import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud, models, schemas
from ..errors import NotFound
from ..permissions import Action, Actor, Target, ensure_can, group_target

logger = logging.getLogger(__name__)


async def create_assignment(
    db: AsyncSession, actor: Actor, goal_id: int, data: schemas.AssignmentCreate
) -> models.Assignment:
    goal = await crud.get_goal_or_404(db, goal_id, "Failed to get the goal")
    await crud.get_group_or_404(db, goal.group_id, "Failed to get the group")
    ensure_can(actor, Action.ASSIGNMENT_CREATE, await group_target(db, actor, goal.group_id), "User not authorized to create assignment")

    assignment = models.Assignment(
        title=data.title,
        description=data.description,
        goal_id=goal.id,
        group_id=goal.group_id,
        created_by=actor.user_id,
        deadline=data.deadline,
        reference_materials=list(data.reference_materials),
        max_marks=data.max_marks,
        is_active=True,
    )
    db.add(assignment)
    await db.commit()
    await db.refresh(assignment)
    return assignment


async def list_assignments_by_goal(db: AsyncSession, actor: Actor, goal_id: int) -> List[models.Assignment]:
    goal = await crud.get_goal_or_404(db, goal_id, "Failed to get the goal")
    ensure_can(actor, Action.ASSIGNMENT_LIST, await group_target(db, actor, goal.group_id), "User not authorized to view these assignments")

    result = await db.execute(
        select(models.Assignment)
        .where(models.Assignment.goal_id == goal.id, models.Assignment.is_active.is_(True))
        .order_by(models.Assignment.created_at, models.Assignment.id)
    )
    return list(result.scalars().all())


async def _owned_assignment(db: AsyncSession, actor: Actor, assignment_id: int, action: Action, message: str) -> models.Assignment:
    assignment = await db.get(models.Assignment, assignment_id)
    if not assignment:
        raise NotFound("Failed to get assignment")
    ensure_can(actor, action, Target(owner_id=assignment.created_by), message)
    return assignment


async def update_assignment(
    db: AsyncSession, actor: Actor, assignment_id: int, data: schemas.AssignmentUpdate
) -> models.Assignment:
    assignment = await _owned_assignment(db, actor, assignment_id, Action.ASSIGNMENT_UPDATE, "User not authorized to update assignment")

    changes = data.model_dump(exclude_unset=True)
    for field in ("title", "max_marks", "is_active", "reference_materials"):
        if changes.get(field) is not None:
            setattr(assignment, field, changes[field])
    # description and deadline may be cleared with an explicit null
    for field in ("description", "deadline"):
        if field in changes:
            setattr(assignment, field, changes[field])

    await db.commit()
    await db.refresh(assignment)
    return assignment


async def delete_assignment(db: AsyncSession, actor: Actor, assignment_id: int) -> None:
    assignment = await _owned_assignment(db, actor, assignment_id, Action.ASSIGNMENT_DELETE, "User not authorized to delete assignment")
    assignment.is_active = False
    await db.commit()
    logger.info("User %s retired assignment %s", actor.user_id, assignment_id)
