"""
assignments.py

API endpoints for assignments attached to goals.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..auth import require_role
from ..database import get_db
from ..dependencies import get_actor, user_rate_limit
from ..permissions import Actor
from ..services import assignments
from ..utils import envelope

router = APIRouter(dependencies=[Depends(user_rate_limit)])

mentor_only = [Depends(require_role(["mentor"]))]


@router.post("/goals/{goal_id}/assignments", status_code=status.HTTP_201_CREATED, dependencies=mentor_only)
async def create_assignment(
    goal_id: int,
    payload: schemas.AssignmentCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    assignment = await assignments.create_assignment(db, actor, goal_id, payload)
    return envelope("Assignment created successfully", schemas.AssignmentResponse.model_validate(assignment))


@router.get("/goals/{goal_id}/assignments")
async def get_assignments_by_goal(goal_id: int, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    rows = await assignments.list_assignments_by_goal(db, actor, goal_id)
    return envelope(
        "Assignment data fetched successfully",
        [schemas.AssignmentListItem.model_validate(row) for row in rows],
    )


@router.put("/assignments/{assignment_id}", dependencies=mentor_only)
async def update_assignment(
    assignment_id: int,
    payload: schemas.AssignmentUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    assignment = await assignments.update_assignment(db, actor, assignment_id, payload)
    return envelope("Assignment updated successfully", schemas.AssignmentResponse.model_validate(assignment))


@router.delete("/assignments/{assignment_id}", dependencies=mentor_only)
async def delete_assignment(assignment_id: int, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    await assignments.delete_assignment(db, actor, assignment_id)
    return envelope("Assignment deleted successfully", {})
