"""
goals.py

API endpoints for group goals. Mentors manage goals; learners read the goals
assigned to them.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..auth import require_role
from ..database import get_db
from ..dependencies import get_actor, user_rate_limit
from ..permissions import Actor
from ..services import goals
from ..utils import envelope

router = APIRouter(prefix="/goals", dependencies=[Depends(user_rate_limit)])

mentor_only = [Depends(require_role(["mentor"]))]


@router.get("/me", dependencies=[Depends(require_role(["learner"]))])
async def get_my_goals(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    return envelope("My goals fetched successfully", await goals.list_my_goals(db, actor))


@router.post("/{group_id}", status_code=status.HTTP_201_CREATED, dependencies=mentor_only)
async def create_goal(
    group_id: int,
    payload: schemas.GoalCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return envelope("New goal created successfully", await goals.create_goal(db, actor, group_id, payload))


@router.get("/{group_id}", dependencies=mentor_only)
async def get_goals_by_group(group_id: int, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    return envelope("Goals fetched successfully", await goals.list_group_goals(db, actor, group_id))


@router.put("/{goal_id}", dependencies=mentor_only)
async def update_goal(
    goal_id: int,
    payload: schemas.GoalUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return envelope("Goal updated successfully", await goals.update_goal(db, actor, goal_id, payload))


@router.delete("/{goal_id}", dependencies=mentor_only)
async def delete_goal(goal_id: int, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    await goals.delete_goal(db, actor, goal_id)
    return envelope("Goal deleted successfully", {"goalId": goal_id})
