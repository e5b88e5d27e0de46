"""
groups.py

API endpoints for study groups and their memberships.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..auth import require_role
from ..database import get_db
from ..dependencies import get_actor, user_rate_limit
from ..permissions import Actor
from ..services import groups
from ..utils import envelope

router = APIRouter(prefix="/groups", dependencies=[Depends(user_rate_limit)])

mentor_only = [Depends(require_role(["mentor"]))]


@router.get("/")
async def view_joined_groups(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    return envelope("All groups fetched successfully", await groups.list_joined_groups(db, actor))


@router.post("/", status_code=status.HTTP_201_CREATED, dependencies=mentor_only)
async def create_group(
    payload: schemas.GroupCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    group = await groups.create_group(db, actor, payload)
    return envelope(
        "Group successfully created",
        schemas.GroupCreated(group_id=group.id, name=group.name, invite_code=group.invite_code),
    )


@router.post("/join")
async def join_group(
    payload: schemas.GroupJoin,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    group, membership = await groups.join_group(db, actor, payload.invite_code)
    return envelope(
        "Successfully joined the group",
        schemas.JoinedGroup(group_id=group.id, name=group.name, role=membership.role),
    )


@router.get("/{group_id}")
async def get_group_details(group_id: int, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    group = await groups.get_group(db, actor, group_id)
    return envelope(
        "Group details fetched successfully",
        schemas.GroupDetail(
            group_id=group.id,
            name=group.name,
            description=group.description,
            mentor_id=group.mentor_id,
            created_at=group.created_at,
        ),
    )


@router.put("/{group_id}", dependencies=mentor_only)
async def update_group(
    group_id: int,
    payload: schemas.GroupUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    group = await groups.update_group(db, actor, group_id, payload)
    return envelope("Group updated successfully", {"name": group.name, "description": group.description})


@router.delete("/{group_id}")
async def delete_group(group_id: int, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    await groups.delete_group(db, actor, group_id)
    return envelope("Group deleted successfully", {"groupId": group_id})


@router.post("/{group_id}/invite", dependencies=mentor_only)
async def invite_members(group_id: int, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    invite_code = await groups.get_invite_code(db, actor, group_id)
    return envelope("Invite code fetched successfully", {"inviteCode": invite_code})


@router.get("/{group_id}/members")
async def view_group_members(group_id: int, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    return envelope("Members data fetched successfully", await groups.list_members(db, actor, group_id))


@router.delete("/{group_id}/members/{user_id}", dependencies=mentor_only)
async def remove_group_member(
    group_id: int,
    user_id: int,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    await groups.remove_member(db, actor, group_id, user_id)
    return envelope("Member removed successfully", {"groupId": group_id, "removedUserId": user_id})
