"""
resources.py

API endpoints for group resources (files, links and notes).
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..auth import require_role
from ..database import get_db
from ..dependencies import get_actor, user_rate_limit
from ..permissions import Actor
from ..services import resources
from ..utils import envelope

router = APIRouter(prefix="/resources", dependencies=[Depends(user_rate_limit)])


@router.post("/{group_id}", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_role(["mentor"]))])
async def upload_resource(
    group_id: int,
    title: Optional[str] = Form(None),
    type: str = Form(...),
    description: Optional[str] = Form(None),
    link_url: Optional[str] = Form(None, alias="linkUrl"),
    file: Optional[UploadFile] = File(None),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    resource = await resources.upload_resource(db, actor, group_id, title, type, description, link_url, file)
    return envelope(
        "Resource created successfully",
        schemas.ResourceCreated(
            resource_id=resource.id,
            title=resource.title,
            type=resource.type,
            uploaded_by=resource.uploaded_by,
            created_at=resource.created_at,
        ),
    )


@router.get("/{group_id}")
async def get_resources_by_group(
    group_id: int,
    sort_by: schemas.ResourceSort = Query("recent", alias="sortBy"),
    type: Optional[schemas.ResourceType] = Query(None),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return envelope("Resources fetched successfully", await resources.list_resources(db, actor, group_id, sort_by, type))


@router.delete("/{resource_id}")
async def delete_resource(resource_id: int, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    await resources.delete_resource(db, actor, resource_id)
    return envelope("Resource deleted successfully", {})
