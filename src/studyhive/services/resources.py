"""
Group resources: uploaded files, external links and plain notes.
"""
import logging
from typing import List, Optional
from urllib.parse import urlparse

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud, models, schemas
from ..cloudinary_utils import delete_from_cloudinary, purge_blobs, read_upload, upload_to_cloudinary
from ..errors import NotFound, StorageUnavailable, ValidationFailed
from ..permissions import Action, Actor, ensure_can, group_target

logger = logging.getLogger(__name__)

SORT_ORDERS = {
    "recent": (models.Resource.created_at.desc(), models.Resource.id.desc()),
    "oldest": (models.Resource.created_at.asc(), models.Resource.id.asc()),
    "title": (models.Resource.title.asc(), models.Resource.id.asc()),
}


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _check_payload(
    title: Optional[str], type_: str, description: Optional[str], link_url: Optional[str], file: Optional[UploadFile]
) -> None:
    errors = []
    if not title or len(title) > 200:
        errors.append({"field": "title", "message": "Title must be between 1 and 200 characters"})
    if type_ not in models.RESOURCE_TYPES:
        errors.append({"field": "type", "message": "Type must be one of file, link, note"})
    if description and len(description) > 1000:
        errors.append({"field": "description", "message": "Description cannot exceed 1000 characters"})

    if type_ == "file" and file is None:
        errors.append({"field": "file", "message": "A file is required for file resources"})
    elif type_ == "link" and not (link_url and _is_http_url(link_url)):
        errors.append({"field": "linkUrl", "message": "A valid http(s) URL is required for link resources"})
    elif type_ == "note" and not description:
        errors.append({"field": "description", "message": "Description is required for note resources"})

    if errors:
        raise ValidationFailed("Validation failed", errors)


async def upload_resource(
    db: AsyncSession,
    actor: Actor,
    group_id: int,
    title: Optional[str],
    type_: str,
    description: Optional[str] = None,
    link_url: Optional[str] = None,
    file: Optional[UploadFile] = None,
) -> models.Resource:
    group = await crud.get_group_or_404(db, group_id)
    ensure_can(actor, Action.RESOURCE_UPLOAD, await group_target(db, actor, group.id), "Only mentors can upload resources")

    title = (title or "").strip()
    description = (description or "").strip() or None
    link_url = (link_url or "").strip() or None
    _check_payload(title, type_, description, link_url, file)

    resource = models.Resource(
        title=title,
        description=description,
        type=type_,
        group_id=group.id,
        uploaded_by=actor.user_id,
    )

    uploaded = None
    if type_ == "file":
        content = await read_upload(file)
        uploaded = await upload_to_cloudinary(content, file.filename, f"resources/group_{group.id}")
        if not uploaded["success"]:
            raise StorageUnavailable("Failed to upload resource file")
        resource.file_url = uploaded["url"]
        resource.file_name = file.filename
        resource.file_size = uploaded["file_size"]
        resource.cloudinary_public_id = uploaded["public_id"]
        resource.cloudinary_resource_type = uploaded["resource_type"]
    elif type_ == "link":
        resource.link_url = link_url

    db.add(resource)
    try:
        await crud.commit_or_conflict(db, "A resource with this title already exists in the group")
    except Exception:
        if uploaded:
            await purge_blobs([(uploaded["public_id"], uploaded["resource_type"])], f"rejected resource in group {group.id}")
        raise
    await db.refresh(resource)
    return resource


async def list_resources(
    db: AsyncSession, actor: Actor, group_id: int, sort_by: str = "recent", type_: Optional[str] = None
) -> List[schemas.ResourceResponse]:
    group = await crud.get_group_or_404(db, group_id)
    ensure_can(actor, Action.RESOURCE_VIEW, await group_target(db, actor, group.id), "Not a member of this group")

    query = (
        select(models.Resource, models.User)
        .join(models.User, models.User.id == models.Resource.uploaded_by)
        .where(models.Resource.group_id == group.id)
    )
    if type_:
        query = query.where(models.Resource.type == type_)
    result = await db.execute(query.order_by(*SORT_ORDERS.get(sort_by, SORT_ORDERS["recent"])))

    return [
        schemas.ResourceResponse(
            id=resource.id,
            title=resource.title,
            description=resource.description,
            type=resource.type,
            group_id=resource.group_id,
            uploaded_by=schemas.UserSummary.model_validate(user),
            file_url=resource.file_url,
            file_name=resource.file_name,
            file_size=resource.file_size,
            link_url=resource.link_url,
            created_at=resource.created_at,
        )
        for resource, user in result.all()
    ]


async def delete_resource(db: AsyncSession, actor: Actor, resource_id: int) -> None:
    resource = await db.get(models.Resource, resource_id)
    if not resource:
        raise NotFound("Resource not found")

    target = await group_target(db, actor, resource.group_id, owner_id=resource.uploaded_by)
    ensure_can(actor, Action.RESOURCE_DELETE, target, "Not authorized to delete this resource")

    # blob goes first; if the store refuses, the record stays so the delete can be retried
    if resource.cloudinary_public_id:
        if not await delete_from_cloudinary(resource.cloudinary_public_id, resource.cloudinary_resource_type):
            raise StorageUnavailable("Failed to delete resource file, please retry")

    await db.delete(resource)
    await db.commit()
    logger.info("User %s deleted resource %s", actor.user_id, resource_id)
