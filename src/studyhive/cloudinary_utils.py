"""
cloudinary_utils.py

Cloudinary integration for file uploads in the StudyHive backend.
Stores submission and resource attachments; callers only keep the returned
URL, public_id and resource_type.
"""

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool
from .errors import ValidationFailed
from .settings import settings
import logging

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "application/pdf": "pdf",
}

# Configure Cloudinary
cloudinary.config(
    cloud_name=settings.cloudinary_cloud_name,
    api_key=settings.cloudinary_api_key,
    api_secret=settings.cloudinary_api_secret,
    secure=True,
)


async def read_upload(file: UploadFile) -> bytes:
    """
    Validate an uploaded file against the MIME allowlist and size cap and return its bytes.

    Raises:
        ValidationFailed: unsupported type or file too large
    """
    if file.content_type not in ALLOWED_MIME_TYPES:
        raise ValidationFailed(
            "Invalid file type. Only images and PDF allowed.",
            [{"field": "file", "message": f"Unsupported content type {file.content_type}"}],
        )

    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise ValidationFailed(
            "File size too large. Maximum size is 5MB.",
            [{"field": "file", "message": "File exceeds the upload size limit"}],
        )
    return content


async def upload_to_cloudinary(file_content: bytes, filename: str, folder: str) -> dict:
    """
    Upload a file to Cloudinary.

    Args:
        file_content: File content as bytes
        filename: Original filename
        folder: Sub folder under the configured root folder

    Returns:
        dict: Upload result with URL, public_id and resource_type, or success=False and the error
    """
    try:
        result = await run_in_threadpool(
            cloudinary.uploader.upload,
            file_content,
            folder=f"{settings.cloudinary_folder}/{folder}",
            resource_type="auto",
            use_filename=True,
            filename_override=filename,
            unique_filename=True,
        )

        return {
            "success": True,
            "url": result["secure_url"],
            "public_id": result["public_id"],
            "resource_type": result.get("resource_type", "image"),
            "original_filename": filename,
            "file_size": result.get("bytes", len(file_content)),
        }

    except Exception as e:
        logger.error(f"Cloudinary upload failed: {str(e)}")
        return {"success": False, "error": str(e)}


async def delete_from_cloudinary(public_id: str, resource_type: str = "image") -> bool:
    """
    Delete a file from Cloudinary.

    A file Cloudinary no longer knows about counts as deleted.

    Returns:
        bool: True if the file is gone
    """
    try:
        result = await run_in_threadpool(
            cloudinary.uploader.destroy, public_id, resource_type=resource_type or "image", invalidate=True
        )
        return result.get("result") in ("ok", "not found")

    except Exception as e:
        logger.error(f"Cloudinary deletion failed for {public_id}: {str(e)}")
        return False


async def purge_blobs(blobs, owner: str) -> None:
    """Best-effort cleanup after the owning rows are already gone; failures are only logged."""
    for public_id, resource_type in blobs:
        if not await delete_from_cloudinary(public_id, resource_type):
            logger.error("Orphaned blob %s left behind by %s", public_id, owner)
