"""
Submission lifecycle.

    pending -> submitted -> reviewed
                         -> revision_required -> submitted (re-submission)

One row per (assignment, user). Status changes are written with a
compare-and-swap on the current status so two concurrent requests cannot
both move the same submission.
"""
import logging
from typing import List, Optional

from fastapi import UploadFile
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud, models, schemas
from ..cloudinary_utils import purge_blobs, read_upload, upload_to_cloudinary
from ..errors import (
    AlreadySubmitted, Conflict, DeadlinePassed, NotFound, NotReviewable, StorageUnavailable, ValidationFailed
)
from ..permissions import Action, Actor, ensure_can, group_target
from ..utils import utcnow

logger = logging.getLogger(__name__)

RESUBMITTABLE = ("pending", "revision_required")


async def submit_assignment(
    db: AsyncSession,
    actor: Actor,
    assignment_id: int,
    submitted_text: Optional[str] = None,
    file: Optional[UploadFile] = None,
) -> schemas.SubmissionReceipt:
    assignment = await crud.get_active_assignment_or_404(db, assignment_id)

    now = utcnow()
    if assignment.deadline and now > assignment.deadline:
        raise DeadlinePassed()

    ensure_can(
        actor, Action.SUBMISSION_CREATE, await group_target(db, actor, assignment.group_id),
        "User not authorized to submit this assignment",
    )

    submitted_text = (submitted_text or "").strip() or None
    if file is None and not submitted_text:
        raise ValidationFailed("Either file or text submission is required")
    content = await read_upload(file) if file is not None else None

    existing = await crud.get_submission(db, assignment.id, actor.user_id)
    if existing and existing.status not in RESUBMITTABLE:
        raise AlreadySubmitted()

    uploaded = None
    if content is not None:
        uploaded = await upload_to_cloudinary(content, file.filename, f"submissions/assignment_{assignment.id}")
        if not uploaded["success"]:
            raise StorageUnavailable("Failed to upload submission file")

    try:
        submission_id = await _write_submission(db, assignment.id, actor.user_id, existing, submitted_text, uploaded, now)
    except Exception:
        # the row was not written, so the new blob has no owner
        if uploaded:
            await purge_blobs([(uploaded["public_id"], uploaded["resource_type"])], f"failed submission to assignment {assignment.id}")
        raise

    if existing and uploaded and existing.submitted_file_public_id:
        await purge_blobs(
            [(existing.submitted_file_public_id, existing.submitted_file_resource_type)],
            f"submission {submission_id}",
        )

    logger.info("User %s submitted assignment %s", actor.user_id, assignment.id)
    return schemas.SubmissionReceipt(submission_id=submission_id, status="submitted", submitted_at=now)


async def _write_submission(db, assignment_id, user_id, existing, submitted_text, uploaded, now) -> int:
    file_fields = {}
    if uploaded:
        file_fields = {
            "submitted_file_url": uploaded["url"],
            "submitted_file_public_id": uploaded["public_id"],
            "submitted_file_resource_type": uploaded["resource_type"],
        }

    if existing is None:
        submission = models.Submission(
            assignment_id=assignment_id,
            user_id=user_id,
            submitted_text=submitted_text,
            status="submitted",
            submitted_at=now,
            **file_fields,
        )
        db.add(submission)
        try:
            await crud.commit_or_conflict(db, "Assignment already submitted")
        except Conflict:
            raise AlreadySubmitted()
        await db.refresh(submission)
        return submission.id

    values = dict(status="submitted", submitted_at=now, **file_fields)
    if submitted_text is not None:
        values["submitted_text"] = submitted_text
    result = await db.execute(
        update(models.Submission)
        .where(models.Submission.id == existing.id, models.Submission.status.in_(RESUBMITTABLE))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise AlreadySubmitted()
    await db.commit()
    return existing.id


async def review_submission(
    db: AsyncSession, actor: Actor, submission_id: int, data: schemas.ReviewRequest
) -> schemas.ReviewReceipt:
    submission = await db.get(models.Submission, submission_id)
    if not submission:
        raise NotFound("Submission not found")

    assignment = await crud.get_active_assignment_or_404(db, submission.assignment_id)
    ensure_can(
        actor, Action.SUBMISSION_REVIEW, await group_target(db, actor, assignment.group_id),
        "User not authorized to review this submission",
    )

    if data.marks_obtained is not None and data.marks_obtained > assignment.max_marks:
        raise ValidationFailed(
            "Marks exceed the assignment's maximum",
            [{"field": "marksObtained", "message": f"marksObtained must be between 0 and {assignment.max_marks}"}],
        )
    if submission.status != "submitted":
        raise NotReviewable()

    reviewed_at = utcnow()
    values = {"status": data.status, "reviewed_at": reviewed_at}
    if data.feedback is not None:
        values["feedback"] = data.feedback
    if data.marks_obtained is not None:
        values["marks_obtained"] = data.marks_obtained

    result = await db.execute(
        update(models.Submission)
        .where(models.Submission.id == submission.id, models.Submission.status == "submitted")
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise NotReviewable()
    await db.commit()
    logger.info("User %s marked submission %s as %s", actor.user_id, submission.id, data.status)
    return schemas.ReviewReceipt(submission_id=submission.id, status=data.status, reviewed_at=reviewed_at)


async def list_submissions(db: AsyncSession, actor: Actor, assignment_id: int) -> schemas.SubmissionList:
    assignment = await crud.get_active_assignment_or_404(db, assignment_id)
    ensure_can(
        actor, Action.SUBMISSION_LIST, await group_target(db, actor, assignment.group_id),
        "User not authorized to view submissions",
    )

    result = await db.execute(
        select(models.Submission, models.User)
        .join(models.User, models.User.id == models.Submission.user_id)
        .where(models.Submission.assignment_id == assignment.id)
        .order_by(models.Submission.submitted_at.desc(), models.Submission.id.desc())
    )
    rows: List[schemas.SubmissionResponse] = [
        schemas.SubmissionResponse(
            id=submission.id,
            user=schemas.UserSummary.model_validate(user),
            status=submission.status,
            submitted_file=submission.submitted_file_url,
            submitted_text=submission.submitted_text,
            marks_obtained=submission.marks_obtained,
            feedback=submission.feedback,
            submitted_at=submission.submitted_at,
            reviewed_at=submission.reviewed_at,
        )
        for submission, user in result.all()
    ]
    return schemas.SubmissionList(count=len(rows), submissions=rows)
