"""
submissions.py

API endpoints for submitting assignment work and reviewing it.
Submissions arrive as multipart forms: submittedText and/or a single file.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..database import get_db
from ..dependencies import get_actor, user_rate_limit
from ..permissions import Actor
from ..services import submissions
from ..utils import envelope

router = APIRouter(dependencies=[Depends(user_rate_limit)])


@router.post("/assignments/{assignment_id}/submissions", status_code=status.HTTP_201_CREATED)
async def submit_assignment(
    assignment_id: int,
    submitted_text: Optional[str] = Form(None, alias="submittedText"),
    file: Optional[UploadFile] = File(None),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    receipt = await submissions.submit_assignment(db, actor, assignment_id, submitted_text, file)
    return envelope("Assignment submitted successfully", receipt)


@router.get("/assignments/{assignment_id}/submissions")
async def get_submissions(assignment_id: int, actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)):
    return envelope("Submissions fetched successfully", await submissions.list_submissions(db, actor, assignment_id))


@router.patch("/submissions/{submission_id}/review")
async def review_submission(
    submission_id: int,
    payload: schemas.ReviewRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    receipt = await submissions.review_submission(db, actor, submission_id, payload)
    return envelope("Submission reviewed successfully", receipt)
