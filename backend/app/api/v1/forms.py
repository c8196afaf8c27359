"""Form-generation endpoints — queue IRS form jobs and hand them to the worker."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db, get_form_worker
from app.auth.dependencies import CurrentUser
from app.billing.dependencies import require_active_paid
from app.models.form_job import JOB_ERROR, JOB_PROCESSING, JOB_QUEUED, FormJob
from app.schemas.forms import FormJobCreate, FormJobListResponse, FormJobResponse
from app.services.form_worker import FormWorkerClient, FormWorkerError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/forms", tags=["forms"])


@router.post("", response_model=FormJobResponse, status_code=status.HTTP_201_CREATED)
async def create_form_job(
    body: FormJobCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FormJob:
    """Queue a form job. Generation is started separately."""
    job = FormJob(user_id=current_user.id, form_type=body.form_type, status=JOB_QUEUED)
    db.add(job)
    await db.flush()
    await db.refresh(job)
    return job


@router.get("", response_model=FormJobListResponse)
async def list_form_jobs(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FormJobListResponse:
    """List the caller's form jobs, newest first."""
    result = await db.execute(
        select(FormJob)
        .where(FormJob.user_id == current_user.id)
        .order_by(FormJob.created_at.desc())
    )
    return FormJobListResponse(
        jobs=[FormJobResponse.model_validate(job) for job in result.scalars().all()]
    )


@router.post(
    "/{job_id}/generate",
    response_model=FormJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_active_paid)],
)
async def generate_form(
    job_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    worker: FormWorkerClient = Depends(get_form_worker),
) -> FormJob:
    """Start generating a form. Requires an active Solo or Seasonal plan."""
    result = await db.execute(
        select(FormJob).where(FormJob.id == job_id, FormJob.user_id == current_user.id)
    )
    job = result.scalar_one_or_none()
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Form job not found",
        )

    job.status = JOB_PROCESSING
    job.error_message = None
    await db.commit()

    try:
        await worker.enqueue(job.id, current_user.id, job.form_type)
    except FormWorkerError as e:
        logger.error("Form generation error for job %s: %s", job.id, e)
        job.status = JOB_ERROR
        job.error_message = "Failed to start form generation"
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to generate form",
        ) from e

    await db.refresh(job)
    return job
