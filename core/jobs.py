"""
Owner-scoped job records

Every read and write filters on the owner, so a job belonging to someone
else is indistinguishable from one that does not exist.
"""

from typing import List
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.errors import NotFoundError
from core.logging import get_logger
from core.models import JobCreate, JobUpdate
from core.models_sql import EvidenceItem, Job, utcnow

logger = get_logger(__name__)

REQUIRED_JOB_FIELDS = ("client_name", "client_address", "job_type")


async def get_owned_job(session: AsyncSession, owner_id: UUID, job_id: UUID) -> Job:
    """
    Load a job by id, restricted to its owner.

    Raises:
        NotFoundError: If the job does not exist or belongs to another owner
    """
    result = await session.execute(
        select(Job).where(Job.id == job_id, Job.user_id == owner_id)
    )
    job = result.scalar_one_or_none()
    if job is None:
        raise NotFoundError("Job not found")
    return job


async def list_jobs(session: AsyncSession, owner_id: UUID) -> List[Job]:
    """List the owner's jobs, newest first."""
    result = await session.execute(
        select(Job).where(Job.user_id == owner_id).order_by(Job.created_at.desc())
    )
    return list(result.scalars().all())


async def create_job(session: AsyncSession, owner_id: UUID, payload: JobCreate) -> Job:
    job = Job(
        user_id=owner_id,
        client_name=payload.client_name,
        client_address=payload.client_address,
        client_phone=payload.client_phone,
        job_type=payload.job_type,
        job_description=payload.job_description,
        contract_value=payload.contract_value,
        start_date=payload.start_date or utcnow(),
        protection_status=0,
    )
    session.add(job)
    await session.commit()
    await session.refresh(job)

    logger.info("Job created", extra={"job_id": str(job.id), "user_id": str(owner_id)})
    return job


async def update_job(session: AsyncSession, owner_id: UUID, job_id: UUID, payload: JobUpdate) -> Job:
    """Apply the fields present in ``payload``; the protection score is untouched."""
    job = await get_owned_job(session, owner_id, job_id)

    for name, value in payload.model_dump(exclude_unset=True).items():
        if value is None and name in REQUIRED_JOB_FIELDS:
            continue
        setattr(job, name, value)
    job.updated_at = utcnow()

    session.add(job)
    await session.commit()
    await session.refresh(job)
    return job


async def delete_job(session: AsyncSession, owner_id: UUID, job_id: UUID) -> None:
    """Delete a job together with its evidence records."""
    job = await get_owned_job(session, owner_id, job_id)

    await session.execute(delete(EvidenceItem).where(EvidenceItem.job_id == job.id))
    await session.delete(job)
    await session.commit()

    logger.info("Job deleted", extra={"job_id": str(job_id), "user_id": str(owner_id)})
