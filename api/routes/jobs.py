"""
Jobs API routes

CRUD for the authenticated user's jobs, plus the job-scoped evidence and
report endpoints. Another user's job always answers 404.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from auth.models import CurrentUser
from auth.tokens import get_current_user
from core.blob_store import BlobStore, get_blob_store
from core.db import get_session
from core.evidence import build_upload, create_evidence_from_upload, create_evidence_record, list_job_evidence
from core.jobs import create_job, delete_job, get_owned_job, list_jobs, update_job
from core.models import EvidenceCreate, EvidenceRead, JobCreate, JobRead, JobUpdate, ReportSummary, dump, dump_many
from core.report import generate_report
from middleware.rate_limit import get_rate_limit_decorator

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("")
async def get_jobs(
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    jobs = await list_jobs(session, current_user.id)
    return {"success": True, "data": dump_many([JobRead.model_validate(j) for j in jobs])}


@router.post("")
async def post_job(
    payload: JobCreate,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    job = await create_job(session, current_user.id, payload)
    return {"success": True, "data": dump(JobRead.model_validate(job))}


@router.get("/{job_id}")
async def get_job(
    job_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    job = await get_owned_job(session, current_user.id, job_id)
    return {"success": True, "data": dump(JobRead.model_validate(job))}


@router.put("/{job_id}")
async def put_job(
    job_id: UUID,
    payload: JobUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    job = await update_job(session, current_user.id, job_id, payload)
    return {"success": True, "data": dump(JobRead.model_validate(job))}


@router.delete("/{job_id}")
async def remove_job(
    job_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    await delete_job(session, current_user.id, job_id)
    return {"success": True}


@router.get("/{job_id}/evidence")
async def get_job_evidence(
    job_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    items = await list_job_evidence(session, current_user.id, job_id)
    return {"success": True, "data": dump_many([EvidenceRead.model_validate(i) for i in items])}


@router.post("/{job_id}/evidence")
async def post_job_evidence(
    job_id: UUID,
    payload: EvidenceCreate,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """Insert a record for an artifact that is already stored."""
    item = await create_evidence_record(session, current_user.id, job_id, payload)
    return {"success": True, "data": dump(EvidenceRead.model_validate(item))}


@router.post("/{job_id}/evidence/upload")
@get_rate_limit_decorator()
async def upload_job_evidence(
    request: Request,
    job_id: UUID,
    file: Optional[UploadFile] = File(None),
    evidence_type: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    gps_latitude: Optional[str] = Form(None),
    gps_longitude: Optional[str] = Form(None),
    gps_accuracy: Optional[str] = Form(None),
    device_timestamp: Optional[str] = Form(None),
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store)
):
    """
    Upload an artifact for a job.

    The file is hashed, stored and timestamped before the evidence record
    is written. A timestamp failure does not fail the upload.
    """
    upload = build_upload(
        filename=file.filename if file else None,
        content=await file.read() if file else None,
        content_type=file.content_type if file else None,
        evidence_type=evidence_type,
        description=description,
        gps_latitude=gps_latitude,
        gps_longitude=gps_longitude,
        gps_accuracy=gps_accuracy,
        device_timestamp=device_timestamp,
    )
    item = await create_evidence_from_upload(session, blob_store, current_user.id, job_id, upload)
    return {"success": True, "data": dump(EvidenceRead.model_validate(item))}


@router.post("/{job_id}/report")
async def post_job_report(
    job_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    job = await get_owned_job(session, current_user.id, job_id)
    evidence = await list_job_evidence(session, current_user.id, job_id, newest_first=False)

    report = generate_report(job, evidence)
    summary = ReportSummary(
        report_url=report.url,
        report_id=report.id,
        generated_at=report.generated_at,
        evidence_count=len(evidence),
        protection_score=job.protection_status,
    )
    return {"success": True, "data": dump(summary)}
