"""
Evidence API routes

Upload by form-supplied job id, fetch a single item, and re-check its
timestamp proof.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from auth.models import CurrentUser
from auth.tokens import get_current_user
from core.blob_store import BlobStore, get_blob_store
from core.db import get_session
from core.errors import ValidationError
from core.evidence import build_upload, create_evidence_from_upload, get_owned_evidence, verify_evidence_timestamp
from core.models import EvidenceRead, dump
from middleware.rate_limit import get_rate_limit_decorator

router = APIRouter(prefix="/api/evidence", tags=["evidence"])


@router.post("/upload")
@get_rate_limit_decorator()
async def upload_evidence(
    request: Request,
    file: Optional[UploadFile] = File(None),
    job_id: Optional[str] = Form(None),
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
    """Same pipeline as the job-scoped upload, with ``job_id`` as a form field."""
    if not job_id or not job_id.strip():
        missing = ["job_id"]
        if file is None:
            missing.insert(0, "file")
        raise ValidationError("Missing required fields", fields=missing)

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

    try:
        parsed_job_id = UUID(job_id.strip())
    except ValueError:
        raise ValidationError("Invalid job_id", fields=["job_id"])

    item = await create_evidence_from_upload(session, blob_store, current_user.id, parsed_job_id, upload)
    return {"success": True, "data": dump(EvidenceRead.model_validate(item))}


@router.get("/{evidence_id}")
async def get_evidence(
    evidence_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    item = await get_owned_evidence(session, current_user.id, evidence_id)
    return {"success": True, "data": dump(EvidenceRead.model_validate(item))}


@router.post("/{evidence_id}/verify")
async def verify_evidence(
    evidence_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """Re-check the stored timestamp proof; 400 when the item has none."""
    result = await verify_evidence_timestamp(session, current_user.id, evidence_id)
    return {"success": True, "data": dump(result)}
