"""
Evidence-integrity pipeline.

Upload flow:

    validate -> ownership check -> SHA-256 digest -> blob store
             -> best-effort timestamp -> insert record -> rescore job

The blob must be stored before the record that points at it is written, so
a ``StoreFailure`` aborts the operation with nothing persisted. Timestamping
and rescoring are best-effort: their failures are logged and the evidence
is still created.

Example usage:
    from core.evidence import build_upload, create_evidence_from_upload

    upload = build_upload(filename="roof.jpg", content=data, content_type="image/jpeg",
                          evidence_type="before", description="Roof before works")
    item = await create_evidence_from_upload(session, blob_store, owner_id, job_id, upload)
"""

import mimetypes
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional
from uuid import UUID

import pydantic
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core import config
from core.blob_store import BlobStore, sanitize_filename
from core.errors import ConflictError, NotFoundError, StoreFailure, ValidationError
from core.hashing import compute_digest
from core.jobs import get_owned_job
from core.logging import get_logger
from core.models import EvidenceCreate, EvidenceUpload, GPSFix, TimestampVerification
from core.models_sql import AuditAction, AuditLog, EvidenceItem, EvidenceType, Job, utcnow
from core.scoring import calculate_protection_score
from core.timestamp import submit_timestamp, verify_timestamp

logger = get_logger(__name__)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_float(name: str, value: Optional[str]) -> Optional[float]:
    if _blank(value):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}", fields=[name])


def _parse_datetime(name: str, value: Optional[str]) -> Optional[datetime]:
    if _blank(value):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid {name}", fields=[name])
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_content_type(filename: str, declared: Optional[str]) -> Optional[str]:
    """Prefer the declared type; fall back to guessing from the extension."""
    declared = (declared or "").split(";")[0].strip().lower()
    if declared in config.SUPPORTED_CONTENT_TYPES:
        return declared
    guessed, _ = mimetypes.guess_type(filename)
    return guessed


def build_upload(
    filename: Optional[str],
    content: Optional[bytes],
    content_type: Optional[str],
    evidence_type: Optional[str],
    description: Optional[str],
    gps_latitude: Optional[str] = None,
    gps_longitude: Optional[str] = None,
    gps_accuracy: Optional[str] = None,
    device_timestamp: Optional[str] = None
) -> EvidenceUpload:
    """
    Validate raw upload fields into an ``EvidenceUpload``.

    Nothing is stored or hashed here; every rejection happens before any
    side effect.

    Raises:
        ValidationError: Missing fields (400), oversize body (413),
            unsupported file type, unknown category or bad GPS values (400)
    """
    missing = [
        name for name, value in (
            ("file", filename if content is not None else None),
            ("evidence_type", evidence_type),
            ("description", description),
        )
        if _blank(value)
    ]
    if missing:
        raise ValidationError("Missing required fields", fields=missing)

    if len(content) > config.MAX_UPLOAD_SIZE:
        raise ValidationError(
            f"File size ({len(content) / 1024 / 1024:.1f}MB) exceeds "
            f"{config.MAX_UPLOAD_SIZE / 1024 / 1024:.0f}MB limit",
            fields=["file"],
            status_code=413,
        )

    filename = sanitize_filename(filename)
    resolved_type = resolve_content_type(filename, content_type)
    if resolved_type not in config.SUPPORTED_CONTENT_TYPES:
        raise ValidationError(
            "Unsupported file type. Only JPEG, PNG and PDF files are allowed",
            fields=["file"],
        )

    try:
        category = EvidenceType(evidence_type.strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid evidence_type '{evidence_type}'", fields=["evidence_type"])

    latitude = _parse_float("gps_latitude", gps_latitude)
    longitude = _parse_float("gps_longitude", gps_longitude)
    accuracy = _parse_float("gps_accuracy", gps_accuracy)

    gps = None
    if accuracy is not None and latitude is None and longitude is None:
        raise ValidationError(
            "gps_accuracy requires gps_latitude and gps_longitude",
            fields=["gps_latitude", "gps_longitude", "gps_accuracy"],
        )
    if latitude is not None or longitude is not None:
        if latitude is None or longitude is None:
            raise ValidationError(
                "gps_latitude and gps_longitude must be provided together",
                fields=["gps_latitude", "gps_longitude"],
            )
        try:
            gps = GPSFix(latitude=latitude, longitude=longitude, accuracy=accuracy)
        except pydantic.ValidationError:
            raise ValidationError(
                "GPS coordinates out of range",
                fields=["gps_latitude", "gps_longitude", "gps_accuracy"],
            )

    return EvidenceUpload(
        filename=filename,
        content=content,
        content_type=resolved_type,
        evidence_type=category,
        description=description.strip(),
        gps=gps,
        device_timestamp=_parse_datetime("device_timestamp", device_timestamp),
    )


async def _insert_evidence(session: AsyncSession, item: EvidenceItem) -> EvidenceItem:
    session.add(item)
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to create evidence: {e}", extra={"job_id": str(item.job_id)})
        raise StoreFailure("Failed to create evidence") from e
    await session.refresh(item)
    return item


async def create_evidence_from_upload(
    session: AsyncSession,
    blob_store: BlobStore,
    owner_id: UUID,
    job_id: UUID,
    upload: EvidenceUpload
) -> EvidenceItem:
    """
    Run the full upload pipeline for one artifact.

    Args:
        session: Database session
        blob_store: Where the raw bytes are kept
        owner_id: Authenticated user
        job_id: Job the evidence belongs to
        upload: Validated upload (see ``build_upload``)

    Returns:
        The persisted evidence item

    Raises:
        NotFoundError: Job missing or not owned by ``owner_id``
        StoreFailure: Blob or record could not be persisted
    """
    job = await get_owned_job(session, owner_id, job_id)

    file_hash = compute_digest(upload.content)

    locator = blob_store.store(owner_id, job.id, upload.filename, upload.content, upload.content_type)

    stamp = await submit_timestamp(upload.content, digest=file_hash)
    if not stamp.success:
        logger.warning(
            "Continuing without external timestamp",
            extra={"job_id": str(job.id), "file_hash": file_hash, "errors": stamp.errors},
        )

    received_at = utcnow()
    item = EvidenceItem(
        job_id=job.id,
        evidence_type=upload.evidence_type,
        file_path=locator,
        file_hash=file_hash,
        blockchain_timestamp=stamp.proof if stamp.success else None,
        gps_latitude=upload.gps.latitude if upload.gps else None,
        gps_longitude=upload.gps.longitude if upload.gps else None,
        gps_accuracy=upload.gps.accuracy if upload.gps else None,
        device_timestamp=upload.device_timestamp or received_at,
        server_timestamp=received_at,
        description=upload.description,
        client_approval=False,
        client_signature=None,
    )
    item = await _insert_evidence(session, item)

    logger.info(
        "Evidence created",
        extra={
            "evidence_id": str(item.id),
            "job_id": str(job.id),
            "evidence_type": item.evidence_type.value,
            "file_hash": file_hash,
            "timestamped": item.blockchain_timestamp is not None,
        },
    )

    await refresh_protection_score(session, job.id, item)
    return item


async def create_evidence_record(
    session: AsyncSession,
    owner_id: UUID,
    job_id: UUID,
    payload: EvidenceCreate
) -> EvidenceItem:
    """Insert evidence for an artifact that was stored elsewhere."""
    job = await get_owned_job(session, owner_id, job_id)

    received_at = utcnow()
    item = EvidenceItem(
        job_id=job.id,
        evidence_type=payload.evidence_type,
        file_path=payload.file_path,
        file_hash=payload.file_hash,
        gps_latitude=payload.gps_latitude,
        gps_longitude=payload.gps_longitude,
        gps_accuracy=payload.gps_accuracy,
        device_timestamp=payload.device_timestamp or received_at,
        server_timestamp=received_at,
        description=payload.description,
        client_approval=False,
    )
    item = await _insert_evidence(session, item)

    logger.info(
        "Evidence record inserted",
        extra={"evidence_id": str(item.id), "job_id": str(job.id), "file_hash": item.file_hash},
    )

    await refresh_protection_score(session, job.id, item)
    return item


async def list_job_evidence(
    session: AsyncSession,
    owner_id: UUID,
    job_id: UUID,
    newest_first: bool = True,
    approved_only: bool = False
) -> List[EvidenceItem]:
    job = await get_owned_job(session, owner_id, job_id)

    stmt = select(EvidenceItem).where(EvidenceItem.job_id == job.id)
    if approved_only:
        stmt = stmt.where(EvidenceItem.client_approval == True)  # noqa: E712
    order = EvidenceItem.created_at.desc() if newest_first else EvidenceItem.created_at.asc()
    result = await session.execute(stmt.order_by(order))
    return list(result.scalars().all())


async def get_owned_evidence(session: AsyncSession, owner_id: UUID, evidence_id: UUID) -> EvidenceItem:
    """
    Load an evidence item through its job's owner.

    Raises:
        NotFoundError: Missing, or the job belongs to another owner
    """
    result = await session.execute(
        select(EvidenceItem)
        .join(Job, Job.id == EvidenceItem.job_id)
        .where(EvidenceItem.id == evidence_id, Job.user_id == owner_id)
    )
    item = result.scalar_one_or_none()
    if item is None:
        raise NotFoundError("Evidence not found")
    return item


async def approve_evidence(
    session: AsyncSession,
    owner_id: UUID,
    evidence_id: UUID,
    signature: str,
    client_name: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> EvidenceItem:
    """
    Record the client's approval and signature on an evidence item.

    Approval is set at most once and never reversed.

    Raises:
        NotFoundError: Evidence missing or not owned
        ConflictError: The item was already approved
    """
    item = await get_owned_evidence(session, owner_id, evidence_id)

    # Conditional update so two concurrent approvals cannot both succeed
    result = await session.execute(
        update(EvidenceItem)
        .where(EvidenceItem.id == item.id, EvidenceItem.client_approval == False)  # noqa: E712
        .values(client_approval=True, client_signature=signature, updated_at=utcnow())
    )
    if result.rowcount != 1:
        await session.rollback()
        raise ConflictError("Evidence already approved")

    session.add(AuditLog(
        user_id=owner_id,
        job_id=item.job_id,
        action=AuditAction.CLIENT_APPROVAL,
        details={
            "evidence_id": str(item.id),
            "client_name": client_name,
            "signature_captured": True,
        },
        ip_address=ip_address,
        user_agent=user_agent,
    ))
    await session.commit()
    await session.refresh(item)

    logger.info(
        "Client approval captured",
        extra={"evidence_id": str(item.id), "job_id": str(item.job_id)},
    )

    await refresh_protection_score(session, item.job_id, item)
    return item


async def verify_evidence_timestamp(
    session: AsyncSession,
    owner_id: UUID,
    evidence_id: UUID,
    now_provider: Optional[Callable[[], datetime]] = None
) -> TimestampVerification:
    """
    Re-check the stored timestamp proof of an evidence item.

    Raises:
        NotFoundError: Evidence missing or not owned
        ValidationError: The item has no timestamp proof
    """
    item = await get_owned_evidence(session, owner_id, evidence_id)

    if not item.blockchain_timestamp:
        raise ValidationError("No blockchain timestamp found", fields=["blockchain_timestamp"])

    verified = await verify_timestamp(item.blockchain_timestamp, digest=item.file_hash)
    logger.info(
        "Timestamp verification completed",
        extra={"evidence_id": str(item.id), "verified": verified},
    )

    return TimestampVerification(
        verified=verified,
        timestamp=item.blockchain_timestamp,
        verified_at=(now_provider or utcnow)(),
    )


async def recompute_protection_score(session: AsyncSession, job_id: UUID) -> int:
    """
    Recompute and store a job's protection score from all of its evidence.

    Idempotent: with no evidence changes, repeated calls store the same value.
    """
    result = await session.execute(select(EvidenceItem).where(EvidenceItem.job_id == job_id))
    score = calculate_protection_score(result.scalars().all())

    job = await session.get(Job, job_id)
    if job is None:
        raise NotFoundError("Job not found")

    if job.protection_status != score:
        job.protection_status = score
        job.updated_at = utcnow()
        session.add(job)
    await session.commit()

    logger.debug("Protection score recomputed", extra={"job_id": str(job_id), "score": score})
    return score


async def refresh_protection_score(session: AsyncSession, job_id: UUID, *reload: Any) -> Optional[int]:
    """
    Best-effort wrapper around ``recompute_protection_score``.

    The score is display-only, so a failure here is logged and the
    evidence operation that triggered it still succeeds. The rollback
    expires every instance in the session; committed instances passed
    in ``reload`` are loaded again so callers can still serialize them.
    """
    try:
        return await recompute_protection_score(session, job_id)
    except Exception as e:
        logger.error(
            f"Error updating protection status: {e}",
            extra={"job_id": str(job_id)},
            exc_info=True,
        )
        await session.rollback()
        for instance in reload:
            await session.refresh(instance)
        return None
