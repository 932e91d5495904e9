"""
Evidence pipeline tests

Exercises the service layer directly against a per-test SQLite database:
validation, ordering of store/timestamp/insert, best-effort timestamping,
score recomputation, approval and verification.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pydantic
import pytest
from sqlmodel import select

from core import config
from core.errors import ConflictError, NotFoundError, StoreFailure, ValidationError
from core.evidence import (
    approve_evidence,
    build_upload,
    create_evidence_from_upload,
    create_evidence_record,
    get_owned_evidence,
    list_job_evidence,
    recompute_protection_score,
    refresh_protection_score,
    verify_evidence_timestamp,
)
from core.hashing import compute_digest
from core.models import EvidenceCreate
from core.models_sql import AuditAction, AuditLog, EvidenceItem, EvidenceType, Job
from core.timestamp import TimestampResult
from tests.helpers import JPEG_BYTES, PDF_BYTES, PNG_BYTES


def make_upload(content=JPEG_BYTES, filename="roof.jpg", content_type="image/jpeg",
                evidence_type="before", description="Roof before works", **kwargs):
    return build_upload(
        filename=filename,
        content=content,
        content_type=content_type,
        evidence_type=evidence_type,
        description=description,
        **kwargs,
    )


async def count_evidence(session, job_id):
    result = await session.execute(select(EvidenceItem).where(EvidenceItem.job_id == job_id))
    return len(result.scalars().all())


class TestBuildUpload:

    def test_valid_upload(self):
        upload = make_upload(gps_latitude="53.8", gps_longitude="-1.55", gps_accuracy="4.5")
        assert upload.evidence_type == EvidenceType.BEFORE
        assert upload.gps.latitude == 53.8
        assert upload.gps.accuracy == 4.5
        assert upload.device_timestamp is None

    @pytest.mark.parametrize("field", ["filename", "content", "evidence_type", "description"])
    def test_missing_fields(self, field):
        with pytest.raises(ValidationError) as exc_info:
            make_upload(**{field: None})
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Missing required fields"

    def test_blank_description_is_missing(self):
        with pytest.raises(ValidationError) as exc_info:
            make_upload(description="   ")
        assert exc_info.value.fields == ["description"]

    def test_oversize_file_is_413(self, monkeypatch):
        monkeypatch.setattr(config, "MAX_UPLOAD_SIZE", 16)
        with pytest.raises(ValidationError) as exc_info:
            make_upload(content=b"x" * 17)
        assert exc_info.value.status_code == 413

    def test_unsupported_type(self):
        with pytest.raises(ValidationError) as exc_info:
            make_upload(filename="notes.txt", content=b"hello", content_type="text/plain")
        assert exc_info.value.status_code == 400
        assert "Unsupported file type" in exc_info.value.message

    def test_type_guessed_from_extension(self):
        upload = make_upload(filename="invoice.pdf", content=PDF_BYTES, content_type="application/octet-stream")
        assert upload.content_type == "application/pdf"

    def test_declared_type_with_parameters(self):
        upload = make_upload(filename="photo", content=PNG_BYTES, content_type="image/png; charset=binary")
        assert upload.content_type == "image/png"

    def test_unknown_evidence_type(self):
        with pytest.raises(ValidationError) as exc_info:
            make_upload(evidence_type="selfie")
        assert exc_info.value.fields == ["evidence_type"]

    @pytest.mark.parametrize("lat,lon,acc", [
        ("91", "0", None),
        ("0", "-180.5", None),
        ("10", "10", "-1"),
    ])
    def test_gps_out_of_range(self, lat, lon, acc):
        with pytest.raises(ValidationError) as exc_info:
            make_upload(gps_latitude=lat, gps_longitude=lon, gps_accuracy=acc)
        assert exc_info.value.status_code == 400

    def test_gps_requires_both_coordinates(self):
        with pytest.raises(ValidationError):
            make_upload(gps_latitude="53.8")

    def test_gps_accuracy_requires_coordinates(self):
        with pytest.raises(ValidationError) as exc_info:
            make_upload(gps_accuracy="5")
        assert "gps_accuracy" in exc_info.value.fields

    def test_gps_not_a_number(self):
        with pytest.raises(ValidationError) as exc_info:
            make_upload(gps_latitude="north", gps_longitude="1")
        assert exc_info.value.fields == ["gps_latitude"]

    def test_empty_gps_strings_mean_no_fix(self):
        assert make_upload(gps_latitude="", gps_longitude="", gps_accuracy="").gps is None

    def test_device_timestamp_parsed_as_utc(self):
        upload = make_upload(device_timestamp="2024-03-02T09:30:00Z")
        assert upload.device_timestamp == datetime(2024, 3, 2, 9, 30, tzinfo=timezone.utc)


class TestUploadPipeline:

    async def test_upload_creates_timestamped_record(self, session, blob_store, owner_id, job):
        upload = make_upload(gps_latitude="53.8", gps_longitude="-1.55")

        item = await create_evidence_from_upload(session, blob_store, owner_id, job.id, upload)

        assert item.file_hash == compute_digest(JPEG_BYTES)
        assert item.file_path.startswith(f"http://testserver/evidence-files/{owner_id}/{job.id}/")
        assert item.blockchain_timestamp
        assert item.client_approval is False
        assert item.gps_latitude == 53.8
        assert item.device_timestamp is not None

        await session.refresh(job)
        # before (20) + timestamp (10)
        assert job.protection_status == 30

    async def test_store_failure_persists_nothing(self, session, owner_id, job):
        failing_store = MagicMock()
        failing_store.store.side_effect = StoreFailure("Failed to upload file")
        submitter = AsyncMock()

        with patch("core.evidence.submit_timestamp", submitter):
            with pytest.raises(StoreFailure):
                await create_evidence_from_upload(session, failing_store, owner_id, job.id, make_upload())

        submitter.assert_not_called()
        assert await count_evidence(session, job.id) == 0

    async def test_timestamp_failure_still_creates_evidence(self, session, blob_store, owner_id, job):
        failed = TimestampResult(success=False, backend="simulated", errors=["Timestamp authority unavailable"])
        with patch("core.evidence.submit_timestamp", AsyncMock(return_value=failed)):
            item = await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload())

        assert item.blockchain_timestamp is None
        await session.refresh(job)
        assert job.protection_status == 20

    async def test_timestamp_timeout_still_creates_evidence(self, session, blob_store, owner_id, job, monkeypatch):
        monkeypatch.setattr(config, "TIMESTAMP_SIMULATED_DELAY_S", 5)
        monkeypatch.setattr(config, "TIMESTAMP_TIMEOUT_S", 0.01)

        item = await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload())

        assert item.blockchain_timestamp is None
        assert await count_evidence(session, job.id) == 1

    async def test_timestamp_is_requested_for_the_stored_digest(self, session, blob_store, owner_id, job):
        ok = TimestampResult(success=True, proof="2024-01-01T00:00:00+00:00", backend="simulated")
        submitter = AsyncMock(return_value=ok)
        with patch("core.evidence.submit_timestamp", submitter):
            await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload())

        submitter.assert_awaited_once_with(JPEG_BYTES, digest=compute_digest(JPEG_BYTES))

    async def test_other_owner_gets_not_found(self, session, blob_store, other_owner_id, job):
        blob_store_spy = MagicMock(wraps=blob_store)
        with pytest.raises(NotFoundError):
            await create_evidence_from_upload(session, blob_store_spy, other_owner_id, job.id, make_upload())
        blob_store_spy.store.assert_not_called()

    async def test_missing_job(self, session, blob_store, owner_id):
        with pytest.raises(NotFoundError):
            await create_evidence_from_upload(session, blob_store, owner_id, uuid4(), make_upload())

    async def test_score_refresh_failure_keeps_committed_item(self, session, blob_store, owner_id, job):
        with patch("core.evidence.calculate_protection_score", side_effect=RuntimeError("db gone")):
            item = await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload())

        assert item.id is not None
        assert item.evidence_type == EvidenceType.BEFORE
        assert item.file_hash == compute_digest(JPEG_BYTES)
        assert item.description == "Roof before works"
        assert await count_evidence(session, job.id) == 1
        await session.refresh(job)
        assert job.protection_status == 0


class TestDirectInsert:

    async def test_insert_record_and_rescore(self, session, owner_id, job):
        payload = EvidenceCreate(
            evidence_type="after",
            description="Finished ridge",
            file_path="https://cdn.example/after.jpg",
            file_hash=compute_digest(b"after").upper(),
            client_approval=True,
        )
        item = await create_evidence_record(session, owner_id, job.id, payload)

        assert item.file_hash == compute_digest(b"after")
        assert item.client_approval is False
        assert item.blockchain_timestamp is None
        await session.refresh(job)
        assert job.protection_status == 25

    def test_bad_digest_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            EvidenceCreate(evidence_type="after", description="x", file_path="p", file_hash="abc")


class TestListing:

    async def test_newest_first_and_approved_only(self, session, blob_store, owner_id, job):
        first = await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload(filename="a.jpg"))
        second = await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload(filename="b.jpg"))
        await approve_evidence(session, owner_id, first.id, signature="data:image/png;base64,AAA", client_name="Alice")

        newest = await list_job_evidence(session, owner_id, job.id)
        assert [i.id for i in newest] == [second.id, first.id]

        oldest = await list_job_evidence(session, owner_id, job.id, newest_first=False)
        assert [i.id for i in oldest] == [first.id, second.id]

        approved = await list_job_evidence(session, owner_id, job.id, approved_only=True)
        assert [i.id for i in approved] == [first.id]

    async def test_get_owned_evidence_hides_other_owners(self, session, blob_store, owner_id, other_owner_id, job):
        item = await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload())
        assert (await get_owned_evidence(session, owner_id, item.id)).id == item.id
        with pytest.raises(NotFoundError):
            await get_owned_evidence(session, other_owner_id, item.id)


class TestApproval:

    async def test_approval_sets_signature_writes_audit_and_rescores(self, session, blob_store, owner_id, job):
        item = await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload())

        approved = await approve_evidence(
            session, owner_id, item.id,
            signature="data:image/png;base64,SIG",
            client_name="Alice Client",
            ip_address="203.0.113.7",
            user_agent="pytest",
        )

        assert approved.client_approval is True
        assert approved.client_signature == "data:image/png;base64,SIG"
        assert approved.updated_at is not None

        logs = (await session.execute(select(AuditLog))).scalars().all()
        assert len(logs) == 1
        assert logs[0].action == AuditAction.CLIENT_APPROVAL
        assert logs[0].job_id == job.id
        assert logs[0].ip_address == "203.0.113.7"
        assert logs[0].details == {
            "evidence_id": str(item.id),
            "client_name": "Alice Client",
            "signature_captured": True,
        }

        await session.refresh(job)
        # before (20) + timestamp (10) + approval (5)
        assert job.protection_status == 35

    async def test_second_approval_conflicts(self, session, blob_store, owner_id, job):
        item = await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload())
        item_id = item.id
        await approve_evidence(session, owner_id, item_id, signature="first", client_name="Alice")

        with pytest.raises(ConflictError):
            await approve_evidence(session, owner_id, item_id, signature="second", client_name="Mallory")

        reloaded = await get_owned_evidence(session, owner_id, item_id)
        assert reloaded.client_signature == "first"
        logs = (await session.execute(select(AuditLog))).scalars().all()
        assert len(logs) == 1

    async def test_approval_survives_score_refresh_failure(self, session, blob_store, owner_id, job):
        item = await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload())

        with patch("core.evidence.calculate_protection_score", side_effect=RuntimeError("db gone")):
            approved = await approve_evidence(session, owner_id, item.id, signature="sig", client_name="Alice")

        assert approved.client_approval is True
        assert approved.client_signature == "sig"
        logs = (await session.execute(select(AuditLog))).scalars().all()
        assert len(logs) == 1

    async def test_other_owner_cannot_approve(self, session, blob_store, owner_id, other_owner_id, job):
        item = await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload())
        with pytest.raises(NotFoundError):
            await approve_evidence(session, other_owner_id, item.id, signature="sig", client_name="Mallory")


class TestVerification:

    async def test_verify_stored_proof(self, session, blob_store, owner_id, job):
        item = await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload())

        result = await verify_evidence_timestamp(session, owner_id, item.id)

        assert result.verified is True
        assert result.timestamp == item.blockchain_timestamp
        assert result.verified_at is not None

    async def test_verify_without_proof(self, session, owner_id, job):
        item = await create_evidence_record(
            session, owner_id, job.id,
            EvidenceCreate(evidence_type="defect", description="Crack", file_path="p", file_hash="a" * 64),
        )
        with pytest.raises(ValidationError) as exc_info:
            await verify_evidence_timestamp(session, owner_id, item.id)
        assert exc_info.value.message == "No blockchain timestamp found"


class TestRescoring:

    async def test_recompute_is_idempotent(self, session, blob_store, owner_id, job):
        await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload(evidence_type="before"))
        await create_evidence_from_upload(session, blob_store, owner_id, job.id, make_upload(evidence_type="after"))

        first = await recompute_protection_score(session, job.id)
        second = await recompute_protection_score(session, job.id)

        assert first == second == 65
        stored = await session.get(Job, job.id)
        assert stored.protection_status == 65

    async def test_refresh_on_missing_job_returns_none(self, session):
        assert await refresh_protection_score(session, uuid4()) is None
