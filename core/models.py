"""
Bluhatch API Models

Pydantic v2 models for the request and response contracts of the jobs,
evidence, approval and report endpoints. Database rows live in
``core.models_sql``; these models validate what crosses the HTTP boundary.

Example usage:
    from core.models import JobCreate

    job = JobCreate(client_name="A. Client", client_address="1 High St", job_type="Roofing")
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.hashing import is_valid_digest
from core.models_sql import EvidenceType


class GPSFix(BaseModel):
    """Device location at capture time."""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)


class JobCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    client_name: str = Field(min_length=1)
    client_address: str = Field(min_length=1)
    client_phone: Optional[str] = None
    job_type: str = Field(min_length=1)
    job_description: Optional[str] = None
    contract_value: Optional[float] = Field(default=None, ge=0)
    start_date: Optional[datetime] = None


class JobUpdate(BaseModel):
    """Partial job update. ``protection_status`` is not accepted here."""
    model_config = ConfigDict(extra="ignore")

    client_name: Optional[str] = Field(default=None, min_length=1)
    client_address: Optional[str] = Field(default=None, min_length=1)
    client_phone: Optional[str] = None
    job_type: Optional[str] = Field(default=None, min_length=1)
    job_description: Optional[str] = None
    contract_value: Optional[float] = Field(default=None, ge=0)
    start_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None


class JobRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    client_name: str
    client_address: str
    client_phone: Optional[str] = None
    job_type: str
    job_description: Optional[str] = None
    contract_value: Optional[float] = None
    start_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    protection_status: int
    created_at: datetime
    updated_at: datetime


class EvidenceUpload(BaseModel):
    """
    An uploaded artifact plus its capture metadata.

    Built by the upload routes from multipart form fields after the
    required-field check, so every field here is already present.
    """
    filename: str = Field(min_length=1)
    content: bytes
    content_type: str
    evidence_type: EvidenceType
    description: str = Field(min_length=1)
    gps: Optional[GPSFix] = None
    device_timestamp: Optional[datetime] = None


class EvidenceCreate(BaseModel):
    """
    Direct insert of an evidence record whose artifact is already stored.

    Approval fields are ignored: approval is only granted through the
    signature endpoint.
    """
    model_config = ConfigDict(extra="ignore")

    evidence_type: EvidenceType
    description: str = Field(min_length=1)
    file_path: str = Field(min_length=1)
    file_hash: str
    gps_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    gps_longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    gps_accuracy: Optional[float] = Field(default=None, ge=0)
    device_timestamp: Optional[datetime] = None

    @field_validator("file_hash")
    @classmethod
    def validate_file_hash(cls, v: str) -> str:
        v = v.strip().lower()
        if not is_valid_digest(v):
            raise ValueError("file_hash must be a 64-character SHA-256 hex digest")
        return v

    @model_validator(mode="after")
    def validate_gps_pair(self) -> "EvidenceCreate":
        if (self.gps_latitude is None) != (self.gps_longitude is None):
            raise ValueError("gps_latitude and gps_longitude must be provided together")
        return self


class EvidenceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    job_id: UUID
    evidence_type: EvidenceType
    file_path: str
    file_hash: str
    blockchain_timestamp: Optional[str] = None
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    gps_accuracy: Optional[float] = None
    device_timestamp: datetime
    server_timestamp: datetime
    description: str
    client_approval: bool
    client_signature: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class SignatureApproval(BaseModel):
    """Client sign-off on a single evidence item."""
    model_config = ConfigDict(populate_by_name=True)

    evidence_id: UUID = Field(alias="evidenceId")
    signature: str = Field(min_length=1)
    client_name: str = Field(alias="clientName", min_length=1)


class TimestampVerification(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    verified: bool
    timestamp: str
    verified_at: datetime = Field(serialization_alias="verifiedAt")


class ReportSummary(BaseModel):
    report_url: str = Field(serialization_alias="reportUrl")
    report_id: str = Field(serialization_alias="reportId")
    generated_at: datetime = Field(serialization_alias="generatedAt")
    evidence_count: int = Field(serialization_alias="evidenceCount")
    protection_score: int = Field(serialization_alias="protectionScore")


def dump(model: BaseModel) -> Dict[str, Any]:
    """JSON-ready dict using the public field names."""
    return model.model_dump(mode="json", by_alias=True)


def dump_many(models: List[BaseModel]) -> List[Dict[str, Any]]:
    return [dump(m) for m in models]
