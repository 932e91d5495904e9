"""
SQLModel database models for Bluhatch

Defines the persisted entities: Job, EvidenceItem, AuditLog
Uses SQLModel for type-safe ORM with async PostgreSQL support
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import JSON, Column, Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EvidenceType(str, Enum):
    BEFORE = "before"
    PROGRESS = "progress"
    AFTER = "after"
    DEFECT = "defect"
    APPROVAL = "approval"


class AuditAction(str, Enum):
    CLIENT_APPROVAL = "client_approval"


class Job(SQLModel, table=True):
    __tablename__ = "jobs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(index=True)
    client_name: str
    client_address: str
    client_phone: Optional[str] = None
    job_type: str
    job_description: Optional[str] = None
    contract_value: Optional[float] = None
    start_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    # Derived from evidence; only written by the scorer
    protection_status: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class EvidenceItem(SQLModel, table=True):
    __tablename__ = "evidence_items"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    job_id: UUID = Field(foreign_key="jobs.id", index=True)
    evidence_type: EvidenceType = Field(index=True)
    file_path: str
    file_hash: str = Field(max_length=64, index=True)
    blockchain_timestamp: Optional[str] = None
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    gps_accuracy: Optional[float] = None
    device_timestamp: datetime
    server_timestamp: datetime = Field(default_factory=utcnow)
    description: str
    client_approval: bool = Field(default=False, index=True)
    client_signature: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: Optional[datetime] = None


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(index=True)
    job_id: Optional[UUID] = Field(default=None, index=True)
    action: AuditAction = Field(index=True)
    details: dict = Field(default_factory=dict, sa_column=Column(JSON))
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
