from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from ..utils.timeutils import utcnow


def _new_id() -> str:
    return str(uuid4())


class JobStatus(str, Enum):
    PENDING = "pending"
    ENRICHED = "enriched"
    FAILED = "failed"
    STALE = "stale"


TERMINAL_STATUSES = frozenset({JobStatus.FAILED, JobStatus.STALE})


class EmailType(str, Enum):
    PERSONAL = "personal"
    CORPORATE = "corporate"
    MOBILE = "mobile"


class Subscriber(SQLModel, table=True):
    """A newsletter subscriber and the attributes enrichment fills in."""

    __tablename__ = "subscribers"

    id: str = Field(default_factory=_new_id, primary_key=True)
    email: str = Field(index=True, unique=True)
    email_type: EmailType = Field(default=EmailType.PERSONAL)
    source: Optional[str] = None
    linkedin_url: Optional[str] = None
    job_title: Optional[str] = None
    company_name: Optional[str] = None
    company_domain: Optional[str] = None
    headcount: Optional[int] = None
    industry: Optional[str] = None
    icp_score: Optional[int] = None
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class EnrichmentJob(SQLModel, table=True):
    """Tracks one subscriber's enrichment from submission to result."""

    __tablename__ = "enrichment_jobs"

    id: str = Field(default_factory=_new_id, primary_key=True)
    subscriber_id: str = Field(index=True)
    status: JobStatus = Field(default=JobStatus.PENDING, index=True)
    correlation_id: Optional[str] = Field(default=None, index=True)
    estimated_credits: int = 0
    actual_credits: Optional[int] = None
    failure_reason: Optional[str] = None
    retry_count: int = 0
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    completed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
