"""Abstract job store used by the enrichment pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional, Protocol

from .models import EnrichmentJob, JobStatus, Subscriber


class JobStore(Protocol):
    """Storage for enrichment jobs and the subscribers they belong to.

    Implementations return detached copies; callers persist changes through
    :meth:`update_status` or :meth:`update_subscriber`.
    """

    async def query_pending(self, limit: int) -> list[EnrichmentJob]:
        """Return up to ``limit`` pending jobs without a correlation id, oldest first."""

    async def update_status(self, job_id: str, **fields: Any) -> EnrichmentJob:
        """Apply ``fields`` to a job and bump ``updated_at``."""

    async def store_correlation_id(self, job_ids: Iterable[str], correlation_id: str) -> None:
        ...

    async def create_job(self, job: EnrichmentJob) -> EnrichmentJob:
        ...

    async def get_job(self, job_id: str) -> EnrichmentJob | None:
        ...

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        created_before: Optional[datetime] = None,
    ) -> list[EnrichmentJob]:
        ...

    async def find_by_correlation(self, correlation_id: str) -> list[EnrichmentJob]:
        ...

    async def add_subscriber(self, subscriber: Subscriber) -> Subscriber:
        ...

    async def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        ...

    async def get_subscribers(self, subscriber_ids: Iterable[str]) -> list[Subscriber]:
        ...

    async def find_subscriber_by_email(self, email: str) -> Subscriber | None:
        ...

    async def update_subscriber(self, subscriber_id: str, **fields: Any) -> Subscriber:
        ...
