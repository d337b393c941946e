"""Failure accounting and staleness detection for enrichment jobs."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from typing import Dict, Iterable, Optional

from pydantic import BaseModel

from ..exceptions import InvalidJobStateError, JobNotFoundError
from ..utils.timeutils import Duration, parse_duration, utcnow
from .models import TERMINAL_STATUSES, EnrichmentJob, JobStatus
from .store import JobStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_STALE_THRESHOLD = timedelta(hours=24)


class FailureOutcome(BaseModel):
    should_retry: bool
    retry_count: int


class FailureStats(BaseModel):
    total_failed: int = 0
    total_stale: int = 0
    failure_reasons: Dict[str, int] = {}


class FailureHandler:
    """Apply the retry budget and staleness rules to enrichment jobs."""

    def __init__(
        self,
        store: JobStore,
        max_retries: int = DEFAULT_MAX_RETRIES,
        stale_threshold: Duration = DEFAULT_STALE_THRESHOLD,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.store = store
        self.max_retries = max_retries
        self.stale_threshold = timedelta(seconds=parse_duration(stale_threshold))

    async def _require(self, job_id: str) -> EnrichmentJob:
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def record_failure(self, job_id: str, reason: str) -> FailureOutcome:
        """Count one failed attempt for ``job_id``.

        Once the count reaches ``max_retries`` the job is marked failed.
        Otherwise it stays pending with its correlation id cleared so the
        next batch picks it up again.
        """
        job = await self._require(job_id)
        retry_count = job.retry_count + 1

        if retry_count >= self.max_retries:
            await self.store.update_status(
                job_id,
                status=JobStatus.FAILED,
                retry_count=retry_count,
                failure_reason=reason,
                completed_at=utcnow(),
            )
            logger.warning(
                f"Job {job_id} failed after {retry_count}/{self.max_retries} attempts: {reason}"
            )
            return FailureOutcome(should_retry=False, retry_count=retry_count)

        fields = {"retry_count": retry_count, "failure_reason": reason}
        if job.status == JobStatus.PENDING:
            fields["correlation_id"] = None
        await self.store.update_status(job_id, **fields)
        logger.info(f"Job {job_id} attempt {retry_count}/{self.max_retries} failed: {reason}")
        return FailureOutcome(should_retry=True, retry_count=retry_count)

    async def mark_failed(self, job_id: str, reason: str) -> EnrichmentJob:
        await self._require(job_id)
        logger.warning(f"Marking job {job_id} failed: {reason}")
        return await self.store.update_status(
            job_id,
            status=JobStatus.FAILED,
            failure_reason=reason,
            completed_at=utcnow(),
        )

    async def fail_batch(self, job_ids: Iterable[str], reason: str) -> int:
        """Mark every still-pending job in ``job_ids`` failed; return the count."""
        failed = 0
        for job_id in job_ids:
            job = await self.store.get_job(job_id)
            if job is None or job.status != JobStatus.PENDING:
                continue
            await self.mark_failed(job_id, reason)
            failed += 1
        return failed

    async def sweep_stale(self, threshold: Optional[Duration] = None) -> int:
        """Mark pending jobs older than ``threshold`` stale and return how many."""
        window = (
            timedelta(seconds=parse_duration(threshold))
            if threshold is not None
            else self.stale_threshold
        )
        cutoff = utcnow() - window
        hours = window.total_seconds() / 3600
        reason = f"Job pending for more than {hours:g} hours"

        stale = await self.store.list_jobs(status=JobStatus.PENDING, created_before=cutoff)
        now = utcnow()
        for job in stale:
            await self.store.update_status(
                job.id,
                status=JobStatus.STALE,
                failure_reason=reason,
                completed_at=now,
            )
        if stale:
            logger.warning(f"Marked {len(stale)} job(s) stale: {reason}")
        return len(stale)

    async def retry(self, job_id: str) -> EnrichmentJob:
        """Return a failed or stale job to the pending queue."""
        job = await self._require(job_id)
        if job.status not in TERMINAL_STATUSES:
            raise InvalidJobStateError(job_id, JobStatus(job.status).value)
        logger.info(f"Retrying job {job_id} (was {JobStatus(job.status).value})")
        return await self.store.update_status(
            job_id,
            status=JobStatus.PENDING,
            correlation_id=None,
            failure_reason=None,
            completed_at=None,
        )

    async def failure_stats(self) -> FailureStats:
        failed = await self.store.list_jobs(status=JobStatus.FAILED)
        stale = await self.store.list_jobs(status=JobStatus.STALE)
        reasons = Counter(
            job.failure_reason or "Unknown" for job in [*failed, *stale]
        )
        return FailureStats(
            total_failed=len(failed),
            total_stale=len(stale),
            failure_reasons=dict(reasons),
        )
