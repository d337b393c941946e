"""In-memory implementation of the job store."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, Optional, TypeVar

from sqlmodel import SQLModel

from ..exceptions import JobNotFoundError, SubscriberNotFoundError
from ..utils.timeutils import utcnow
from .models import EnrichmentJob, JobStatus, Subscriber
from .store import JobStore

_M = TypeVar("_M", bound=SQLModel)


def _copy(obj: _M) -> _M:
    return type(obj).model_validate(obj.model_dump())


class InMemoryJobStore(JobStore):
    """Keep jobs and subscribers in local dictionaries.

    Useful for tests or when no jobs database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, EnrichmentJob] = {}
        self._subscribers: Dict[str, Subscriber] = {}

    def _job(self, job_id: str) -> EnrichmentJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    # ------------------------------------------------------------------
    async def query_pending(self, limit: int) -> list[EnrichmentJob]:
        pending = [
            job
            for job in self._jobs.values()
            if job.status == JobStatus.PENDING and job.correlation_id is None
        ]
        pending.sort(key=lambda j: j.created_at)
        return [_copy(j) for j in pending[:limit]]

    async def update_status(self, job_id: str, **fields: Any) -> EnrichmentJob:
        job = self._job(job_id)
        for key, value in fields.items():
            if not hasattr(job, key):
                raise AttributeError(f"EnrichmentJob has no field {key}")
            setattr(job, key, value)
        job.updated_at = utcnow()
        return _copy(job)

    async def store_correlation_id(self, job_ids: Iterable[str], correlation_id: str) -> None:
        for job_id in job_ids:
            await self.update_status(job_id, correlation_id=correlation_id)

    async def create_job(self, job: EnrichmentJob) -> EnrichmentJob:
        self._jobs[job.id] = _copy(job)
        return _copy(job)

    async def get_job(self, job_id: str) -> EnrichmentJob | None:
        job = self._jobs.get(job_id)
        return _copy(job) if job else None

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        created_before: Optional[datetime] = None,
    ) -> list[EnrichmentJob]:
        jobs = list(self._jobs.values())
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        if created_before is not None:
            jobs = [j for j in jobs if j.created_at < created_before]
        jobs.sort(key=lambda j: j.created_at)
        return [_copy(j) for j in jobs]

    async def find_by_correlation(self, correlation_id: str) -> list[EnrichmentJob]:
        jobs = [j for j in self._jobs.values() if j.correlation_id == correlation_id]
        jobs.sort(key=lambda j: j.created_at)
        return [_copy(j) for j in jobs]

    # ------------------------------------------------------------------
    async def add_subscriber(self, subscriber: Subscriber) -> Subscriber:
        if await self.find_subscriber_by_email(subscriber.email) is not None:
            raise ValueError(f"Subscriber already exists: {subscriber.email}")
        self._subscribers[subscriber.id] = _copy(subscriber)
        return _copy(subscriber)

    async def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        subscriber = self._subscribers.get(subscriber_id)
        return _copy(subscriber) if subscriber else None

    async def get_subscribers(self, subscriber_ids: Iterable[str]) -> list[Subscriber]:
        return [
            _copy(self._subscribers[s]) for s in dict.fromkeys(subscriber_ids) if s in self._subscribers
        ]

    async def find_subscriber_by_email(self, email: str) -> Subscriber | None:
        needle = email.strip().lower()
        for subscriber in self._subscribers.values():
            if subscriber.email.lower() == needle:
                return _copy(subscriber)
        return None

    async def update_subscriber(self, subscriber_id: str, **fields: Any) -> Subscriber:
        subscriber = self._subscribers.get(subscriber_id)
        if subscriber is None:
            raise SubscriberNotFoundError(subscriber_id)
        for key, value in fields.items():
            if not hasattr(subscriber, key):
                raise AttributeError(f"Subscriber has no field {key}")
            setattr(subscriber, key, value)
        subscriber.updated_at = utcnow()
        return _copy(subscriber)
