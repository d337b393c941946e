"""SQLModel backed job store."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, col, select

from ..exceptions import JobNotFoundError, SubscriberNotFoundError
from ..utils.timeutils import utcnow
from .models import EnrichmentJob, JobStatus, Subscriber
from .store import JobStore


class SQLJobStore(JobStore):
    """Async database helper for enrichment jobs and subscribers.

    Works with any SQLAlchemy async URL, e.g. ``sqlite+aiosqlite:///jobs.db``
    or ``postgresql+asyncpg://user@host/db``. Call :meth:`init_db` once to
    create the tables.
    """

    def __init__(self, database_url: str) -> None:
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    # ------------------------------------------------------------------
    async def query_pending(self, limit: int) -> list[EnrichmentJob]:
        stmt = (
            select(EnrichmentJob)
            .where(EnrichmentJob.status == JobStatus.PENDING)
            .where(col(EnrichmentJob.correlation_id).is_(None))
            .order_by(col(EnrichmentJob.created_at))
            .limit(limit)
        )
        async with self.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def update_status(self, job_id: str, **fields: Any) -> EnrichmentJob:
        async with self.session() as session:
            job = await session.get(EnrichmentJob, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            for key, value in fields.items():
                if not hasattr(job, key):
                    raise AttributeError(f"EnrichmentJob has no field {key}")
                setattr(job, key, value)
            job.updated_at = utcnow()
            await session.commit()
            await session.refresh(job)
            return job

    async def store_correlation_id(self, job_ids: Iterable[str], correlation_id: str) -> None:
        ids = list(job_ids)
        async with self.session() as session:
            result = await session.execute(
                select(EnrichmentJob).where(col(EnrichmentJob.id).in_(ids))
            )
            jobs = {job.id: job for job in result.scalars().all()}
            missing = [job_id for job_id in ids if job_id not in jobs]
            if missing:
                raise JobNotFoundError(missing[0])
            now = utcnow()
            for job in jobs.values():
                job.correlation_id = correlation_id
                job.updated_at = now
            await session.commit()

    async def create_job(self, job: EnrichmentJob) -> EnrichmentJob:
        async with self.session() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)
        return job

    async def get_job(self, job_id: str) -> EnrichmentJob | None:
        async with self.session() as session:
            return await session.get(EnrichmentJob, job_id)

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        created_before: Optional[datetime] = None,
    ) -> list[EnrichmentJob]:
        stmt = select(EnrichmentJob)
        if status is not None:
            stmt = stmt.where(EnrichmentJob.status == JobStatus(status))
        if created_before is not None:
            stmt = stmt.where(col(EnrichmentJob.created_at) < created_before)
        stmt = stmt.order_by(col(EnrichmentJob.created_at))
        async with self.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_by_correlation(self, correlation_id: str) -> list[EnrichmentJob]:
        stmt = (
            select(EnrichmentJob)
            .where(EnrichmentJob.correlation_id == correlation_id)
            .order_by(col(EnrichmentJob.created_at))
        )
        async with self.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    async def add_subscriber(self, subscriber: Subscriber) -> Subscriber:
        async with self.session() as session:
            session.add(subscriber)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ValueError(f"Subscriber already exists: {subscriber.email}") from exc
            await session.refresh(subscriber)
        return subscriber

    async def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        async with self.session() as session:
            return await session.get(Subscriber, subscriber_id)

    async def get_subscribers(self, subscriber_ids: Iterable[str]) -> list[Subscriber]:
        ids = list(dict.fromkeys(subscriber_ids))
        if not ids:
            return []
        async with self.session() as session:
            result = await session.execute(select(Subscriber).where(col(Subscriber.id).in_(ids)))
            by_id = {s.id: s for s in result.scalars().all()}
        return [by_id[i] for i in ids if i in by_id]

    async def find_subscriber_by_email(self, email: str) -> Subscriber | None:
        stmt = select(Subscriber).where(func.lower(Subscriber.email) == email.strip().lower())
        async with self.session() as session:
            result = await session.execute(stmt)
            return result.scalars().first()

    async def update_subscriber(self, subscriber_id: str, **fields: Any) -> Subscriber:
        async with self.session() as session:
            subscriber = await session.get(Subscriber, subscriber_id)
            if subscriber is None:
                raise SubscriberNotFoundError(subscriber_id)
            for key, value in fields.items():
                if not hasattr(subscriber, key):
                    raise AttributeError(f"Subscriber has no field {key}")
                setattr(subscriber, key, value)
            subscriber.updated_at = utcnow()
            await session.commit()
            await session.refresh(subscriber)
            return subscriber
