"""Enrichment jobs, subscribers and the stores that hold them."""

from __future__ import annotations

import os
from typing import Optional

from ..config import EnrichflowConfig
from .batching import MAX_BATCH_SIZE, batch_jobs, submit_batch
from .creator import create_enrichment_job, estimate_credits
from .failures import FailureHandler, FailureOutcome, FailureStats
from .inmemory import InMemoryJobStore
from .models import EmailType, EnrichmentJob, JobStatus, Subscriber
from .sql import SQLJobStore
from .store import JobStore


def get_job_store(
    database_url: Optional[str] = None, config: Optional[EnrichflowConfig] = None
) -> JobStore:
    """Return a job store for ``database_url``.

    Falls back to ``ENRICHFLOW_JOBS_DATABASE_URL`` and then the loaded
    configuration. Without a URL an in-memory store is returned. SQL stores
    need ``await store.init_db()`` before first use.
    """
    database_url = (
        database_url
        or os.getenv("ENRICHFLOW_JOBS_DATABASE_URL")
        or getattr(config, "jobs_database_url", None)
    )
    if not database_url:
        return InMemoryJobStore()
    return SQLJobStore(database_url)


__all__ = [
    "JobStore",
    "InMemoryJobStore",
    "SQLJobStore",
    "get_job_store",
    "EnrichmentJob",
    "Subscriber",
    "JobStatus",
    "EmailType",
    "FailureHandler",
    "FailureOutcome",
    "FailureStats",
    "MAX_BATCH_SIZE",
    "batch_jobs",
    "submit_batch",
    "create_enrichment_job",
    "estimate_credits",
]
