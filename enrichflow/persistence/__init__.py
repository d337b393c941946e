"""Persistence layer for workflow instances and correlations."""

from __future__ import annotations

import os
from typing import Optional

from ..config import EnrichflowConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresWorkflowRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresWorkflowRepository = None  # type: ignore

try:  # pragma: no cover - optional dependency
    from .redis import RedisWorkflowRepository
except ImportError:  # pragma: no cover - optional dependency
    RedisWorkflowRepository = None  # type: ignore


def get_repository(
    database_url: Optional[str] = None, config: Optional[EnrichflowConfig] = None
) -> WorkflowRepository:
    """Factory function to obtain a workflow repository.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``ENRICHFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned. Each call builds a new
    repository so engines never share state implicitly.
    """

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("ENRICHFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        return InMemoryWorkflowRepository()

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        return SQLiteWorkflowRepository(path)
    if database_url.startswith("postgres://") or database_url.startswith("postgresql://"):
        if PostgresWorkflowRepository is None:
            raise RuntimeError("Postgres support not available")
        return PostgresWorkflowRepository(database_url)
    if database_url.startswith("redis://") or database_url.startswith("rediss://"):
        if RedisWorkflowRepository is None:
            raise RuntimeError("Redis support not available")
        return RedisWorkflowRepository.from_url(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


__all__ = [
    "WorkflowRepository",
    "InMemoryWorkflowRepository",
    "SQLiteWorkflowRepository",
    "PostgresWorkflowRepository",
    "RedisWorkflowRepository",
    "get_repository",
]
