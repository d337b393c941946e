"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

from typing import Dict, Optional

import asyncpg

from ..exceptions import CorrelationConflictError
from ..workflow.models import WorkflowInstance, WorkflowStatus
from .repository import WorkflowRepository


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_instances (
                workflow_id TEXT PRIMARY KEY,
                workflow_name TEXT NOT NULL,
                status TEXT NOT NULL,
                data JSONB NOT NULL,
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS correlations (
                correlation_id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            """
        )

    # ------------------------------------------------------------------
    async def save_instance(self, instance: WorkflowInstance) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO workflow_instances (workflow_id, workflow_name, status, data, started_at, completed_at)
                VALUES ($1, $2, $3, $4::jsonb, $5, $6)
                ON CONFLICT (workflow_id) DO UPDATE SET
                    status = EXCLUDED.status,
                    data = EXCLUDED.data,
                    completed_at = EXCLUDED.completed_at
                """,
                instance.workflow_id,
                instance.workflow_name,
                instance.status.value,
                instance.model_dump_json(),
                instance.started_at,
                instance.completed_at,
            )
        finally:
            await conn.close()

    async def get_instance(self, workflow_id: str) -> WorkflowInstance | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT data::text AS data FROM workflow_instances WHERE workflow_id = $1",
                workflow_id,
            )
        finally:
            await conn.close()
        if not row:
            return None
        return WorkflowInstance.model_validate_json(row["data"])

    async def list_instances(self, status: Optional[str] = None) -> list[WorkflowInstance]:
        conn = await self._connect()
        try:
            if status is None:
                rows = await conn.fetch(
                    "SELECT data::text AS data FROM workflow_instances ORDER BY started_at"
                )
            else:
                rows = await conn.fetch(
                    "SELECT data::text AS data FROM workflow_instances WHERE status = $1 ORDER BY started_at",
                    WorkflowStatus(status).value,
                )
        finally:
            await conn.close()
        return [WorkflowInstance.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    async def register_correlation(self, correlation_id: str, workflow_id: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO correlations (correlation_id, workflow_id)
                VALUES ($1, $2)
                ON CONFLICT (correlation_id) DO NOTHING
                """,
                correlation_id,
                workflow_id,
            )
            existing = await conn.fetchval(
                "SELECT workflow_id FROM correlations WHERE correlation_id = $1",
                correlation_id,
            )
        finally:
            await conn.close()
        if existing != workflow_id:
            raise CorrelationConflictError(correlation_id, existing, workflow_id)

    async def lookup_correlation(self, correlation_id: str) -> str | None:
        conn = await self._connect()
        try:
            return await conn.fetchval(
                "SELECT workflow_id FROM correlations WHERE correlation_id = $1",
                correlation_id,
            )
        finally:
            await conn.close()

    async def unregister_correlation(self, correlation_id: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "DELETE FROM correlations WHERE correlation_id = $1",
                correlation_id,
            )
        finally:
            await conn.close()

    async def list_correlations(self) -> Dict[str, str]:
        conn = await self._connect()
        try:
            rows = await conn.fetch("SELECT correlation_id, workflow_id FROM correlations")
        finally:
            await conn.close()
        return {r["correlation_id"]: r["workflow_id"] for r in rows}
