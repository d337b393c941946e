"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional

from ..exceptions import CorrelationConflictError
from ..utils.timeutils import utcnow
from ..workflow.models import WorkflowInstance, WorkflowStatus
from .repository import WorkflowRepository


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_instances (
                workflow_id TEXT PRIMARY KEY,
                workflow_name TEXT NOT NULL,
                status TEXT NOT NULL,
                data TEXT NOT NULL,
                started_at TEXT,
                completed_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS correlations (
                correlation_id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def _insert_correlation(self, correlation_id: str, workflow_id: str) -> str:
        cur = self._conn.cursor()
        cur.execute(
            "INSERT OR IGNORE INTO correlations (correlation_id, workflow_id, created_at) VALUES (?, ?, ?)",
            (correlation_id, workflow_id, utcnow().isoformat()),
        )
        self._conn.commit()
        cur.execute(
            "SELECT workflow_id FROM correlations WHERE correlation_id = ?",
            (correlation_id,),
        )
        return cur.fetchone()["workflow_id"]

    # ------------------------------------------------------------------
    # Repository API
    async def save_instance(self, instance: WorkflowInstance) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflow_instances (workflow_id, workflow_name, status, data, started_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(workflow_id) DO UPDATE SET
                status = excluded.status,
                data = excluded.data,
                completed_at = excluded.completed_at
            """,
            instance.workflow_id,
            instance.workflow_name,
            instance.status.value,
            instance.model_dump_json(),
            instance.started_at.isoformat(),
            instance.completed_at.isoformat() if instance.completed_at else None,
        )

    async def get_instance(self, workflow_id: str) -> WorkflowInstance | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT data FROM workflow_instances WHERE workflow_id = ?",
            workflow_id,
        )
        if not row:
            return None
        return WorkflowInstance.model_validate_json(row["data"])

    async def list_instances(self, status: Optional[str] = None) -> list[WorkflowInstance]:
        if status is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT data FROM workflow_instances ORDER BY started_at",
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT data FROM workflow_instances WHERE status = ? ORDER BY started_at",
                WorkflowStatus(status).value,
            )
        return [WorkflowInstance.model_validate_json(r["data"]) for r in rows]

    async def register_correlation(self, correlation_id: str, workflow_id: str) -> None:
        existing = await asyncio.to_thread(self._insert_correlation, correlation_id, workflow_id)
        if existing != workflow_id:
            raise CorrelationConflictError(correlation_id, existing, workflow_id)

    async def lookup_correlation(self, correlation_id: str) -> str | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT workflow_id FROM correlations WHERE correlation_id = ?",
            correlation_id,
        )
        return row["workflow_id"] if row else None

    async def unregister_correlation(self, correlation_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "DELETE FROM correlations WHERE correlation_id = ?",
            correlation_id,
        )

    async def list_correlations(self) -> Dict[str, str]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT correlation_id, workflow_id FROM correlations"
        )
        return {r["correlation_id"]: r["workflow_id"] for r in rows}
