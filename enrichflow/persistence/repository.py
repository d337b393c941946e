"""Repository abstraction for workflow state persistence."""

from __future__ import annotations

from typing import Dict, Optional, Protocol

from ..workflow.models import WorkflowInstance


class WorkflowRepository(Protocol):
    """Protocol for workflow instance and correlation storage backends."""

    async def save_instance(self, instance: WorkflowInstance) -> None:
        """Insert or replace the stored record for ``instance``."""

    async def get_instance(self, workflow_id: str) -> WorkflowInstance | None:
        """Retrieve the workflow instance by id."""

    async def list_instances(self, status: Optional[str] = None) -> list[WorkflowInstance]:
        """Return persisted instances, optionally filtered by status."""

    async def register_correlation(self, correlation_id: str, workflow_id: str) -> None:
        """Map ``correlation_id`` to ``workflow_id``.

        Raises ``CorrelationConflictError`` if the id already maps to a
        different workflow.
        """

    async def lookup_correlation(self, correlation_id: str) -> str | None:
        """Return the workflow id mapped to ``correlation_id``."""

    async def unregister_correlation(self, correlation_id: str) -> None:
        """Remove the mapping; removing a missing mapping is a no-op."""

    async def list_correlations(self) -> Dict[str, str]:
        """Return all live correlation mappings."""
