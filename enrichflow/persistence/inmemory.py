"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from typing import Dict, Optional

from ..exceptions import CorrelationConflictError
from ..workflow.models import WorkflowInstance
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Instances are kept in serialized
    form so callers never share the engine's working copy.
    """

    def __init__(self) -> None:
        self._instances: Dict[str, str] = {}
        self._correlations: Dict[str, str] = {}

    # ------------------------------------------------------------------
    async def save_instance(self, instance: WorkflowInstance) -> None:
        self._instances[instance.workflow_id] = instance.model_dump_json()

    async def get_instance(self, workflow_id: str) -> WorkflowInstance | None:
        raw = self._instances.get(workflow_id)
        return WorkflowInstance.model_validate_json(raw) if raw else None

    async def list_instances(self, status: Optional[str] = None) -> list[WorkflowInstance]:
        instances = [WorkflowInstance.model_validate_json(raw) for raw in self._instances.values()]
        if status is not None:
            instances = [i for i in instances if i.status == status]
        return instances

    # ------------------------------------------------------------------
    async def register_correlation(self, correlation_id: str, workflow_id: str) -> None:
        existing = self._correlations.get(correlation_id)
        if existing is not None and existing != workflow_id:
            raise CorrelationConflictError(correlation_id, existing, workflow_id)
        self._correlations[correlation_id] = workflow_id

    async def lookup_correlation(self, correlation_id: str) -> str | None:
        return self._correlations.get(correlation_id)

    async def unregister_correlation(self, correlation_id: str) -> None:
        self._correlations.pop(correlation_id, None)

    async def list_correlations(self) -> Dict[str, str]:
        return dict(self._correlations)
