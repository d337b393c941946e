"""Correlation registry mapping provider batch ids to workflow instances."""

from __future__ import annotations

import logging
from typing import Dict

from ..persistence.repository import WorkflowRepository

logger = logging.getLogger(__name__)


class CorrelationRegistry:
    """Route out-of-band callbacks to the workflow awaiting them.

    Entries are kept in the injected repository so a durable backend keeps
    them across restarts. A correlation id maps to at most one workflow at a
    time; registering it for a different workflow raises
    :class:`~enrichflow.exceptions.CorrelationConflictError`.
    """

    def __init__(self, repository: WorkflowRepository) -> None:
        self._repository = repository

    async def register(self, correlation_id: str, workflow_id: str) -> None:
        await self._repository.register_correlation(correlation_id, workflow_id)
        logger.info(f"Registered correlation_id={correlation_id} -> workflow_id={workflow_id}")

    async def lookup(self, correlation_id: str) -> str | None:
        workflow_id = await self._repository.lookup_correlation(correlation_id)
        if workflow_id is None:
            logger.debug(f"No workflow registered for correlation_id={correlation_id}")
        return workflow_id

    async def unregister(self, correlation_id: str) -> None:
        """Remove the mapping; unknown ids are ignored."""
        await self._repository.unregister_correlation(correlation_id)
        logger.info(f"Unregistered correlation_id={correlation_id}")

    async def active_mappings(self) -> Dict[str, str]:
        return await self._repository.list_correlations()


__all__ = ["CorrelationRegistry"]
