"""Wire configuration into a ready-to-run enrichment runtime."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .config import EnrichflowConfig, load_config
from .enrichment.results import Scorer
from .enrichment.webhook import EnrichmentWebhookReceiver
from .enrichment.workflow import build_enrichment_workflow
from .jobs import FailureHandler, JobStore, SQLJobStore, get_job_store
from .persistence import WorkflowRepository, get_repository
from .provider.client import ProviderClient
from .registry import CorrelationRegistry
from .utils.retry import Sleep
from .workflow.engine import WorkflowEngine
from .workflow.models import WorkflowDefinition

logger = logging.getLogger(__name__)


@dataclass
class EnrichflowRuntime:
    """Every collaborator of the enrichment pipeline, built once per process."""

    config: EnrichflowConfig
    repository: WorkflowRepository
    engine: WorkflowEngine
    registry: CorrelationRegistry
    store: JobStore
    provider: ProviderClient
    failures: FailureHandler
    definition: WorkflowDefinition
    receiver: EnrichmentWebhookReceiver

    async def start(self) -> None:
        if isinstance(self.store, SQLJobStore):
            await self.store.init_db()
        logger.info("Enrichflow runtime started")

    async def close(self) -> None:
        await self.engine.shutdown()
        await self.provider.aclose()
        if isinstance(self.store, SQLJobStore):
            await self.store.close()
        logger.info("Enrichflow runtime stopped")


def build_runtime(
    config: Optional[EnrichflowConfig] = None,
    *,
    repository: Optional[WorkflowRepository] = None,
    store: Optional[JobStore] = None,
    provider: Optional[ProviderClient] = None,
    sleep: Sleep = asyncio.sleep,
    scorer: Optional[Scorer] = None,
) -> EnrichflowRuntime:
    """Build a runtime from ``config``; explicit collaborators take precedence."""
    config = config or load_config()
    repository = repository or get_repository(config.database_url, config=config)
    store = store or get_job_store(config.jobs_database_url, config=config)
    provider = provider or ProviderClient(
        config.provider.api_key,
        config.provider.base_url,
        config.provider.retry_policy(),
        sleep=sleep,
        timeout=config.provider.timeout,
    )
    if not config.provider.api_key:
        logger.warning("No provider API key configured; submissions will be rejected")

    engine = WorkflowEngine(repository, sleep=sleep)
    registry = CorrelationRegistry(repository)
    failures = FailureHandler(
        store,
        max_retries=config.failures.max_retries,
        stale_threshold=config.failures.stale_threshold_hours * 3600,
    )
    definition = build_enrichment_workflow(
        store,
        provider,
        registry,
        failures,
        webhook_url=config.provider.webhook_url or "",
        batch_size=config.workflow.batch_size,
        callback_timeout=config.workflow.callback_timeout,
        scorer=scorer,
    )
    receiver = EnrichmentWebhookReceiver(engine, registry, config.webhooks.enrichment_secret)
    return EnrichflowRuntime(
        config=config,
        repository=repository,
        engine=engine,
        registry=registry,
        store=store,
        provider=provider,
        failures=failures,
        definition=definition,
        receiver=receiver,
    )
