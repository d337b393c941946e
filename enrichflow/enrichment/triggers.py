"""Entry points that start enrichment workflows."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel

from ..exceptions import SubscriberNotFoundError
from ..jobs.creator import create_enrichment_job
from ..jobs.models import EmailType, Subscriber
from ..jobs.store import JobStore
from ..workflow.engine import WorkflowEngine
from ..workflow.models import TriggerResult, WorkflowDefinition
from .classifier import classify_email
from .workflow import EnrichmentWorkflowInput

logger = logging.getLogger(__name__)


class IngestResult(BaseModel):
    subscriber_id: str
    email_type: EmailType
    created: bool
    job_id: Optional[str] = None
    workflow_id: Optional[str] = None


async def trigger_enrichment_for_subscriber(
    engine: WorkflowEngine,
    definition: WorkflowDefinition,
    store: JobStore,
    subscriber_id: str,
) -> TriggerResult | None:
    """Start a workflow for a personal-email subscriber; ``None`` otherwise."""
    subscriber = await store.get_subscriber(subscriber_id)
    if subscriber is None:
        raise SubscriberNotFoundError(subscriber_id)
    if subscriber.email_type != EmailType.PERSONAL:
        logger.debug(f"Not triggering enrichment for {subscriber.email_type} subscriber {subscriber_id}")
        return None
    payload = EnrichmentWorkflowInput(
        trigger_type="subscriber-created",
        subscriber_id=subscriber.id,
        email=subscriber.email,
    )
    return await engine.trigger(definition, payload.model_dump())


async def trigger_scheduled_batch(
    engine: WorkflowEngine, definition: WorkflowDefinition
) -> TriggerResult:
    """Start a workflow that drains the oldest pending jobs."""
    return await engine.trigger(definition, EnrichmentWorkflowInput().model_dump())


async def ingest_subscriber(
    store: JobStore,
    engine: WorkflowEngine,
    definition: WorkflowDefinition,
    email: str,
    source: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> IngestResult:
    """Record a new subscriber and queue enrichment when the email is personal.

    Known emails are left as they are and nothing is triggered.
    """
    normalized = email.strip().lower()
    existing = await store.find_subscriber_by_email(normalized)
    if existing is not None:
        logger.info(f"Subscriber {normalized} already known as {existing.id}")
        return IngestResult(
            subscriber_id=existing.id,
            email_type=existing.email_type,
            created=False,
        )

    email_type = classify_email(normalized)
    subscriber = await store.add_subscriber(
        Subscriber(email=normalized, email_type=email_type, source=source)
    )
    logger.info(
        f"Added {email_type.value} subscriber {subscriber.id} from {source or 'unknown source'}"
        + (f" with metadata keys {sorted(metadata)}" if metadata else "")
    )
    result = IngestResult(subscriber_id=subscriber.id, email_type=email_type, created=True)
    if email_type != EmailType.PERSONAL:
        return result

    job = await create_enrichment_job(store, subscriber.id, email_type)
    trigger = await trigger_enrichment_for_subscriber(engine, definition, store, subscriber.id)
    result.job_id = job.id
    result.workflow_id = trigger.workflow_id if trigger else None
    return result
