"""Subscriber enrichment pipeline built on the workflow engine."""

from __future__ import annotations

from .classifier import CONSUMER_DOMAINS, classify_email
from .results import ProcessStepOutput, process_callback
from .triggers import (
    IngestResult,
    ingest_subscriber,
    trigger_enrichment_for_subscriber,
    trigger_scheduled_batch,
)
from .webhook import EnrichmentWebhookReceiver, SubscribePayload, WebhookOutcome
from .workflow import (
    BATCH_STEP,
    ENRICHMENT_COMPLETE,
    PROCESS_STEP,
    SUBMIT_STEP,
    WAIT_STEP,
    WORKFLOW_NAME,
    EnrichmentSteps,
    build_enrichment_workflow,
)

__all__ = [
    "CONSUMER_DOMAINS",
    "classify_email",
    "ProcessStepOutput",
    "process_callback",
    "IngestResult",
    "ingest_subscriber",
    "trigger_enrichment_for_subscriber",
    "trigger_scheduled_batch",
    "EnrichmentWebhookReceiver",
    "SubscribePayload",
    "WebhookOutcome",
    "WORKFLOW_NAME",
    "BATCH_STEP",
    "SUBMIT_STEP",
    "WAIT_STEP",
    "PROCESS_STEP",
    "ENRICHMENT_COMPLETE",
    "EnrichmentSteps",
    "build_enrichment_workflow",
]
