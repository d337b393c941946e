"""Signed inbound webhooks: provider callbacks and newsletter subscriptions."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from ..exceptions import SignatureVerificationError, WebhookPayloadError
from ..provider.schemas import EnrichmentCallback
from ..registry import CorrelationRegistry
from ..security.signature import verify_signature
from ..workflow.engine import WorkflowEngine
from .workflow import ENRICHMENT_COMPLETE

logger = logging.getLogger(__name__)


class WebhookOutcome(BaseModel):
    status: str
    correlation_id: str
    workflow_id: Optional[str] = None
    results: int = 0


class SubscribePayload(BaseModel):
    email: str = Field(pattern=r"^.+@.+\..+$")
    source: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None


def authenticate(raw_body: bytes, signature: Optional[str], secret: Optional[str], source: str) -> None:
    """Raise :class:`SignatureVerificationError` unless ``signature`` matches."""
    check = verify_signature(raw_body, signature, secret)
    if not check.is_valid:
        supplied = f"{signature[:8]}..." if signature else None
        logger.warning(
            f"Rejected {source} webhook: {check.error} "
            f"(signature={supplied}, body_bytes={len(raw_body)})"
        )
        raise SignatureVerificationError(check.error or "Invalid signature")


class EnrichmentWebhookReceiver:
    """Authenticate provider callbacks and resume the workflow awaiting them.

    Callbacks whose correlation id is not registered, or whose workflow is
    no longer running, are logged and dropped.
    """

    def __init__(self, engine: WorkflowEngine, registry: CorrelationRegistry, secret: Optional[str]):
        self.engine = engine
        self.registry = registry
        self.secret = secret

    async def receive(self, raw_body: bytes, signature: Optional[str]) -> WebhookOutcome:
        authenticate(raw_body, signature, self.secret, "enrichment")
        try:
            callback = EnrichmentCallback.model_validate_json(raw_body)
        except ValidationError as exc:
            logger.warning(f"Rejected enrichment webhook with invalid payload: {exc}")
            raise WebhookPayloadError(f"Invalid enrichment callback: {exc}") from exc

        correlation_id = callback.correlation_id
        outcome = WebhookOutcome(
            status="dropped", correlation_id=correlation_id, results=len(callback.results)
        )
        workflow_id = await self.registry.lookup(correlation_id)
        if workflow_id is None:
            logger.warning(f"Dropping callback for unregistered correlation_id={correlation_id}")
            return outcome

        outcome.workflow_id = workflow_id
        if not self.engine.emit_event(workflow_id, ENRICHMENT_COMPLETE, callback):
            logger.warning(
                f"Dropping callback for correlation_id={correlation_id}: "
                f"workflow_id={workflow_id} is not running"
            )
            return outcome

        outcome.status = "accepted"
        logger.info(
            f"Routed callback correlation_id={correlation_id} to workflow_id={workflow_id}"
        )
        return outcome


def parse_subscribe_payload(raw_body: bytes) -> SubscribePayload:
    try:
        return SubscribePayload.model_validate_json(raw_body)
    except ValidationError as exc:
        logger.warning(f"Rejected subscribe webhook with invalid payload: {exc}")
        raise WebhookPayloadError(f"Invalid subscribe payload: {exc}") from exc
