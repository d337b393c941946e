"""HTTP surface: signed webhooks plus job and workflow administration."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, status

from .config import EnrichflowConfig
from .enrichment.triggers import ingest_subscriber, trigger_scheduled_batch
from .enrichment.webhook import authenticate, parse_subscribe_payload
from .exceptions import (
    InvalidJobStateError,
    JobNotFoundError,
    SignatureVerificationError,
    WebhookPayloadError,
)
from .jobs.models import JobStatus
from .runtime import EnrichflowRuntime, build_runtime
from .security.signature import SIGNATURE_HEADER

logger = logging.getLogger(__name__)


def create_app(
    runtime: Optional[EnrichflowRuntime] = None, config: Optional[EnrichflowConfig] = None
) -> FastAPI:
    """Create the FastAPI application around ``runtime``."""
    runtime = runtime or build_runtime(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await runtime.start()
        yield
        await runtime.close()

    app = FastAPI(title="enrichflow", version="0.1.0", lifespan=lifespan)
    app.state.runtime = runtime

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/webhooks/enrichment")
    async def enrichment_webhook(request: Request) -> Dict[str, Any]:
        raw = await request.body()
        try:
            outcome = await runtime.receiver.receive(raw, request.headers.get(SIGNATURE_HEADER))
        except SignatureVerificationError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
        except WebhookPayloadError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        return outcome.model_dump()

    @app.post("/api/webhooks/subscribe")
    async def subscribe_webhook(request: Request) -> Dict[str, Any]:
        raw = await request.body()
        try:
            authenticate(
                raw,
                request.headers.get(SIGNATURE_HEADER),
                runtime.config.webhooks.subscribe_secret,
                "subscribe",
            )
            payload = parse_subscribe_payload(raw)
        except SignatureVerificationError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
        except WebhookPayloadError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

        result = await ingest_subscriber(
            runtime.store,
            runtime.engine,
            runtime.definition,
            payload.email,
            source=payload.source,
            metadata=payload.metadata,
        )
        return result.model_dump(mode="json")

    @app.post("/api/enrichment/batches", status_code=status.HTTP_202_ACCEPTED)
    async def start_batch() -> Dict[str, Any]:
        result = await trigger_scheduled_batch(runtime.engine, runtime.definition)
        return result.model_dump(mode="json")

    @app.get("/api/workflows/{workflow_id}")
    async def get_workflow(workflow_id: str) -> Dict[str, Any]:
        instance = await runtime.engine.get(workflow_id)
        if instance is None:
            raise HTTPException(status_code=404, detail=f"Workflow not found: {workflow_id}")
        return instance.model_dump(mode="json")

    @app.get("/api/jobs")
    async def list_jobs(status: Optional[JobStatus] = None) -> List[Dict[str, Any]]:
        jobs = await runtime.store.list_jobs(status=status)
        return [job.model_dump(mode="json") for job in jobs]

    @app.get("/api/jobs/stats")
    async def job_stats() -> Dict[str, Any]:
        stats = await runtime.failures.failure_stats()
        return stats.model_dump()

    @app.post("/api/jobs/sweep-stale")
    async def sweep_stale(threshold_hours: Optional[float] = None) -> Dict[str, int]:
        threshold = threshold_hours * 3600 if threshold_hours is not None else None
        marked = await runtime.failures.sweep_stale(threshold)
        return {"marked": marked}

    @app.post("/api/jobs/{job_id}/retry")
    async def retry_job(job_id: str) -> Dict[str, Any]:
        try:
            job = await runtime.failures.retry(job_id)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except InvalidJobStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        return job.model_dump(mode="json")

    return app
