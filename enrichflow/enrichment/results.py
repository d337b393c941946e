"""Write provider callback results back onto subscribers and jobs."""

from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel

from ..jobs.failures import FailureHandler
from ..jobs.models import EnrichmentJob, JobStatus, Subscriber
from ..jobs.store import JobStore
from ..provider.schemas import EnrichmentCallback, EnrichmentResult
from ..utils.timeutils import utcnow

logger = logging.getLogger(__name__)

MISSING_RESULT_REASON = "No result returned for subscriber in enrichment callback"

Scorer = Callable[[Subscriber], Union[int, Awaitable[int]]]


class ProcessStepOutput(BaseModel):
    correlation_id: str
    enriched: int = 0
    missing: int = 0
    unmatched: int = 0
    credits_used: int = 0


async def apply_result(
    store: JobStore,
    job: EnrichmentJob,
    subscriber: Subscriber,
    result: EnrichmentResult,
    scorer: Optional[Scorer] = None,
) -> EnrichmentJob:
    """Update ``subscriber`` from ``result`` and mark ``job`` enriched."""
    profile = {k: v for k, v in result.profile_fields().items() if v is not None}
    updated = await store.update_subscriber(subscriber.id, **profile)

    if scorer is not None:
        score = scorer(updated)
        if inspect.isawaitable(score):
            score = await score
        await store.update_subscriber(subscriber.id, icp_score=int(score))

    return await store.update_status(
        job.id,
        status=JobStatus.ENRICHED,
        actual_credits=result.credits_used,
        failure_reason=None,
        completed_at=utcnow(),
    )


async def process_callback(
    store: JobStore,
    failures: FailureHandler,
    callback: EnrichmentCallback,
    scorer: Optional[Scorer] = None,
) -> ProcessStepOutput:
    """Apply every result of ``callback`` to the jobs submitted under its id.

    Results are matched by ``custom.subscriber_id`` first and by email
    second. Jobs of the batch without a result count as a failed attempt.
    Jobs that are no longer pending are left untouched, so processing the
    same callback twice has no further effect.
    """
    correlation_id = callback.correlation_id
    jobs = [
        j for j in await store.find_by_correlation(correlation_id) if j.status == JobStatus.PENDING
    ]
    subscribers = await store.get_subscribers(j.subscriber_id for j in jobs)
    by_id: Dict[str, Subscriber] = {s.id: s for s in subscribers}
    by_email: Dict[str, Subscriber] = {s.email.lower(): s for s in subscribers}
    job_by_subscriber: Dict[str, EnrichmentJob] = {j.subscriber_id: j for j in jobs}

    output = ProcessStepOutput(correlation_id=correlation_id)
    handled: set[str] = set()

    for result in callback.results:
        subscriber = by_id.get(result.subscriber_id or "")
        if subscriber is None and result.email:
            subscriber = by_email.get(result.email.lower())
        if subscriber is None:
            logger.warning(
                f"Result for {result.email or result.subscriber_id} does not match any job "
                f"of correlation_id={correlation_id}"
            )
            output.unmatched += 1
            continue

        job = job_by_subscriber[subscriber.id]
        if job.id in handled:
            continue
        await apply_result(store, job, subscriber, result, scorer)
        handled.add(job.id)
        output.enriched += 1
        output.credits_used += result.credits_used

    for job in jobs:
        if job.id in handled:
            continue
        await failures.record_failure(job.id, MISSING_RESULT_REASON)
        output.missing += 1

    logger.info(
        f"Processed callback correlation_id={correlation_id}: {output.enriched} enriched, "
        f"{output.missing} missing, {output.unmatched} unmatched"
    )
    return output
