"""Create enrichment jobs for subscribers."""

from __future__ import annotations

import logging

from ..exceptions import NotEnrichableError, SubscriberNotFoundError
from .models import EmailType, EnrichmentJob, JobStatus
from .store import JobStore

logger = logging.getLogger(__name__)

CREDIT_COSTS = {
    EmailType.PERSONAL: 3,
    EmailType.MOBILE: 10,
    EmailType.CORPORATE: 1,
}


def estimate_credits(email_type: EmailType | str) -> int:
    """Expected provider credits for one lookup of ``email_type``."""
    try:
        return CREDIT_COSTS[EmailType(email_type)]
    except ValueError:
        return CREDIT_COSTS[EmailType.PERSONAL]


async def create_enrichment_job(
    store: JobStore, subscriber_id: str, email_type: EmailType | str = EmailType.PERSONAL
) -> EnrichmentJob:
    """Queue a pending job for ``subscriber_id``.

    Raises:
        SubscriberNotFoundError: If the subscriber does not exist.
        NotEnrichableError: For corporate emails, which are never enriched.
    """
    subscriber = await store.get_subscriber(subscriber_id)
    if subscriber is None:
        raise SubscriberNotFoundError(subscriber_id)
    kind = EmailType(email_type)
    if kind == EmailType.CORPORATE:
        raise NotEnrichableError(subscriber.email, kind.value)

    job = await store.create_job(
        EnrichmentJob(
            subscriber_id=subscriber_id,
            status=JobStatus.PENDING,
            estimated_credits=estimate_credits(kind),
        )
    )
    logger.info(f"Created enrichment job {job.id} for subscriber {subscriber_id}")
    return job
