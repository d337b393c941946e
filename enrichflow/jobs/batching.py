"""Group pending jobs into provider-sized batches and submit them."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, TypeVar

from ..exceptions import ProviderValidationError
from ..provider.client import ProviderClient
from ..provider.schemas import MAX_BATCH_ITEMS, ContactData
from .models import EnrichmentJob
from .store import JobStore

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = MAX_BATCH_ITEMS

T = TypeVar("T")


def batch_jobs(jobs: Sequence[T], max_size: int = MAX_BATCH_SIZE) -> list[list[T]]:
    """Split ``jobs`` into consecutive slices of at most ``max_size``."""
    if max_size <= 0:
        raise ValueError("Batch size must be positive")
    return [list(jobs[i : i + max_size]) for i in range(0, len(jobs), max_size)]


async def submit_batch(
    store: JobStore,
    client: ProviderClient,
    jobs: Sequence[EnrichmentJob],
    webhook_url: str,
    name: Optional[str] = None,
) -> str:
    """Submit one batch to the provider and return its correlation id.

    Each contact is tagged with ``custom.subscriber_id`` so callback results
    can be matched back to their job.
    """
    if not jobs:
        raise ProviderValidationError("Cannot submit empty batch")
    if len(jobs) > MAX_BATCH_SIZE:
        raise ProviderValidationError(f"Batch size exceeds maximum of {MAX_BATCH_SIZE}")

    subscribers = await store.get_subscribers(job.subscriber_id for job in jobs)
    contacts = [
        ContactData(email=s.email, custom={"subscriber_id": s.id}) for s in subscribers
    ]
    if len(contacts) < len(jobs):
        logger.warning(
            f"{len(jobs) - len(contacts)} job(s) in batch reference unknown subscribers"
        )
    if not contacts:
        raise ProviderValidationError("No subscribers found for batch")

    return await client.submit(contacts, webhook_url, name=name)
