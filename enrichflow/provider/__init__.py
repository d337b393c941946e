"""Enrichment provider client and wire models."""

from __future__ import annotations

from .client import BULK_ENRICH_PATH, DEFAULT_RETRY_POLICY, ProviderClient
from .schemas import (
    BulkEnrichmentRequest,
    BulkEnrichmentResponse,
    ContactData,
    EnrichmentCallback,
    EnrichmentResult,
)

__all__ = [
    "ProviderClient",
    "BULK_ENRICH_PATH",
    "DEFAULT_RETRY_POLICY",
    "BulkEnrichmentRequest",
    "BulkEnrichmentResponse",
    "ContactData",
    "EnrichmentCallback",
    "EnrichmentResult",
]
