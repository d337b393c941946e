"""Async HTTP client for the enrichment provider's bulk API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence, Union

import httpx
from pydantic import ValidationError

from ..config import DEFAULT_PROVIDER_URL
from ..exceptions import (
    ProviderAPIError,
    ProviderCreditsExhaustedError,
    ProviderNetworkError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderValidationError,
)
from ..utils.retry import BackoffStrategy, RetryPolicy, Sleep, compute_backoff
from ..utils.timeutils import utcnow
from .schemas import BulkEnrichmentRequest, BulkEnrichmentResponse, ContactData

logger = logging.getLogger(__name__)

BULK_ENRICH_PATH = "/v2/contact/reverse/email/bulk"
NETWORK_MAX_ATTEMPTS = 3
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

DEFAULT_RETRY_POLICY = RetryPolicy(
    max_attempts=5,
    backoff=BackoffStrategy.EXPONENTIAL,
    initial_delay=1.0,
    max_delay=60.0,
    multiplier=2.0,
    retry_on=RETRYABLE_STATUS_CODES,
)


def _retry_after(response: httpx.Response) -> Optional[float]:
    header = response.headers.get("Retry-After")
    if header is None:
        return None
    try:
        return float(int(header.strip()))
    except ValueError:
        return None


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {}


class ProviderClient:
    """Submit bulk reverse-email lookups and retry transient failures.

    Rate limiting (429) honours ``Retry-After`` when present, retryable
    statuses back off exponentially up to ``retry_policy.max_attempts``, and
    connection failures are retried a fixed number of times. Credit
    exhaustion and other client errors fail immediately.

    Example:
        >>> async with ProviderClient(api_key="key") as client:
        ...     enrichment_id = await client.submit(contacts, "https://hooks/enrich")
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_PROVIDER_URL,
        retry_policy: Optional[RetryPolicy] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key or ""
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or DEFAULT_RETRY_POLICY
        self.timeout = timeout
        self._sleep = sleep
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    async def submit(
        self,
        contacts: Sequence[Union[ContactData, Dict[str, Any]]],
        webhook_url: str,
        name: Optional[str] = None,
    ) -> str:
        """Submit ``contacts`` as one batch and return the provider's correlation id."""
        request = {
            "name": name or f"Enrichflow reverse lookup - {utcnow().isoformat()}",
            "webhook_url": webhook_url,
            "data": [
                c.model_dump() if isinstance(c, ContactData) else c for c in contacts
            ],
        }
        response = await self.bulk_enrich(request)
        return response.enrichment_id

    async def bulk_enrich(
        self, request: Union[BulkEnrichmentRequest, Dict[str, Any]]
    ) -> BulkEnrichmentResponse:
        try:
            validated = BulkEnrichmentRequest.model_validate(
                request.model_dump() if isinstance(request, BulkEnrichmentRequest) else request
            )
        except ValidationError as exc:
            raise ProviderValidationError(f"Invalid bulk enrichment request: {exc}") from exc

        logger.debug(f"Submitting {len(validated.data)} contact(s) as '{validated.name}'")
        payload = await self._post(BULK_ENRICH_PATH, validated.model_dump())

        if not isinstance(payload, dict):
            raise ProviderResponseError("Unexpected response body", response=payload)
        try:
            result = BulkEnrichmentResponse.model_validate(payload)
        except ValidationError as exc:
            raise ProviderResponseError(
                f"Invalid bulk enrichment response: {exc}", response=payload
            ) from exc
        logger.info(
            f"Provider accepted batch of {len(validated.data)} with enrichment_id={result.enrichment_id}"
        )
        return result

    # ------------------------------------------------------------------
    async def _post(self, path: str, body: Dict[str, Any]) -> Any:
        client = await self._get_client()
        policy = self.retry_policy
        retryable = policy.retry_on if policy.retry_on is not None else RETRYABLE_STATUS_CODES
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        attempt = 1
        while True:
            try:
                response = await client.post(url, json=body, headers=headers)
            except httpx.TransportError as exc:
                if attempt < NETWORK_MAX_ATTEMPTS:
                    delay = compute_backoff(attempt, policy)
                    logger.warning(
                        f"Network error calling {path} (attempt {attempt}): {exc}; retrying in {delay:g}s"
                    )
                    await self._sleep(delay)
                    attempt += 1
                    continue
                raise ProviderNetworkError(f"Network error: {exc}", response=exc) from exc

            status = response.status_code

            if status == 429:
                retry_after = _retry_after(response)
                if attempt < policy.max_attempts:
                    delay = retry_after if retry_after is not None else compute_backoff(attempt, policy)
                    logger.warning(f"Rate limited by provider (attempt {attempt}); retrying in {delay:g}s")
                    await self._sleep(delay)
                    attempt += 1
                    continue
                raise ProviderRateLimitError(
                    "Rate limit exceeded and max retries reached",
                    status_code=429,
                    retry_after=retry_after,
                )

            if status == 402:
                raise ProviderCreditsExhaustedError("Insufficient credits", status_code=402)

            if not response.is_success:
                error_body = _error_body(response)
                if status in retryable and attempt < policy.max_attempts:
                    delay = compute_backoff(attempt, policy)
                    logger.warning(
                        f"Provider returned {status} (attempt {attempt}); retrying in {delay:g}s"
                    )
                    await self._sleep(delay)
                    attempt += 1
                    continue
                raise ProviderAPIError(
                    f"API request failed: {status} {response.reason_phrase}",
                    status_code=status,
                    response=error_body,
                    terminal=400 <= status < 500,
                )

            try:
                return response.json()
            except ValueError as exc:
                raise ProviderResponseError(
                    "Provider response is not valid JSON", status_code=status
                ) from exc
