import json

import httpx
import pytest

from enrichflow.exceptions import (
    ProviderAPIError,
    ProviderCreditsExhaustedError,
    ProviderNetworkError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderValidationError,
)
from enrichflow.provider import BULK_ENRICH_PATH, ProviderClient

CONTACTS = [{"email": "jane@gmail.com", "custom": {"subscriber_id": "sub-1"}}]


def _client(handler, sleep) -> ProviderClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProviderClient("key-123", "https://provider.test/api", http_client=http, sleep=sleep)


def _sequence(*responses):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        item = responses[min(len(calls), len(responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    return handler, calls


@pytest.mark.asyncio
async def test_submit_posts_request_and_returns_enrichment_id(recording_sleep):
    handler, calls = _sequence(httpx.Response(200, json={"enrichment_id": "abc"}))
    client = _client(handler, recording_sleep)

    enrichment_id = await client.submit(CONTACTS, "https://hooks.test/enrich", name="batch-1")

    assert enrichment_id == "abc"
    request = calls[0]
    assert request.url == f"https://provider.test/api{BULK_ENRICH_PATH}"
    assert request.headers["Authorization"] == "Bearer key-123"
    assert json.loads(request.content) == {
        "name": "batch-1",
        "webhook_url": "https://hooks.test/enrich",
        "data": CONTACTS,
    }
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after(recording_sleep):
    handler, calls = _sequence(
        httpx.Response(429, headers={"Retry-After": "7"}),
        httpx.Response(429),
        httpx.Response(200, json={"enrichment_id": "abc"}),
    )
    client = _client(handler, recording_sleep)

    assert await client.submit(CONTACTS, "https://hooks.test/enrich") == "abc"
    assert len(calls) == 3
    assert recording_sleep.delays == [7, 2]


@pytest.mark.asyncio
async def test_rate_limit_gives_up_after_max_attempts(recording_sleep):
    handler, calls = _sequence(httpx.Response(429))
    client = _client(handler, recording_sleep)

    with pytest.raises(ProviderRateLimitError) as info:
        await client.submit(CONTACTS, "https://hooks.test/enrich")
    assert len(calls) == 5
    assert info.value.status_code == 429
    assert not info.value.terminal


@pytest.mark.asyncio
async def test_server_errors_back_off_exponentially(recording_sleep):
    handler, calls = _sequence(
        httpx.Response(503),
        httpx.Response(500),
        httpx.Response(200, json={"enrichment_id": "abc"}),
    )
    client = _client(handler, recording_sleep)

    assert await client.submit(CONTACTS, "https://hooks.test/enrich") == "abc"
    assert recording_sleep.delays == [1, 2]


@pytest.mark.asyncio
async def test_exhausted_server_errors_are_transient(recording_sleep):
    handler, calls = _sequence(httpx.Response(502, json={"error": "bad gateway"}))
    client = _client(handler, recording_sleep)

    with pytest.raises(ProviderAPIError) as info:
        await client.submit(CONTACTS, "https://hooks.test/enrich")
    assert len(calls) == 5
    assert info.value.status_code == 502
    assert info.value.response == {"error": "bad gateway"}
    assert not info.value.terminal


@pytest.mark.asyncio
async def test_insufficient_credits_fails_immediately(recording_sleep):
    handler, calls = _sequence(httpx.Response(402))
    client = _client(handler, recording_sleep)

    with pytest.raises(ProviderCreditsExhaustedError) as info:
        await client.submit(CONTACTS, "https://hooks.test/enrich")
    assert len(calls) == 1
    assert info.value.terminal


@pytest.mark.asyncio
async def test_client_error_is_terminal(recording_sleep):
    handler, calls = _sequence(httpx.Response(400, json={"message": "bad"}))
    client = _client(handler, recording_sleep)

    with pytest.raises(ProviderAPIError) as info:
        await client.submit(CONTACTS, "https://hooks.test/enrich")
    assert len(calls) == 1
    assert info.value.terminal


@pytest.mark.asyncio
async def test_network_errors_retry_twice_then_fail(recording_sleep):
    handler, calls = _sequence(httpx.ConnectError("refused"))
    client = _client(handler, recording_sleep)

    with pytest.raises(ProviderNetworkError):
        await client.submit(CONTACTS, "https://hooks.test/enrich")
    assert len(calls) == 3
    assert recording_sleep.delays == [1, 2]


@pytest.mark.asyncio
async def test_network_error_recovers(recording_sleep):
    handler, calls = _sequence(
        httpx.ReadTimeout("slow"), httpx.Response(200, json={"enrichment_id": "abc"})
    )
    client = _client(handler, recording_sleep)
    assert await client.submit(CONTACTS, "https://hooks.test/enrich") == "abc"


@pytest.mark.asyncio
async def test_invalid_request_is_rejected_before_sending(recording_sleep):
    handler, calls = _sequence(httpx.Response(200, json={"enrichment_id": "abc"}))
    client = _client(handler, recording_sleep)

    with pytest.raises(ProviderValidationError):
        await client.submit([], "https://hooks.test/enrich")
    too_many = [{"email": f"u{i}@gmail.com"} for i in range(101)]
    with pytest.raises(ProviderValidationError):
        await client.submit(too_many, "https://hooks.test/enrich")
    with pytest.raises(ProviderValidationError):
        await client.submit([{"email": "not-an-email"}], "https://hooks.test/enrich")
    assert calls == []


@pytest.mark.asyncio
async def test_response_without_enrichment_id_is_rejected(recording_sleep):
    handler, _ = _sequence(httpx.Response(200, json={"status": "accepted"}))
    client = _client(handler, recording_sleep)

    with pytest.raises(ProviderResponseError) as info:
        await client.submit(CONTACTS, "https://hooks.test/enrich")
    assert info.value.terminal
