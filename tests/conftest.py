import json
from typing import Callable, List

import httpx
import pytest

from enrichflow.jobs import InMemoryJobStore
from enrichflow.provider import ProviderClient


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeProvider:
    """Mock transport answering bulk submissions with sequential ids."""

    def __init__(self) -> None:
        self.requests: List[dict] = []
        self._counter = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        self._counter += 1
        return httpx.Response(200, json={"enrichment_id": f"enr-{self._counter}"})

    def client(self, sleep: Callable | None = None) -> ProviderClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return ProviderClient(
            "test-key",
            "https://provider.test/api",
            http_client=http,
            sleep=sleep or RecordingSleep(),
        )


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()
