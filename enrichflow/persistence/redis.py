"""Redis implementation of the workflow repository."""

from __future__ import annotations

from typing import Any, Dict, Optional

import redis.asyncio as redis

from ..exceptions import CorrelationConflictError
from ..workflow.models import WorkflowInstance
from .repository import WorkflowRepository


class RedisWorkflowRepository(WorkflowRepository):
    """Keep workflow instances and correlations in Redis.

    Instances live under ``<prefix>:workflow:<id>`` with an index set, and
    correlations under ``<prefix>:correlation:<id>``. Registration uses
    ``SET NX`` so concurrent registrations cannot both win.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = "enrichflow",
        client: Optional[Any] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.prefix = prefix
        self._redis: Optional[Any] = client

    @classmethod
    def from_url(cls, url: str, prefix: str = "enrichflow") -> "RedisWorkflowRepository":
        return cls(prefix=prefix, client=redis.from_url(url, decode_responses=True))

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    def _workflow_key(self, workflow_id: str) -> str:
        return f"{self.prefix}:workflow:{workflow_id}"

    def _correlation_key(self, correlation_id: str) -> str:
        return f"{self.prefix}:correlation:{correlation_id}"

    @property
    def _index_key(self) -> str:
        return f"{self.prefix}:workflows"

    # ------------------------------------------------------------------
    async def save_instance(self, instance: WorkflowInstance) -> None:
        client = await self._client()
        await client.set(self._workflow_key(instance.workflow_id), instance.model_dump_json())
        await client.sadd(self._index_key, instance.workflow_id)

    async def get_instance(self, workflow_id: str) -> WorkflowInstance | None:
        client = await self._client()
        raw = await client.get(self._workflow_key(workflow_id))
        return WorkflowInstance.model_validate_json(raw) if raw else None

    async def list_instances(self, status: Optional[str] = None) -> list[WorkflowInstance]:
        client = await self._client()
        ids = sorted(await client.smembers(self._index_key))
        if not ids:
            return []
        raws = await client.mget([self._workflow_key(i) for i in ids])
        instances = [WorkflowInstance.model_validate_json(r) for r in raws if r]
        if status is not None:
            instances = [i for i in instances if i.status == status]
        return sorted(instances, key=lambda i: i.started_at)

    # ------------------------------------------------------------------
    async def register_correlation(self, correlation_id: str, workflow_id: str) -> None:
        client = await self._client()
        key = self._correlation_key(correlation_id)
        if await client.set(key, workflow_id, nx=True):
            return
        existing = await client.get(key)
        if existing != workflow_id:
            raise CorrelationConflictError(correlation_id, existing, workflow_id)

    async def lookup_correlation(self, correlation_id: str) -> str | None:
        client = await self._client()
        return await client.get(self._correlation_key(correlation_id))

    async def unregister_correlation(self, correlation_id: str) -> None:
        client = await self._client()
        await client.delete(self._correlation_key(correlation_id))

    async def list_correlations(self) -> Dict[str, str]:
        client = await self._client()
        prefix = self._correlation_key("")
        mappings: Dict[str, str] = {}
        async for key in client.scan_iter(match=f"{prefix}*"):
            value = await client.get(key)
            if value is not None:
                mappings[key[len(prefix):]] = value
        return mappings
