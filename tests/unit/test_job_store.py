from datetime import timedelta

import pytest
import pytest_asyncio

from enrichflow.exceptions import JobNotFoundError, SubscriberNotFoundError
from enrichflow.jobs import (
    EmailType,
    EnrichmentJob,
    InMemoryJobStore,
    JobStatus,
    SQLJobStore,
    Subscriber,
    get_job_store,
)
from enrichflow.utils.timeutils import utcnow


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryJobStore()
        return
    sql_store = SQLJobStore(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")
    await sql_store.init_db()
    yield sql_store
    await sql_store.close()


@pytest.mark.asyncio
async def test_query_pending_orders_oldest_first_and_skips_submitted(store):
    now = utcnow()
    newer = await store.create_job(EnrichmentJob(subscriber_id="s2", created_at=now))
    older = await store.create_job(
        EnrichmentJob(subscriber_id="s1", created_at=now - timedelta(minutes=5))
    )
    submitted = await store.create_job(EnrichmentJob(subscriber_id="s3", correlation_id="enr-1"))
    await store.create_job(EnrichmentJob(subscriber_id="s4", status=JobStatus.FAILED))

    pending = await store.query_pending(10)
    assert [j.id for j in pending] == [older.id, newer.id]
    assert [j.id for j in await store.query_pending(1)] == [older.id]
    assert [j.id for j in await store.find_by_correlation("enr-1")] == [submitted.id]


@pytest.mark.asyncio
async def test_update_status_and_correlation(store):
    job = await store.create_job(EnrichmentJob(subscriber_id="s1"))

    await store.store_correlation_id([job.id], "enr-9")
    updated = await store.update_status(job.id, status=JobStatus.ENRICHED, actual_credits=3)

    assert updated.status == JobStatus.ENRICHED
    assert updated.actual_credits == 3
    assert updated.correlation_id == "enr-9"
    assert [j.id for j in await store.list_jobs(status=JobStatus.ENRICHED)] == [job.id]

    with pytest.raises(JobNotFoundError):
        await store.update_status("missing", status=JobStatus.FAILED)


@pytest.mark.asyncio
async def test_subscriber_crud(store):
    subscriber = await store.add_subscriber(
        Subscriber(email="Jane@Gmail.com", email_type=EmailType.PERSONAL, source="newsletter")
    )
    assert (await store.find_subscriber_by_email("jane@gmail.com")).id == subscriber.id

    updated = await store.update_subscriber(subscriber.id, job_title="CTO", headcount=50)
    assert updated.job_title == "CTO"
    assert (await store.get_subscriber(subscriber.id)).headcount == 50
    assert [s.id for s in await store.get_subscribers([subscriber.id, "missing"])] == [subscriber.id]

    with pytest.raises(ValueError):
        await store.add_subscriber(Subscriber(email="Jane@Gmail.com"))
    with pytest.raises(SubscriberNotFoundError):
        await store.update_subscriber("missing", job_title="x")


def test_get_job_store_selects_backend(monkeypatch):
    monkeypatch.delenv("ENRICHFLOW_JOBS_DATABASE_URL", raising=False)
    assert isinstance(get_job_store(), InMemoryJobStore)
    assert isinstance(get_job_store("sqlite+aiosqlite:///:memory:"), SQLJobStore)
