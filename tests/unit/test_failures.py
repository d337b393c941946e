from datetime import timedelta

import pytest

from enrichflow.exceptions import InvalidJobStateError, JobNotFoundError
from enrichflow.jobs import EnrichmentJob, FailureHandler, JobStatus
from enrichflow.utils.timeutils import utcnow


async def _job(store, **fields) -> EnrichmentJob:
    return await store.create_job(EnrichmentJob(subscriber_id="sub-1", **fields))


@pytest.mark.asyncio
async def test_third_failure_marks_job_failed(job_store):
    handler = FailureHandler(job_store, max_retries=3)
    job = await _job(job_store, correlation_id="enr-1")

    first = await handler.record_failure(job.id, "provider rejected batch")
    second = await handler.record_failure(job.id, "provider rejected batch")
    assert (first.should_retry, first.retry_count) == (True, 1)
    assert (second.should_retry, second.retry_count) == (True, 2)

    pending = await job_store.get_job(job.id)
    assert pending.status == JobStatus.PENDING
    assert pending.correlation_id is None

    third = await handler.record_failure(job.id, "provider rejected batch")
    assert (third.should_retry, third.retry_count) == (False, 3)

    failed = await job_store.get_job(job.id)
    assert failed.status == JobStatus.FAILED
    assert failed.failure_reason == "provider rejected batch"
    assert failed.completed_at is not None


@pytest.mark.asyncio
async def test_record_failure_unknown_job(job_store):
    with pytest.raises(JobNotFoundError):
        await FailureHandler(job_store).record_failure("missing", "boom")


@pytest.mark.asyncio
async def test_sweep_stale_is_idempotent(job_store):
    handler = FailureHandler(job_store)
    old = await _job(job_store, created_at=utcnow() - timedelta(hours=30))
    fresh = await _job(job_store)

    assert await handler.sweep_stale(timedelta(hours=24)) == 1
    assert await handler.sweep_stale(timedelta(hours=24)) == 0

    stale = await job_store.get_job(old.id)
    assert stale.status == JobStatus.STALE
    assert stale.failure_reason == "Job pending for more than 24 hours"
    assert (await job_store.get_job(fresh.id)).status == JobStatus.PENDING


@pytest.mark.asyncio
async def test_retry_returns_failed_job_to_queue(job_store):
    handler = FailureHandler(job_store)
    job = await _job(job_store, correlation_id="enr-1")
    await handler.mark_failed(job.id, "terminal: credits")

    retried = await handler.retry(job.id)
    assert retried.status == JobStatus.PENDING
    assert retried.correlation_id is None
    assert retried.failure_reason is None
    assert retried.completed_at is None
    assert [j.id for j in await job_store.query_pending(10)] == [job.id]


@pytest.mark.asyncio
async def test_retry_rejects_pending_and_unknown_jobs(job_store):
    handler = FailureHandler(job_store)
    job = await _job(job_store)

    with pytest.raises(InvalidJobStateError):
        await handler.retry(job.id)
    with pytest.raises(JobNotFoundError):
        await handler.retry("missing")


@pytest.mark.asyncio
async def test_fail_batch_skips_finished_jobs(job_store):
    handler = FailureHandler(job_store)
    pending = await _job(job_store)
    enriched = await _job(job_store, status=JobStatus.ENRICHED)

    assert await handler.fail_batch([pending.id, enriched.id, "missing"], "timeout: late") == 1
    assert (await job_store.get_job(pending.id)).failure_reason == "timeout: late"
    assert (await job_store.get_job(enriched.id)).status == JobStatus.ENRICHED


@pytest.mark.asyncio
async def test_failure_stats(job_store):
    handler = FailureHandler(job_store)
    for _ in range(2):
        job = await _job(job_store)
        await handler.mark_failed(job.id, "terminal: Insufficient credits")
    await _job(job_store, created_at=utcnow() - timedelta(days=2))
    await handler.sweep_stale()

    stats = await handler.failure_stats()
    assert stats.total_failed == 2
    assert stats.total_stale == 1
    assert stats.failure_reasons == {
        "terminal: Insufficient credits": 2,
        "Job pending for more than 24 hours": 1,
    }
