import pytest

from enrichflow.exceptions import ProviderValidationError
from enrichflow.jobs import EnrichmentJob, Subscriber, batch_jobs, submit_batch


def test_batch_jobs_slices_in_order():
    jobs = list(range(250))
    batches = batch_jobs(jobs, 100)

    assert [len(b) for b in batches] == [100, 100, 50]
    assert [item for batch in batches for item in batch] == jobs


def test_batch_jobs_edge_cases():
    assert batch_jobs([], 100) == []
    assert batch_jobs([1, 2, 3], 3) == [[1, 2, 3]]
    with pytest.raises(ValueError):
        batch_jobs([1], 0)


@pytest.mark.asyncio
async def test_submit_batch_tags_contacts_with_subscriber_ids(job_store, fake_provider):
    subscribers = [
        await job_store.add_subscriber(Subscriber(email=f"user{i}@gmail.com")) for i in range(2)
    ]
    jobs = [
        await job_store.create_job(EnrichmentJob(subscriber_id=s.id)) for s in subscribers
    ]

    correlation_id = await submit_batch(
        job_store, fake_provider.client(), jobs, "https://hooks.test/enrich"
    )

    assert correlation_id == "enr-1"
    [request] = fake_provider.requests
    assert request["webhook_url"] == "https://hooks.test/enrich"
    assert request["data"] == [
        {"email": s.email, "custom": {"subscriber_id": s.id}} for s in subscribers
    ]


@pytest.mark.asyncio
async def test_submit_batch_rejects_empty_and_oversized(job_store, fake_provider):
    client = fake_provider.client()
    with pytest.raises(ProviderValidationError):
        await submit_batch(job_store, client, [], "https://hooks.test/enrich")

    too_many = [EnrichmentJob(subscriber_id=f"s{i}") for i in range(101)]
    with pytest.raises(ProviderValidationError):
        await submit_batch(job_store, client, too_many, "https://hooks.test/enrich")
    assert fake_provider.requests == []
