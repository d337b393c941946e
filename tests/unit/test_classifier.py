import pytest

from enrichflow.enrichment import classify_email
from enrichflow.exceptions import NotEnrichableError, SubscriberNotFoundError
from enrichflow.jobs import EmailType, JobStatus, Subscriber, create_enrichment_job, estimate_credits


@pytest.mark.parametrize(
    "email,expected",
    [
        ("jane@gmail.com", EmailType.PERSONAL),
        ("JANE@ICLOUD.COM", EmailType.PERSONAL),
        ("bob@acme.io", EmailType.CORPORATE),
        ("no-domain", EmailType.CORPORATE),
        ("trailing@", EmailType.CORPORATE),
    ],
)
def test_classify_email(email, expected):
    assert classify_email(email) == expected


def test_estimate_credits():
    assert estimate_credits(EmailType.PERSONAL) == 3
    assert estimate_credits("mobile") == 10
    assert estimate_credits(EmailType.CORPORATE) == 1
    assert estimate_credits("unknown") == 3


@pytest.mark.asyncio
async def test_create_enrichment_job(job_store):
    subscriber = await job_store.add_subscriber(Subscriber(email="jane@gmail.com"))

    job = await create_enrichment_job(job_store, subscriber.id)
    assert job.status == JobStatus.PENDING
    assert job.estimated_credits == 3
    assert job.retry_count == 0

    with pytest.raises(NotEnrichableError):
        await create_enrichment_job(job_store, subscriber.id, EmailType.CORPORATE)
    with pytest.raises(SubscriberNotFoundError):
        await create_enrichment_job(job_store, "missing")
