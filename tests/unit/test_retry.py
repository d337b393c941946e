import pytest

from enrichflow.exceptions import (
    ProviderAPIError,
    ProviderCreditsExhaustedError,
    ProviderNetworkError,
)
from enrichflow.utils.retry import BackoffStrategy, RetryPolicy, compute_backoff, schedule_retry


def test_exponential_backoff_sequence_is_clamped():
    policy = RetryPolicy(
        max_attempts=10,
        backoff=BackoffStrategy.EXPONENTIAL,
        initial_delay=1.0,
        max_delay=60.0,
        multiplier=2,
    )
    delays_ms = [compute_backoff(a, policy) * 1000 for a in (1, 2, 6, 7, 10, 20)]
    assert delays_ms == [1000, 2000, 32000, 60000, 60000, 60000]


def test_linear_and_constant_backoff():
    linear = RetryPolicy(backoff=BackoffStrategy.LINEAR, initial_delay=0.5, max_delay=2)
    constant = RetryPolicy(backoff=BackoffStrategy.CONSTANT, initial_delay=3, max_delay=10)

    assert [compute_backoff(a, linear) for a in (1, 2, 3, 4, 5)] == [0.5, 1.0, 1.5, 2.0, 2.0]
    assert {compute_backoff(a, constant) for a in range(1, 6)} == {3}


def test_initial_delay_above_max_is_clamped():
    policy = RetryPolicy(initial_delay=5, max_delay=1)
    assert compute_backoff(1, policy) == 1


def test_huge_attempt_does_not_overflow():
    policy = RetryPolicy(initial_delay=1, max_delay=30, multiplier=10)
    assert compute_backoff(5000, policy) == 30


def test_attempt_must_be_positive():
    with pytest.raises(ValueError):
        compute_backoff(0, RetryPolicy())


def test_policy_validation():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(multiplier=0.5)


def test_allows_respects_terminal_flag_and_codes():
    open_policy = RetryPolicy()
    listed = RetryPolicy(retry_on=frozenset({429, 503}))

    assert open_policy.allows(RuntimeError("boom"))
    assert not open_policy.allows(ProviderCreditsExhaustedError("no credits", status_code=402))

    assert listed.allows(ProviderAPIError("busy", status_code=503))
    assert not listed.allows(ProviderAPIError("bad gateway", status_code=502))
    assert listed.allows(ProviderNetworkError("reset"))
    assert not listed.allows(ProviderAPIError("forbidden", status_code=403, terminal=True))


@pytest.mark.asyncio
async def test_schedule_retry_sleeps_for_computed_delay(recording_sleep):
    policy = RetryPolicy(initial_delay=1, max_delay=60)
    delay = await schedule_retry(3, policy, sleep=recording_sleep)
    assert delay == 4
    assert recording_sleep.delays == [4]
