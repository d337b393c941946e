from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field

Sleep = Callable[[float], Awaitable[None]]


class BackoffStrategy(str, Enum):
    CONSTANT = "constant"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class RetryPolicy(BaseModel):
    """How often and how patiently a failing operation is retried."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=60.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    retry_on: Optional[FrozenSet[int]] = Field(
        default=None, description="Error codes worth retrying; None retries any"
    )

    def allows(self, error: BaseException) -> bool:
        """Return ``True`` when ``error`` may be retried under this policy."""
        if getattr(error, "terminal", False):
            return False
        if self.retry_on is None:
            return True
        code = getattr(error, "status_code", None)
        return code is None or code in self.retry_on


def compute_backoff(attempt: int, policy: RetryPolicy) -> float:
    """Return the delay before the retry that follows ``attempt``.

    The result is always within ``[0, policy.max_delay]``.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")

    if policy.backoff is BackoffStrategy.EXPONENTIAL:
        try:
            delay = policy.initial_delay * policy.multiplier ** (attempt - 1)
        except OverflowError:
            delay = policy.max_delay
    elif policy.backoff is BackoffStrategy.LINEAR:
        delay = policy.initial_delay * attempt
    else:
        delay = policy.initial_delay

    return max(0.0, min(delay, policy.max_delay))


async def schedule_retry(
    attempt: int, policy: RetryPolicy, sleep: Sleep = asyncio.sleep
) -> float:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, policy)
    await sleep(delay)
    return delay
