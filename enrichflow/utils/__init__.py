from .retry import BackoffStrategy, RetryPolicy, compute_backoff, schedule_retry
from .timeutils import parse_duration, utcnow

__all__ = [
    "BackoffStrategy",
    "RetryPolicy",
    "compute_backoff",
    "schedule_retry",
    "parse_duration",
    "utcnow",
]
