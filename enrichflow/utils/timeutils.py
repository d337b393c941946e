from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Union

Duration = Union[str, int, float, timedelta]

_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m|h|d)$")
_UNIT_SECONDS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, "d": 86400}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_duration(value: Duration) -> float:
    """Convert ``value`` to seconds.

    Strings use a single unit suffix: ``'24h'``, ``'30m'``, ``'60s'``,
    ``'250ms'`` or ``'2d'``. Plain numbers are already seconds.
    """
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    elif isinstance(value, str):
        match = _DURATION_RE.match(value.strip())
        if not match:
            raise ValueError(f"Invalid duration format: {value!r}")
        seconds = float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    else:
        raise TypeError(f"Unsupported duration type: {type(value).__name__}")

    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds
