"""
Clock helpers

All persisted timestamps are timezone-aware UTC datetimes.
"""
import time
from datetime import datetime, timezone
from typing import Callable

# Wall clock used for persisted timestamps
Clock = Callable[[], datetime]

# Monotonic clock used for cache expiry (seconds)
MonotonicClock = Callable[[], float]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def monotonic() -> float:
    return time.monotonic()
