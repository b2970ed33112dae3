"""
Time source for LLM Router.

Providers and the failover manager take a clock so that backoff delays
and latencies can be driven deterministically in tests.
"""

import time
from datetime import datetime, timezone


class SystemClock:
    """Wall-clock time and real sleeps."""

    def monotonic_ms(self) -> float:
        """Return a monotonic timestamp in milliseconds."""
        return time.monotonic() * 1000.0

    def now(self) -> datetime:
        """Return the current UTC time."""
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float) -> None:
        """Block for *seconds*."""
        if seconds > 0:
            time.sleep(seconds)


DEFAULT_CLOCK = SystemClock()
