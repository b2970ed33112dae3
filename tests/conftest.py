from datetime import datetime, timedelta, timezone

import pytest


class FakeClock:
    """Clock whose time only moves when told to (or when slept on)."""

    def __init__(self):
        self.ms = 0.0
        self.sleeps = []
        self._start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def monotonic_ms(self):
        return self.ms

    def now(self):
        return self._start + timedelta(milliseconds=self.ms)

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.ms += seconds * 1000.0

    def advance(self, ms):
        self.ms += ms


@pytest.fixture
def clock():
    return FakeClock()
