"""Shared fixtures for timer tests."""

import math
from datetime import datetime

import pytest


class FakeClock:
    """Settable wall clock in epoch milliseconds."""

    def __init__(self, now_ms: int) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += round(seconds * 1000)

    def sleep(self, seconds: float) -> None:
        """Advance by at least seconds, for sched.scheduler's delayfunc."""
        self.now_ms += math.ceil(seconds * 1000)

    def seconds(self) -> float:
        """Time in seconds, for sched.scheduler's timefunc."""
        return self.now_ms / 1000


def local_ms(*args: int) -> int:
    """Epoch milliseconds for a naive local datetime."""
    return int(datetime(*args).timestamp() * 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(local_ms(2025, 1, 25, 10, 0, 0))
