from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeHandle:
    def __init__(self, due: datetime, sequence: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.sequence = sequence
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Deterministic stand-in for an event loop's ``call_later`` and a wall clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start
        self.scheduled: list[FakeHandle] = []
        self._sequence = itertools.count()

    def now(self) -> datetime:
        return self.current

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(self.current + timedelta(seconds=delay), next(self._sequence), callback)
        self.scheduled.append(handle)
        return handle

    @property
    def pending(self) -> list[FakeHandle]:
        return [handle for handle in self.scheduled if not handle.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.current + timedelta(seconds=seconds)
        while True:
            due = [h for h in self.scheduled if not h.cancelled and h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.due, h.sequence))
            self.scheduled.remove(handle)
            self.current = max(self.current, handle.due)
            handle.callback()
        self.scheduled = [h for h in self.scheduled if not h.cancelled]
        self.current = target

    def advance_ms(self, millis: int) -> None:
        self.advance(millis / 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
