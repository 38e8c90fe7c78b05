"""Per-widget render scheduling for live stopwatch displays."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Any, Callable, Optional, Protocol

from .stopwatch import Stopwatch, format_snapshot

LOGGER = logging.getLogger(__name__)

DEFAULT_TICK_PERIOD_MILLIS = 100
DEFAULT_STAGGER_STEP_MILLIS = 25

DrawCallback = Callable[[str, Stopwatch], None]

__all__ = [
    "ChangeGate",
    "DEFAULT_STAGGER_STEP_MILLIS",
    "DEFAULT_TICK_PERIOD_MILLIS",
    "DrawCallback",
    "RenderScheduler",
    "SchedulerState",
    "TimerFacility",
    "TimerHandle",
    "utc_now",
]


class TimerHandle(Protocol):
    def cancel(self) -> Any:
        ...


class TimerFacility(Protocol):
    """Deferred-callback source; :class:`asyncio.AbstractEventLoop` fits."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SchedulerState(Enum):
    IDLE = "idle"
    TICKING_ACTIVE = "ticking_active"


class ChangeGate:
    """Remember the last rendered text and reject identical follow-ups."""

    def __init__(self) -> None:
        self._last_text: str | None = None

    @property
    def last_text(self) -> str | None:
        return self._last_text

    def should_render(self, text: str) -> bool:
        if text == self._last_text:
            return False
        self._last_text = text
        return True

    def reset(self) -> None:
        self._last_text = None


class RenderScheduler:
    """Drive one widget's tick loop from the snapshots of the timer it observes.

    While the timer runs, the widget recomputes its text every
    ``tick_period_millis``; the first tick after a start waits
    ``stagger_offset_millis`` so that widgets started by the same push do not
    all redraw at once. Any non-running snapshot stops the loop and renders
    once, immediately. Text that has not changed since the last draw is not
    drawn again.
    """

    def __init__(
        self,
        draw: DrawCallback,
        timers: TimerFacility,
        *,
        stagger_offset_millis: int = 0,
        tick_period_millis: int = DEFAULT_TICK_PERIOD_MILLIS,
        gate: Optional[ChangeGate] = None,
        now_provider: Callable[[], datetime] = utc_now,
        name: str = "widget",
    ) -> None:
        if tick_period_millis <= 0:
            raise ValueError("tick_period_millis must be positive")
        if stagger_offset_millis < 0:
            raise ValueError("stagger_offset_millis cannot be negative")

        self.draw = draw
        self.timers = timers
        self.stagger_offset_millis = stagger_offset_millis
        self.tick_period_millis = tick_period_millis
        self.gate = gate or ChangeGate()
        self.now_provider = now_provider
        self.name = name

        self._state = SchedulerState.IDLE
        self._snapshot: Stopwatch | None = None
        self._handle: TimerHandle | None = None
        self._closed = False
        self._generation = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def snapshot(self) -> Stopwatch | None:
        return self._snapshot

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_pending_tick(self) -> bool:
        return self._handle is not None

    def on_snapshot(self, snapshot: Stopwatch) -> None:
        """Channel callback: react to a pushed snapshot."""

        if self._closed:
            return

        self._snapshot = snapshot

        if snapshot.is_running:
            if self._state is SchedulerState.IDLE:
                self._state = SchedulerState.TICKING_ACTIVE
                LOGGER.debug(
                    "%s starting tick loop after %d ms stagger",
                    self.name,
                    self.stagger_offset_millis,
                )
                self._schedule(self.stagger_offset_millis)
            return

        self._cancel_pending()
        self._state = SchedulerState.IDLE
        LOGGER.debug("%s stopped on %s update", self.name, snapshot.status.name)
        self._render_safely()

    def close(self) -> None:
        """Cancel any pending tick; later ticks and snapshots are ignored."""

        if self._closed:
            return
        self._closed = True
        self._state = SchedulerState.IDLE
        self._cancel_pending()
        LOGGER.debug("%s scheduler closed", self.name)

    def render(self) -> bool:
        """Recompute the display text and draw it if it changed.

        Returns ``True`` when the draw callback was invoked.
        """

        if self._snapshot is None:
            return False
        text = format_snapshot(self._snapshot, self.now_provider())
        if not self.gate.should_render(text):
            return False
        self.draw(text, self._snapshot)
        return True

    # Internal helpers -------------------------------------------------
    def _tick(self, generation: int) -> None:
        # A cancelled handle may still have been queued by the timer facility.
        if (
            self._closed
            or self._state is not SchedulerState.TICKING_ACTIVE
            or generation != self._generation
        ):
            return
        self._handle = None
        try:
            self._render_safely()
        finally:
            if not self._closed and self._state is SchedulerState.TICKING_ACTIVE:
                self._schedule(self.tick_period_millis)

    def _render_safely(self) -> None:
        try:
            self.render()
        except Exception:
            LOGGER.exception("%s failed to render stopwatch", self.name)

    def _schedule(self, delay_millis: int) -> None:
        self._cancel_pending()
        self._handle = self.timers.call_later(
            delay_millis / 1000.0, partial(self._tick, self._generation)
        )

    def _cancel_pending(self) -> None:
        self._generation += 1
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.cancel()
