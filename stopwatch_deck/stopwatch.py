"""Stopwatch snapshots and elapsed-time formatting."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import IntEnum

__all__ = [
    "Stopwatch",
    "StopwatchStatus",
    "elapsed_millis",
    "format_elapsed",
    "format_snapshot",
    "split_display",
]

_ONE_MILLISECOND = timedelta(milliseconds=1)


class StopwatchStatus(IntEnum):
    """Timer states, using the remote service's wire codes."""

    RUNNING = 0
    PAUSED = 1
    RESET = 2


@dataclass(frozen=True)
class Stopwatch:
    """Immutable point-in-time description of a remote timer."""

    status: StopwatchStatus
    reference_instant: datetime | None = None
    accumulated_millis: int = 0

    def __post_init__(self) -> None:
        if self.accumulated_millis < 0:
            raise ValueError(
                f"accumulated_millis must be >= 0, got {self.accumulated_millis}"
            )
        if self.status == StopwatchStatus.RUNNING and self.reference_instant is None:
            raise ValueError("A running stopwatch requires a reference_instant")

    @property
    def is_running(self) -> bool:
        return self.status == StopwatchStatus.RUNNING


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def elapsed_millis(snapshot: Stopwatch, now: datetime) -> int:
    """Return the elapsed milliseconds ``snapshot`` represents at ``now``.

    Running stopwatches add the time since ``reference_instant`` to the
    accumulated total. A reference instant in the future (local clock behind
    the server) contributes nothing rather than a negative amount.
    """

    if not snapshot.is_running:
        return snapshot.accumulated_millis

    assert snapshot.reference_instant is not None
    delta = _as_utc(now) - _as_utc(snapshot.reference_instant)
    running_ms = delta // _ONE_MILLISECOND
    return snapshot.accumulated_millis + max(0, running_ms)


def format_elapsed(millis: int) -> str:
    """Format ``millis`` as ``HH:MM:SS.mmm``. Hours are not wrapped."""

    if millis < 0:
        raise ValueError(f"Elapsed time cannot be negative: {millis}")

    seconds, ms = divmod(int(millis), 1000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{ms:03d}"


def format_snapshot(snapshot: Stopwatch, now: datetime) -> str:
    return format_elapsed(elapsed_millis(snapshot, now))


def split_display(text: str) -> tuple[str, str]:
    """Split ``HH:MM:SS.mmm`` into ``("HH:MM:SS", ".mmm")``."""

    main, _, fraction = text.partition(".")
    return main, f".{fraction}" if fraction else ""
