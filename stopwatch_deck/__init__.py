"""Top-level package for the live stopwatch deck widgets."""

from __future__ import annotations

from .hub import Subscription, SubscriptionHub, TimerChannel, default_hub
from .lifecycle import WidgetHandle, WidgetLifecycle
from .scheduler import ChangeGate, RenderScheduler, SchedulerState
from .stopwatch import Stopwatch, StopwatchStatus, elapsed_millis, format_elapsed

__all__ = [
    "__version__",
    "ChangeGate",
    "RenderScheduler",
    "SchedulerState",
    "Stopwatch",
    "StopwatchStatus",
    "Subscription",
    "SubscriptionHub",
    "TimerChannel",
    "WidgetHandle",
    "WidgetLifecycle",
    "default_hub",
    "elapsed_millis",
    "format_elapsed",
]

__version__ = "0.1.0"
