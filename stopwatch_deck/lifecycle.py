"""Create and destroy display widgets bound to a timer channel."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from .hub import Subscription, SubscriptionHub, default_hub
from .scheduler import (
    DEFAULT_STAGGER_STEP_MILLIS,
    DEFAULT_TICK_PERIOD_MILLIS,
    ChangeGate,
    DrawCallback,
    RenderScheduler,
    SchedulerState,
    TimerFacility,
    utc_now,
)

LOGGER = logging.getLogger(__name__)

__all__ = ["WidgetHandle", "WidgetLifecycle"]


@dataclass(eq=False)
class WidgetHandle:
    """Everything one attached widget owns."""

    timer_id: int
    instance_ordinal: int
    stagger_offset_millis: int
    scheduler: RenderScheduler | None = None
    subscription: Subscription | None = field(default=None, repr=False)
    detached: bool = False

    @property
    def gate(self) -> ChangeGate | None:
        return self.scheduler.gate if self.scheduler is not None else None

    @property
    def last_rendered_text(self) -> str | None:
        gate = self.gate
        return gate.last_text if gate is not None else None

    @property
    def is_tick_loop_active(self) -> bool:
        return (
            self.scheduler is not None
            and self.scheduler.state is SchedulerState.TICKING_ACTIVE
        )


class WidgetLifecycle:
    """Bind widgets to hub subscriptions and render schedulers.

    Ordinals come from one counter shared by every widget kind and are never
    reused, so stagger offsets stay distinct for the lifetime of the process.
    """

    def __init__(
        self,
        timers: TimerFacility,
        *,
        hub: SubscriptionHub | None = None,
        tick_period_millis: int = DEFAULT_TICK_PERIOD_MILLIS,
        stagger_step_millis: int = DEFAULT_STAGGER_STEP_MILLIS,
        now_provider: Callable[[], datetime] = utc_now,
    ) -> None:
        if stagger_step_millis < 0:
            raise ValueError("stagger_step_millis cannot be negative")
        self.timers = timers
        self.hub = hub if hub is not None else default_hub()
        self.tick_period_millis = tick_period_millis
        self.stagger_step_millis = stagger_step_millis
        self.now_provider = now_provider
        self._ordinals = itertools.count()
        self._ordinal_lock = threading.Lock()

    def attach(self, timer_id: int, draw: DrawCallback, *, name: str | None = None) -> WidgetHandle:
        """Create an idle widget for ``timer_id`` that draws through ``draw``."""

        with self._ordinal_lock:
            ordinal = next(self._ordinals)
        offset = ordinal * self.stagger_step_millis
        handle = WidgetHandle(
            timer_id=timer_id,
            instance_ordinal=ordinal,
            stagger_offset_millis=offset,
        )
        handle.scheduler = RenderScheduler(
            draw,
            self.timers,
            stagger_offset_millis=offset,
            tick_period_millis=self.tick_period_millis,
            now_provider=self.now_provider,
            name=name or f"widget#{ordinal}",
        )
        handle.subscription = self.hub.subscribe(timer_id, handle.scheduler.on_snapshot)
        LOGGER.info(
            "Attached widget #%d to timer %s (stagger %d ms)", ordinal, timer_id, offset
        )
        return handle

    def detach(self, handle: Optional[WidgetHandle]) -> None:
        """Tear ``handle`` down. Repeated or premature calls are no-ops."""

        if handle is None or handle.detached:
            return
        handle.detached = True

        scheduler, handle.scheduler = handle.scheduler, None
        if scheduler is not None:
            scheduler.close()

        subscription, handle.subscription = handle.subscription, None
        if subscription is not None:
            subscription.cancel()

        LOGGER.info("Detached widget #%d from timer %s", handle.instance_ordinal, handle.timer_id)
