"""Per-timer fan-out of stopwatch snapshots to subscribed widgets."""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from typing import Callable, Iterator

from .stopwatch import Stopwatch

LOGGER = logging.getLogger(__name__)

SnapshotCallback = Callable[[Stopwatch], None]

__all__ = [
    "SnapshotCallback",
    "Subscription",
    "SubscriptionHub",
    "TimerChannel",
    "default_hub",
]


class Subscription:
    """Handle that removes one registration from one channel.

    Calling the handle (or :meth:`cancel`) more than once is a no-op.
    """

    def __init__(self, channel: "TimerChannel", token: int) -> None:
        self._channel: TimerChannel | None = channel
        self._token = token

    @property
    def active(self) -> bool:
        return self._channel is not None

    def cancel(self) -> None:
        channel, self._channel = self._channel, None
        if channel is not None:
            channel.remove(self._token)

    __call__ = cancel


class TimerChannel:
    """Last known snapshot and ordered subscribers for one timer id."""

    def __init__(self, timer_id: int) -> None:
        self.timer_id = timer_id
        self.last_snapshot: Stopwatch | None = None
        self._subscribers: dict[int, SnapshotCallback] = {}
        self._tokens = itertools.count()
        self._lock = threading.Lock()
        self._pending: deque[Stopwatch] = deque()
        self._delivering = False

    def __len__(self) -> int:
        return len(self._subscribers)

    def add(self, callback: SnapshotCallback) -> Subscription:
        with self._lock:
            token = next(self._tokens)
            self._subscribers[token] = callback
        LOGGER.debug("Timer %s gained subscriber #%d", self.timer_id, token)
        return Subscription(self, token)

    def remove(self, token: int) -> None:
        with self._lock:
            removed = self._subscribers.pop(token, None)
        if removed is not None:
            LOGGER.debug("Timer %s lost subscriber #%d", self.timer_id, token)

    def publish(self, snapshot: Stopwatch) -> None:
        """Deliver ``snapshot`` to every subscriber, in subscription order.

        A publish that arrives while another one is being delivered (from a
        subscriber callback or another thread) is queued behind it, so every
        subscriber sees snapshots in the order they were published.
        """

        with self._lock:
            self._pending.append(snapshot)
            if self._delivering:
                return
            self._delivering = True

        while True:
            with self._lock:
                if not self._pending:
                    self._delivering = False
                    return
                current = self._pending.popleft()
                self.last_snapshot = current
                tokens = list(self._subscribers)
            self._deliver(current, tokens)

    def _deliver(self, snapshot: Stopwatch, tokens: list[int]) -> None:
        for token in tokens:
            callback = self._subscribers.get(token)
            if callback is None:
                # Unsubscribed by an earlier callback in this delivery.
                continue
            try:
                callback(snapshot)
            except Exception:
                LOGGER.exception(
                    "Subscriber #%d of timer %s failed to handle update",
                    token,
                    self.timer_id,
                )


class SubscriptionHub:
    """Owns every :class:`TimerChannel` and is the single ingress for pushes."""

    def __init__(self) -> None:
        self._channels: dict[int, TimerChannel] = {}
        self._lock = threading.Lock()

    def subscribe(self, timer_id: int, callback: SnapshotCallback) -> Subscription:
        """Register ``callback`` for future pushes to ``timer_id``.

        The channel's last snapshot is not replayed; the callback first fires
        on the next :meth:`ingest` for this timer.
        """

        with self._lock:
            channel = self._channels.get(timer_id)
            if channel is None:
                channel = TimerChannel(timer_id)
                self._channels[timer_id] = channel
                LOGGER.debug("Created channel for timer %s", timer_id)
        return channel.add(callback)

    def ingest(self, timer_id: int, snapshot: Stopwatch) -> None:
        with self._lock:
            channel = self._channels.get(timer_id)
        if channel is None:
            LOGGER.debug("Dropping update for unwatched timer %s", timer_id)
            return
        channel.publish(snapshot)

    def last_snapshot(self, timer_id: int) -> Stopwatch | None:
        with self._lock:
            channel = self._channels.get(timer_id)
        return channel.last_snapshot if channel is not None else None

    def subscriber_count(self, timer_id: int) -> int:
        with self._lock:
            channel = self._channels.get(timer_id)
        return len(channel) if channel is not None else 0

    def timer_ids(self) -> Iterator[int]:
        with self._lock:
            return iter(list(self._channels))

    def close_channel(self, timer_id: int) -> None:
        """Forget the channel for ``timer_id``.

        Existing subscription handles stay safe to call; they no longer affect
        any channel the hub hands out.
        """

        with self._lock:
            removed = self._channels.pop(timer_id, None)
        if removed is not None:
            LOGGER.info("Closed channel for timer %s", timer_id)


_DEFAULT_HUB: SubscriptionHub | None = None
_DEFAULT_HUB_LOCK = threading.Lock()


def default_hub() -> SubscriptionHub:
    """Return the process-wide hub, creating it on first use."""

    global _DEFAULT_HUB
    with _DEFAULT_HUB_LOCK:
        if _DEFAULT_HUB is None:
            _DEFAULT_HUB = SubscriptionHub()
        return _DEFAULT_HUB
