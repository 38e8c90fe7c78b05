from __future__ import annotations

import asyncio
import io
import threading
from datetime import timedelta
from typing import Any
from unittest import mock

import pytest
from PIL import Image

from conftest import T0, FakeClock
from stopwatch_deck.control import (
    CommandClient,
    CommandResult,
    ControlAction,
    Err,
    ErrorKind,
    Ok,
    TimerCommand,
)
from stopwatch_deck.host import MockDeckHost
from stopwatch_deck.hub import SubscriptionHub
from stopwatch_deck.lifecycle import WidgetLifecycle
from stopwatch_deck.plugin import DeckPlugin, DisplayKind, DisplayWidget, resolve_display_kind
from stopwatch_deck.scheduler import utc_now
from stopwatch_deck.stopwatch import Stopwatch, StopwatchStatus

PAUSED = Stopwatch(StopwatchStatus.PAUSED, accumulated_millis=61_234)


@pytest.mark.parametrize(
    "uuid, expected",
    [
        ("com.speedrun.timer.display1", DisplayKind(1, False)),
        ("com.speedrun.timer.display2", DisplayKind(2, False)),
        ("com.speedrun.timer.title2", DisplayKind(2, True)),
        ("com.speedrun.timer.display", DisplayKind(1, False)),
        ("com.speedrun.timer.display0", DisplayKind(1, False)),
        ("com.speedrun.timer.timer_title1", DisplayKind(1, True)),
        ("com.speedrun.timer.pause1p", None),
    ],
)
def test_resolve_display_kind(uuid: str, expected: DisplayKind | None) -> None:
    assert resolve_display_kind(uuid) == expected


@pytest.fixture
def hub() -> SubscriptionHub:
    return SubscriptionHub()


@pytest.fixture
def host() -> MockDeckHost:
    return MockDeckHost()


@pytest.fixture
def client() -> mock.Mock:
    client = mock.Mock()
    client.base_url = "https://localhost:5010"
    client.send_timer_command.return_value = Ok({"success": True})
    return client


@pytest.fixture
def plugin(clock: FakeClock, hub: SubscriptionHub, host: MockDeckHost, client: mock.Mock) -> DeckPlugin:
    lifecycle = WidgetLifecycle(clock, hub=hub, now_provider=clock.now)
    return DeckPlugin(host, lifecycle, client, url_loader=lambda: "http://studio:5010/")


def test_title_widget_shows_two_line_text(
    plugin: DeckPlugin, hub: SubscriptionHub, host: MockDeckHost
) -> None:
    widget = plugin.on_attach("key-0", "com.speedrun.timer.title1")

    hub.ingest(1, PAUSED)

    assert isinstance(widget, DisplayWidget)
    assert host.last_content("key-0") == "00:01:01\n.234"


def test_display_widget_draws_bitmap_for_its_timer(
    plugin: DeckPlugin, hub: SubscriptionHub, host: MockDeckHost
) -> None:
    plugin.on_attach("key-0", "com.speedrun.timer.display2")

    hub.ingest(1, PAUSED)
    assert host.contents("key-0") == []

    hub.ingest(2, PAUSED)
    content = host.last_content("key-0")
    assert isinstance(content, Image.Image)
    assert content.size == (72, 72)


def test_running_widget_ticks_until_detached(
    plugin: DeckPlugin, hub: SubscriptionHub, host: MockDeckHost, clock: FakeClock
) -> None:
    plugin.on_attach("key-0", "com.speedrun.timer.title1")
    hub.ingest(1, Stopwatch(StopwatchStatus.RUNNING, T0 - timedelta(seconds=5)))

    clock.advance_ms(250)
    assert host.contents("key-0") == ["00:00:05\n.000", "00:00:05\n.100", "00:00:05\n.200"]

    plugin.on_detach("key-0")
    plugin.on_detach("key-0")
    clock.advance_ms(500)

    assert len(host.contents("key-0")) == 3
    assert clock.pending == []
    assert hub.subscriber_count(1) == 0
    assert plugin.contexts == []


def test_attach_is_idempotent_per_context(plugin: DeckPlugin, hub: SubscriptionHub) -> None:
    first = plugin.on_attach("key-0", "com.speedrun.timer.display1")
    second = plugin.on_attach("key-0", "com.speedrun.timer.display1")

    assert first is second
    assert hub.subscriber_count(1) == 1


async def _press(plugin: DeckPlugin, context: str) -> CommandResult:
    task = plugin.on_run(context)
    assert task is not None
    return await task


def test_foreign_action_is_ignored(plugin: DeckPlugin) -> None:
    assert plugin.on_attach("key-0", "com.other.plugin.launch") is None
    assert plugin.action_for("key-0") is None


def test_unknown_command_alerts_when_pressed(plugin: DeckPlugin, host: MockDeckHost) -> None:
    action = plugin.on_attach("key-5", "com.speedrun.timer.launch")

    result = asyncio.run(_press(plugin, "key-5"))

    assert isinstance(action, ControlAction)
    assert isinstance(result, Err)
    assert result.kind is ErrorKind.UNSUPPORTED
    assert host.alerts("key-5") == ["Unknown Action"]


def test_run_executes_control_actions(
    plugin: DeckPlugin, host: MockDeckHost, client: mock.Mock, clock: FakeClock
) -> None:
    action = plugin.on_attach("key-4", "com.speedrun.timer.resume1p")
    plugin.on_attach("key-0", "com.speedrun.timer.display1")

    assert isinstance(action, ControlAction)
    assert asyncio.run(_press(plugin, "key-4")) == Ok({"success": True})
    client.send_timer_command.assert_called_once_with(1, TimerCommand.RESUME)
    assert plugin.on_run("key-0") is None
    assert plugin.on_run("key-9") is None

    clock.advance(1.0)
    assert host.states("key-4") == [1, 0]


def test_slow_command_does_not_stall_widget_ticks() -> None:
    release = threading.Event()

    def slow_opener(request: Any, **kwargs: Any) -> io.BytesIO:
        release.wait(timeout=5)
        return io.BytesIO(b'{"success": true}')

    async def scenario() -> tuple[int, bool, CommandResult]:
        loop = asyncio.get_running_loop()
        host = MockDeckHost()
        hub = SubscriptionHub()
        lifecycle = WidgetLifecycle(loop, hub=hub, tick_period_millis=10, stagger_step_millis=0)
        client = CommandClient("http://studio:5010", opener=slow_opener)
        plugin = DeckPlugin(host, lifecycle, client, url_loader=lambda: "http://studio:5010")
        plugin.on_attach("key-0", "com.speedrun.timer.title1")
        plugin.on_attach("key-1", "com.speedrun.timer.pause1p")
        hub.ingest(1, Stopwatch(StopwatchStatus.RUNNING, utc_now()))

        task = plugin.on_run("key-1")
        assert task is not None
        try:
            await asyncio.sleep(0.2)
            drawn_while_waiting = len(host.contents("key-0"))
            still_waiting = not task.done()
        finally:
            release.set()
        result = await task
        plugin.close()
        return drawn_while_waiting, still_waiting, result

    drawn, still_waiting, result = asyncio.run(scenario())

    assert still_waiting
    assert drawn >= 5
    assert result == Ok({"success": True})


def test_settings_change_reloads_server_url(
    clock: FakeClock, hub: SubscriptionHub, host: MockDeckHost, client: mock.Mock
) -> None:
    changed: list[str] = []
    urls = iter(["http://studio:5010/", "http://backup:5010"])
    plugin = DeckPlugin(
        host,
        WidgetLifecycle(clock, hub=hub),
        client,
        url_loader=lambda: next(urls),
        on_server_url_changed=changed.append,
    )

    plugin.on_settings_changed({"anything": 1})
    plugin.on_settings_changed()

    assert changed == ["http://studio:5010/", "http://backup:5010"]


def test_close_detaches_every_widget(plugin: DeckPlugin, hub: SubscriptionHub) -> None:
    plugin.on_attach("key-0", "com.speedrun.timer.display1")
    plugin.on_attach("key-1", "com.speedrun.timer.title1")
    plugin.on_attach("key-2", "com.speedrun.timer.start")

    plugin.close()

    assert plugin.contexts == []
    assert hub.subscriber_count(1) == 0
