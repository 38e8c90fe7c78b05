from __future__ import annotations

import asyncio
import json
import urllib.error
from io import BytesIO
from typing import Any
from unittest import mock

import pytest

from conftest import FakeClock
from stopwatch_deck.control import (
    CommandClient,
    ControlAction,
    Err,
    ErrorKind,
    Ok,
    TimerCommand,
    is_control_action,
)
from stopwatch_deck.host import MockDeckHost

BASE_URL = "https://localhost:5010"


class FakeResponse:
    def __init__(self, body: bytes) -> None:
        self._body = body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def read(self) -> bytes:
        return self._body


def _http_error(status: int, body: bytes = b"") -> urllib.error.HTTPError:
    return urllib.error.HTTPError(BASE_URL, status, "error", {}, BytesIO(body))


def _client(*outcomes: Any, **kwargs: Any) -> tuple[CommandClient, mock.Mock, mock.Mock]:
    opener = mock.Mock(
        side_effect=[
            outcome if isinstance(outcome, BaseException) else FakeResponse(outcome)
            for outcome in outcomes
        ]
    )
    sleep = mock.Mock()
    kwargs.setdefault("retry_initial_delay", 0.1)
    client = CommandClient(BASE_URL + "/", opener=opener, sleep=sleep, **kwargs)
    return client, opener, sleep


def _sent(opener: mock.Mock, index: int = 0) -> tuple[str, Any]:
    request = opener.call_args_list[index].args[0]
    body = request.data.decode("utf-8")
    return request.full_url, json.loads(body) if body else None


class TestCommandClient:
    def test_timer_command_posts_json_body(self) -> None:
        client, opener, _ = _client(b'{"ok": true}')

        result = client.send_timer_command(2, TimerCommand.PAUSE)

        assert result == Ok({"ok": True})
        assert _sent(opener) == (f"{BASE_URL}/api/timer", {"Id": 2, "Type": 1})
        request = opener.call_args.args[0]
        assert request.get_method() == "POST"
        assert request.get_header("Content-type") == "application/json"
        assert opener.call_args.kwargs["timeout"] == 5.0

    @pytest.mark.parametrize("body", [b"", b"   ", b"accepted"])
    def test_empty_or_non_json_success_is_assumed_ok(self, body: bytes) -> None:
        client, _, _ = _client(body)

        assert client.obs_scene_change("ToGame") == Ok({"success": True})

    def test_error_body_message_is_reported(self) -> None:
        client, opener, sleep = _client(_http_error(400, b'{"error": "Timer not found"}'))

        result = client.send_timer_command(9, TimerCommand.RESET)

        assert result == Err(ErrorKind.HTTP, "Timer not found", 400)
        assert opener.call_count == 1
        sleep.assert_not_called()

    @pytest.mark.parametrize("body", [b"", b"<html>nope</html>", b'{"detail": "x"}'])
    def test_error_without_message_falls_back_to_status(self, body: bytes) -> None:
        client, _, _ = _client(_http_error(404, body))

        assert client.invoke("/api/obs", "ToMain") == Err(ErrorKind.HTTP, "HTTP 404", 404)

    def test_transport_failures_are_retried_with_backoff(self) -> None:
        client, opener, sleep = _client(
            urllib.error.URLError("connection refused"),
            _http_error(503),
            b'{"donation": {"name": "Ann"}}',
        )

        result = client.show_oldest_donation()

        assert result == Ok({"donation": {"name": "Ann"}})
        assert opener.call_count == 3
        assert sleep.call_args_list == [mock.call(0.1), mock.call(0.1 * 2)]
        assert _sent(opener, 2) == (f"{BASE_URL}/api/donation/show_oldest", None)

    def test_gives_up_after_max_retries(self) -> None:
        client, opener, sleep = _client(
            TimeoutError("timed out"),
            TimeoutError("timed out"),
            max_retries=1,
        )

        result = client.set_atem_program(3)

        assert isinstance(result, Err)
        assert result.kind is ErrorKind.TRANSPORT
        assert "timed out" in result.message
        assert opener.call_count == 2
        assert sleep.call_count == 1

    def test_typed_helpers_validate_arguments(self) -> None:
        client, opener, _ = _client()

        with pytest.raises(ValueError):
            client.set_atem_program(9)
        with pytest.raises(ValueError):
            client.obs_scene_change("ToMoon")
        opener.assert_not_called()

    def test_base_url_can_be_replaced(self) -> None:
        client, opener, _ = _client(b"{}")

        client.base_url = "http://studio:8080/"
        client.show_oldest_donation(empty=True)

        assert _sent(opener)[0] == "http://studio:8080/api/donation/show_oldest_empty"


class StubClient:
    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.calls: list[tuple[str, Any]] = []

    def send_timer_command(self, timer_id: int, command: TimerCommand):
        self.calls.append(("timer", (timer_id, command)))
        return self.results.pop(0)

    def show_oldest_donation(self, *, empty: bool = False):
        self.calls.append(("donation", empty))
        return self.results.pop(0)

    def set_atem_program(self, program_input: int):
        self.calls.append(("atem", program_input))
        return self.results.pop(0)

    def obs_scene_change(self, command: str):
        self.calls.append(("obs", command))
        return self.results.pop(0)


class TestControlAction:
    def test_success_flashes_then_restores_state(self, clock: FakeClock) -> None:
        host = MockDeckHost()
        client = StubClient(Ok({"success": True}))
        action = ControlAction("key-3", "com.speedrun.timer.pause2p", client, host, clock)

        result = asyncio.run(action.execute())

        assert result == Ok({"success": True})
        assert client.calls == [("timer", (2, TimerCommand.PAUSE))]
        assert host.states("key-3") == [1]
        clock.advance(1.0)
        assert host.states("key-3") == [1, 0]
        assert host.alerts("key-3") == []

    def test_error_shows_alert(self, clock: FakeClock) -> None:
        host = MockDeckHost()
        client = StubClient(Err(ErrorKind.TRANSPORT, "refused"))
        action = ControlAction("key-1", "com.speedrun.timer.obs_tocamera", client, host, clock)

        result = asyncio.run(action.execute())

        assert isinstance(result, Err)
        assert client.calls == [("obs", "ToCamera")]
        assert host.alerts("key-1") == ["API Error"]
        assert host.states("key-1") == [0]
        assert clock.pending == []

    def test_reset_both_stops_at_first_failure(self, clock: FakeClock) -> None:
        host = MockDeckHost()
        client = StubClient(Err(ErrorKind.HTTP, "HTTP 500", 500), Ok({}))
        action = ControlAction("key-2", "com.speedrun.timer.reset", client, host, clock)

        asyncio.run(action.execute())

        assert client.calls == [("timer", (1, TimerCommand.RESET))]
        assert host.alerts("key-2") == ["API Error"]

    def test_reset_both_resets_each_timer(self, clock: FakeClock) -> None:
        client = StubClient(Ok({}), Ok({}))
        action = ControlAction("key-2", "com.speedrun.timer.reset", client, MockDeckHost(), clock)

        assert asyncio.run(action.execute()) == Ok({})
        assert client.calls == [
            ("timer", (1, TimerCommand.RESET)),
            ("timer", (2, TimerCommand.RESET)),
        ]

    def test_unknown_action_alerts(self, clock: FakeClock) -> None:
        host = MockDeckHost()
        client = StubClient()
        action = ControlAction("key-5", "com.speedrun.timer.launch", client, host, clock)

        result = asyncio.run(action.execute())

        assert result.kind is ErrorKind.UNSUPPORTED
        assert host.alerts("key-5") == ["Unknown Action"]
        assert client.calls == []

    @pytest.mark.parametrize(
        "uuid, expected",
        [
            ("com.speedrun.timer.start", True),
            ("com.speedrun.timer.atem_input_8", True),
            ("com.speedrun.timer.obs_refresh", True),
            ("com.speedrun.timer.display1", False),
            ("com.other.start", False),
        ],
    )
    def test_is_control_action(self, uuid: str, expected: bool) -> None:
        assert is_control_action(uuid) is expected
