"""HTTP client for the local timer control service."""

from __future__ import annotations

import json
import logging
import ssl
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)

_NO_BODY = object()
_ASSUMED_SUCCESS = {"success": True}
OBS_COMMANDS = ("ToGame", "ToMain", "ToCamera", "Refresh")


class TimerCommand(IntEnum):
    """Command codes understood by ``/api/timer``."""

    RESUME = 0
    PAUSE = 1
    RESET = 2
    START_BOTH = 3


class ErrorKind(Enum):
    HTTP = "http"
    TRANSPORT = "transport"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class Ok:
    value: Any

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    status: Optional[int] = None

    @property
    def ok(self) -> bool:
        return False


CommandResult = Union[Ok, Err]


class _RetryableHttpError(Exception):
    def __init__(self, error: Err) -> None:
        super().__init__(error.message)
        self.error = error


class CommandClient:
    """POST small JSON commands to the control service.

    Every command is idempotent, so transport failures and 5xx responses are
    retried with exponential backoff. Failures are returned as :class:`Err`
    values rather than raised.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 5.0,
        max_retries: int = 2,
        retry_initial_delay: float = 0.25,
        retry_backoff: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        opener: Callable[..., Any] = urllib.request.urlopen,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Root URL of the control service, e.g. ``https://localhost:5010``.
            timeout: Socket timeout per request (seconds).
            max_retries: Maximum number of retries after the first attempt.
            retry_initial_delay: Base delay before the first retry (seconds).
            retry_backoff: Multiplier applied to the delay after each retry.
            sleep: Sleep function used between retries (primarily for testing).
            opener: ``urlopen`` compatible callable (primarily for testing).
            ssl_context: Optional TLS context, e.g. to trust a self-signed
                certificate on ``localhost``.
        """

        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_initial_delay = retry_initial_delay
        self.retry_backoff = retry_backoff
        self._sleep = sleep
        self._opener = opener
        self._ssl_context = ssl_context

    @property
    def base_url(self) -> str:
        return self._base_url

    @base_url.setter
    def base_url(self, value: str) -> None:
        self._base_url = value.rstrip("/")

    def invoke(self, path: str, payload: Any = _NO_BODY) -> CommandResult:
        """POST ``payload`` (JSON encoded) to ``path`` and classify the outcome."""

        if not path.startswith("/"):
            path = f"/{path}"
        url = f"{self.base_url}{path}"
        data = b"" if payload is _NO_BODY else json.dumps(payload).encode("utf-8")
        logger.debug("POST %s %s", url, data.decode("utf-8") or "<empty>")

        attempt = 0
        delay = self.retry_initial_delay
        while True:
            try:
                return self._post(url, data)
            except (_RetryableHttpError, urllib.error.URLError, OSError) as exc:
                attempt += 1
                error = exc.error if isinstance(exc, _RetryableHttpError) else _transport_error(exc)
                if attempt > self.max_retries:
                    logger.error("Command %s failed after retries: %s", path, error.message)
                    return error
                logger.warning(
                    "Command %s failed (attempt %d/%d): %s",
                    path,
                    attempt,
                    self.max_retries,
                    error.message,
                )
                self._sleep(delay)
                delay *= self.retry_backoff

    # Typed commands -----------------------------------------------------
    def send_timer_command(self, timer_id: int, command: TimerCommand) -> CommandResult:
        return self.invoke("/api/timer", {"Id": int(timer_id), "Type": int(command)})

    def show_oldest_donation(self, *, empty: bool = False) -> CommandResult:
        path = "/api/donation/show_oldest_empty" if empty else "/api/donation/show_oldest"
        return self.invoke(path)

    def set_atem_program(self, program_input: int) -> CommandResult:
        if not 1 <= program_input <= 8:
            raise ValueError(f"ATEM program input must be between 1 and 8, got {program_input}")
        return self.invoke("/api/atem/set_program", program_input)

    def obs_scene_change(self, command: str) -> CommandResult:
        if command not in OBS_COMMANDS:
            raise ValueError(f"Unknown OBS command {command!r}; expected one of {OBS_COMMANDS}")
        return self.invoke("/api/obs", command)

    # Internal helpers -------------------------------------------------
    def _post(self, url: str, data: bytes) -> CommandResult:
        request = urllib.request.Request(
            url,
            data=data,
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        kwargs: dict[str, Any] = {"timeout": self.timeout}
        if self._ssl_context is not None:
            kwargs["context"] = self._ssl_context

        try:
            with self._opener(request, **kwargs) as response:
                body = response.read()
        except urllib.error.HTTPError as exc:
            error = _http_error(exc.code, _read_error_body(exc))
            if exc.code >= 500:
                raise _RetryableHttpError(error) from exc
            logger.error("Command rejected by server: %s", error.message)
            return error

        return Ok(_decode_success(body))


def _decode_success(body: bytes) -> Any:
    text = body.decode("utf-8", errors="replace").strip()
    if not text:
        return dict(_ASSUMED_SUCCESS)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Non-JSON success response, assuming success: %r", text[:80])
        return dict(_ASSUMED_SUCCESS)


def _read_error_body(exc: urllib.error.HTTPError) -> bytes:
    try:
        return exc.read() or b""
    except OSError:
        return b""


def _http_error(status: int, body: bytes) -> Err:
    message = f"HTTP {status}"
    text = body.decode("utf-8", errors="replace").strip()
    if text:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict) and payload.get("error"):
            message = str(payload["error"])
    return Err(ErrorKind.HTTP, message, status)


def _transport_error(exc: BaseException) -> Err:
    reason = getattr(exc, "reason", None) or exc
    return Err(ErrorKind.TRANSPORT, str(reason))


__all__ = [
    "CommandClient",
    "CommandResult",
    "Err",
    "ErrorKind",
    "OBS_COMMANDS",
    "Ok",
    "TimerCommand",
]
