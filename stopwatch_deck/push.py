"""Decode stopwatch push messages delivered by the timer service."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from .stopwatch import Stopwatch, StopwatchStatus

__all__ = ["PushDecodeError", "PushMessage", "decode_push_message", "decode_stopwatch"]

# Python 3.10 fromisoformat only takes 3 or 6 fractional digits; .NET sends 7
_FRACTION = re.compile(r"\.(\d+)")


class PushDecodeError(ValueError):
    """Raised when a push message is malformed."""


@dataclass(frozen=True)
class PushMessage:
    timer_id: int
    stopwatch: Stopwatch


def decode_push_message(payload: str | bytes | Mapping[str, Any]) -> PushMessage:
    """Decode one push message.

    ``payload`` is either raw JSON or an already-parsed mapping of the form
    ``{"timerId": 1, "stopwatch": {"status": 0, "referenceInstant": "...",
    "accumulatedMillis": 0}}``.
    """

    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise PushDecodeError(f"Push message is not valid JSON: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise PushDecodeError("Push message must be a JSON object")

    raw_id = payload.get("timerId", payload.get("id"))
    if isinstance(raw_id, bool) or not isinstance(raw_id, int):
        raise PushDecodeError(f"Push message has no integer timerId: {raw_id!r}")

    return PushMessage(timer_id=raw_id, stopwatch=decode_stopwatch(payload.get("stopwatch")))


def decode_stopwatch(value: object) -> Stopwatch:
    if not isinstance(value, Mapping):
        raise PushDecodeError("Push message lacks a 'stopwatch' object")

    status = _parse_status(value.get("status"))
    reference = value.get("referenceInstant")
    accumulated = value.get("accumulatedMillis", 0)
    if isinstance(accumulated, bool) or not isinstance(accumulated, (int, float)):
        raise PushDecodeError(f"accumulatedMillis must be a number: {accumulated!r}")

    try:
        return Stopwatch(
            status=status,
            reference_instant=_parse_instant(reference) if reference is not None else None,
            accumulated_millis=int(accumulated),
        )
    except ValueError as exc:
        if isinstance(exc, PushDecodeError):
            raise
        raise PushDecodeError(str(exc)) from exc


def _parse_status(value: object) -> StopwatchStatus:
    if isinstance(value, bool):
        raise PushDecodeError(f"Unknown stopwatch status: {value!r}")
    if isinstance(value, int):
        try:
            return StopwatchStatus(value)
        except ValueError as exc:
            raise PushDecodeError(f"Unknown stopwatch status: {value!r}") from exc
    if isinstance(value, str):
        try:
            return StopwatchStatus[value.strip().upper()]
        except KeyError as exc:
            raise PushDecodeError(f"Unknown stopwatch status: {value!r}") from exc
    raise PushDecodeError(f"Unknown stopwatch status: {value!r}")


def _parse_instant(value: object) -> datetime:
    if not isinstance(value, str):
        raise PushDecodeError(f"referenceInstant must be an ISO 8601 string: {value!r}")
    cleaned = value.rstrip("Z") + ("+00:00" if value.endswith("Z") else "")
    cleaned = _FRACTION.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), cleaned, count=1)
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError as exc:
        raise PushDecodeError(f"Unable to parse referenceInstant: {value}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
