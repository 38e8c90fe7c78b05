"""Helpers for loading environment variables and engine settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from .scheduler import DEFAULT_STAGGER_STEP_MILLIS, DEFAULT_TICK_PERIOD_MILLIS

__all__ = [
    "ConfigError",
    "DEFAULT_SERVER_URL",
    "EngineSettings",
    "SERVER_URL_ENV",
    "load_env_file",
    "load_server_url",
    "read_env_file",
]

DEFAULT_SERVER_URL = "https://localhost:5010"
SERVER_URL_ENV = "STOPWATCH_SERVER_URL"
TICK_PERIOD_ENV = "STOPWATCH_TICK_PERIOD_MS"
STAGGER_STEP_ENV = "STOPWATCH_STAGGER_STEP_MS"


class ConfigError(RuntimeError):
    """Raised when configuration values are malformed."""


def _resolve_env_path(env_file: str | Path | None) -> Path:
    return Path(env_file) if env_file is not None else Path.cwd() / ".env"


def load_env_file(env_file: str | Path | None = None) -> None:
    """Load environment variables from ``env_file`` if provided.

    When ``env_file`` is :data:`None`, the loader looks for a ``.env`` file in the
    current working directory. Existing environment variables are never overwritten.
    """

    for key, value in read_env_file(env_file).items():
        os.environ.setdefault(key, value)


def read_env_file(env_file: str | Path | None = None) -> dict[str, str]:
    """Parse ``env_file`` without touching :data:`os.environ`.

    Missing files yield an empty mapping.
    """

    path = _resolve_env_path(env_file)
    if not path.exists() or not path.is_file():
        return {}
    return dict(_iter_env_entries(path))


def load_server_url(
    env_file: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Return the control service base URL.

    The ``.env`` file is re-read on every call so that a settings change
    written there is picked up without restarting. It takes precedence over
    the process environment, which takes precedence over the default.
    """

    environ = os.environ if environ is None else environ
    url = read_env_file(env_file).get(SERVER_URL_ENV) or environ.get(SERVER_URL_ENV)
    return (url or DEFAULT_SERVER_URL).rstrip("/")


@dataclass(frozen=True)
class EngineSettings:
    """Timing constants shared by every display widget."""

    tick_period_millis: int = DEFAULT_TICK_PERIOD_MILLIS
    stagger_step_millis: int = DEFAULT_STAGGER_STEP_MILLIS

    def __post_init__(self) -> None:
        if self.tick_period_millis <= 0:
            raise ConfigError(f"Tick period must be positive, got {self.tick_period_millis}")
        if self.stagger_step_millis < 0:
            raise ConfigError(
                f"Stagger step cannot be negative, got {self.stagger_step_millis}"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        environ = os.environ if environ is None else environ
        return cls(
            tick_period_millis=_int_setting(environ, TICK_PERIOD_ENV, DEFAULT_TICK_PERIOD_MILLIS),
            stagger_step_millis=_int_setting(
                environ, STAGGER_STEP_ENV, DEFAULT_STAGGER_STEP_MILLIS
            ),
        )


def _int_setting(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer number of milliseconds, got {raw!r}") from exc


def _iter_env_entries(path: Path) -> Iterable[tuple[str, str]]:
    for raw_line in path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            raise ConfigError(
                f"Invalid line in {path.name!r}: {raw_line!r}. Expected KEY=VALUE format."
            )
        key, raw_value = line.split("=", 1)
        key = key.strip()
        value = raw_value.strip().strip('"').strip("'")
        if not key:
            raise ConfigError(f"Environment variable key is missing in line: {raw_line!r}")
        yield key, value
