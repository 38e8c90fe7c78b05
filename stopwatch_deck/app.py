"""Command line entry point that drives deck widgets from a push stream."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional, TextIO

from .config import ConfigError, EngineSettings, load_env_file, load_server_url
from .control import CommandClient
from .control.actions import ACTION_PREFIX
from .host import DeckHost, MockDeckHost
from .hub import SubscriptionHub
from .lifecycle import WidgetLifecycle
from .plugin import DeckPlugin
from .push import PushDecodeError, decode_push_message
from .scheduler import utc_now

LOGGER = logging.getLogger(__name__)
DEFAULT_WIDGETS = ("display1",)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Live stopwatch deck key renderer")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Optional path to a .env file loaded before the app starts.",
    )
    parser.add_argument(
        "--push-file",
        type=Path,
        default=None,
        help="JSON-lines file of push messages to replay (defaults to stdin).",
    )
    parser.add_argument(
        "--widget",
        dest="widgets",
        action="append",
        default=None,
        help="Display action to attach, e.g. display1 or title2. Repeatable.",
    )
    parser.add_argument(
        "--server-url",
        type=str,
        default=None,
        help="Base URL of the control service (overrides STOPWATCH_SERVER_URL).",
    )
    parser.add_argument(
        "--linger",
        type=float,
        default=0.0,
        help="Seconds to keep rendering after the push stream ends.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    timing_group = parser.add_argument_group("Timing options")
    timing_group.add_argument(
        "--tick-period-ms",
        type=int,
        default=None,
        help="Redraw period for running timers (overrides STOPWATCH_TICK_PERIOD_MS).",
    )
    timing_group.add_argument(
        "--stagger-step-ms",
        type=int,
        default=None,
        help="First-tick delay added per widget (overrides STOPWATCH_STAGGER_STEP_MS).",
    )

    host_group = parser.add_argument_group("Host options")
    host_group.add_argument(
        "--mock-output-dir",
        type=Path,
        default=None,
        help="Directory where the mock deck host writes rendered key bitmaps.",
    )

    return parser


@dataclass
class AppSettings:
    env_file: Path | None
    push_file: Path | None
    widgets: tuple[str, ...]
    server_url: str
    linger: float
    engine: EngineSettings
    mock_output_dir: Path | None


class AppRuntime:
    """Owns the hub, widget lifecycle, deck host and plugin for one run."""

    def __init__(
        self,
        *,
        settings: AppSettings,
        host_factory: Callable[..., DeckHost] = MockDeckHost,
        client_factory: Callable[..., CommandClient] = CommandClient,
        now_provider: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.host_factory = host_factory
        self.client_factory = client_factory
        self.now_provider = now_provider
        self.logger = logger or LOGGER

        self.hub = SubscriptionHub()
        self._plugin: DeckPlugin | None = None

    @property
    def plugin(self) -> DeckPlugin | None:
        return self._plugin

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Create the plugin on ``loop`` and attach the configured widgets."""

        if self._plugin is not None:
            return

        engine = self.settings.engine
        host = self.host_factory(output_dir=self.settings.mock_output_dir)
        lifecycle = WidgetLifecycle(
            loop,
            hub=self.hub,
            tick_period_millis=engine.tick_period_millis,
            stagger_step_millis=engine.stagger_step_millis,
            now_provider=self.now_provider,
        )
        client = self.client_factory(self.settings.server_url)
        self._plugin = DeckPlugin(
            host,
            lifecycle,
            client,
            url_loader=lambda: load_server_url(self.settings.env_file),
        )
        for index, widget in enumerate(self.settings.widgets):
            action_uuid = widget if widget.startswith(ACTION_PREFIX) else f"{ACTION_PREFIX}{widget}"
            self._plugin.on_attach(f"key-{index}", action_uuid)

    async def serve(self, stream: TextIO) -> int:
        """Run until ``stream`` is exhausted and the linger period elapsed.

        Returns the number of push messages ingested.
        """

        self.start(asyncio.get_running_loop())
        try:
            ingested = await self.pump(stream)
            if self.settings.linger > 0:
                self.logger.info("Push stream ended; lingering %.1f s", self.settings.linger)
                await asyncio.sleep(self.settings.linger)
            return ingested
        finally:
            self.close()

    async def pump(self, stream: TextIO) -> int:
        """Ingest lines from ``stream`` until it reaches end of file.

        Lines are read on a daemon thread, so a reader blocked on an
        interactive stdin never holds up interpreter shutdown after Ctrl-C.
        """

        loop = asyncio.get_running_loop()
        lines: asyncio.Queue[str] = asyncio.Queue()

        def hand_over(line: str) -> bool:
            try:
                loop.call_soon_threadsafe(lines.put_nowait, line)
            except RuntimeError:
                # Loop already closed
                return False
            return True

        def read_lines() -> None:
            try:
                for line in iter(stream.readline, ""):
                    if not hand_over(line):
                        return
            except (OSError, ValueError) as exc:
                self.logger.warning("Push stream read failed: %s", exc)
            finally:
                hand_over("")

        threading.Thread(target=read_lines, name="push-reader", daemon=True).start()

        ingested = 0
        while True:
            line = await lines.get()
            if not line:
                return ingested
            if self.ingest_line(line):
                ingested += 1

    def ingest_line(self, line: str) -> bool:
        line = line.strip()
        if not line or line.startswith("#"):
            return False
        try:
            message = decode_push_message(line)
        except PushDecodeError as exc:
            self.logger.warning("Skipping malformed push message %r: %s", line, exc)
            return False
        self.logger.debug("Push for timer %s: %s", message.timer_id, message.stopwatch)
        self.hub.ingest(message.timer_id, message.stopwatch)
        return True

    def close(self) -> None:
        if self._plugin is None:
            return
        try:
            self._plugin.close()
        finally:
            self._plugin = None
            for timer_id in self.hub.timer_ids():
                self.hub.close_channel(timer_id)


def resolve_settings(args: argparse.Namespace) -> AppSettings:
    load_env_file(args.env_file)
    engine = EngineSettings.from_env()
    if args.tick_period_ms is not None or args.stagger_step_ms is not None:
        engine = EngineSettings(
            tick_period_millis=(
                args.tick_period_ms if args.tick_period_ms is not None else engine.tick_period_millis
            ),
            stagger_step_millis=(
                args.stagger_step_ms if args.stagger_step_ms is not None else engine.stagger_step_millis
            ),
        )

    server_url = (args.server_url or load_server_url(args.env_file)).rstrip("/")

    return AppSettings(
        env_file=args.env_file,
        push_file=args.push_file,
        widgets=tuple(args.widgets or DEFAULT_WIDGETS),
        server_url=server_url,
        linger=args.linger,
        engine=engine,
        mock_output_dir=args.mock_output_dir,
    )


def main(
    argv: Optional[Iterable[str]] = None,
    *,
    host_factory: Callable[..., DeckHost] = MockDeckHost,
    client_factory: Callable[..., CommandClient] = CommandClient,
    stdin: TextIO | None = None,
) -> None:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.linger < 0:
        parser.error("--linger cannot be negative")

    try:
        settings = resolve_settings(args)
    except ConfigError as exc:
        parser.error(str(exc))

    runtime = AppRuntime(
        settings=settings,
        host_factory=host_factory,
        client_factory=client_factory,
    )

    try:
        if settings.push_file is not None:
            with settings.push_file.open(encoding="utf-8") as stream:
                count = asyncio.run(runtime.serve(stream))
        else:
            count = asyncio.run(runtime.serve(stdin or sys.stdin))
        LOGGER.info("Processed %d push message(s)", count)
    except KeyboardInterrupt:
        LOGGER.info("Interrupted, shutting down")
    finally:
        runtime.close()


if __name__ == "__main__":
    main()
