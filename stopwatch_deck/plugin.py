"""Wire deck host lifecycle events to display widgets and control keys."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Set, Union

from .control import CommandClient, CommandResult, ControlAction, is_control_action
from .control.actions import ACTION_PREFIX
from .host import DeckHost
from .lifecycle import WidgetHandle, WidgetLifecycle
from .rendering import ButtonRenderer, title_text
from .stopwatch import Stopwatch

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMER_ID = 1
_DISPLAY_PATTERN = re.compile(r"(display|title)(\d+)?")


@dataclass(frozen=True)
class DisplayKind:
    timer_id: int
    as_title: bool


def resolve_display_kind(action_uuid: str) -> Optional[DisplayKind]:
    """Return the display kind an action UUID asks for, or ``None``.

    ``...display2`` renders timer 2 as a bitmap, ``...title1`` renders timer 1
    as a text title. A missing or unknown number falls back to timer 1.
    """

    matches = list(_DISPLAY_PATTERN.finditer(action_uuid.rsplit(".", 1)[-1]))
    if not matches:
        return None
    match = matches[-1]
    digits = match.group(2)
    timer_id = int(digits) if digits and int(digits) > 0 else DEFAULT_TIMER_ID
    return DisplayKind(timer_id=timer_id, as_title=match.group(1) == "title")


class DisplayWidget:
    """One key showing a live stopwatch."""

    def __init__(
        self,
        context: str,
        kind: DisplayKind,
        host: DeckHost,
        renderer: ButtonRenderer,
    ) -> None:
        self.context = context
        self.kind = kind
        self.host = host
        self.renderer = renderer
        self.handle: WidgetHandle | None = None

    def draw(self, text: str, snapshot: Stopwatch) -> None:
        if self.kind.as_title:
            self.host.set_visual_content(self.context, title_text(text))
        else:
            self.host.set_visual_content(self.context, self.renderer.render(text, snapshot.status))


Action = Union[DisplayWidget, ControlAction]


class DeckPlugin:
    """Entry point the deck host calls into.

    Display keys are attached to the widget lifecycle; every other known
    action becomes a :class:`ControlAction`. There is at most one instance per
    key context.
    """

    def __init__(
        self,
        host: DeckHost,
        lifecycle: WidgetLifecycle,
        client: CommandClient,
        *,
        url_loader: Callable[[], str],
        renderer: ButtonRenderer | None = None,
        on_server_url_changed: Callable[[str], None] | None = None,
    ) -> None:
        self.host = host
        self.lifecycle = lifecycle
        self.client = client
        self.url_loader = url_loader
        self.renderer = renderer or ButtonRenderer()
        self.on_server_url_changed = on_server_url_changed
        self._actions: Dict[str, Action] = {}
        self._commands: Set[asyncio.Task[CommandResult]] = set()

    @property
    def contexts(self) -> list[str]:
        return list(self._actions)

    def action_for(self, context: str) -> Optional[Action]:
        return self._actions.get(context)

    def on_attach(self, context: str, action_uuid: str) -> Optional[Action]:
        if context in self._actions:
            LOGGER.debug("Action instance already exists for %s", context)
            return self._actions[context]

        kind = None if is_control_action(action_uuid) else resolve_display_kind(action_uuid)
        if kind is not None:
            widget = DisplayWidget(context, kind, self.host, self.renderer)
            widget.handle = self.lifecycle.attach(kind.timer_id, widget.draw, name=context)
            action: Action = widget
        elif action_uuid.startswith(ACTION_PREFIX):
            # Unknown commands still get a key; pressing it raises an alert.
            action = ControlAction(
                context, action_uuid, self.client, self.host, self.lifecycle.timers
            )
        else:
            LOGGER.warning("Ignoring unknown action %s on %s", action_uuid, context)
            return None

        self._actions[context] = action
        LOGGER.info("Added %s on %s", action_uuid, context)
        return action

    def on_detach(self, context: str) -> None:
        action = self._actions.pop(context, None)
        if isinstance(action, DisplayWidget):
            self.lifecycle.detach(action.handle)
            action.handle = None
        if action is not None:
            LOGGER.info("Cleared action on %s", context)

    def on_run(self, context: str) -> Optional[asyncio.Task[CommandResult]]:
        """Start the command bound to ``context`` on the running loop.

        Returns the task carrying the command result, or ``None`` when the
        key has no command to run. Must be called from the loop thread.
        """

        action = self._actions.get(context)
        if action is None:
            LOGGER.error("No action instance found for context %s", context)
            return None
        if not isinstance(action, ControlAction):
            return None
        task = asyncio.get_running_loop().create_task(action.execute())
        self._commands.add(task)
        task.add_done_callback(self._commands.discard)
        return task

    def on_settings_changed(self, settings: Mapping[str, Any] | None = None) -> str:
        LOGGER.info("Settings notification received: %s", dict(settings or {}))
        url = self.url_loader()
        self.client.base_url = url
        LOGGER.info("Server URL updated to %s", self.client.base_url)
        if self.on_server_url_changed is not None:
            self.on_server_url_changed(self.client.base_url)
        return self.client.base_url

    def close(self) -> None:
        for task in list(self._commands):
            task.cancel()
        for context in list(self._actions):
            self.on_detach(context)
