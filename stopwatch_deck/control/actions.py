"""Deck buttons that send commands to the control service."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Tuple, Union

from ..host import DeckHost
from ..scheduler import TimerFacility
from .client import CommandClient, CommandResult, Err, ErrorKind, Ok, TimerCommand

logger = logging.getLogger(__name__)

ACTION_PREFIX = "com.speedrun.timer."
SUCCESS_STATE = 1
NORMAL_STATE = 0
SUCCESS_FLASH_SECONDS = 1.0

Command = Callable[[CommandClient], CommandResult]
SuccessMessage = Union[str, Callable[[CommandResult], str]]


def _reset_both(client: CommandClient) -> CommandResult:
    for timer_id in (1, 2):
        result = client.send_timer_command(timer_id, TimerCommand.RESET)
        if not result.ok:
            return result
    return result


def _donation_message(shown: str) -> Callable[[CommandResult], str]:
    def describe(result: CommandResult) -> str:
        value = result.value if isinstance(result, Ok) else None
        if isinstance(value, dict) and value.get("donation"):
            return shown
        return "No Donations"

    return describe


def _build_commands() -> Dict[str, Tuple[Command, SuccessMessage]]:
    commands: Dict[str, Tuple[Command, SuccessMessage]] = {
        "start": (lambda c: c.send_timer_command(1, TimerCommand.START_BOTH), "Timers Started"),
        "pause1p": (lambda c: c.send_timer_command(1, TimerCommand.PAUSE), "1P Paused"),
        "pause2p": (lambda c: c.send_timer_command(2, TimerCommand.PAUSE), "2P Paused"),
        "resume1p": (lambda c: c.send_timer_command(1, TimerCommand.RESUME), "1P Resumed"),
        "resume2p": (lambda c: c.send_timer_command(2, TimerCommand.RESUME), "2P Resumed"),
        "reset": (_reset_both, "Timers Reset"),
        "donation": (
            lambda c: c.show_oldest_donation(),
            _donation_message("Donation Shown"),
        ),
        "donation_empty": (
            lambda c: c.show_oldest_donation(empty=True),
            _donation_message("Empty Donation Shown"),
        ),
    }
    for program_input in range(1, 9):
        commands[f"atem_input_{program_input}"] = (
            lambda c, i=program_input: c.set_atem_program(i),
            f"ATEM Input {program_input} Set",
        )
    for scene in ("ToGame", "ToMain", "ToCamera", "Refresh"):
        commands[f"obs_{scene.lower()}"] = (
            lambda c, s=scene: c.obs_scene_change(s),
            f"OBS {scene}",
        )
    return commands


COMMANDS = _build_commands()


def is_control_action(action_uuid: str) -> bool:
    return action_uuid.startswith(ACTION_PREFIX) and action_uuid[len(ACTION_PREFIX):] in COMMANDS


class ControlAction:
    """A key that issues one command and reports the outcome on the key."""

    def __init__(
        self,
        context: str,
        action_uuid: str,
        client: CommandClient,
        host: DeckHost,
        timers: TimerFacility,
    ) -> None:
        self.context = context
        self.action_uuid = action_uuid
        self.client = client
        self.host = host
        self.timers = timers

    async def execute(self) -> CommandResult:
        """Send the command and report the outcome on the key.

        The blocking HTTP call runs in a worker thread, so widget ticks on the
        calling loop keep firing while the control service answers. Host
        updates happen back on the loop.
        """

        name = self.action_uuid[len(ACTION_PREFIX):] if self.action_uuid.startswith(ACTION_PREFIX) else ""
        entry = COMMANDS.get(name)
        if entry is None:
            logger.error("Unknown action UUID: %s", self.action_uuid)
            self._show_error("Unknown Action")
            return Err(ErrorKind.UNSUPPORTED, f"Unknown action {self.action_uuid}")

        command, message = entry
        logger.info("Executing %s on key %s", self.action_uuid, self.context)
        result = await asyncio.to_thread(command, self.client)
        if isinstance(result, Err):
            logger.error("Action %s failed: %s", self.action_uuid, result.message)
            self._show_error("API Error")
            return result

        self._show_success(message if isinstance(message, str) else message(result))
        return result

    def _show_success(self, message: str) -> None:
        logger.info("%s", message)
        self.host.set_state(self.context, SUCCESS_STATE)
        self.timers.call_later(
            SUCCESS_FLASH_SECONDS, lambda: self.host.set_state(self.context, NORMAL_STATE)
        )

    def _show_error(self, message: str) -> None:
        self.host.show_alert(self.context, message)
        self.host.set_state(self.context, NORMAL_STATE)


__all__ = [
    "ACTION_PREFIX",
    "COMMANDS",
    "ControlAction",
    "is_control_action",
]
