"""Client and deck buttons for the timer control service."""

from .actions import ControlAction, is_control_action
from .client import CommandClient, CommandResult, Err, ErrorKind, Ok, TimerCommand

__all__ = [
    "CommandClient",
    "CommandResult",
    "ControlAction",
    "Err",
    "ErrorKind",
    "Ok",
    "TimerCommand",
    "is_control_action",
]
