"""Deck host adapters for the stopwatch widgets."""
from __future__ import annotations

from .base import DeckHost, VisualContent
from .mock import HostCall, MockDeckHost

__all__ = [
    "DeckHost",
    "HostCall",
    "MockDeckHost",
    "VisualContent",
]
