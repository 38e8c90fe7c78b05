"""Abstract deck host interface used by the widgets."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Union

from PIL import Image

VisualContent = Union[Image.Image, str]


class DeckHost(ABC):
    """Defines what widgets need from the application hosting the deck keys."""

    @abstractmethod
    def set_visual_content(self, context: str, content: VisualContent) -> None:
        """Show a pre-rendered bitmap or a plain text title on a key."""

    @abstractmethod
    def set_state(self, context: str, state: int) -> None:
        """Switch a key to one of its predefined icon states."""

    @abstractmethod
    def show_alert(self, context: str, message: str) -> None:
        """Flash an error indicator on a key."""
