"""Recording deck host for development environments without hardware."""
from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from PIL import Image

from .base import DeckHost, VisualContent


@dataclass(frozen=True)
class HostCall:
    kind: str
    context: str
    value: Any


@dataclass
class MockDeckHost(DeckHost):
    """Keeps every host call in memory and optionally saves bitmaps to disk."""

    output_dir: Optional[Path] = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: list[HostCall] = []
        self._frame_counter = 0
        if self.output_dir is not None:
            self.output_dir = Path(self.output_dir)
            self.output_dir.mkdir(parents=True, exist_ok=True)

    def set_visual_content(self, context: str, content: VisualContent) -> None:
        if isinstance(content, Image.Image):
            value: Any = content.copy()
            self.logger.debug("Key %s received %dx%d bitmap", context, *content.size)
            if self.output_dir is not None:
                self._save_frame(context, content)
        elif isinstance(content, str):
            value = content
            self.logger.debug("Key %s received title %r", context, content)
        else:
            raise TypeError(f"Unsupported visual content: {type(content).__name__}")
        self._record("content", context, value)

    def set_state(self, context: str, state: int) -> None:
        self.logger.debug("Key %s switched to state %d", context, state)
        self._record("state", context, state)

    def show_alert(self, context: str, message: str) -> None:
        self.logger.debug("Key %s alert: %s", context, message)
        self._record("alert", context, message)

    @property
    def calls(self) -> list[HostCall]:
        with self._lock:
            return list(self._calls)

    def contents(self, context: str) -> list[VisualContent]:
        """Return the visual content pushed to ``context``, oldest first."""

        return [call.value for call in self.calls if call.kind == "content" and call.context == context]

    def last_content(self, context: str) -> Optional[VisualContent]:
        contents = self.contents(context)
        return contents[-1] if contents else None

    def states(self, context: str) -> list[int]:
        return [call.value for call in self.calls if call.kind == "state" and call.context == context]

    def alerts(self, context: str) -> list[str]:
        return [call.value for call in self.calls if call.kind == "alert" and call.context == context]

    def _record(self, kind: str, context: str, value: Any) -> None:
        with self._lock:
            self._calls.append(HostCall(kind, context, value))

    def _save_frame(self, context: str, image: Image.Image) -> None:
        assert self.output_dir is not None
        with self._lock:
            self._frame_counter += 1
            sequence = self._frame_counter
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S-%fZ")
        safe_context = re.sub(r"[^A-Za-z0-9_.-]", "_", context)
        output_path = self.output_dir / f"key-{safe_context}-{timestamp}-{sequence:05d}.png"
        image.save(output_path)
        self.logger.debug("Saved key frame to %s", output_path)
