"""Pillow rasterizer for stopwatch deck keys."""

from .renderer import ButtonRenderer, ButtonStyle, title_text

__all__ = [
    "ButtonRenderer",
    "ButtonStyle",
    "title_text",
]
