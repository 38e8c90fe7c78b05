"""Rasterize stopwatch readouts for 72x72 deck keys."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from ..stopwatch import StopwatchStatus, split_display

Color = Tuple[int, int, int]


def _load_font(path_candidates: Sequence[Path], size: int) -> ImageFont.ImageFont:
    for candidate in path_candidates:
        if candidate and candidate.exists():
            return ImageFont.truetype(str(candidate), size=size)
    return ImageFont.load_default()


def _default_font_candidates() -> List[Path]:
    names = [
        "DejaVuSansMono-Bold.ttf",
        "LiberationMono-Bold.ttf",
        "Courier New Bold.ttf",
    ]
    candidates: List[Path] = []
    search_dirs = [
        Path("/usr/share/fonts/truetype/dejavu"),
        Path("/usr/share/fonts/truetype/liberation"),
        Path("/usr/share/fonts"),
        Path("/Library/Fonts"),
        Path.home() / ".fonts",
    ]
    for name in names:
        for directory in search_dirs:
            candidates.append(directory / name)
    return candidates


def _status_palette() -> Dict[StopwatchStatus, Tuple[Color, Color]]:
    return {
        StopwatchStatus.RUNNING: ((255, 255, 255), (204, 204, 204)),
        StopwatchStatus.PAUSED: ((255, 0, 0), (204, 0, 0)),
        StopwatchStatus.RESET: ((255, 255, 0), (204, 204, 0)),
    }


@dataclass
class ButtonStyle:
    """Key geometry, fonts and colours for the bitmap readout."""

    size: int = 72
    background_color: Color = (0, 0, 0)
    outline_color: Color = (0, 0, 0)
    main_font_size: int = 13
    fraction_font_size: int = 10
    main_center_y: int = 30
    fraction_center_y: int = 48
    main_stroke_width: int = 1
    fraction_stroke_width: int = 1
    font_path: Path | None = None
    palette: Dict[StopwatchStatus, Tuple[Color, Color]] = field(default_factory=_status_palette)

    def font(self, size: int) -> ImageFont.ImageFont:
        candidates: List[Path] = []
        if self.font_path is not None:
            candidates.append(Path(self.font_path))
        candidates.extend(_default_font_candidates())
        return _load_font(candidates, size)


class ButtonRenderer:
    """Draw ``HH:MM:SS`` over ``.mmm`` on a black key, coloured by status."""

    def __init__(self, style: ButtonStyle | None = None) -> None:
        self.style = style or ButtonStyle()
        self._main_font = self.style.font(self.style.main_font_size)
        self._fraction_font = self.style.font(self.style.fraction_font_size)

    def render(self, text: str, status: StopwatchStatus) -> Image.Image:
        style = self.style
        main_text, fraction_text = split_display(text)
        main_color, fraction_color = style.palette.get(
            StopwatchStatus(status), style.palette[StopwatchStatus.RUNNING]
        )

        image = Image.new("RGB", (style.size, style.size), color=style.background_color)
        draw = ImageDraw.Draw(image)
        self._draw_centered(
            draw,
            main_text,
            self._main_font,
            style.main_center_y,
            main_color,
            style.main_stroke_width,
        )
        if fraction_text:
            self._draw_centered(
                draw,
                fraction_text,
                self._fraction_font,
                style.fraction_center_y,
                fraction_color,
                style.fraction_stroke_width,
            )
        return image

    def _draw_centered(
        self,
        draw: ImageDraw.ImageDraw,
        text: str,
        font: ImageFont.ImageFont,
        center_y: int,
        color: Color,
        stroke_width: int,
    ) -> None:
        # Bitmap fallback fonts cannot be stroked.
        if not isinstance(font, ImageFont.FreeTypeFont):
            stroke_width = 0
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font, stroke_width=stroke_width)
        x = (self.style.size - (right - left)) / 2 - left
        y = center_y - (bottom - top) / 2 - top
        draw.text(
            (x, y),
            text,
            font=font,
            fill=color,
            stroke_width=stroke_width,
            stroke_fill=self.style.outline_color,
        )


def title_text(text: str) -> str:
    """Lay ``HH:MM:SS.mmm`` out as a two-line key title."""

    main_text, fraction_text = split_display(text)
    return f"{main_text}\n{fraction_text}" if fraction_text else main_text
