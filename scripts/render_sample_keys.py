#!/usr/bin/env python3
"""Generate sample key bitmaps (one per stopwatch status) using the Pillow renderer."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from stopwatch_deck.rendering import ButtonRenderer
from stopwatch_deck.stopwatch import StopwatchStatus, format_elapsed


PREVIEWS_DIR = Path(__file__).resolve().parents[1] / "previews"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=PREVIEWS_DIR,
        help="Where to write the preview PNGs (defaults to previews/).",
    )
    parser.add_argument(
        "--elapsed-ms",
        type=int,
        default=3_723_456,
        help="Elapsed milliseconds shown on every sample key.",
    )
    parser.add_argument(
        "--scale",
        type=int,
        default=4,
        help="Integer upscale factor so the 72x72 keys are easy to inspect.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    args.output_dir.mkdir(parents=True, exist_ok=True)
    renderer = ButtonRenderer()
    text = format_elapsed(args.elapsed_ms)

    for status in StopwatchStatus:
        image = renderer.render(text, status)
        if args.scale > 1:
            image = image.resize((image.width * args.scale, image.height * args.scale))
        output_path = args.output_dir / f"key_{status.name.lower()}.png"
        image.save(output_path)
        print(f"Wrote preview to {output_path}")


if __name__ == "__main__":
    main()
