"""PIL-based widget renderer.

Draws a 144x144 departure tile: line code, title-cased destination and
one or two countdowns, with an optional progress bar along the bottom
edge that shows how much of the refresh interval has elapsed. Fixed
placeholder messages cover the no-data, filter and error states.

Rendering is a pure function of (state, colors): no clock or network
access, and the same input always yields the same PNG bytes.
"""

from __future__ import annotations

import base64
import html
import io
import math
import re
from functools import lru_cache
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from wlmonitor.models import (
    ColorConfig,
    Departure,
    Departures,
    DisplayState,
    Placeholder,
    PlaceholderKind,
)

# Project root (three levels up from this file)
_ROOT = Path(__file__).resolve().parent.parent.parent
_FONTS_DIR = _ROOT / "fonts"

FONT_REGULAR = "DejaVuSans.ttf"
FONT_BOLD = "DejaVuSans-Bold.ttf"

# Square key/tile size in pixels
CANVAS_SIZE = 144
# Left margin shared by every text row
MARGIN_X = 10
# Height of the progress bar at the bottom edge
PROGRESS_BAR_HEIGHT = 2

# Departure layout: (y, font size, bold) per row. y is the top of the text.
ROW_LINE = (10, 36, True)
ROW_TOWARDS = (57, 22, False)
ROW_COUNTDOWN = (95, 28, True)

# Placeholder messages: three rows each, with row y positions and font size.
PLACEHOLDERS: dict[PlaceholderKind, tuple[tuple[str, str, str], tuple[int, int, int], int]] = {
    PlaceholderKind.NO_STATION_CONFIGURED: (("No Station", "set in", "Settings"), (30, 60, 90), 20),
    PlaceholderKind.INVALID_STOP_ID: (("Invalid", "RBL", "Number"), (20, 45, 70), 16),
    PlaceholderKind.NO_DEPARTURES_SOON: (("No", "Departures", "Soon"), (20, 45, 70), 16),
    PlaceholderKind.NO_LINE_MATCH: (("No", "Line", "Found"), (40, 65, 90), 16),
    PlaceholderKind.FETCH_ERROR: (("Error", "Fetching", "Data"), (20, 45, 70), 16),
}

# Word starts: beginning of string, or right after whitespace or a hyphen
_WORD_START = re.compile(r"(^|[\s-])(\w)")


def to_title_case(text: str) -> str:
    """Title-case a destination: "hauptbahnhof-ost" -> "Hauptbahnhof-Ost".

    Unlike str.title(), letters after apostrophes or digits stay lower case.
    """
    return _WORD_START.sub(lambda m: m.group(1) + m.group(2).upper(), text.lower())


def format_countdown(minutes: int) -> str:
    """Countdown text: "*" when departing now or overdue, else the minutes."""
    return "*" if minutes <= 0 else str(minutes)


def progress_width(progress_percent: float, width: int = CANVAS_SIZE) -> int:
    return min(width, math.floor(width * progress_percent / 100))


@lru_cache(maxsize=None)
def _load_font(size: int, bold: bool = False) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a font from fonts/, then the system font path, then Pillow's default."""
    name = FONT_BOLD if bold else FONT_REGULAR
    for candidate in (str(_FONTS_DIR / name), name):
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    return ImageFont.load_default(size)


def _draw_placeholder(draw: ImageDraw.ImageDraw, kind: PlaceholderKind, colors: ColorConfig) -> None:
    lines, rows, size = PLACEHOLDERS[kind]
    font = _load_font(size)
    for text, y in zip(lines, rows):
        draw.text((MARGIN_X, y), text, fill=colors.text, font=font)


def _draw_departures(draw: ImageDraw.ImageDraw, state: Departures, colors: ColorConfig) -> None:
    y, size, bold = ROW_LINE
    draw.text((MARGIN_X, y), state.first.line, fill=colors.text, font=_load_font(size, bold))

    # Full destination, no truncation. Long names run off the tile edge.
    y, size, bold = ROW_TOWARDS
    draw.text(
        (MARGIN_X, y),
        to_title_case(state.first.towards),
        fill=colors.text,
        font=_load_font(size, bold),
    )

    y, size, bold = ROW_COUNTDOWN
    font = _load_font(size, bold)
    draw.text((MARGIN_X, y), format_countdown(state.first.countdown), fill=colors.text, font=font)
    if state.second is not None:
        # Second countdown centered on the horizontal midpoint
        draw.text(
            (CANVAS_SIZE // 2, y),
            format_countdown(state.second.countdown),
            fill=colors.text,
            font=font,
            anchor="ma",
        )

    if state.progress_percent is not None and state.progress_percent >= 0:
        bar_w = progress_width(state.progress_percent)
        if bar_w > 0:
            draw.rectangle(
                [(0, CANVAS_SIZE - PROGRESS_BAR_HEIGHT), (bar_w - 1, CANVAS_SIZE - 1)],
                fill=colors.progress_bar,
            )


def render_image(state: DisplayState, colors: ColorConfig | None = None) -> Image.Image:
    """Render a display state to a 144x144 RGB PIL Image."""
    colors = colors or ColorConfig()
    img = Image.new("RGB", (CANVAS_SIZE, CANVAS_SIZE), colors.background)
    draw = ImageDraw.Draw(img)
    if isinstance(state, Placeholder):
        _draw_placeholder(draw, state.kind, colors)
    else:
        _draw_departures(draw, state, colors)
    return img


def render(state: DisplayState, colors: ColorConfig | None = None) -> bytes:
    """Render a display state to PNG bytes."""
    buf = io.BytesIO()
    render_image(state, colors).save(buf, format="PNG")
    return buf.getvalue()


def _svg_text(x: int, y: int, text: str, size: int, fill: str, bold: bool = False, extra: str = "") -> str:
    weight = ' font-weight="bold"' if bold else ""
    return (
        f'<text x="{x}" y="{y}" font-family="sans-serif" font-size="{size}"{weight}'
        f' fill="{html.escape(fill)}"{extra}>{html.escape(text)}</text>'
    )


def render_svg(state: DisplayState, colors: ColorConfig | None = None) -> str:
    """Render a display state as an SVG document string.

    Same layout as render(). SVG text is positioned by its baseline, so
    departure rows are placed at top + font size; placeholder rows use
    dominant-baseline="hanging" instead.
    """
    colors = colors or ColorConfig()
    size = CANVAS_SIZE
    parts = [
        f'<svg width="{size}" height="{size}" xmlns="http://www.w3.org/2000/svg">',
        f'<rect width="{size}" height="{size}" fill="{html.escape(colors.background)}"/>',
    ]
    if isinstance(state, Placeholder):
        lines, rows, font_size = PLACEHOLDERS[state.kind]
        for text, y in zip(lines, rows):
            parts.append(
                _svg_text(MARGIN_X, y, text, font_size, colors.text, extra=' dominant-baseline="hanging"')
            )
    else:
        y, font_size, bold = ROW_LINE
        parts.append(_svg_text(MARGIN_X, y + font_size, state.first.line, font_size, colors.text, bold))
        y, font_size, bold = ROW_TOWARDS
        parts.append(
            _svg_text(MARGIN_X, y + font_size, to_title_case(state.first.towards), font_size, colors.text, bold)
        )
        y, font_size, bold = ROW_COUNTDOWN
        parts.append(
            _svg_text(MARGIN_X, y + font_size, format_countdown(state.first.countdown), font_size, colors.text, bold)
        )
        if state.second is not None:
            parts.append(
                _svg_text(
                    size // 2,
                    y + font_size,
                    format_countdown(state.second.countdown),
                    font_size,
                    colors.text,
                    bold,
                    extra=' text-anchor="middle"',
                )
            )
        if state.progress_percent is not None and state.progress_percent >= 0:
            parts.append(
                f'<rect x="0" y="{size - PROGRESS_BAR_HEIGHT}" width="{progress_width(state.progress_percent)}"'
                f' height="{PROGRESS_BAR_HEIGHT}" fill="{html.escape(colors.progress_bar)}"/>'
            )
    parts.append("</svg>")
    return "\n".join(parts)


def to_data_url(png: bytes) -> str:
    """Wrap PNG bytes as a base64 data URL for the host's image slot."""
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def decode_data_url(url: str) -> Image.Image:
    """Decode a base64 PNG data URL back into a PIL Image."""
    header, _, payload = url.partition(",")
    if not header.startswith("data:image/png;base64"):
        raise ValueError(f"Unsupported data URL: {header[:40]}")
    return Image.open(io.BytesIO(base64.b64decode(payload)))


def run_render_test(config=None) -> list[str]:
    """Render every display state to assets/ as PNG and SVG.

    Uses mock departures (no API needed) and the colors of the first
    configured widget, if any. Returns the written file paths.
    """
    colors = ColorConfig()
    if config is not None and config.widgets:
        from wlmonitor.config import WidgetConfig

        colors = WidgetConfig.from_settings(config.widgets[0]).colors

    first = Departure(line="U1", towards="LEOPOLDAU", countdown=2, platform="1", barrier_free=True, vehicle_type="ptMetro")
    second = Departure(line="U1", towards="LEOPOLDAU", countdown=9, platform="1", barrier_free=True, vehicle_type="ptMetro")
    states: dict[str, DisplayState] = {
        "two_departures": Departures(first=first, second=second, progress_percent=40),
        "one_departure": Departures(
            first=Departure(line="26A", towards="GROSS-ENZERSDORF", countdown=0),
            progress_percent=None,
        ),
    }
    for kind in PlaceholderKind:
        states[kind.value] = Placeholder(kind)

    assets_dir = _ROOT / "assets"
    assets_dir.mkdir(exist_ok=True)
    paths: list[str] = []
    for name, state in states.items():
        png_path = assets_dir / f"test_output_{name}.png"
        png_path.write_bytes(render(state, colors))
        svg_path = assets_dir / f"test_output_{name}.svg"
        svg_path.write_text(render_svg(state, colors), encoding="utf-8")
        paths.extend([str(png_path), str(svg_path)])
    return paths
