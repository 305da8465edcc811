"""Configuration: per-widget settings and application config (defaults → YAML → argparse)."""

from __future__ import annotations

import argparse
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from PIL import ImageColor

from wlmonitor.api import BASE_URL
from wlmonitor.models import ColorConfig
from wlmonitor.selector import parse_line_filter

logger = logging.getLogger(__name__)

# Seconds between refreshes when the setting is missing
DEFAULT_REFRESH_INTERVAL = 30
# Lower bound on the refresh interval, keeps API load reasonable
MIN_REFRESH_INTERVAL = 10
# Leading decimal integer of an RBL setting; trailing text is ignored
_RBL_PATTERN = re.compile(r"\s*([+-]?\d+)")


class ConfigError(Exception):
    """Widget settings cannot be used to start monitoring."""


class MissingStopError(ConfigError):
    """No RBL number is configured."""


class InvalidStopError(ConfigError):
    """The configured RBL number is not an integer."""


def _parse_color(value: Any, default: str, name: str) -> str:
    if not value:
        return default
    try:
        ImageColor.getrgb(value)
    except (ValueError, TypeError, AttributeError):
        logger.warning("Invalid %s %r, using %s", name, value, default)
        return default
    return value


def _parse_interval(value: Any) -> int:
    # Missing or zero falls back to the default, like an unset setting
    try:
        seconds = int(value or DEFAULT_REFRESH_INTERVAL)
    except (TypeError, ValueError):
        logger.warning("Invalid refresh interval %r, using %ds", value, DEFAULT_REFRESH_INTERVAL)
        seconds = DEFAULT_REFRESH_INTERVAL
    return max(seconds, MIN_REFRESH_INTERVAL)


@dataclass(frozen=True)
class WidgetConfig:
    """Settings for one departure widget, as sent by the host.

    Built from the host's settings dict by from_settings(), which applies
    defaults and bounds. The RBL number is kept as the raw string so that
    a missing value and an invalid value can be told apart later, see
    stop_id().

    Attributes:
        rbl: RBL number of the platform as entered by the user, or None.
        line_filter: Upper-cased line codes to show. Empty shows all lines.
        refresh_interval: Seconds between API refreshes, at least 10.
        show_two_departures: Show the next departure of the same line
            next to the first one.
        show_progress_bar: Draw the refresh progress bar and run the
            100 ms progress timer.
        colors: Background, text and progress bar colors.
    """

    rbl: str | None = None
    line_filter: tuple[str, ...] = ()
    refresh_interval: int = DEFAULT_REFRESH_INTERVAL
    show_two_departures: bool = True
    show_progress_bar: bool = True
    colors: ColorConfig = field(default_factory=ColorConfig)

    @classmethod
    def from_settings(cls, settings: dict[str, Any] | None) -> WidgetConfig:
        """Build a WidgetConfig from the host settings schema.

        Keys: rbl, lineFilter, refreshInterval, showTwoDepartures,
        showProgressBar, backgroundColor, textColor, progressBarColor.
        Unknown keys are ignored.
        """
        settings = settings or {}
        defaults = ColorConfig()
        rbl = settings.get("rbl")
        show_two = settings.get("showTwoDepartures")
        show_bar = settings.get("showProgressBar")
        return cls(
            rbl=str(rbl) if rbl not in (None, "") else None,
            line_filter=parse_line_filter(settings.get("lineFilter")),
            refresh_interval=_parse_interval(settings.get("refreshInterval")),
            show_two_departures=True if show_two is None else bool(show_two),
            show_progress_bar=True if show_bar is None else bool(show_bar),
            colors=ColorConfig(
                background=_parse_color(settings.get("backgroundColor"), defaults.background, "backgroundColor"),
                text=_parse_color(settings.get("textColor"), defaults.text, "textColor"),
                progress_bar=_parse_color(settings.get("progressBarColor"), defaults.progress_bar, "progressBarColor"),
            ),
        )

    def stop_id(self) -> int:
        """The RBL number as an integer.

        Raises:
            MissingStopError: If no RBL number is configured.
            InvalidStopError: If the RBL number does not start with an integer.
        """
        if self.rbl is None:
            raise MissingStopError("No RBL number configured")
        # "4116a" and "4116.5" both mean stop 4116
        match = _RBL_PATTERN.match(self.rbl)
        if match is None:
            raise InvalidStopError(f"Invalid RBL number: {self.rbl!r}")
        return int(match.group(1))


@dataclass
class DisplayConfig:
    """Desktop deck window settings.

    Attributes:
        columns: Tiles per row. Rows are added as needed.
        fps: Event pump / redraw rate of the window.
        fullscreen: Run the window in fullscreen mode.
    """

    columns: int = 3
    fps: int = 30
    fullscreen: bool = False


@dataclass
class ApiConfig:
    base_url: str = BASE_URL
    timeout_seconds: float = 10


def _default_widgets() -> list[dict[str, Any]]:
    # Karlsplatz, U1 towards Leopoldau
    return [{"id": "widget-1", "rbl": "4116"}]


@dataclass
class Config:
    """Top-level application configuration.

    Assembled from three layers with increasing priority:
      1. Hardcoded defaults (dataclass field values)
      2. YAML file overlay (config.yaml or --config path)
      3. CLI argument overlay (--rbl, --refresh, etc.)

    Attributes:
        widgets: Host-style settings dicts, one per widget. Each has an
            'id' plus the keys accepted by WidgetConfig.from_settings().
        display: Deck window settings.
        api: Monitor API endpoint settings.
        fetch_test: CLI-only: print departures for each widget and exit.
        render_test: CLI-only: write sample renders to assets/ and exit.
        debug: CLI-only: enable debug-level logging.
    """

    widgets: list[dict[str, Any]] = field(default_factory=_default_widgets)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    # CLI-only flags (not persisted in YAML)
    fetch_test: bool = False
    render_test: bool = False
    debug: bool = False


def _apply_yaml(config: Config, yaml_path: str) -> None:
    """Overlay YAML config values onto the Config object."""
    if not os.path.exists(yaml_path):
        return

    with open(yaml_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not data:
        return

    if "widgets" in data:
        widgets = []
        for i, w in enumerate(data["widgets"] or [], 1):
            settings = dict(w)
            settings["id"] = str(settings.get("id", f"widget-{i}"))
            widgets.append(settings)
        config.widgets = widgets

    if "display" in data:
        d = data["display"]
        for key in ("columns", "fps", "fullscreen"):
            if key in d:
                setattr(config.display, key, d[key])

    if "api" in data:
        a = data["api"]
        for key in ("base_url", "timeout_seconds"):
            if key in a:
                setattr(config.api, key, a[key])


def _build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    All arguments are optional overlays on top of YAML config.
    """
    parser = argparse.ArgumentParser(
        prog="wlmonitor",
        description="Wiener Linien departure monitor",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML config file",
    )
    parser.add_argument(
        "--rbl",
        type=str,
        help="Single RBL number override (replaces configured widgets)",
    )
    parser.add_argument(
        "--refresh",
        type=int,
        help="Refresh interval in seconds for every widget",
    )
    parser.add_argument(
        "--fetch-test",
        action="store_true",
        default=False,
        help="Fetch and print live departures to stdout",
    )
    parser.add_argument(
        "--render-test",
        action="store_true",
        default=False,
        help="Render sample tiles to assets/",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )
    return parser


def _apply_args(config: Config, args: argparse.Namespace) -> None:
    """Overlay CLI arguments onto the Config object."""
    if args.rbl:
        config.widgets = [{"id": "widget-1", "rbl": args.rbl}]

    if args.refresh is not None:
        for widget in config.widgets:
            widget["refreshInterval"] = args.refresh

    config.fetch_test = args.fetch_test
    config.render_test = args.render_test
    config.debug = args.debug


def load_config(
    yaml_path: str | None = None,
    cli_args: list[str] | None = None,
) -> Config:
    """Load config: defaults → YAML overlay → argparse overlay.

    Args:
        yaml_path: Path to YAML config file. Defaults to config.yaml in project root.
        cli_args: CLI arguments list. None means use sys.argv.
    """
    config = Config()

    parser = _build_parser()
    args = parser.parse_args(cli_args if cli_args is not None else None)

    if yaml_path is None:
        if args.config:
            yaml_path = args.config
        else:
            yaml_path = os.path.join(
                Path(__file__).resolve().parent.parent.parent, "config.yaml"
            )

    _apply_yaml(config, yaml_path)
    _apply_args(config, args)

    return config
