"""Data models for Wiener Linien departure data and widget display states."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Departure:
    """A single upcoming departure at a Wiener Linien stop.

    Produced by extract_departures() from the realtime monitor JSON. The
    line-level fields (name, destination, platform, accessibility, vehicle
    type) are copied onto every departure of that line, so each object
    is self-contained once the nested payload has been flattened.

    Attributes:
        line: Display name of the line (e.g. "U1", "26A", "N49").
        towards: Destination as reported by the API, usually upper case
            (e.g. "LEOPOLDAU"). Title-cased only at render time.
        countdown: Minutes until departure. Zero or negative means the
            vehicle is departing now or is overdue.
        platform: Platform label (e.g. "1", "Steig 2"), empty if unknown.
        barrier_free: True if the vehicle is wheelchair accessible.
        vehicle_type: API vehicle type ("ptMetro", "ptTram", "ptBusCity",
            "ptBusNight", ...).
    """

    line: str
    towards: str
    countdown: int
    platform: str = ""
    barrier_free: bool = False
    vehicle_type: str = ""


@dataclass(frozen=True)
class StopSnapshot:
    """Cached departure list for one stop.

    Replaced (never mutated) on every successful fetch. Departures are
    the full sorted list, not truncated to any caller's limit.

    Attributes:
        stop_id: RBL number the snapshot belongs to.
        departures: All departures of the response, soonest first.
        fetched_at: Fetch time as epoch seconds (the client clock's unit),
            not milliseconds.
    """

    stop_id: int
    departures: tuple[Departure, ...]
    fetched_at: float

    def age_ms(self, now: float) -> float:
        """Age of the snapshot in milliseconds at epoch time `now` (seconds)."""
        return (now - self.fetched_at) * 1000


class NoMonitorsError(ValueError):
    """The response is well-formed but lists no monitors, usually an unknown RBL."""


def _parse_countdown(value, line_name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid countdown {value!r} for line {line_name}") from exc


def parse_line(line: dict) -> list[Departure]:
    """Flatten one monitor line into Departure objects, in API order.

    Departure entries that are not objects or carry no countdown are
    skipped. A countdown that is not a number raises ValueError.
    """
    block = line.get("departures")
    departures = block.get("departure") if isinstance(block, dict) else None
    if not isinstance(departures, list):
        return []

    name = str(line.get("name") or "")
    result: list[Departure] = []
    for dep in departures:
        if not isinstance(dep, dict):
            continue
        timing = dep.get("departureTime")
        countdown = timing.get("countdown") if isinstance(timing, dict) else None
        # Entries without a countdown carry no usable timing information
        if countdown is None:
            continue
        result.append(
            Departure(
                line=name,
                towards=str(line.get("towards") or ""),
                countdown=_parse_countdown(countdown, name),
                platform=str(line.get("platform") or ""),
                barrier_free=bool(line.get("barrierFree", False)),
                vehicle_type=str(line.get("type") or ""),
            )
        )
    return result


def extract_departures(payload: dict) -> list[Departure]:
    """Flatten a monitor response into a list sorted by countdown.

    Walks data → monitors → lines → departures.departure, skipping
    monitors and lines that are not objects. The sort is stable, so
    departures with equal countdown keep the order in which they appear
    in the payload.

    Raises:
        NoMonitorsError: If the payload contains no monitors.
        ValueError: If the payload is not shaped like a monitor response
            or a countdown is not a number.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    data = payload.get("data")
    if data is None:
        raise NoMonitorsError("response contains no data")
    if not isinstance(data, dict):
        raise ValueError(f"'data' is a {type(data).__name__}, not an object")
    monitors = data.get("monitors")
    if not monitors:
        raise NoMonitorsError("response contains no monitors")
    if not isinstance(monitors, list):
        raise ValueError(f"'monitors' is a {type(monitors).__name__}, not a list")

    flat: list[Departure] = []
    for monitor in monitors:
        if not isinstance(monitor, dict):
            continue
        lines = monitor.get("lines")
        if not isinstance(lines, list):
            continue
        for line in lines:
            if isinstance(line, dict):
                flat.extend(parse_line(line))
    return sorted(flat, key=lambda d: d.countdown)


# --- Selection outcomes -----------------------------------------------------


@dataclass(frozen=True)
class Empty:
    """No departures at all for the stop."""


@dataclass(frozen=True)
class NoLineMatch:
    """A line filter is set but none of the departures matched it."""


@dataclass(frozen=True)
class Selected:
    """The departure(s) to show: the next one, plus the following one of the same line."""

    first: Departure
    second: Departure | None = None


SelectionResult = Empty | NoLineMatch | Selected


# --- Display states -----------------------------------------------------------


class PlaceholderKind(enum.Enum):
    """Fixed three-line messages rendered instead of departure data."""

    NO_STATION_CONFIGURED = "no_station_configured"
    INVALID_STOP_ID = "invalid_stop_id"
    NO_DEPARTURES_SOON = "no_departures_soon"
    NO_LINE_MATCH = "no_line_match"
    FETCH_ERROR = "fetch_error"


@dataclass(frozen=True)
class Placeholder:
    kind: PlaceholderKind


@dataclass(frozen=True)
class Departures:
    """Departure display state.

    progress_percent is None when the progress bar is disabled; otherwise
    it is the elapsed fraction of the refresh interval in [0, 100].
    """

    first: Departure
    second: Departure | None = None
    progress_percent: float | None = None


DisplayState = Placeholder | Departures


@dataclass(frozen=True)
class ColorConfig:
    """Hex colors used by the renderer."""

    # Black background
    background: str = "#000000"
    # Yellow, close to the LED matrix displays at Wiener Linien stops
    text: str = "#d0cd08"
    # Dimmed yellow so the bar does not compete with the countdown
    progress_bar: str = "#525003"


@dataclass
class CacheStats:
    size: int = 0
    entries: list[int] = field(default_factory=list)
