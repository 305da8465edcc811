"""Departure filtering and selection for a single widget."""

from __future__ import annotations

from typing import Sequence

from wlmonitor.models import Departure, Empty, NoLineMatch, Selected, SelectionResult

# Raw departures requested from the client. Oversampled so that line
# filtering and same-line pairing still find candidates at busy stops.
LIMIT_TWO_DEPARTURES = 20
LIMIT_ONE_DEPARTURE = 10


def raw_departure_limit(show_two_departures: bool) -> int:
    return LIMIT_TWO_DEPARTURES if show_two_departures else LIMIT_ONE_DEPARTURE


def parse_line_filter(text: str | None) -> tuple[str, ...]:
    """Split a comma-separated filter like "u1, 26a" into ("U1", "26A")."""
    if not text:
        return ()
    tokens = (token.strip().upper() for token in text.split(","))
    return tuple(token for token in tokens if token)


def select_departures(
    departures: Sequence[Departure],
    line_filter: Sequence[str] = (),
    show_two_departures: bool = True,
) -> SelectionResult:
    """Pick the departure(s) a widget should show.

    `departures` must already be sorted by countdown. Filtering keeps
    that order. In two-departure mode the second slot is the next
    departure of the *same* line as the first, never a different line.

    Args:
        departures: Countdown-ascending departures from the client.
        line_filter: Normalized (upper-case) line codes, see
            parse_line_filter(). Empty means no filtering.
        show_two_departures: Whether to look for a second departure.
    """
    if not departures:
        return Empty()

    remaining = list(departures)
    if line_filter:
        allowed = set(line_filter)
        remaining = [d for d in remaining if d.line.upper() in allowed]
        if not remaining:
            return NoLineMatch()

    first = remaining[0]
    if not show_two_departures:
        return Selected(first=first)

    second = next((d for d in remaining[1:] if d.line == first.line), None)
    return Selected(first=first, second=second)
