"""Wiener Linien realtime monitor API client."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

import requests

from wlmonitor.models import (
    CacheStats,
    Departure,
    NoMonitorsError,
    StopSnapshot,
    extract_departures,
)

logger = logging.getLogger(__name__)

# Wiener Linien Open Government Data realtime API. Public, no
# authentication. Data licensed CC BY 4.0.
BASE_URL = "https://www.wienerlinien.at/ogd_realtime/monitor"

# Snapshots younger than this are served from memory
CACHE_TTL_MS = 30_000


class UpstreamError(Exception):
    """Raised when the monitor API request fails or returns unusable data."""


class WienerLinienClient:
    """Client for the Wiener Linien realtime monitor endpoint.

    Keeps one StopSnapshot per stop (RBL number) in memory. The cache is
    shared by every widget that watches the same stop, and any of them
    may evict an entry with clear_cache().
    """

    def __init__(
        self,
        base_url: str = BASE_URL,
        timeout: float = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the API client.

        Args:
            base_url: Monitor endpoint URL. The stop is passed as the
                'rbl' query parameter.
            timeout: Request timeout in seconds.
            clock: Returns the current epoch time in seconds. Used to
                stamp and age cache entries.
        """
        self.base_url = base_url
        self.timeout = timeout
        self._clock = clock
        self._cache: dict[int, StopSnapshot] = {}
        # Fetches run on worker threads, one per widget refresh
        self._lock = threading.Lock()
        self.session = requests.Session()
        self.session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )

    def get_monitor(self, stop_id: int) -> dict:
        """Fetch the raw monitor JSON for a stop.

        GET {base_url}?rbl={stop_id}
        """
        logger.info("Fetching departures for RBL %s", stop_id)
        try:
            resp = self.session.get(
                self.base_url,
                params={"rbl": stop_id},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"Request for RBL {stop_id} failed: {exc}") from exc

        logger.debug("API response status for RBL %s: %s", stop_id, resp.status_code)
        if not resp.ok:
            body = resp.text.strip()[:500]
            if body:
                logger.error("API error response for RBL %s: %s", stop_id, body)
            raise UpstreamError(
                f"API request failed: {resp.status_code} {resp.reason}"
            )

        try:
            return resp.json()
        except ValueError as exc:
            logger.error(
                "Invalid JSON for RBL %s: %s", stop_id, resp.text[:500]
            )
            raise UpstreamError("Invalid JSON response from API") from exc

    def fetch_departures(self, stop_id: int, limit: int = 5) -> list[Departure]:
        """Return up to `limit` departures for a stop, soonest first.

        Served from the cache when the stop's snapshot is younger than
        CACHE_TTL_MS. Otherwise one request is made and the full sorted
        list replaces the cached snapshot.

        Raises:
            UpstreamError: On transport failure, non-success status,
                unparseable body, a response without monitors, or one
                that is not shaped like a monitor response.
        """
        now = self._clock()
        with self._lock:
            cached = self._cache.get(stop_id)
        if cached is not None and cached.age_ms(now) < CACHE_TTL_MS:
            logger.debug("Using cached data for RBL %s", stop_id)
            return list(cached.departures[:limit])

        payload = self.get_monitor(stop_id)
        try:
            departures = extract_departures(payload)
        except NoMonitorsError as exc:
            logger.warning("No monitors found in API response for RBL %s", stop_id)
            raise UpstreamError(
                f"No monitors found for RBL {stop_id}. "
                "Please verify the RBL number is correct."
            ) from exc
        except (ValueError, TypeError, AttributeError) as exc:
            logger.error("Malformed monitor response for RBL %s: %s", stop_id, exc)
            raise UpstreamError(
                f"Malformed monitor response for RBL {stop_id}: {exc}"
            ) from exc

        snapshot = StopSnapshot(
            stop_id=stop_id,
            departures=tuple(departures),
            fetched_at=self._clock(),
        )
        with self._lock:
            self._cache[stop_id] = snapshot
        logger.info("Fetched %d departures for RBL %s", len(departures), stop_id)
        return departures[:limit]

    def get_next_departure(self, stop_id: int) -> Departure | None:
        """The single soonest departure, or None if the stop has none."""
        departures = self.fetch_departures(stop_id, limit=1)
        return departures[0] if departures else None

    def clear_cache(self, stop_id: int | None = None) -> None:
        """Evict one stop's snapshot, or all of them when stop_id is None."""
        with self._lock:
            if stop_id is None:
                self._cache.clear()
                logger.debug("Cleared all cache")
            else:
                self._cache.pop(stop_id, None)
                logger.debug("Cleared cache for RBL %s", stop_id)

    def cache_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(size=len(self._cache), entries=list(self._cache))
