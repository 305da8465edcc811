"""Per-widget monitoring scheduler and the desktop deck application."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Protocol

from wlmonitor.api import UpstreamError, WienerLinienClient
from wlmonitor.config import (
    Config,
    ConfigError,
    InvalidStopError,
    MissingStopError,
    WidgetConfig,
)
from wlmonitor.models import (
    Departures,
    DisplayState,
    Empty,
    NoLineMatch,
    Placeholder,
    PlaceholderKind,
    Selected,
)
from wlmonitor.renderer import render, to_data_url
from wlmonitor.selector import raw_departure_limit, select_departures

logger = logging.getLogger(__name__)

# Progress bar redraw period in seconds
PROGRESS_UPDATE_INTERVAL = 0.1


class DisplaySurface(Protocol):
    """Where rendered tiles go. Implemented by the host."""

    def set_image(self, widget_id: str, image: str) -> None: ...

    def set_title(self, widget_id: str, title: str) -> None: ...


def progress_percent(elapsed_ms: float, refresh_interval_seconds: int) -> float:
    """Elapsed share of the refresh interval in percent, capped at 100."""
    return min(elapsed_ms / (refresh_interval_seconds * 1000) * 100, 100)


@dataclass
class WidgetRuntimeState:
    """Everything the scheduler owns for one visible widget.

    A fresh object replaces the previous one whenever monitoring starts,
    so a fetch that completes after a restart or hide can detect that it
    belongs to an outdated state and drop its result.

    Attributes:
        widget_id: Host identifier of the widget.
        config: Parsed settings.
        stop_id: RBL number, None if the settings have none or an invalid one.
        selection: Last departures shown, None after an empty result or
            before the first successful fetch. Fetch errors leave it as is.
        last_update: Epoch seconds of the last refresh; anchors the
            progress bar. None while not monitoring.
        refresh_task: Repeating fetch-select-render task.
        progress_task: 100 ms progress bar task, None if the bar is off.
    """

    widget_id: str
    config: WidgetConfig
    stop_id: int | None = None
    selection: Selected | None = None
    last_update: float | None = None
    refresh_task: asyncio.Task | None = None
    progress_task: asyncio.Task | None = None

    def cancel_timers(self) -> None:
        for task in (self.refresh_task, self.progress_task):
            if task is not None:
                task.cancel()
        self.refresh_task = None
        self.progress_task = None
        self.last_update = None


class DepartureMonitor:
    """Drives every departure widget: timers, fetches, selection and rendering.

    All widgets share one WienerLinienClient, and therefore its cache.
    Everything runs on a single asyncio loop. Only the blocking HTTP call
    is moved to a worker thread so that one widget's fetch never delays
    another widget's timers.
    """

    def __init__(
        self,
        client: WienerLinienClient,
        surface: DisplaySurface,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.surface = surface
        self._clock = clock
        self._widgets: dict[str, WidgetRuntimeState] = {}

    def widget(self, widget_id: str) -> WidgetRuntimeState | None:
        return self._widgets.get(widget_id)

    def _is_current(self, state: WidgetRuntimeState) -> bool:
        return self._widgets.get(state.widget_id) is state

    # --- host lifecycle callbacks -------------------------------------------

    async def will_appear(self, widget_id: str, settings: dict[str, Any] | None) -> None:
        await self.start_monitoring(widget_id, settings)

    async def did_receive_settings(self, widget_id: str, settings: dict[str, Any] | None) -> None:
        logger.info("Settings changed for widget %s", widget_id)
        await self.start_monitoring(widget_id, settings)

    def will_disappear(self, widget_id: str) -> None:
        self.stop_monitoring(widget_id)

    async def key_down(self, widget_id: str) -> None:
        await self.manual_refresh(widget_id)

    async def send_to_plugin(self, widget_id: str, payload: dict[str, Any]) -> None:
        """Handle a message from the settings UI. Only 'refreshNow' is known."""
        if payload.get("event") == "refreshNow":
            logger.info("Manual refresh requested for widget %s", widget_id)
            await self.manual_refresh(widget_id)
        else:
            logger.debug("Ignoring message %r for widget %s", payload, widget_id)

    # --- monitoring ---------------------------------------------------------

    async def start_monitoring(self, widget_id: str, settings: dict[str, Any] | None) -> None:
        """(Re)start monitoring a widget with the given settings.

        Cancels the widget's existing timers first. With a missing or
        invalid RBL number only a placeholder is rendered and no timers
        are started.
        """
        config = WidgetConfig.from_settings(settings)
        self.stop_monitoring(widget_id)
        state = WidgetRuntimeState(widget_id=widget_id, config=config)
        self._widgets[widget_id] = state

        try:
            state.stop_id = config.stop_id()
        except MissingStopError:
            logger.warning("Widget %s has no RBL number configured", widget_id)
            self._render(state, Placeholder(PlaceholderKind.NO_STATION_CONFIGURED))
            return
        except InvalidStopError:
            logger.error("Invalid RBL number %r for widget %s", config.rbl, widget_id)
            self._render(state, Placeholder(PlaceholderKind.INVALID_STOP_ID))
            return

        logger.info(
            "Starting monitoring for RBL %s, widget %s, refresh interval: %ds",
            state.stop_id, widget_id, config.refresh_interval,
        )
        await self._refresh_cycle(state)
        # Restarted or hidden while the first fetch was in flight
        if not self._is_current(state):
            return
        state.last_update = self._clock()

        state.refresh_task = asyncio.create_task(
            self._refresh_loop(state), name=f"refresh:{widget_id}"
        )
        if config.show_progress_bar:
            state.progress_task = asyncio.create_task(
                self._progress_loop(state), name=f"progress:{widget_id}"
            )

    def stop_monitoring(self, widget_id: str) -> None:
        """Cancel both timers and drop the widget's runtime state."""
        state = self._widgets.pop(widget_id, None)
        if state is None:
            return
        state.cancel_timers()
        logger.info("Stopped monitoring for widget %s", widget_id)

    def shutdown(self) -> None:
        for widget_id in list(self._widgets):
            self.stop_monitoring(widget_id)

    async def manual_refresh(self, widget_id: str) -> None:
        """Evict the stop from the cache and refresh immediately.

        The progress timer keeps running; its next tick measures against
        the new refresh timestamp.
        """
        state = self._widgets.get(widget_id)
        if state is None:
            logger.warning("Cannot refresh: widget %s is not monitored", widget_id)
            return
        try:
            stop_id = state.config.stop_id()
        except ConfigError as exc:
            logger.warning("Cannot refresh widget %s: %s", widget_id, exc)
            return

        self.client.clear_cache(stop_id)
        await self._refresh_cycle(state)
        if self._is_current(state):
            state.last_update = self._clock()
            logger.info("Manual refresh for RBL %s, widget %s", stop_id, widget_id)

    async def _refresh_cycle(self, state: WidgetRuntimeState) -> None:
        """Fetch, select and render once.

        Never raises: any failure is logged and shown as the error tile,
        so the widget's timers keep running.
        """
        try:
            await self._update(state)
        except Exception:
            logger.warning(
                "Refresh failed for RBL %s, widget %s",
                state.stop_id, state.widget_id, exc_info=True,
            )
            if self._is_current(state):
                self._render(state, Placeholder(PlaceholderKind.FETCH_ERROR))

    async def _update(self, state: WidgetRuntimeState) -> None:
        config = state.config
        limit = raw_departure_limit(config.show_two_departures)
        try:
            departures = await asyncio.to_thread(
                self.client.fetch_departures, state.stop_id, limit
            )
        except UpstreamError as exc:
            logger.error(
                "Failed to update departure for RBL %s, widget %s: %s",
                state.stop_id, state.widget_id, exc,
            )
            if self._is_current(state):
                self._render(state, Placeholder(PlaceholderKind.FETCH_ERROR))
            return

        if not self._is_current(state):
            logger.debug("Dropping stale result for widget %s", state.widget_id)
            return

        result = select_departures(departures, config.line_filter, config.show_two_departures)
        if isinstance(result, Empty):
            logger.info("No departures found for RBL %s", state.stop_id)
            state.selection = None
            self._render(state, Placeholder(PlaceholderKind.NO_DEPARTURES_SOON))
        elif isinstance(result, NoLineMatch):
            logger.info(
                "No departures for lines %s at RBL %s",
                ", ".join(config.line_filter), state.stop_id,
            )
            state.selection = None
            self._render(state, Placeholder(PlaceholderKind.NO_LINE_MATCH))
        else:
            state.selection = result
            self._render(
                state,
                Departures(
                    first=result.first,
                    second=result.second,
                    progress_percent=0 if config.show_progress_bar else None,
                ),
            )
            logger.debug(
                "Updated widget %s: %s to %s in %d min%s",
                state.widget_id, result.first.line, result.first.towards,
                result.first.countdown,
                f" and {result.second.countdown} min" if result.second else "",
            )

    async def _refresh_loop(self, state: WidgetRuntimeState) -> None:
        interval = state.config.refresh_interval
        loop = asyncio.get_running_loop()
        # Fixed-rate schedule: fetch time does not push later firings back
        next_fire = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, next_fire - loop.time()))
            next_fire += interval
            await self._refresh_cycle(state)
            state.last_update = self._clock()

    async def _progress_loop(self, state: WidgetRuntimeState) -> None:
        while True:
            await asyncio.sleep(PROGRESS_UPDATE_INTERVAL)
            self._progress_tick(state)

    def progress_tick(self, widget_id: str) -> None:
        """Re-render the cached departures with the current progress."""
        state = self._widgets.get(widget_id)
        if state is not None:
            self._progress_tick(state)

    def _progress_tick(self, state: WidgetRuntimeState) -> None:
        if not state.config.show_progress_bar:
            return
        if state.last_update is None or state.selection is None:
            return
        elapsed_ms = (self._clock() - state.last_update) * 1000
        percent = progress_percent(elapsed_ms, state.config.refresh_interval)
        self._render(
            state,
            Departures(
                first=state.selection.first,
                second=state.selection.second,
                progress_percent=percent,
            ),
        )

    def _render(self, state: WidgetRuntimeState, display: DisplayState) -> None:
        image = to_data_url(render(display, state.config.colors))
        self.surface.set_title(state.widget_id, "")
        self.surface.set_image(state.widget_id, image)


class DeckApp:
    """Runs the monitor against a desktop window of widget tiles.

    The window plays the host's role: it reports widgets appearing and
    disappearing, key presses and refresh requests, and shows the images
    the monitor pushes.
    """

    def __init__(self, config: Config) -> None:
        """Initialize the deck application.

        The pygame window is imported lazily so that the monitor can be
        used (and tested) without a display.

        Args:
            config: Fully assembled application configuration.
        """
        from wlmonitor.display import DeckWindow

        self.config = config
        self.client = WienerLinienClient(
            base_url=config.api.base_url,
            timeout=config.api.timeout_seconds,
        )
        self.widget_ids = [w["id"] for w in config.widgets]
        self.window = DeckWindow(
            self.widget_ids,
            columns=config.display.columns,
            fullscreen=config.display.fullscreen,
        )
        self.monitor = DepartureMonitor(self.client, self.window)
        self.visible: set[str] = set()
        self.frame_interval = 1.0 / config.display.fps
        self._tasks: set[asyncio.Task] = set()
        self._running = False

    def _settings(self, widget_id: str) -> dict[str, Any]:
        return next(w for w in self.config.widgets if w["id"] == widget_id)

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Task %s failed", task.get_name(), exc_info=task.exception())

    def _show(self, widget_id: str) -> None:
        self.visible.add(widget_id)
        self._spawn(
            self.monitor.will_appear(widget_id, self._settings(widget_id)),
            name=f"appear:{widget_id}",
        )

    def _hide(self, widget_id: str) -> None:
        self.visible.discard(widget_id)
        self.monitor.will_disappear(widget_id)
        self.window.clear_tile(widget_id)

    def _dispatch(self, event) -> None:
        if event.kind == "quit":
            self._running = False
        elif event.kind == "press":
            widget_id = self.widget_ids[event.index]
            if widget_id in self.visible:
                self._spawn(self.monitor.key_down(widget_id), name=f"key:{widget_id}")
        elif event.kind == "refresh_all":
            for widget_id in self.visible:
                self._spawn(
                    self.monitor.send_to_plugin(widget_id, {"event": "refreshNow"}),
                    name=f"refresh-now:{widget_id}",
                )
        elif event.kind == "toggle":
            widget_id = self.widget_ids[event.index]
            if widget_id in self.visible:
                self._hide(widget_id)
            else:
                self._show(widget_id)

    async def run(self) -> None:
        """Run the window loop until the window is closed."""
        logger.info(
            "Starting deck with %d widget(s)", len(self.widget_ids),
        )
        try:
            for widget_id in self.widget_ids:
                self._show(widget_id)
            self._running = True
            while self._running:
                for event in self.window.poll_events():
                    self._dispatch(event)
                self.window.draw()
                await asyncio.sleep(self.frame_interval)
        finally:
            self.monitor.shutdown()
            for task in list(self._tasks):
                task.cancel()
            self.window.close()
