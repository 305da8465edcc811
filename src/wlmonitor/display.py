"""Pygame window that hosts departure widgets as a grid of tiles."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import pygame

from wlmonitor.renderer import CANVAS_SIZE, decode_data_url

logger = logging.getLogger(__name__)

# Gap between tiles and around the grid, in pixels
TILE_GAP = 12
# Dark grey deck body, so black tiles stay visible
DECK_COLOR = (28, 28, 28)
# Hidden widgets are drawn as an empty, slightly lighter slot
EMPTY_TILE_COLOR = (40, 40, 40)


@dataclass(frozen=True)
class DeckEvent:
    """A user action on the deck.

    kind is one of "quit", "press" (tile clicked), "refresh_all" (R key)
    or "toggle" (digit key, shows/hides a widget). index is the tile
    index for "press" and "toggle".
    """

    kind: str
    index: int | None = None


def tile_origin(index: int, columns: int) -> tuple[int, int]:
    """Top-left pixel of the tile at `index` in a grid with `columns` per row."""
    row, col = divmod(index, columns)
    return (
        TILE_GAP + col * (CANVAS_SIZE + TILE_GAP),
        TILE_GAP + row * (CANVAS_SIZE + TILE_GAP),
    )


def tile_at(pos: tuple[int, int], columns: int, count: int) -> int | None:
    """Index of the tile under a window position, or None for gaps and empty slots."""
    x, y = pos
    col, x_off = divmod(x - TILE_GAP, CANVAS_SIZE + TILE_GAP)
    row, y_off = divmod(y - TILE_GAP, CANVAS_SIZE + TILE_GAP)
    if x < TILE_GAP or y < TILE_GAP or col >= columns:
        return None
    if x_off >= CANVAS_SIZE or y_off >= CANVAS_SIZE:
        return None
    index = row * columns + col
    return index if index < count else None


def window_size(count: int, columns: int) -> tuple[int, int]:
    cols = max(1, min(columns, count))
    rows = max(1, math.ceil(count / columns))
    return (
        TILE_GAP + cols * (CANVAS_SIZE + TILE_GAP),
        TILE_GAP + rows * (CANVAS_SIZE + TILE_GAP),
    )


class DeckWindow:
    """Shows widget images in a pygame window and reports user input."""

    def __init__(self, widget_ids: list[str], columns: int = 3, fullscreen: bool = False) -> None:
        """Open the deck window.

        Args:
            widget_ids: Widgets in tile order. Digit keys 1-9 refer to
                the first nine.
            columns: Tiles per row.
            fullscreen: Open fullscreen instead of a sized window.
        """
        pygame.init()
        flags = pygame.FULLSCREEN if fullscreen else 0
        self.widget_ids = list(widget_ids)
        self.columns = max(1, columns)
        self.screen = pygame.display.set_mode(window_size(len(self.widget_ids), self.columns), flags)
        pygame.display.set_caption("Wiener Linien Abfahrten")
        self._tiles: dict[str, pygame.Surface] = {}
        self._titles: dict[str, str] = {}
        logger.info("Deck window initialized (%d tiles)", len(self.widget_ids))

    def set_image(self, widget_id: str, image: str) -> None:
        """Decode a PNG data URL and store it as the widget's tile."""
        img = decode_data_url(image).convert("RGB")
        self._tiles[widget_id] = pygame.image.frombytes(img.tobytes(), img.size, "RGB")

    def set_title(self, widget_id: str, title: str) -> None:
        self._titles[widget_id] = title

    def clear_tile(self, widget_id: str) -> None:
        self._tiles.pop(widget_id, None)
        self._titles.pop(widget_id, None)

    def draw(self) -> None:
        self.screen.fill(DECK_COLOR)
        for index, widget_id in enumerate(self.widget_ids):
            origin = tile_origin(index, self.columns)
            tile = self._tiles.get(widget_id)
            if tile is None:
                self.screen.fill(EMPTY_TILE_COLOR, pygame.Rect(origin, (CANVAS_SIZE, CANVAS_SIZE)))
            else:
                self.screen.blit(tile, origin)
        pygame.display.flip()

    def poll_events(self) -> list[DeckEvent]:
        """Translate pending pygame events into deck events."""
        events: list[DeckEvent] = []
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                logger.info("Received QUIT event")
                events.append(DeckEvent("quit"))
            elif event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    logger.info("Received ESC keypress")
                    events.append(DeckEvent("quit"))
                elif event.key == pygame.K_r:
                    events.append(DeckEvent("refresh_all"))
                elif pygame.K_1 <= event.key <= pygame.K_9:
                    index = event.key - pygame.K_1
                    if index < len(self.widget_ids):
                        events.append(DeckEvent("toggle", index))
            elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
                index = tile_at(event.pos, self.columns, len(self.widget_ids))
                if index is not None:
                    events.append(DeckEvent("press", index))
        return events

    def close(self) -> None:
        """Shut down the pygame display."""
        logger.info("Closing deck window")
        pygame.quit()
