"""Tests for the tile renderer."""

import io

import pytest
from PIL import Image

from wlmonitor.models import ColorConfig, Departure, Departures, Placeholder, PlaceholderKind
from wlmonitor.renderer import (
    CANVAS_SIZE,
    PLACEHOLDERS,
    decode_data_url,
    format_countdown,
    progress_width,
    render,
    render_svg,
    to_data_url,
    to_title_case,
)

TEXT_RGB = (0xD0, 0xCD, 0x08)
BAR_RGB = (0x52, 0x50, 0x03)
BLACK = (0, 0, 0)


def _dep(line: str = "U1", towards: str = "LEOPOLDAU", countdown: int = 2) -> Departure:
    return Departure(line=line, towards=towards, countdown=countdown)


def _decode(png: bytes) -> Image.Image:
    return Image.open(io.BytesIO(png)).convert("RGB")


def _has_text_pixels(img: Image.Image, box: tuple[int, int, int, int]) -> bool:
    """True if any pixel in the box differs from the black background."""
    return img.crop(box).getbbox() is not None


class TestTitleCase:
    def test_hyphen(self):
        assert to_title_case("hauptbahnhof-ost") == "Hauptbahnhof-Ost"

    def test_space(self):
        assert to_title_case("wien mitte") == "Wien Mitte"

    def test_upper_case_input(self):
        assert to_title_case("GROSS-ENZERSDORF") == "Gross-Enzersdorf"

    def test_after_comma_and_space(self):
        assert to_title_case("ASPERN, OBERDORFSTRASSE") == "Aspern, Oberdorfstrasse"

    def test_umlauts(self):
        assert to_title_case("HÜTTELDORF") == "Hütteldorf"

    def test_other_separators_not_capitalized(self):
        assert to_title_case("st.marx") == "St.marx"

    def test_empty(self):
        assert to_title_case("") == ""


class TestFormatCountdown:
    @pytest.mark.parametrize("minutes", [0, -1, -5])
    def test_now_or_overdue(self, minutes):
        assert format_countdown(minutes) == "*"

    def test_minutes(self):
        assert format_countdown(7) == "7"
        assert format_countdown(42) == "42"


class TestProgressWidth:
    def test_floor(self):
        assert progress_width(50) == 72
        assert progress_width(33.3) == 47

    def test_bounds(self):
        assert progress_width(0) == 0
        assert progress_width(100) == CANVAS_SIZE


class TestRender:
    def test_png_dimensions(self):
        """Verify that the output decodes to a 144x144 image."""
        img = _decode(render(Departures(first=_dep())))
        assert img.size == (CANVAS_SIZE, CANVAS_SIZE)

    def test_deterministic(self):
        """Verify that identical input gives byte-identical PNG output."""
        state = Departures(first=_dep(), second=_dep(countdown=9), progress_percent=37.5)
        assert render(state) == render(state)

    def test_default_background(self):
        img = _decode(render(Departures(first=_dep())))
        assert img.getpixel((CANVAS_SIZE - 1, 0)) == BLACK

    def test_custom_background(self):
        colors = ColorConfig(background="#ff0000")
        img = _decode(render(Placeholder(PlaceholderKind.FETCH_ERROR), colors))
        assert img.getpixel((CANVAS_SIZE - 1, 0)) == (255, 0, 0)

    def test_text_drawn_in_text_color(self):
        img = _decode(render(Departures(first=_dep())))
        assert TEXT_RGB in {color for _, color in img.getcolors(CANVAS_SIZE * CANVAS_SIZE)}

    def test_progress_bar_width(self):
        """Verify that 50% fills the first 72 columns of the bottom two rows."""
        img = _decode(render(Departures(first=_dep(), progress_percent=50)))
        assert img.getpixel((0, CANVAS_SIZE - 1)) == BAR_RGB
        assert img.getpixel((0, CANVAS_SIZE - 2)) == BAR_RGB
        assert img.getpixel((71, CANVAS_SIZE - 1)) == BAR_RGB
        assert img.getpixel((72, CANVAS_SIZE - 1)) == BLACK
        assert img.getpixel((0, CANVAS_SIZE - 3)) == BLACK

    def test_progress_bar_full(self):
        img = _decode(render(Departures(first=_dep(), progress_percent=100)))
        assert img.getpixel((CANVAS_SIZE - 1, CANVAS_SIZE - 1)) == BAR_RGB

    def test_progress_zero_draws_nothing(self):
        img = _decode(render(Departures(first=_dep(), progress_percent=0)))
        assert img.getpixel((0, CANVAS_SIZE - 1)) == BLACK

    def test_progress_disabled(self):
        img = _decode(render(Departures(first=_dep(), progress_percent=None)))
        assert img.getpixel((0, CANVAS_SIZE - 1)) == BLACK

    def test_negative_progress_ignored(self):
        img = _decode(render(Departures(first=_dep(), progress_percent=-1)))
        assert img.getpixel((0, CANVAS_SIZE - 1)) == BLACK

    def test_custom_progress_color(self):
        colors = ColorConfig(progress_bar="#00ff00")
        img = _decode(render(Departures(first=_dep(), progress_percent=100), colors))
        assert img.getpixel((10, CANVAS_SIZE - 1)) == (0, 255, 0)

    def test_second_countdown_centered(self):
        """Verify that the second countdown is drawn around the horizontal midpoint."""
        center_box = (60, 95, 85, 130)
        single = _decode(render(Departures(first=_dep())))
        double = _decode(render(Departures(first=_dep(), second=_dep(countdown=9))))
        assert not _has_text_pixels(single, center_box)
        assert _has_text_pixels(double, center_box)

    def test_long_destination_renders(self):
        """Verify that a destination wider than the tile does not fail."""
        dep = _dep(towards="SIEBENHIRTEN-ERLAAER STRASSE-PERFEKTastrasse U-BAHN")
        img = _decode(render(Departures(first=dep)))
        assert img.size == (CANVAS_SIZE, CANVAS_SIZE)

    @pytest.mark.parametrize("kind", list(PlaceholderKind))
    def test_placeholders(self, kind):
        """Verify that each placeholder draws text and no progress bar."""
        img = _decode(render(Placeholder(kind)))
        assert img.size == (CANVAS_SIZE, CANVAS_SIZE)
        assert _has_text_pixels(img, (0, 0, CANVAS_SIZE, CANVAS_SIZE))
        assert img.getpixel((0, CANVAS_SIZE - 1)) == BLACK

    def test_placeholder_texts(self):
        assert PLACEHOLDERS[PlaceholderKind.NO_STATION_CONFIGURED][0] == ("No Station", "set in", "Settings")
        assert PLACEHOLDERS[PlaceholderKind.INVALID_STOP_ID][0] == ("Invalid", "RBL", "Number")
        assert PLACEHOLDERS[PlaceholderKind.NO_DEPARTURES_SOON][0] == ("No", "Departures", "Soon")
        assert PLACEHOLDERS[PlaceholderKind.NO_LINE_MATCH][0] == ("No", "Line", "Found")
        assert PLACEHOLDERS[PlaceholderKind.FETCH_ERROR][0] == ("Error", "Fetching", "Data")


class TestRenderSvg:
    def test_departure_content(self):
        svg = render_svg(Departures(first=_dep(towards="hauptbahnhof-ost", countdown=0), progress_percent=50))
        assert svg.startswith('<svg width="144" height="144"')
        assert ">U1</text>" in svg
        assert ">Hauptbahnhof-Ost</text>" in svg
        assert ">*</text>" in svg
        assert 'width="72" height="2"' in svg

    def test_second_countdown_anchor(self):
        svg = render_svg(Departures(first=_dep(), second=_dep(countdown=9)))
        assert 'x="72"' in svg
        assert 'text-anchor="middle">9</text>' in svg

    def test_escapes_text(self):
        svg = render_svg(Departures(first=_dep(line="<X&Y>")))
        assert "&lt;X&amp;Y&gt;" in svg
        assert "<X&Y>" not in svg

    def test_placeholder(self):
        svg = render_svg(Placeholder(PlaceholderKind.NO_LINE_MATCH), ColorConfig(text="#ffffff"))
        assert svg.count("<text") == 3
        assert 'fill="#ffffff"' in svg
        assert ">Found</text>" in svg

    def test_no_bar_without_progress(self):
        svg = render_svg(Departures(first=_dep()))
        assert svg.count("<rect") == 1


class TestDataUrl:
    def test_prefix(self):
        url = to_data_url(render(Placeholder(PlaceholderKind.FETCH_ERROR)))
        assert url.startswith("data:image/png;base64,")

    def test_decode(self):
        url = to_data_url(render(Placeholder(PlaceholderKind.FETCH_ERROR)))
        assert decode_data_url(url).size == (CANVAS_SIZE, CANVAS_SIZE)

    def test_decode_rejects_other_types(self):
        with pytest.raises(ValueError):
            decode_data_url("data:image/svg+xml;charset=utf-8,%3Csvg%3E")
