"""Tests for rendering and export."""

from datetime import datetime
from io import BytesIO

import pytest

from spiralizer.cache.keys import SpiralParams
from spiralizer.config.config import ExportSettings
from spiralizer.core.colors import get_color_palette
from spiralizer.core.errors import InvalidArgument
from spiralizer.core.limits import calculate_plot_limits
from spiralizer.render import export_bytes, export_png, export_svg, make_filename, render_figure

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


@pytest.fixture
def colors(default_entry):
    return get_color_palette("turbo", default_entry.bounded_count)


@pytest.fixture
def limits(default_entry):
    return calculate_plot_limits(default_entry.tessellation)


class TestRender:
    def test_render_figure(self, default_entry, colors, limits):
        fig = render_figure(default_entry, colors, limits)
        ax = fig.axes[0]

        assert ax.get_xlim() == limits
        assert ax.get_ylim() == limits
        # Bounded polygons plus the open borders of unbounded cells
        assert len(ax.collections) == 2

    def test_color_count_must_match(self, default_entry, limits):
        with pytest.raises(InvalidArgument):
            render_figure(default_entry, ["#ffffff"], limits)


class TestExport:
    def test_png(self, default_entry, colors, limits):
        buffer = BytesIO()
        export_png(default_entry, buffer, colors, limits, size_px=300, dpi=100)

        assert buffer.getvalue().startswith(PNG_MAGIC)

    def test_png_to_file(self, tmp_path, default_entry, colors, limits):
        target = tmp_path / "out.png"
        export_png(default_entry, target, colors, limits, size_px=200, dpi=100)

        assert target.read_bytes().startswith(PNG_MAGIC)

    def test_svg(self, default_entry, colors, limits):
        buffer = BytesIO()
        export_svg(default_entry, buffer, colors, limits, size_inches=2)

        assert b"<svg" in buffer.getvalue()

    def test_export_bytes(self, default_entry, colors, limits):
        settings = ExportSettings(png_size=200, png_resolution=100, svg_size=2)

        assert export_bytes(default_entry, "png", colors, limits, settings).startswith(PNG_MAGIC)
        assert b"<svg" in export_bytes(default_entry, "svg", colors, limits, settings)
        with pytest.raises(InvalidArgument):
            export_bytes(default_entry, "gif", colors, limits, settings)


class TestFilename:
    def test_make_filename(self):
        now = datetime(2024, 3, 9, 14, 5, 7)

        assert make_filename(SpiralParams(0, 100, 300), "png", now) == \
            "spiral_0_100_300_20240309_140507.png"
        assert make_filename(SpiralParams(0.5, 12.25, 40), "svg", now) == \
            "spiral_0.5_12.25_40_20240309_140507.svg"
