"""Integration tests for chart rendering."""

import re
from pathlib import Path

import fitz  # type: ignore[import-untyped]  # PyMuPDF
import numpy as np
import pytest

from cardcal.colors import hex_to_rgb
from cardcal.config import CARD_HEIGHT_MM, CARD_WIDTH_MM
from cardcal.coordinates import POINTS_PER_MM
from cardcal.layout import calculate_layout, get_grid_position, get_swatch_position, grid_cell_center
from cardcal.markers import encode
from cardcal.rendering import render_chart_image, render_chart_pdf, render_chart_svg
from cardcal.validation import CardLayout


class TestPDFRendering:
    """Tests for print-ready PDF output."""

    def test_page_is_card_sized(self, tmp_path: Path, layout: CardLayout, chart_colors: list[str]) -> None:
        """Test the PDF has one page of exactly CR80 size."""
        pdf_path = tmp_path / "nested" / "chart.pdf"
        render_chart_pdf(layout, chart_colors, str(pdf_path))

        assert pdf_path.exists()
        doc = fitz.open(str(pdf_path))
        try:
            assert len(doc) == 1
            rect = doc[0].rect
            assert rect.width == pytest.approx(CARD_WIDTH_MM * POINTS_PER_MM, abs=0.01)
            assert rect.height == pytest.approx(CARD_HEIGHT_MM * POINTS_PER_MM, abs=0.01)
        finally:
            doc.close()

    def test_swatch_colors_and_positions(self, tmp_path: Path, layout: CardLayout, chart_colors: list[str]) -> None:
        """Test each swatch is filled with its color at its layout position."""
        pdf_path = tmp_path / "chart.pdf"
        render_chart_pdf(layout, chart_colors, str(pdf_path))

        doc = fitz.open(str(pdf_path))
        try:
            pix = doc[0].get_pixmap(matrix=fitz.Matrix(300 / 72, 300 / 72), alpha=False)
            pixels = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.width, pix.n)
        finally:
            doc.close()

        px_per_mm = 300 / 25.4
        for swatch_index, color in enumerate(chart_colors):
            rect = get_swatch_position(layout, swatch_index)
            cx = int((rect.x + rect.width / 2) * px_per_mm)
            cy = int((rect.y + rect.height / 2) * px_per_mm)
            # Fill colors pass through PDF float operands, allow one level of rounding
            diff = np.abs(pixels[cy, cx, :3].astype(int) - np.array(hex_to_rgb(color)))
            assert diff.max() <= 1, f"swatch {swatch_index}"

    def test_unprintable_layout_raises(self, tmp_path: Path) -> None:
        """Test a zero-size layout is refused rather than printed blank."""
        with pytest.raises(ValueError, match="no room"):
            render_chart_pdf(calculate_layout(True, 45), ["#000000"], str(tmp_path / "x.pdf"))


class TestSVGRendering:
    """Tests for SVG output."""

    def test_document_in_millimeters(self, layout: CardLayout, chart_colors: list[str]) -> None:
        """Test the SVG is sized in mm with one rect per swatch."""
        svg = render_chart_svg(layout, chart_colors)

        assert 'width="85.6mm"' in svg
        assert 'viewBox="0 0 85.6 54.0"' in svg
        for color in set(chart_colors):
            assert f'fill="{color}"' in svg
        assert svg.count("<g id=\"marker-") == 4

    def test_marker_cells_follow_bits(self, layout: CardLayout) -> None:
        """Test each marker group draws exactly its black bits."""
        svg = render_chart_svg(layout, [])
        for marker in layout.marker_positions:
            group = re.search(rf'<g id="marker-{marker.id}"[^>]*>(.*?)</g>', svg, re.S)
            assert group is not None
            assert group.group(1).count("<rect") == int(encode(marker.id).sum())

    def test_swatch_rect_matches_layout(self, layout: CardLayout) -> None:
        """Test the first swatch rect uses the layout's coordinates."""
        svg = render_chart_svg(layout, ["#123456"])
        rect = get_swatch_position(layout, 0)
        assert f'<rect x="{rect.x:.4f}" y="{rect.y:.4f}"' in svg


class TestRasterRendering:
    """Tests for Pillow raster previews."""

    def test_size_and_swatch_colors(self, layout: CardLayout, chart_colors: list[str]) -> None:
        """Test preview size and swatch center colors."""
        img = render_chart_image(layout, chart_colors, px_per_mm=10)
        assert img.size == (856, 540)

        pixels = np.asarray(img)
        for swatch_index, color in enumerate(chart_colors):
            rect = get_swatch_position(layout, swatch_index)
            cx = int((rect.x + rect.width / 2) * 10)
            cy = int((rect.y + rect.height / 2) * 10)
            assert tuple(pixels[cy, cx]) == hex_to_rgb(color)

    def test_marker_drawn_in_corner_cell(self, layout: CardLayout) -> None:
        """Test marker 0's border cell is black and cell 0 holds no swatch color."""
        pixels = np.asarray(render_chart_image(layout, ["#FF0000"], px_per_mm=12))
        cell = get_grid_position(layout, 0)
        bit = cell.width / 6
        x = int((cell.x + bit / 2) * 12)
        y = int((cell.y + bit / 2) * 12)
        assert tuple(pixels[y, x]) == (0, 0, 0)

    def test_unused_cells_left_white(self, layout: CardLayout) -> None:
        """Test cells beyond the chart are blank."""
        pixels = np.asarray(render_chart_image(layout, ["#FF0000"], px_per_mm=10))
        cx, cy = grid_cell_center(layout, 35)
        assert tuple(pixels[int(cy * 10), int(cx * 10)]) == (255, 255, 255)
