"""Printable chart rendering and analysis overlays.

This module handles:
- Print-ready PDF charts with ReportLab (vector swatches and markers)
- SVG charts
- Raster previews with Pillow
- Overlaying analysis results on the photographed chart

All geometry comes from ``cardcal.layout``; nothing here recomputes grid
positions, so the printed chart and the analysis grid cannot drift apart.
"""

import logging
from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw
from reportlab.lib.units import mm as reportlab_mm
from reportlab.pdfgen import canvas

from cardcal.colors import hex_to_rgb
from cardcal.config import PREVIEW_PX_PER_MM
from cardcal.coordinates import mm_to_pdf_coords
from cardcal.layout import fit_colors, get_swatch_position, is_printable
from cardcal.markers import MARKER_BITS, check_marker_size, encode, marker_image
from cardcal.transform import apply_transform
from cardcal.validation import AnalysisResult, CardLayout, MarkerPosition, Rect

logger = logging.getLogger(__name__)


def _marker_cells(marker: MarkerPosition) -> list[Rect]:
    """Black cells of a marker as card-space rectangles."""
    bits = encode(marker.id)
    cell = marker.size / MARKER_BITS
    return [
        Rect(x=marker.x + col * cell, y=marker.y + row * cell, width=cell, height=cell)
        for row, col in zip(*np.nonzero(bits))
    ]


def _check_printable(layout: CardLayout) -> None:
    if not is_printable(layout):
        raise ValueError(f"Layout with margin {layout.margin}mm has no room for swatches")
    check_marker_size(layout)


def render_chart_pdf(layout: CardLayout, colors: list[str], output_path: str) -> None:
    """Generate a print-ready PDF of the chart at card size.

    Args:
        layout: Chart geometry
        colors: Chart colors in swatch-index order; extras beyond the
            layout's capacity are dropped
        output_path: Where to save the generated PDF

    Raises:
        ValueError: If the layout has zero-size swatches

    Note:
        PDF uses ReportLab's bottom-left origin (converted from top-left mm).
    """
    _check_printable(layout)
    page_height_mm = layout.card_height

    output_path_obj = Path(output_path)
    output_path_obj.parent.mkdir(parents=True, exist_ok=True)

    c = canvas.Canvas(
        str(output_path),
        pagesize=(layout.card_width * reportlab_mm, layout.card_height * reportlab_mm),
    )
    c.setTitle("Color calibration chart")

    def draw_rect(rect: Rect) -> None:
        # ReportLab anchors rectangles at their bottom-left corner
        x_pt, y_pt = mm_to_pdf_coords(rect.x, rect.y + rect.height, page_height_mm)
        c.rect(x_pt, y_pt, rect.width * reportlab_mm, rect.height * reportlab_mm, stroke=0, fill=1)

    for swatch_index, color in enumerate(fit_colors(layout, colors)):
        rect = get_swatch_position(layout, swatch_index)
        if rect is None:
            break
        r, g, b = hex_to_rgb(color)
        c.setFillColorRGB(r / 255, g / 255, b / 255)
        draw_rect(rect)

    # One path per marker: separately filled cells leave anti-aliased seams
    # between neighbours, which can break the black border ring at scan time
    c.setFillColorRGB(0, 0, 0)
    for marker in layout.marker_positions:
        path = c.beginPath()
        for cell in _marker_cells(marker):
            x_pt, y_pt = mm_to_pdf_coords(cell.x, cell.y + cell.height, page_height_mm)
            path.rect(x_pt, y_pt, cell.width * reportlab_mm, cell.height * reportlab_mm)
        c.drawPath(path, stroke=0, fill=1)

    c.save()
    logger.info(f"Saved chart PDF to {output_path}")


def render_chart_svg(layout: CardLayout, colors: list[str]) -> str:
    """Render the chart as an SVG document in millimeter units.

    Raises:
        ValueError: If the layout has zero-size swatches
    """
    _check_printable(layout)
    w, h = layout.card_width, layout.card_height
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{w}mm" height="{h}mm" viewBox="0 0 {w} {h}">',
        f'<rect x="0" y="0" width="{w}" height="{h}" fill="#FFFFFF"/>',
    ]

    for swatch_index, color in enumerate(fit_colors(layout, colors)):
        rect = get_swatch_position(layout, swatch_index)
        if rect is None:
            break
        parts.append(
            f'<rect x="{rect.x:.4f}" y="{rect.y:.4f}" width="{rect.width:.4f}" '
            f'height="{rect.height:.4f}" fill="{color}"/>'
        )

    for marker in layout.marker_positions:
        parts.append(f'<g id="marker-{marker.id}" fill="#000000" shape-rendering="crispEdges">')
        for cell in _marker_cells(marker):
            parts.append(
                f'<rect x="{cell.x:.4f}" y="{cell.y:.4f}" width="{cell.width:.4f}" height="{cell.height:.4f}"/>'
            )
        parts.append("</g>")

    parts.append("</svg>")
    return "\n".join(parts) + "\n"


def render_chart_image(
    layout: CardLayout,
    colors: list[str],
    px_per_mm: float = PREVIEW_PX_PER_MM,
) -> Image.Image:
    """Rasterize the chart with Pillow.

    Args:
        layout: Chart geometry
        colors: Chart colors in swatch-index order
        px_per_mm: Output resolution

    Returns:
        RGB image of the whole card

    Raises:
        ValueError: If the layout has zero-size swatches
    """
    _check_printable(layout)

    def px(value_mm: float) -> int:
        return round(value_mm * px_per_mm)

    img = Image.new("RGB", (px(layout.card_width), px(layout.card_height)), color=(255, 255, 255))
    draw = ImageDraw.Draw(img)

    for swatch_index, color in enumerate(fit_colors(layout, colors)):
        rect = get_swatch_position(layout, swatch_index)
        if rect is None:
            break
        # Pillow rectangles include both end coordinates
        draw.rectangle(
            [(px(rect.x), px(rect.y)), (px(rect.x + rect.width) - 1, px(rect.y + rect.height) - 1)],
            fill=hex_to_rgb(color),
        )

    for marker in layout.marker_positions:
        img.paste(marker_image(marker.id, px(marker.size)), (px(marker.x), px(marker.y)))

    return img


def _confidence_color(confidence: float) -> tuple[int, int, int]:
    if confidence >= 0.8:
        return 34, 197, 94
    if confidence >= 0.5:
        return 234, 179, 8
    return 239, 68, 68


def render_analysis_overlay(pixels: np.ndarray, result: AnalysisResult, layout: CardLayout) -> Image.Image:
    """Draw detected markers, the recovered card outline and sample points on the photo.

    Sample points are colored by confidence: green for marker-based,
    yellow for grid fallback, red for out-of-bounds placeholders.
    """
    base = pixels if pixels.ndim == 2 else pixels[:, :, :3]
    img = Image.fromarray(np.ascontiguousarray(base)).convert("RGB")
    draw = ImageDraw.Draw(img)
    line_width = max(1, min(img.size) // 400)

    for marker in result.detected_markers:
        outline = [(p.x, p.y) for p in marker.corners]
        draw.line(outline + [outline[0]], fill=(34, 197, 94), width=line_width * 2)
        draw.text((outline[0][0], outline[0][1] - 12), f"id {marker.id}", fill=(34, 197, 94))

    if result.method == "markers":
        corners = [(0.0, 0.0), (layout.card_width, 0.0), (layout.card_width, layout.card_height), (0.0, layout.card_height)]
        projected = [apply_transform(result.transform, x, y) for x, y in corners]
        outline = [(p.x, p.y) for p in projected]
        draw.line(outline + [outline[0]], fill=(59, 130, 246), width=line_width)

    radius = max(3, line_width * 3)
    for sample in result.samples:
        x, y = sample.position.x, sample.position.y
        draw.ellipse(
            [(x - radius, y - radius), (x + radius, y + radius)],
            fill=hex_to_rgb(sample.color),
            outline=_confidence_color(sample.confidence),
            width=line_width,
        )

    return img
