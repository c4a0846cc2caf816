"""Coordinate conversion and PDF rasterization utilities.

This module handles:
- DPI conversions (pixels ↔ millimeters)
- Coordinate system transforms (top-left mm → ReportLab bottom-left points)
- PDF rasterization using PyMuPDF (scanned charts delivered as PDF)
"""

from pathlib import Path

import fitz  # type: ignore[import-untyped]  # PyMuPDF lacks type stubs
import numpy as np

MM_PER_INCH = 25.4
POINTS_PER_MM = 72 / MM_PER_INCH


def px_to_mm(px: float, dpi: float) -> float:
    """Convert pixels to millimeters.

    Args:
        px: Size in pixels
        dpi: Dots per inch (resolution)

    Returns:
        Size in millimeters
    """
    return (px / dpi) * MM_PER_INCH


def mm_to_px(mm: float, dpi: float) -> float:
    """Convert millimeters to pixels.

    Args:
        mm: Size in millimeters
        dpi: Dots per inch (resolution)

    Returns:
        Size in pixels
    """
    return (mm / MM_PER_INCH) * dpi


def px_per_mm_to_dpi(px_per_mm: float) -> float:
    """Convert a pixels-per-millimeter scale (as found in a Transform) to DPI."""
    return px_per_mm * MM_PER_INCH


def mm_to_pdf_coords(x_mm: float, y_mm: float, page_height_mm: float) -> tuple[float, float]:
    """Convert top-left mm coordinates to ReportLab bottom-left points.

    Args:
        x_mm: X coordinate in millimeters from top-left
        y_mm: Y coordinate in millimeters from top-left
        page_height_mm: Total page height in millimeters

    Returns:
        Tuple of (x_pt, y_pt) in ReportLab points (1pt = 1/72 inch)

    Note:
        ReportLab uses bottom-left origin, so Y axis is flipped.
    """
    x_pt = x_mm * POINTS_PER_MM
    y_pt = (page_height_mm - y_mm) * POINTS_PER_MM
    return x_pt, y_pt


def rasterize_pdf_page(pdf_path: str, dpi: int, page_index: int = 0) -> np.ndarray:
    """Rasterize one PDF page to an RGB pixel array.

    Args:
        pdf_path: Path to input PDF file
        dpi: Resolution for rasterization
        page_index: Zero-based page to render

    Returns:
        uint8 array of shape (height, width, 3)

    Raises:
        FileNotFoundError: If PDF file doesn't exist
        RuntimeError: If PDF cannot be opened, has no such page, or rasterization fails
    """
    if not Path(pdf_path).exists():
        raise FileNotFoundError(f"PDF not found: {pdf_path}")

    try:
        doc = fitz.open(pdf_path)
    except Exception as e:
        raise RuntimeError(f"Failed to open PDF: {e}") from e

    try:
        if page_index >= len(doc):
            raise RuntimeError(f"PDF has {len(doc)} pages, cannot render page {page_index + 1}")

        # PyMuPDF default is 72 DPI, so zoom = target_dpi / 72
        zoom = dpi / 72.0
        try:
            pix = doc[page_index].get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
        except Exception as e:
            raise RuntimeError(f"Failed to rasterize page {page_index + 1}: {e}") from e

        pixels = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.width, pix.n)
        if pix.n == 1:
            pixels = np.repeat(pixels, 3, axis=2)
        return pixels[:, :, :3].copy()
    finally:
        doc.close()
