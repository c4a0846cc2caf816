"""Shared fixtures: layouts, synthetic chart photos and a fake marker detector."""

import math
from collections.abc import Iterable

import numpy as np
import pytest

from cardcal.config import DEFAULT_COLOR_CHART
from cardcal.detection import Detector
from cardcal.layout import calculate_layout, fit_colors
from cardcal.rendering import render_chart_image
from cardcal.transform import apply_transform
from cardcal.validation import CardLayout, DetectedMarker, Point, Transform

SOURCE_PX_PER_MM = 16
BACKGROUND = (40, 40, 40)


class ProjectingDetector(Detector):
    """Fake detector reporting where a known transform puts each layout marker."""

    def __init__(
        self,
        layout: CardLayout,
        transform: Transform,
        ids: Iterable[int] | None = None,
        ready: bool = True,
    ) -> None:
        super().__init__()
        self.layout = layout
        self.transform = transform
        self.ids = None if ids is None else set(ids)
        self.calls = 0
        if ready:
            self.mark_ready()

    def detect(self, pixels: np.ndarray) -> list[DetectedMarker]:
        self.calls += 1
        markers = []
        for position in self.layout.marker_positions:
            if self.ids is not None and position.id not in self.ids:
                continue
            x, y, s = position.x, position.y, position.size
            # Clockwise from the marker's top-left corner
            corners = [(x, y), (x + s, y), (x + s, y + s), (x, y + s)]
            markers.append(
                DetectedMarker(
                    id=position.id,
                    corners=tuple(apply_transform(self.transform, cx, cy) for cx, cy in corners),
                )
            )
        return markers


def synthesize_photo(
    chart: np.ndarray,
    px_per_mm: float,
    transform: Transform,
    size: tuple[int, int],
    background: tuple[int, int, int] = BACKGROUND,
) -> np.ndarray:
    """Place a rendered chart into a photo through a card → image transform.

    Args:
        chart: Chart raster rendered at px_per_mm
        px_per_mm: Resolution of chart
        transform: Where the card lands in the photo
        size: Photo (width, height)
        background: Color outside the card

    Returns:
        uint8 RGB photo, nearest-neighbor resampled
    """
    width, height = size
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
    cos_r, sin_r = math.cos(transform.rotation), math.sin(transform.rotation)
    dx = (xs + 0.5 - transform.translation.x) / transform.scale
    dy = (ys + 0.5 - transform.translation.y) / transform.scale
    card_x = cos_r * dx + sin_r * dy
    card_y = -sin_r * dx + cos_r * dy

    src_x = np.floor(card_x * px_per_mm).astype(np.int64)
    src_y = np.floor(card_y * px_per_mm).astype(np.int64)
    inside = (src_x >= 0) & (src_x < chart.shape[1]) & (src_y >= 0) & (src_y < chart.shape[0])

    photo = np.empty((height, width, 3), dtype=np.uint8)
    photo[:] = background
    photo[inside] = chart[src_y[inside], src_x[inside], :3]
    return photo


@pytest.fixture
def layout() -> CardLayout:
    """Default layout: markers on, 5mm margin."""
    return calculate_layout(True, 5.0)


@pytest.fixture
def chart_colors(layout: CardLayout) -> list[str]:
    """Default chart colors fitted to the default layout."""
    return fit_colors(layout, DEFAULT_COLOR_CHART)


@pytest.fixture
def photo_transform() -> Transform:
    """Card placed rotated by ~11.5 degrees at 8 px/mm."""
    return Transform(rotation=0.2, scale=8.0, translation=Point(x=120.0, y=60.0))


@pytest.fixture
def chart_photo(layout: CardLayout, chart_colors: list[str], photo_transform: Transform) -> np.ndarray:
    """Synthetic photo of the default chart under photo_transform."""
    chart = np.asarray(render_chart_image(layout, chart_colors, SOURCE_PX_PER_MM))
    return synthesize_photo(chart, SOURCE_PX_PER_MM, photo_transform, (860, 680))



@pytest.fixture
def projecting_detector() -> type[ProjectingDetector]:
    """The fake detector class, for tests that pick their own transform or ids."""
    return ProjectingDetector


@pytest.fixture
def photo_factory():
    """Build synthetic photos: ``photo_factory(chart, px_per_mm, transform, size)``."""
    return synthesize_photo
