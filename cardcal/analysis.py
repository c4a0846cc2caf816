"""Chart analysis: photo of a printed chart → per-swatch color samples.

Pipeline:
1. Detect fiducial markers (if a detector is available)
2. With enough markers, solve the card → image transform and sample each
   swatch center through it
3. Otherwise fall back to dividing the image into a fixed-margin grid

Missing or partial markers never raise; they lower sample confidence.
Only failing to obtain the image pixels is an error.
"""

import logging
import threading
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from cardcal.config import (
    CONFIDENCE_GRID,
    CONFIDENCE_MARKERS,
    CONFIDENCE_OUT_OF_BOUNDS,
    DETECTOR_READY_TIMEOUT_S,
    GRID_FALLBACK_MARGIN_FRACTION,
    GRID_SAMPLE_RADIUS,
    MIN_MARKERS_FOR_TRANSFORM,
    PLACEHOLDER_COLOR,
    SCAN_DPI,
    TRANSFORM_SAMPLE_RADIUS,
)
from cardcal.coordinates import rasterize_pdf_page
from cardcal.detection import Detector, wait_until_ready
from cardcal.layout import grid_cell_center, swatch_grid_indices
from cardcal.sampling import in_bounds, sample_color
from cardcal.transform import (
    apply_transform,
    estimate_transform,
    match_markers,
    reprojection_error,
)
from cardcal.validation import (
    IDENTITY_TRANSFORM,
    AnalysisResult,
    CardLayout,
    ColorSample,
    DetectedMarker,
    Point,
    Transform,
)

logger = logging.getLogger(__name__)


def load_image(image_path: str) -> np.ndarray:
    """Load a photographed or scanned chart as an RGB pixel array.

    Args:
        image_path: PNG/JPEG/TIFF image, or a PDF scan (first page is used)

    Returns:
        uint8 array of shape (height, width, 3)

    Raises:
        FileNotFoundError: If the file doesn't exist
        RuntimeError: If the file cannot be decoded
    """
    path = Path(image_path)
    if not path.exists():
        raise FileNotFoundError(f"Image not found: {image_path}")

    if path.suffix.lower() == ".pdf":
        logger.info(f"Rasterizing PDF scan at {SCAN_DPI} DPI: {image_path}")
        return rasterize_pdf_page(str(path), SCAN_DPI)

    try:
        with Image.open(path) as img:
            return np.asarray(img.convert("RGB")).copy()
    except (UnidentifiedImageError, OSError) as e:
        raise RuntimeError(f"Failed to read image {image_path}: {e}") from e


def sample_with_transform(
    pixels: np.ndarray,
    expected_count: int,
    layout: CardLayout,
    transform: Transform,
) -> list[ColorSample]:
    """Sample swatch centers mapped through a marker-derived transform.

    Points landing outside the image get the placeholder color with low
    confidence instead of aborting the batch.
    """
    samples: list[ColorSample] = []
    for grid_index in swatch_grid_indices(layout)[:expected_count]:
        card_x, card_y = grid_cell_center(layout, grid_index)
        point = apply_transform(transform, card_x, card_y)

        if in_bounds(pixels, point.x, point.y):
            color = sample_color(pixels, point.x, point.y, TRANSFORM_SAMPLE_RADIUS)
            samples.append(ColorSample(color=color, position=point, confidence=CONFIDENCE_MARKERS))
        else:
            logger.debug(f"Grid cell {grid_index} maps outside image at ({point.x:.1f}, {point.y:.1f})")
            samples.append(
                ColorSample(color=PLACEHOLDER_COLOR, position=point, confidence=CONFIDENCE_OUT_OF_BOUNDS)
            )
    return samples


def sample_grid_fallback(
    pixels: np.ndarray,
    expected_count: int,
    layout: CardLayout,
) -> list[ColorSample]:
    """Sample cell centers assuming the chart fills the image.

    The chart is assumed to span the image minus
    ``GRID_FALLBACK_MARGIN_FRACTION`` on each side, divided evenly into
    ``cols x rows`` cells. Marker cells are skipped using the layout's own
    excluded indices so swatch indices line up with the transform path.
    """
    height, width = pixels.shape[:2]
    offset_x = width * GRID_FALLBACK_MARGIN_FRACTION
    offset_y = height * GRID_FALLBACK_MARGIN_FRACTION
    cell_width = width * (1 - 2 * GRID_FALLBACK_MARGIN_FRACTION) / layout.swatch_grid.cols
    cell_height = height * (1 - 2 * GRID_FALLBACK_MARGIN_FRACTION) / layout.swatch_grid.rows

    samples: list[ColorSample] = []
    for grid_index in swatch_grid_indices(layout)[:expected_count]:
        row, col = divmod(grid_index, layout.swatch_grid.cols)
        point = Point(x=offset_x + (col + 0.5) * cell_width, y=offset_y + (row + 0.5) * cell_height)

        if in_bounds(pixels, point.x, point.y):
            color = sample_color(pixels, point.x, point.y, GRID_SAMPLE_RADIUS)
            samples.append(ColorSample(color=color, position=point, confidence=CONFIDENCE_GRID))
        else:
            samples.append(
                ColorSample(color=PLACEHOLDER_COLOR, position=point, confidence=CONFIDENCE_OUT_OF_BOUNDS)
            )
    return samples


def analyze_chart(
    pixels: np.ndarray,
    expected_colors: list[str],
    layout: CardLayout,
    detector: Detector | None = None,
    *,
    ready_timeout: float = DETECTOR_READY_TIMEOUT_S,
) -> AnalysisResult:
    """Extract one color sample per expected swatch.

    Args:
        pixels: uint8 image of the printed chart, (H, W) grayscale or
            (H, W, 3|4) RGB(A); grayscale samples come back as neutral grays
        expected_colors: Chart colors in swatch-index order
        layout: Layout the chart was printed with
        detector: Marker detector; None skips straight to grid sampling
        ready_timeout: Seconds to wait for the detector to become ready

    Returns:
        AnalysisResult with at most ``len(expected_colors)`` samples

    Raises:
        DetectorUnavailableError: If the detector is not ready within ready_timeout
    """
    detected: list[DetectedMarker] = []
    if detector is not None:
        wait_until_ready(detector, ready_timeout)
        detected = detector.detect(pixels)
        logger.info(f"Detected {len(detected)} markers: ids {sorted(m.id for m in detected)}")

    # Stray ids that are not part of this layout don't count towards the threshold
    matched = len(match_markers(detected, layout))
    transform: Transform | None = None
    if matched >= MIN_MARKERS_FOR_TRANSFORM:
        transform = estimate_transform(detected, layout)

    if transform is not None:
        samples = sample_with_transform(pixels, len(expected_colors), layout, transform)
        residual = reprojection_error(transform, detected, layout)
        logger.info(f"Sampled {len(samples)} swatches through marker transform (residual {residual:.2f}px)")
        return AnalysisResult(
            samples=samples,
            detected_markers=detected,
            transform=transform,
            method="markers",
            marker_residual_px=residual,
        )

    logger.warning(
        f"Found {matched} usable markers (need {MIN_MARKERS_FOR_TRANSFORM}); "
        "falling back to grid sampling"
    )
    samples = sample_grid_fallback(pixels, len(expected_colors), layout)
    return AnalysisResult(
        samples=samples,
        detected_markers=detected,
        transform=IDENTITY_TRANSFORM,
        method="grid",
    )


class AnalysisSession:
    """Holds the latest analysis result and discards stale ones.

    Each analysis takes a token from ``begin``. Starting a new analysis
    (e.g. for a newly uploaded photo) invalidates earlier tokens, so a slow
    earlier run finishing late cannot overwrite the newer result.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = 0
        self._result: AnalysisResult | None = None

    @property
    def result(self) -> AnalysisResult | None:
        """Most recently published result."""
        with self._lock:
            return self._result

    def begin(self) -> int:
        """Start a new analysis, invalidating any in flight, and return its token."""
        with self._lock:
            self._generation += 1
            self._result = None
            return self._generation

    def publish(self, token: int, result: AnalysisResult) -> bool:
        """Store a result if its analysis is still current.

        Returns:
            True if stored, False if discarded as stale
        """
        with self._lock:
            if token != self._generation:
                logger.info(f"Discarding stale analysis result (token {token}, current {self._generation})")
                return False
            self._result = result
            return True

    def run(
        self,
        pixels: np.ndarray,
        expected_colors: list[str],
        layout: CardLayout,
        detector: Detector | None = None,
    ) -> AnalysisResult | None:
        """Analyze and publish in one step.

        Returns:
            The result if it was published, None if a newer analysis started meanwhile
        """
        token = self.begin()
        result = analyze_chart(pixels, expected_colors, layout, detector)
        return result if self.publish(token, result) else None
