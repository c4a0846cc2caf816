"""Similarity transform recovery from detected fiducial markers.

Maps card-space millimeters to image-space pixels:

    image = translation + scale * R(rotation) @ card

Two marker correspondences fix all four degrees of freedom. Perspective
(keystone) distortion is not modelled; a photo taken at an angle degrades
accuracy in proportion to the skew.
"""

import logging
import math
from collections.abc import Iterable

from cardcal.config import DEGENERATE_DISTANCE
from cardcal.validation import (
    IDENTITY_TRANSFORM,
    CardLayout,
    DetectedMarker,
    MarkerPosition,
    Point,
    Transform,
)

logger = logging.getLogger(__name__)

# Top edge of the card: known orientation, longest marker baseline
PREFERRED_REFERENCE_PAIR = (0, 1)


def marker_center(marker: DetectedMarker) -> Point:
    """Mean of a detected marker's four corners."""
    xs = [c.x for c in marker.corners]
    ys = [c.y for c in marker.corners]
    return Point(x=sum(xs) / len(xs), y=sum(ys) / len(ys))


def expected_marker_center(position: MarkerPosition) -> Point:
    """Center of a marker cell in card-space millimeters."""
    return Point(x=position.x + position.size / 2, y=position.y + position.size / 2)


def match_markers(
    detected: Iterable[DetectedMarker], layout: CardLayout
) -> dict[int, tuple[Point, Point]]:
    """Pair detected markers with layout markers by id.

    Returns:
        ``{id: (expected_center_mm, detected_center_px)}``. If a detector
        reports an id twice, the first report wins.
    """
    expected = {m.id: m for m in layout.marker_positions}
    matches: dict[int, tuple[Point, Point]] = {}
    for marker in detected:
        if marker.id in expected and marker.id not in matches:
            matches[marker.id] = (expected_marker_center(expected[marker.id]), marker_center(marker))
    return matches


def choose_reference_pair(ids: Iterable[int]) -> tuple[int, int] | None:
    """Pick the two marker ids to solve from.

    Prefers ids 0 and 1 (top edge); otherwise the two lowest ids available.
    """
    available = sorted(set(ids))
    if len(available) < 2:
        return None
    first, second = PREFERRED_REFERENCE_PAIR
    if first in available and second in available:
        return first, second
    return available[0], available[1]


def _normalize_angle(angle: float) -> float:
    """Wrap an angle to (-pi, pi]."""
    wrapped = math.atan2(math.sin(angle), math.cos(angle))
    return math.pi if wrapped == -math.pi else wrapped


def estimate_transform(detected: list[DetectedMarker], layout: CardLayout) -> Transform | None:
    """Solve the card → image similarity transform.

    Args:
        detected: Markers reported by the detector
        layout: Layout giving each marker's expected card-space position

    Returns:
        The transform, or None when fewer than two distinct ids match the
        layout or the reference markers coincide in either space.
    """
    matches = match_markers(detected, layout)
    pair = choose_reference_pair(matches)
    if pair is None:
        logger.info(f"Need 2 matched markers to solve transform, have {len(matches)}")
        return None

    (exp_a, det_a), (exp_b, det_b) = matches[pair[0]], matches[pair[1]]
    exp_dx, exp_dy = exp_b.x - exp_a.x, exp_b.y - exp_a.y
    det_dx, det_dy = det_b.x - det_a.x, det_b.y - det_a.y
    expected_distance = math.hypot(exp_dx, exp_dy)
    detected_distance = math.hypot(det_dx, det_dy)

    if expected_distance < DEGENERATE_DISTANCE or detected_distance < DEGENERATE_DISTANCE:
        logger.warning(f"Reference markers {pair} coincide; cannot solve transform")
        return None

    rotation = _normalize_angle(math.atan2(det_dy, det_dx) - math.atan2(exp_dy, exp_dx))
    scale = detected_distance / expected_distance

    # Chosen so the reference marker maps exactly onto its detected center
    cos_r, sin_r = math.cos(rotation), math.sin(rotation)
    tx = det_a.x - scale * (cos_r * exp_a.x - sin_r * exp_a.y)
    ty = det_a.y - scale * (sin_r * exp_a.x + cos_r * exp_a.y)

    transform = Transform(rotation=rotation, scale=scale, translation=Point(x=tx, y=ty))
    logger.info(
        f"Solved transform from markers {pair}: rotation={math.degrees(rotation):.2f}deg, "
        f"scale={scale:.3f}px/mm, translation=({tx:.1f}, {ty:.1f})"
    )
    return transform


def solve_transform(detected: list[DetectedMarker], layout: CardLayout) -> Transform:
    """Solve the transform, falling back to identity when it cannot be solved.

    The identity result (rotation 0, scale 1, translation 0) signals that
    callers should use grid-based sampling instead.
    """
    transform = estimate_transform(detected, layout)
    return transform if transform is not None else IDENTITY_TRANSFORM


def apply_transform(transform: Transform, x_mm: float, y_mm: float) -> Point:
    """Map a card-space point (mm) to image space (px)."""
    cos_r, sin_r = math.cos(transform.rotation), math.sin(transform.rotation)
    s = transform.scale
    return Point(
        x=transform.translation.x + s * (cos_r * x_mm - sin_r * y_mm),
        y=transform.translation.y + s * (sin_r * x_mm + cos_r * y_mm),
    )


def invert_transform(transform: Transform, x_px: float, y_px: float) -> Point:
    """Map an image-space point (px) back to card space (mm)."""
    dx = (x_px - transform.translation.x) / transform.scale
    dy = (y_px - transform.translation.y) / transform.scale
    cos_r, sin_r = math.cos(transform.rotation), math.sin(transform.rotation)
    return Point(x=cos_r * dx + sin_r * dy, y=-sin_r * dx + cos_r * dy)


def reprojection_error(
    transform: Transform, detected: list[DetectedMarker], layout: CardLayout
) -> float | None:
    """RMS distance (px) between detected and projected marker centers.

    Covers every matched marker, so markers beyond the reference pair act as
    a check on how well a similarity transform explains the photo.

    Returns:
        RMS error in pixels, or None if no markers match
    """
    matches = match_markers(detected, layout)
    if not matches:
        return None
    squared = []
    for expected, observed in matches.values():
        projected = apply_transform(transform, expected.x, expected.y)
        squared.append((projected.x - observed.x) ** 2 + (projected.y - observed.y) ** 2)
    return math.sqrt(sum(squared) / len(squared))
