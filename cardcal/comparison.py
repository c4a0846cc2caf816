"""Expected-versus-scanned color comparison and correction profiles.

This module handles:
- Per-swatch signed channel differences and match classification
- Aggregating differences into suggested profile adjustments
- Applying a profile's adjustments to a color
"""

import colorsys
import logging
import time
from datetime import date
from enum import Enum
from typing import TypedDict

from cardcal.colors import hex_to_rgb, rgb_to_hex, round_half_up
from cardcal.config import (
    ADJUSTMENT_MAX,
    ADJUSTMENT_MIN,
    BRIGHTNESS_DAMPING,
    FAIR_THRESHOLD,
    GOOD_THRESHOLD,
)
from cardcal.validation import (
    Adjustments,
    ChannelDifference,
    ColorComparison,
    ColorProfile,
    ColorSample,
)

logger = logging.getLogger(__name__)


class MatchQuality(str, Enum):
    """How closely a printed swatch matches its expected color."""

    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class ComparisonSummary(TypedDict):
    """Aggregate match statistics for one analysis."""

    total: int
    good: int
    fair: int
    poor: int
    mean_distance: float
    acceptable_rate: float  # Share of swatches better than the fair threshold


def color_difference(expected: str, scanned: str) -> ChannelDifference:
    """Signed per-channel difference, scanned minus expected."""
    er, eg, eb = hex_to_rgb(expected)
    sr, sg, sb = hex_to_rgb(scanned)
    return ChannelDifference(r=sr - er, g=sg - eg, b=sb - eb)


def color_distance(difference: ChannelDifference) -> float:
    """Euclidean distance in RGB difference space.

    Note:
        A simplified stand-in for CIE delta-E, not a perceptual metric.
    """
    return (difference.r**2 + difference.g**2 + difference.b**2) ** 0.5


def classify_match(
    distance: float,
    good_threshold: float = GOOD_THRESHOLD,
    fair_threshold: float = FAIR_THRESHOLD,
) -> MatchQuality:
    """Classify a distance: below good_threshold is good, below fair_threshold fair, else poor."""
    if distance < good_threshold:
        return MatchQuality.GOOD
    if distance < fair_threshold:
        return MatchQuality.FAIR
    return MatchQuality.POOR


def compare(expected: list[str], samples: list[ColorSample]) -> list[ColorComparison]:
    """Compare each expected color with its sample.

    Args:
        expected: Chart colors in swatch-index order
        samples: Analyzer samples in the same order

    Returns:
        One comparison per swatch present in both lists
    """
    if len(expected) != len(samples):
        logger.warning(f"Comparing {len(expected)} expected colors with {len(samples)} samples")
    return [
        ColorComparison(
            original=original,
            scanned=sample.color,
            difference=color_difference(original, sample.color),
        )
        for original, sample in zip(expected, samples)
    ]


def summarize(comparisons: list[ColorComparison]) -> ComparisonSummary:
    """Count matches per quality class."""
    counts = {quality: 0 for quality in MatchQuality}
    distances = [c.distance for c in comparisons]
    for distance in distances:
        counts[classify_match(distance)] += 1

    total = len(comparisons)
    return ComparisonSummary(
        total=total,
        good=counts[MatchQuality.GOOD],
        fair=counts[MatchQuality.FAIR],
        poor=counts[MatchQuality.POOR],
        mean_distance=sum(distances) / total if total else 0.0,
        acceptable_rate=(counts[MatchQuality.GOOD] + counts[MatchQuality.FAIR]) / total if total else 0.0,
    )


def _clamp_adjustment(value: float) -> int:
    return max(ADJUSTMENT_MIN, min(ADJUSTMENT_MAX, round_half_up(value)))


def derive_adjustments(comparisons: list[ColorComparison]) -> Adjustments:
    """Suggest channel and brightness corrections from comparisons.

    Each channel correction is the negated mean difference: a printer that
    over-produces red (positive mean) gets a negative red adjustment, since
    adjustments are added to future output. Brightness is the negated mean
    of the three channel means divided by ``BRIGHTNESS_DAMPING``. Contrast
    and saturation have no per-swatch signal and stay at 0.

    Returns:
        Adjustments rounded to integers and clamped to the adjustment range;
        all zero when there are no comparisons
    """
    if not comparisons:
        return Adjustments()

    n = len(comparisons)
    mean_r = sum(c.difference.r for c in comparisons) / n
    mean_g = sum(c.difference.g for c in comparisons) / n
    mean_b = sum(c.difference.b for c in comparisons) / n
    brightness = -((mean_r + mean_g + mean_b) / 3) / BRIGHTNESS_DAMPING

    adjustments = Adjustments(
        brightness=_clamp_adjustment(brightness),
        contrast=0,
        saturation=0,
        red=_clamp_adjustment(-mean_r),
        green=_clamp_adjustment(-mean_g),
        blue=_clamp_adjustment(-mean_b),
    )
    logger.info(f"Derived adjustments from {n} swatches: {adjustments.model_dump()}")
    return adjustments


def new_profile(name: str, device: str, adjustments: Adjustments) -> ColorProfile:
    """Profile with a fresh id and today's date."""
    return ColorProfile(
        id=str(time.time_ns()),
        name=name,
        device=device,
        created=date.today().isoformat(),
        adjustments=adjustments,
    )


def create_profile(comparisons: list[ColorComparison], name: str, device: str) -> ColorProfile:
    """Build a new profile from the adjustments suggested by comparisons."""
    return new_profile(name, device, derive_adjustments(comparisons))


def apply_adjustments(color: str, adjustments: Adjustments) -> str:
    """Apply a profile's adjustments to a color.

    Order: brightness, contrast, saturation, then per-channel offsets.
    Brightness, contrast and saturation are percentages (-50 = 0.5x,
    +50 = 1.5x); channel offsets are added directly to 0-255 values.
    """
    r, g, b = (float(v) for v in hex_to_rgb(color))

    if adjustments.brightness:
        factor = 1 + adjustments.brightness / 100
        r, g, b = r * factor, g * factor, b * factor

    if adjustments.contrast:
        factor = 1 + adjustments.contrast / 100
        r, g, b = ((v - 128) * factor + 128 for v in (r, g, b))

    if adjustments.saturation:
        r, g, b = (min(255.0, max(0.0, v)) for v in (r, g, b))
        h, lightness, s = colorsys.rgb_to_hls(r / 255, g / 255, b / 255)
        s = min(1.0, s * (1 + adjustments.saturation / 100))
        r, g, b = (v * 255 for v in colorsys.hls_to_rgb(h, lightness, s))

    r += adjustments.red
    g += adjustments.green
    b += adjustments.blue
    return rgb_to_hex(r, g, b)
