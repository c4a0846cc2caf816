"""Neighborhood color sampling with outlier trimming."""

import math

import numpy as np

from cardcal.colors import rgb_to_hex
from cardcal.config import EMPTY_SAMPLE_COLOR, TRIM_FRACTION


def in_bounds(pixels: np.ndarray, x: float, y: float) -> bool:
    """True if (x, y) lies inside the image."""
    height, width = pixels.shape[:2]
    return 0 <= x < width and 0 <= y < height


def sample_color(pixels: np.ndarray, x: float, y: float, radius: int = 3) -> str:
    """Representative color of the square neighborhood around (x, y).

    Args:
        pixels: uint8 image array, (H, W) grayscale, (H, W, 3) RGB or
            (H, W, 4) RGBA
        x: Column of the neighborhood center (rounded half-up)
        y: Row of the neighborhood center (rounded half-up)
        radius: Half-width of the neighborhood; it spans ``2*radius + 1`` pixels

    Returns:
        ``#RRGGBB`` color. Pixels outside the image are skipped; if none
        remain the result is ``#000000``.

    Note:
        Pixels are sorted by channel sum and the darkest and brightest 10%
        are dropped before averaging. This keeps print speckle and edge
        halos in the mean while discarding isolated extremes such as a
        glare spot.
    """
    height, width = pixels.shape[:2]
    cx = math.floor(x + 0.5)
    cy = math.floor(y + 0.5)

    x0, x1 = max(cx - radius, 0), min(cx + radius + 1, width)
    y0, y1 = max(cy - radius, 0), min(cy + radius + 1, height)
    if x0 >= x1 or y0 >= y1:
        return EMPTY_SAMPLE_COLOR

    patch = pixels[y0:y1, x0:x1]
    if patch.ndim == 2:
        patch = np.repeat(patch[:, :, np.newaxis], 3, axis=2)
    region = patch[:, :, :3].reshape(-1, 3).astype(np.int64)
    count = len(region)

    order = np.argsort(region.sum(axis=1), kind="stable")
    start = math.floor(count * TRIM_FRACTION)
    end = math.floor(count * (1 - TRIM_FRACTION))
    kept = region[order[start:end]]
    if len(kept) == 0:
        kept = region

    r, g, b = kept.mean(axis=0)
    return rgb_to_hex(r, g, b)
