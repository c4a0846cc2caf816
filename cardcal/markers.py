"""Fiducial marker codec.

Markers are ArUco symbols from OpenCV's ``DICT_4X4_50`` dictionary: a 4x4
payload surrounded by a one-cell black border, 6x6 cells in total. The
detector in ``cardcal.detection`` is built on the same dictionary, so the
two sides agree on:

- dictionary size: 50 distinguishable ids (the chart uses 0-3)
- corner order: clockwise from the marker's top-left corner
- minimum printed size: ``MIN_MARKER_SIZE_MM``
"""

import logging

import cv2
import numpy as np
from PIL import Image

from cardcal.validation import CardLayout

logger = logging.getLogger(__name__)

ARUCO_DICTIONARY = cv2.aruco.DICT_4X4_50
DICTIONARY_SIZE = 50
PAYLOAD_BITS = 4
BORDER_BITS = 1
MARKER_BITS = PAYLOAD_BITS + 2 * BORDER_BITS

# At 300 DPI a 4mm marker gives ~7.9px per cell, about the least the
# detector's per-cell sampling resolves reliably.
MIN_MARKER_SIZE_MM = 4.0


def get_dictionary() -> cv2.aruco.Dictionary:
    """Return the predefined ArUco dictionary shared by codec and detector."""
    return cv2.aruco.getPredefinedDictionary(ARUCO_DICTIONARY)


def encode(marker_id: int) -> np.ndarray:
    """Encode a marker id as a bit matrix.

    Args:
        marker_id: Dictionary id in ``[0, DICTIONARY_SIZE)``

    Returns:
        ``MARKER_BITS x MARKER_BITS`` uint8 array, 1 = black cell, border included

    Raises:
        ValueError: If marker_id is outside the dictionary
    """
    if not 0 <= marker_id < DICTIONARY_SIZE:
        raise ValueError(f"Marker id must be 0-{DICTIONARY_SIZE - 1}, got {marker_id}")

    # One pixel per cell: the generated image is exactly the bit pattern
    image = cv2.aruco.generateImageMarker(get_dictionary(), marker_id, MARKER_BITS, borderBits=BORDER_BITS)
    return (image < 128).astype(np.uint8)


def decode(bits: np.ndarray) -> tuple[int, int] | None:
    """Identify a sampled bit matrix.

    Args:
        bits: ``MARKER_BITS x MARKER_BITS`` array, nonzero = black

    Returns:
        ``(marker_id, rotation)`` where rotation is the number of clockwise
        quarter turns applied to the printed marker, or None if the matrix
        matches no dictionary entry.
    """
    bits = np.asarray(bits)
    if bits.shape != (MARKER_BITS, MARKER_BITS):
        raise ValueError(f"Expected {MARKER_BITS}x{MARKER_BITS} matrix, got {bits.shape}")
    sampled = (bits != 0).astype(np.uint8)

    for marker_id in range(DICTIONARY_SIZE):
        reference = encode(marker_id)
        for rotation in range(4):
            # np.rot90 with k=-r turns clockwise r times
            if np.array_equal(np.rot90(reference, k=-rotation), sampled):
                return marker_id, rotation
    return None


def marker_image(marker_id: int, side_px: int) -> Image.Image:
    """Render a marker as a grayscale Pillow image for raster output.

    Args:
        marker_id: Dictionary id
        side_px: Output side length in pixels

    Returns:
        Mode "L" image, black cells 0 and white cells 255
    """
    bits = encode(marker_id)
    cells = Image.fromarray(((1 - bits) * 255).astype(np.uint8))
    return cells.resize((side_px, side_px), Image.Resampling.NEAREST)


def check_marker_size(layout: CardLayout) -> bool:
    """Check that the layout's markers are large enough to decode.

    Returns:
        True if no markers are used or they meet ``MIN_MARKER_SIZE_MM``
    """
    if not layout.marker_positions:
        return True
    size = layout.marker_positions[0].size
    if size < MIN_MARKER_SIZE_MM:
        logger.warning(
            f"Markers are {size:.2f}mm, below the {MIN_MARKER_SIZE_MM}mm minimum; "
            "detection may fail and analysis will fall back to grid sampling"
        )
        return False
    return True
