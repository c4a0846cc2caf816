"""Hex color parsing and formatting.

Colors travel through the system as ``#RRGGBB`` strings (chart entries,
samples, comparisons). These helpers are the only place that parses or
formats them.
"""

import math
import re

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")

RGB = tuple[int, int, int]


def normalize_hex(color: str) -> str:
    """Validate a hex color and return it as upper-case ``#RRGGBB``.

    Args:
        color: Color string, with or without leading ``#``

    Returns:
        Normalized color string

    Raises:
        ValueError: If the string is not a 6-digit hex color
    """
    match = HEX_COLOR_RE.match(color.strip())
    if not match:
        raise ValueError(f"Invalid hex color: {color!r}")
    return "#" + match.group(1).upper()


def hex_to_rgb(color: str) -> RGB:
    """Convert ``#RRGGBB`` to an (r, g, b) tuple of ints."""
    value = normalize_hex(color)
    return int(value[1:3], 16), int(value[3:5], 16), int(value[5:7], 16)


def clamp_channel(value: float) -> int:
    """Round half-up and clamp a channel value to [0, 255]."""
    return max(0, min(255, round_half_up(value)))


def rgb_to_hex(r: float, g: float, b: float) -> str:
    """Convert channel values to ``#RRGGBB``, rounding and clamping each."""
    return "#{:02X}{:02X}{:02X}".format(clamp_channel(r), clamp_channel(g), clamp_channel(b))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going towards +infinity.

    Note:
        Python's ``round`` uses banker's rounding (``round(2.5) == 2``),
        which would make 2.5 and 3.5 round in different directions.
    """
    return math.floor(value + 0.5)
