"""Card layout engine: swatch grid and marker placement in millimeters.

This module is the single source of truth for chart geometry. The PDF/SVG
renderers, the raster preview and the chart analyzer all place swatches and
markers through these functions rather than re-deriving grid math.

Grid cells are addressed two ways:
- grid index: row-major index over all ``rows * cols`` cells, markers included
- swatch index: index into the color chart, skipping marker cells
"""

import logging
from functools import lru_cache

from cardcal.config import (
    CARD_HEIGHT_MM,
    CARD_WIDTH_MM,
    DEFAULT_MARGIN_MM,
    GRID_COLS,
    GRID_GAP_MM,
    GRID_ROWS,
)
from cardcal.validation import CardLayout, MarkerPosition, Rect, SwatchGrid

logger = logging.getLogger(__name__)


def corner_grid_indices(cols: int, rows: int) -> tuple[int, int, int, int]:
    """Grid indices of the top-left, top-right, bottom-left and bottom-right cells."""
    return 0, cols - 1, (rows - 1) * cols, rows * cols - 1


@lru_cache(maxsize=64)
def calculate_layout(
    use_markers: bool = True,
    margin: float = DEFAULT_MARGIN_MM,
    *,
    cols: int = GRID_COLS,
    rows: int = GRID_ROWS,
    gap: float = GRID_GAP_MM,
    card_width: float = CARD_WIDTH_MM,
    card_height: float = CARD_HEIGHT_MM,
) -> CardLayout:
    """Compute swatch and marker geometry for a card.

    Args:
        use_markers: Reserve the four corner cells for fiducial markers
        margin: Distance from card edge to grid origin (mm)
        cols: Grid columns
        rows: Grid rows
        gap: Spacing between cells (mm)
        card_width: Card width (mm), CR80 by default
        card_height: Card height (mm), CR80 by default

    Returns:
        Frozen CardLayout. Equal inputs return the same object.

    Note:
        Cells are always square: the side is the smaller of the width- and
        height-derived maxima. A margin too large for the card yields a
        swatch size of 0 rather than a negative size; callers should treat
        such a layout as unprintable (see ``is_printable``).
    """
    if cols < 2 or rows < 2:
        raise ValueError(f"Grid must be at least 2x2, got {cols}x{rows}")

    available_width = card_width - 2 * margin - gap * (cols - 1)
    available_height = card_height - 2 * margin - gap * (rows - 1)
    swatch_size = max(0.0, min(available_width / cols, available_height / rows))

    if swatch_size == 0:
        logger.warning(f"Margin {margin}mm leaves no room for swatches on a {card_width}x{card_height}mm card")

    swatch_grid = SwatchGrid(
        cols=cols,
        rows=rows,
        swatch_width=swatch_size,
        swatch_height=swatch_size,
        gap=gap,
    )

    markers: list[MarkerPosition] = []
    if use_markers:
        # Marker ids follow corner order: 0=TL, 1=TR, 2=BL, 3=BR
        for marker_id, grid_index in enumerate(corner_grid_indices(cols, rows)):
            x, y = _cell_origin(margin, swatch_grid, grid_index)
            markers.append(
                MarkerPosition(id=marker_id, grid_index=grid_index, x=x, y=y, size=swatch_size)
            )

    return CardLayout(
        card_width=card_width,
        card_height=card_height,
        margin=margin,
        swatch_grid=swatch_grid,
        marker_positions=tuple(markers),
        excluded_indices=tuple(m.grid_index for m in markers),
    )


def _cell_origin(margin: float, grid: SwatchGrid, grid_index: int) -> tuple[float, float]:
    row, col = divmod(grid_index, grid.cols)
    x = margin + col * (grid.swatch_width + grid.gap)
    y = margin + row * (grid.swatch_height + grid.gap)
    return x, y


def total_cells(layout: CardLayout) -> int:
    """Number of cells in the full grid, markers included."""
    return layout.swatch_grid.cols * layout.swatch_grid.rows


def get_grid_position(layout: CardLayout, grid_index: int) -> Rect:
    """Rectangle of any grid cell, marker or swatch.

    Raises:
        IndexError: If grid_index is outside the grid
    """
    if not 0 <= grid_index < total_cells(layout):
        raise IndexError(f"Grid index {grid_index} outside {total_cells(layout)}-cell grid")
    x, y = _cell_origin(layout.margin, layout.swatch_grid, grid_index)
    return Rect(
        x=x,
        y=y,
        width=layout.swatch_grid.swatch_width,
        height=layout.swatch_grid.swatch_height,
    )


def swatch_grid_indices(layout: CardLayout) -> list[int]:
    """Grid indices available for colors, in swatch-index order."""
    excluded = set(layout.excluded_indices)
    return [i for i in range(total_cells(layout)) if i not in excluded]


def swatch_capacity(layout: CardLayout) -> int:
    """Maximum number of colors the layout can address."""
    return total_cells(layout) - len(layout.excluded_indices)


def get_swatch_position(layout: CardLayout, swatch_index: int) -> Rect | None:
    """Rectangle of the cell holding the given color index.

    Returns:
        The cell rectangle, or None when swatch_index is past the layout's
        capacity. Callers skip such colors silently.
    """
    if swatch_index < 0:
        return None
    indices = swatch_grid_indices(layout)
    if swatch_index >= len(indices):
        return None
    return get_grid_position(layout, indices[swatch_index])


def grid_cell_center(layout: CardLayout, grid_index: int) -> tuple[float, float]:
    """Center of a grid cell in card-space millimeters."""
    rect = get_grid_position(layout, grid_index)
    return rect.x + rect.width / 2, rect.y + rect.height / 2


def is_printable(layout: CardLayout) -> bool:
    """True when swatches have a positive size."""
    return layout.swatch_grid.swatch_width > 0


def fit_colors(layout: CardLayout, colors: list[str]) -> list[str]:
    """Truncate a color chart to the colors the layout can address.

    Extra colors are dropped with a warning, never an error.
    """
    capacity = swatch_capacity(layout)
    if len(colors) > capacity:
        logger.warning(
            f"Chart has {len(colors)} colors but layout holds {capacity}; "
            f"ignoring the last {len(colors) - capacity}"
        )
        return list(colors[:capacity])
    return list(colors)
