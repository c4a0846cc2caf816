"""Schema validation using Pydantic models.

This module defines:
- Geometry models for the card layout (mm, top-left origin)
- Detection and analysis models (image-space pixels)
- Comparison and color profile models
- Persisted settings and export document schemas

JSON field names use camelCase aliases (``useArucoMarkers``, ``colorChart``,
``swatchGrid``) so documents written by earlier versions of the tool load
unchanged. Python code uses the snake_case attribute names.
"""

import math
from datetime import datetime
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from cardcal.colors import normalize_hex
from cardcal.config import (
    ADJUSTMENT_MAX,
    ADJUSTMENT_MIN,
    DEFAULT_COLOR_CHART,
    DEFAULT_MARGIN_MM,
    DEFAULT_USE_MARKERS,
    MAX_MARGIN_MM,
    MIN_MARGIN_MM,
    SCHEMA_VERSION,
    SETTINGS_VERSION,
)

if TYPE_CHECKING:
    from cardcal.comparison import MatchQuality


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenModel(CamelModel):
    """Immutable base model for geometry shared across analysis runs."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def _normalize_chart(colors: list[str]) -> list[str]:
    return [normalize_hex(c) for c in colors]


# ---------------------------------------------------------------------------
# Layout geometry (card-space millimeters)
# ---------------------------------------------------------------------------


class Rect(FrozenModel):
    """Rectangle in millimeters (top-left origin)."""

    x: float = Field(description="X coordinate from top-left (mm)")
    y: float = Field(description="Y coordinate from top-left (mm)")
    width: float = Field(ge=0, description="Width in millimeters")
    height: float = Field(ge=0, description="Height in millimeters")


class SwatchGrid(FrozenModel):
    """Uniform grid of square swatch cells."""

    cols: int = Field(gt=0)
    rows: int = Field(gt=0)
    swatch_width: float = Field(ge=0, description="Cell width in millimeters")
    swatch_height: float = Field(ge=0, description="Cell height in millimeters")
    gap: float = Field(ge=0, description="Spacing between cells in millimeters")


class MarkerPosition(FrozenModel):
    """Placement of one fiducial marker on the card."""

    id: int = Field(ge=0, description="Marker dictionary id")
    grid_index: int = Field(ge=0, description="Row-major grid cell occupied by the marker")
    x: float
    y: float
    size: float = Field(ge=0, description="Side length in millimeters (equals swatch size)")


class CardLayout(FrozenModel):
    """Physical chart geometry for one margin / marker configuration."""

    card_width: float = Field(gt=0)
    card_height: float = Field(gt=0)
    margin: float = Field(ge=0)
    swatch_grid: SwatchGrid
    marker_positions: tuple[MarkerPosition, ...] = ()
    excluded_indices: tuple[int, ...] = ()

    @model_validator(mode="after")
    def check_invariants(self) -> "CardLayout":
        """Excluded cells must be exactly the marker cells, and cells must be square."""
        marker_cells = sorted(m.grid_index for m in self.marker_positions)
        if marker_cells != sorted(self.excluded_indices):
            raise ValueError(
                f"excluded_indices {list(self.excluded_indices)} do not match "
                f"marker grid indices {marker_cells}"
            )
        if self.swatch_grid.swatch_width != self.swatch_grid.swatch_height:
            raise ValueError("Swatch cells must be square")
        total = self.swatch_grid.cols * self.swatch_grid.rows
        if any(i >= total for i in self.excluded_indices):
            raise ValueError(f"Excluded index outside the {total}-cell grid")
        return self


# ---------------------------------------------------------------------------
# Detection and analysis (image-space pixels)
# ---------------------------------------------------------------------------


class Point(FrozenModel):
    """2D point."""

    x: float
    y: float


class DetectedMarker(FrozenModel):
    """Marker reported by a detector.

    Corners are ordered clockwise starting at the marker's own top-left
    corner, the OpenCV ArUco convention.
    """

    id: int = Field(ge=0)
    corners: tuple[Point, ...] = Field(min_length=4, max_length=4)


class Transform(FrozenModel):
    """Similarity transform from card-space mm to image-space pixels.

    ``image = translation + scale * rotate(card, rotation)``
    """

    rotation: float = Field(description="Rotation in radians")
    scale: float = Field(gt=0, description="Pixels per millimeter")
    translation: Point

    @field_validator("rotation", "scale")
    @classmethod
    def check_finite(cls, v: float) -> float:
        """Reject NaN and infinities."""
        if not math.isfinite(v):
            raise ValueError(f"Transform component must be finite, got {v}")
        return v


IDENTITY_TRANSFORM = Transform(rotation=0.0, scale=1.0, translation=Point(x=0.0, y=0.0))


class ColorSample(CamelModel):
    """Color extracted for one swatch."""

    color: str
    position: Point
    confidence: float = Field(ge=0, le=1, description="Heuristic trust in the sampled color")

    @field_validator("color")
    @classmethod
    def check_color(cls, v: str) -> str:
        """Normalize to upper-case #RRGGBB."""
        return normalize_hex(v)


class AnalysisResult(CamelModel):
    """Output of one chart analysis pass."""

    samples: list[ColorSample]
    detected_markers: list[DetectedMarker]
    transform: Transform
    method: Literal["markers", "grid"] = Field(description="Sampling path used")
    marker_residual_px: float | None = Field(
        default=None, description="RMS reprojection error over matched markers"
    )


# ---------------------------------------------------------------------------
# Comparison and profiles
# ---------------------------------------------------------------------------


class ChannelDifference(CamelModel):
    """Signed per-channel difference (scanned - expected)."""

    r: int
    g: int
    b: int


class ColorComparison(CamelModel):
    """Expected versus scanned color for one swatch."""

    original: str
    scanned: str
    difference: ChannelDifference

    @field_validator("original", "scanned")
    @classmethod
    def check_color(cls, v: str) -> str:
        """Normalize to upper-case #RRGGBB."""
        return normalize_hex(v)

    @property
    def distance(self) -> float:
        """Euclidean distance in RGB difference space."""
        d = self.difference
        return math.sqrt(d.r**2 + d.g**2 + d.b**2)

    @property
    def quality(self) -> "MatchQuality":
        """Match class of this swatch under the default thresholds."""
        from cardcal.comparison import classify_match  # comparison imports this module

        return classify_match(self.distance)


class Adjustments(CamelModel):
    """Color correction applied to future prints."""

    brightness: int = Field(default=0, ge=ADJUSTMENT_MIN, le=ADJUSTMENT_MAX)
    contrast: int = Field(default=0, ge=ADJUSTMENT_MIN, le=ADJUSTMENT_MAX)
    saturation: int = Field(default=0, ge=ADJUSTMENT_MIN, le=ADJUSTMENT_MAX)
    red: int = Field(default=0, ge=ADJUSTMENT_MIN, le=ADJUSTMENT_MAX)
    green: int = Field(default=0, ge=ADJUSTMENT_MIN, le=ADJUSTMENT_MAX)
    blue: int = Field(default=0, ge=ADJUSTMENT_MIN, le=ADJUSTMENT_MAX)


class ColorProfile(CamelModel):
    """Saved correction profile for one printer."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    device: str = Field(min_length=1)
    created: str = Field(description="ISO 8601 creation date")
    adjustments: Adjustments = Field(default_factory=Adjustments)


# ---------------------------------------------------------------------------
# Persisted settings and export documents
# ---------------------------------------------------------------------------


class Settings(CamelModel):
    """Active chart configuration, persisted under the settings key."""

    version: int = SETTINGS_VERSION
    use_aruco_markers: bool = DEFAULT_USE_MARKERS
    margin: float = Field(default=DEFAULT_MARGIN_MM, ge=MIN_MARGIN_MM, le=MAX_MARGIN_MM)
    color_chart: list[str] = Field(default_factory=lambda: list(DEFAULT_COLOR_CHART))

    @field_validator("color_chart")
    @classmethod
    def check_colors(cls, v: list[str]) -> list[str]:
        """Normalize every chart entry."""
        return _normalize_chart(v)


class ChartSettings(CamelModel):
    """Layout-affecting subset of the settings, embedded in chart exports."""

    use_aruco_markers: bool
    margin: float = Field(ge=MIN_MARGIN_MM, le=MAX_MARGIN_MM)


class CardDimensions(CamelModel):
    """Card stock size in millimeters."""

    width: float = Field(gt=0)
    height: float = Field(gt=0)


class ChartMetadata(CamelModel):
    """Geometry recorded alongside an exported chart."""

    card_dimensions: CardDimensions
    layout: CardLayout


class ChartExport(CamelModel):
    """Exported test-print configuration."""

    version: str = SCHEMA_VERSION
    name: str
    created: str = Field(description="ISO 8601 timestamp")
    settings: ChartSettings
    color_chart: list[str]
    metadata: ChartMetadata

    @field_validator("color_chart")
    @classmethod
    def check_colors(cls, v: list[str]) -> list[str]:
        """Normalize every chart entry."""
        return _normalize_chart(v)

    @field_validator("created")
    @classmethod
    def check_timestamp_format(cls, v: str) -> str:
        """Validate timestamp is valid ISO 8601 format."""
        try:
            datetime.fromisoformat(v)
        except ValueError as e:
            raise ValueError(f"Invalid ISO 8601 timestamp: {v}") from e
        return v


class ProfileExport(CamelModel):
    """Exported set of color profiles."""

    version: str = SCHEMA_VERSION
    exported: str = Field(description="ISO 8601 timestamp")
    profiles: list[ColorProfile]
