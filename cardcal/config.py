"""Centralized configuration constants for the ID-card color calibrator."""

# DPI settings
SCAN_DPI = 600  # Rasterization DPI for PDF scans
PREVIEW_PX_PER_MM = 12  # Raster preview resolution (~305 DPI)

# Card stock (CR80)
CARD_WIDTH_MM = 85.6
CARD_HEIGHT_MM = 54.0

# Swatch grid
GRID_COLS = 10
GRID_ROWS = 7
GRID_GAP_MM = 1.0
DEFAULT_MARGIN_MM = 5.0
MIN_MARGIN_MM = 0.0
MAX_MARGIN_MM = 15.0
DEFAULT_USE_MARKERS = True

# Marker detection
MIN_MARKERS_FOR_TRANSFORM = 3  # One redundant marker beyond the two the solver needs
DETECTOR_READY_TIMEOUT_S = 10.0
DEGENERATE_DISTANCE = 1e-6  # Reference pair closer than this (mm or px) is unusable

# Sampling
TRANSFORM_SAMPLE_RADIUS = 5
GRID_SAMPLE_RADIUS = 3
GRID_FALLBACK_MARGIN_FRACTION = 0.058  # Chart assumed to fill the image minus ~5.8% per side
PLACEHOLDER_COLOR = "#E5E7EB"  # Reported for sample points outside the image
EMPTY_SAMPLE_COLOR = "#000000"
TRIM_FRACTION = 0.1  # Dropped from each end of the brightness-sorted neighborhood

# Confidence levels
CONFIDENCE_MARKERS = 0.9
CONFIDENCE_GRID = 0.6
CONFIDENCE_OUT_OF_BOUNDS = 0.1

# Comparison thresholds (Euclidean RGB distance)
GOOD_THRESHOLD = 10.0
FAIR_THRESHOLD = 25.0

# Profile derivation
BRIGHTNESS_DAMPING = 5.0
ADJUSTMENT_MIN = -50
ADJUSTMENT_MAX = 50

# Schema versions
SCHEMA_VERSION = "1.0"  # Chart and profile export files
SETTINGS_VERSION = 1

# Persistent store keys
SETTINGS_KEY = "printer-calibration-settings"
PROFILES_KEY = "color-profiles"
DEFAULT_STORE_PATH = "calibration_store.json"

# Default chart: primaries, grayscale ramp, skin tones, red shades
DEFAULT_COLOR_CHART = [
    "#000000", "#FF0000", "#00FF00", "#0000FF", "#FFFF00",
    "#FF00FF", "#00FFFF", "#FFFFFF", "#FFC0CB", "#A52A2A",
    "#222222", "#444444", "#666666", "#888888", "#AAAAAA",
    "#CCCCCC", "#DDDDDD", "#EEEEEE",
    "#8D5524", "#C68642", "#E0AC69", "#F1C27D", "#FFDBAC",
    "#F5F5DC", "#FFE0BD", "#FAD6A5", "#EAC086", "#D8A077",
    "#FFCCCC", "#FF9999", "#FF6666", "#FF3333", "#CC0000",
    "#990000", "#800000", "#660000", "#330000",
]
