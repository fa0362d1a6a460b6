"""
DocRectify - Numeric Constants

Simple numeric constants with ZERO internal imports to avoid circular dependencies.
For application-level constants (strings, paths), use config.py.
"""

from typing import Final

# ============================================================================
# Numerical Floors
# ============================================================================

# Pivot / determinant magnitude below which a system is treated as singular
SINGULAR_EPSILON: Final[float] = 1e-10
# Gradient magnitudes below this are float noise from flat regions
GRADIENT_NOISE_FLOOR: Final[float] = 1e-6
# Cross products below this are treated as collinear when checking convexity
CONVEXITY_EPSILON: Final[float] = 1e-6
# Triangle area (relative to squared quad extent) below which corners are collinear
COLLINEAR_RELATIVE_AREA: Final[float] = 1e-6

# ============================================================================
# Quad Acceptance Gate
# ============================================================================

MIN_QUAD_AREA_RATIO: Final[float] = 0.10
MIN_QUAD_EDGE_RATIO: Final[float] = 0.10
MIN_QUAD_ANGLE_DEG: Final[float] = 30.0
MAX_QUAD_ANGLE_DEG: Final[float] = 150.0

# ============================================================================
# Preprocessing
# ============================================================================

GAUSSIAN_KERNEL_SUM: Final[int] = 273
CANNY_LOW_RATIO: Final[float] = 0.5
OTSU_DEFAULT_THRESHOLD: Final[int] = 128
HISTOGRAM_BINS: Final[int] = 256

# ============================================================================
# Detection Cascade
# ============================================================================

DEFAULT_DETECT_MAX_SIDE: Final[int] = 500
DEFAULT_RANSAC_ITERATIONS: Final[int] = 1200
HOUGH_THETA_STEPS: Final[int] = 180
HOUGH_NMS_RADIUS: Final[int] = 5
HOUGH_VOTE_FRACTION: Final[float] = 0.08
HOUGH_MAX_LINES_PER_FAMILY: Final[int] = 8

# ============================================================================
# Rectification & Enhancement
# ============================================================================

DEFAULT_MIN_OUTPUT_SIZE: Final[int] = 100
DEFAULT_PREVIEW_MIN_OUTPUT_SIZE: Final[int] = 50
DEFAULT_PREVIEW_MAX_SIDE: Final[int] = 500
BW_MIN_BLOCK_SIZE: Final[int] = 15
BW_THRESHOLD_OFFSET: Final[float] = 10.0
STRETCH_LOW_PERCENTILE: Final[float] = 0.01
STRETCH_HIGH_PERCENTILE: Final[float] = 0.99
COLOR_GAMMA: Final[float] = 0.85

# ============================================================================
# Live Preview
# ============================================================================

DEFAULT_SMOOTHING_FACTOR: Final[float] = 0.6
DEFAULT_STALE_AFTER_SECONDS: Final[float] = 1.5
DEFAULT_ASPECT_TOLERANCE: Final[float] = 0.05
DEFAULT_CAPTURE_POLL_SECONDS: Final[float] = 0.05

# ============================================================================
# Encoding
# ============================================================================

DEFAULT_PREVIEW_JPEG_QUALITY: Final[int] = 70
