"""
Scanner Configuration and Data Types.

This module contains the configuration dataclass and the value types
passed between the detection, rectification and enhancement stages.
"""

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import cv2
import numpy as np

from docrectify.constants import (
    DEFAULT_ASPECT_TOLERANCE,
    DEFAULT_CAPTURE_POLL_SECONDS,
    DEFAULT_DETECT_MAX_SIDE,
    DEFAULT_MIN_OUTPUT_SIZE,
    DEFAULT_PREVIEW_JPEG_QUALITY,
    DEFAULT_PREVIEW_MAX_SIDE,
    DEFAULT_PREVIEW_MIN_OUTPUT_SIZE,
    DEFAULT_RANSAC_ITERATIONS,
    DEFAULT_SMOOTHING_FACTOR,
    DEFAULT_STALE_AFTER_SECONDS,
)
from docrectify.utils.exceptions import ConfigurationError, InputImageError, ValidationError

# Strategy names in cascade priority order
STRATEGY_NAMES: tuple[str, ...] = ("gradient_ransac", "segmentation", "edge_contour", "hough")


@dataclass
class ScannerConfig:
    """Configuration for detection, rectification and live preview.

    Attributes:
        detect_max_side: Longer side of the working image used for detection
        preview_max_side: Longer side of the image used for filter previews
        min_output_size: Minimum rectified width/height for full captures
        preview_min_output_size: Minimum rectified width/height for previews
        strategies: Ordered cascade strategy names
        ransac_iterations: Random pair hypotheses per RANSAC line fit
        smoothing_factor: Weight of a new detection when smoothing the overlay
        stale_after_seconds: How long a previous overlay survives detection misses
        aspect_tolerance: Relative aspect difference below which no remap happens
        capture_poll_interval: Poll interval while waiting for an in-flight pass
        preview_jpeg_quality: JPEG quality for filter previews (0-100)
        seed: Optional seed for reproducible RANSAC sampling
    """

    # === Detection ===
    detect_max_side: int = DEFAULT_DETECT_MAX_SIDE
    strategies: tuple[str, ...] = field(default_factory=lambda: STRATEGY_NAMES)
    ransac_iterations: int = DEFAULT_RANSAC_ITERATIONS
    seed: int | None = None

    # === Rectification ===
    min_output_size: int = DEFAULT_MIN_OUTPUT_SIZE
    preview_max_side: int = DEFAULT_PREVIEW_MAX_SIDE
    preview_min_output_size: int = DEFAULT_PREVIEW_MIN_OUTPUT_SIZE
    preview_jpeg_quality: int = DEFAULT_PREVIEW_JPEG_QUALITY

    # === Live Preview ===
    smoothing_factor: float = DEFAULT_SMOOTHING_FACTOR
    stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS
    aspect_tolerance: float = DEFAULT_ASPECT_TOLERANCE
    capture_poll_interval: float = DEFAULT_CAPTURE_POLL_SECONDS

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigurationError: If a value is out of range or a strategy is unknown
        """
        for name in ("detect_max_side", "preview_max_side", "min_output_size", "preview_min_output_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigurationError(name, f"must be a positive integer, got {value!r}")

        if not isinstance(self.ransac_iterations, int) or self.ransac_iterations < 1:
            raise ConfigurationError("ransac_iterations", "must be a positive integer")

        if not self.strategies:
            raise ConfigurationError("strategies", "at least one strategy is required")
        for name in self.strategies:
            if name not in STRATEGY_NAMES:
                raise ConfigurationError(
                    "strategies", f"unknown strategy '{name}' (expected one of {', '.join(STRATEGY_NAMES)})"
                )

        for name in (
            "smoothing_factor",
            "stale_after_seconds",
            "aspect_tolerance",
            "capture_poll_interval",
            "preview_jpeg_quality",
        ):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ConfigurationError(name, f"must be a number, got {value!r}")

        if not 0.0 < self.smoothing_factor <= 1.0:
            raise ConfigurationError("smoothing_factor", "must be in (0, 1]")
        if self.stale_after_seconds < 0:
            raise ConfigurationError("stale_after_seconds", "must not be negative")
        if not 0.0 <= self.aspect_tolerance < 1.0:
            raise ConfigurationError("aspect_tolerance", "must be in [0, 1)")
        if self.capture_poll_interval <= 0:
            raise ConfigurationError("capture_poll_interval", "must be positive")
        if not 0 <= self.preview_jpeg_quality <= 100:
            raise ConfigurationError("preview_jpeg_quality", "must be in [0, 100]")
        if self.seed is not None and not isinstance(self.seed, int):
            raise ConfigurationError("seed", "must be an integer or null")


# ============================================================================
# Corner Types
# ============================================================================


@dataclass(frozen=True)
class Point2D:
    """A point; normalized to [0, 1] wherever it leaves the detector."""

    x: float
    y: float


@dataclass(frozen=True)
class Quad:
    """Four document corners in fixed visual order: tl, tr, br, bl."""

    tl: Point2D
    tr: Point2D
    br: Point2D
    bl: Point2D

    def to_array(self) -> np.ndarray:
        """Return the corners as a 4x2 float64 array in tl, tr, br, bl order."""
        return np.array(
            [[p.x, p.y] for p in (self.tl, self.tr, self.br, self.bl)],
            dtype=np.float64,
        )

    @classmethod
    def from_array(cls, pts: Any) -> "Quad":
        arr = np.asarray(pts, dtype=np.float64)
        if arr.shape != (4, 2):
            raise ValidationError("corners", "expected four (x, y) points", str(arr.shape))
        if not np.all(np.isfinite(arr)):
            raise ValidationError("corners", "coordinates must be finite")
        return cls(*(Point2D(float(x), float(y)) for x, y in arr))

    def to_dict(self) -> dict[str, dict[str, float]]:
        return {
            "tl": {"x": self.tl.x, "y": self.tl.y},
            "tr": {"x": self.tr.x, "y": self.tr.y},
            "br": {"x": self.br.x, "y": self.br.y},
            "bl": {"x": self.bl.x, "y": self.bl.y},
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Quad":
        """Build a Quad from the ``{tl: {x, y}, ...}`` wire shape.

        Raises:
            ValidationError: If a corner is missing or not numeric
        """
        if not isinstance(data, dict):
            raise ValidationError("corners", "expected an object", type(data).__name__)
        points = []
        for name in ("tl", "tr", "br", "bl"):
            corner = data.get(name)
            if not isinstance(corner, dict):
                raise ValidationError(f"corners.{name}", "missing corner")
            try:
                points.append((float(corner["x"]), float(corner["y"])))
            except (KeyError, TypeError, ValueError) as e:
                raise ValidationError(f"corners.{name}", "expected numeric x and y", str(corner)) from e
        return cls.from_array(points)

    def to_pixels(self, width: int, height: int) -> np.ndarray:
        """Scale normalized corners to pixel coordinates of a width x height image."""
        return self.to_array() * np.array([width, height], dtype=np.float64)

    @classmethod
    def from_pixels(cls, pts: Any, width: int, height: int) -> "Quad":
        """Normalize pixel corners by the image size and clamp them to [0, 1]."""
        arr = np.asarray(pts, dtype=np.float64) / np.array([width, height], dtype=np.float64)
        return cls.from_array(np.clip(arr, 0.0, 1.0))


DEFAULT_CORNERS = Quad(Point2D(0.1, 0.1), Point2D(0.9, 0.1), Point2D(0.9, 0.9), Point2D(0.1, 0.9))
FULL_CORNERS = Quad(Point2D(0.0, 0.0), Point2D(1.0, 0.0), Point2D(1.0, 1.0), Point2D(0.0, 1.0))


# ============================================================================
# Enhancement Mode & Results
# ============================================================================


class EnhanceMode(str, Enum):
    """Filter applied after rectification."""

    BW = "bw"
    GRAY = "gray"
    COLOR = "color"

    @classmethod
    def parse(cls, value: "EnhanceMode | str") -> "EnhanceMode":
        """Parse a mode name case-insensitively.

        Raises:
            ValidationError: If the name is not a known mode
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise ValidationError("mode", "expected bw, gray or color", str(value)) from e


def encode_image(pixels: np.ndarray, ext: str = ".png", quality: int | None = None) -> bytes:
    """Encode a pixel buffer with OpenCV.

    Args:
        pixels: uint8 BGR or gray image
        ext: Target extension understood by cv2.imencode
        quality: JPEG quality (0-100), ignored for other formats

    Returns:
        Encoded bytes
    """
    params: list[int] = []
    if quality is not None and ext.lower() in (".jpg", ".jpeg"):
        params = [cv2.IMWRITE_JPEG_QUALITY, int(quality)]
    ok, buf = cv2.imencode(ext, pixels, params)
    if not ok:
        raise InputImageError(f"could not encode image as {ext}")
    return buf.tobytes()


@dataclass
class ScanResult:
    """A rectified and enhanced document image.

    Attributes:
        pixels: uint8 BGR buffer of shape (height, width, 3)
        width: Output width
        height: Output height
        src_width: Width of the image the corners referred to
        src_height: Height of the image the corners referred to
        mode: Enhancement mode that produced the pixels
    """

    pixels: np.ndarray
    width: int
    height: int
    src_width: int
    src_height: int
    mode: EnhanceMode = EnhanceMode.BW

    def encode(self, ext: str = ".png") -> bytes:
        return encode_image(self.pixels, ext)

    def to_base64(self, ext: str = ".png") -> str:
        return base64.b64encode(self.encode(ext)).decode("ascii")


@dataclass
class FilterPreviews:
    """The three enhancement variants of one low-resolution rectification."""

    bw: np.ndarray
    gray: np.ndarray
    color: np.ndarray

    def encode_all(self, quality: int = DEFAULT_PREVIEW_JPEG_QUALITY) -> dict[str, str]:
        """Encode every variant as a base64 JPEG keyed by mode name."""
        return {
            mode.value: base64.b64encode(encode_image(getattr(self, mode.value), ".jpg", quality)).decode("ascii")
            for mode in EnhanceMode
        }


@dataclass
class SmoothingState:
    """Last overlay corners and the time they were accepted."""

    corners: Quad | None = None
    timestamp: float = 0.0
