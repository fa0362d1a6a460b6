"""
DocRectify - Document boundary detection and perspective rectification

This package finds the quadrilateral outline of a document in a photograph,
warps it flat and applies a black-and-white, grayscale or color filter.
"""

from docrectify.config import APP_VERSION
from docrectify.services.config import (
    DEFAULT_CORNERS,
    FULL_CORNERS,
    EnhanceMode,
    FilterPreviews,
    Point2D,
    Quad,
    ScannerConfig,
    ScanResult,
)
from docrectify.services.scanner import DocumentScanner

__version__ = APP_VERSION

__all__ = [
    "DEFAULT_CORNERS",
    "FULL_CORNERS",
    "DocumentScanner",
    "EnhanceMode",
    "FilterPreviews",
    "Point2D",
    "Quad",
    "ScanResult",
    "ScannerConfig",
    "__version__",
]
