"""
DocRectify - Boundary Detection

Four detection strategies and the cascade that tries them in order.
"""

from docrectify.services.detection.cascade import STRATEGIES, detect_quad, downscale, run_strategies
from docrectify.services.detection.candidates import DetectionContext

__all__ = [
    "STRATEGIES",
    "DetectionContext",
    "detect_quad",
    "downscale",
    "run_strategies",
]
