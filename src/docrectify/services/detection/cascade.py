"""Boundary detection cascade.

Strategies run in fixed priority order on a downscaled gray image; the
first one returning a quad that passes the acceptance gate, once clamped
to the frame, wins.
"""

import logging
from collections.abc import Callable, Sequence

import cv2
import numpy as np

from docrectify.constants import DEFAULT_DETECT_MAX_SIDE, DEFAULT_RANSAC_ITERATIONS
from docrectify.services.config import STRATEGY_NAMES, Quad
from docrectify.services.detection import edge_contour, gradient_ransac, hough, segmentation
from docrectify.services.detection.candidates import DetectionContext
from docrectify.services.geometry import order_corners, validate_quad
from docrectify.services.preprocessing import to_gray
from docrectify.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

Strategy = Callable[[DetectionContext], "np.ndarray | None"]

STRATEGIES: dict[str, Strategy] = {
    "gradient_ransac": gradient_ransac.detect,
    "segmentation": segmentation.detect,
    "edge_contour": edge_contour.detect,
    "hough": hough.detect,
}


def downscale(image: np.ndarray, max_side: int) -> np.ndarray:
    """Shrink an image so its longer side is at most max_side (aspect preserved).

    Images already small enough are returned unchanged.
    """
    h, w = image.shape[:2]
    if max(w, h) <= max_side:
        return image
    scale = max_side / max(w, h)
    new_w = max(1, int(np.floor(w * scale + 0.5)))
    new_h = max(1, int(np.floor(h * scale + 0.5)))
    return cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)


def run_strategies(
    ctx: DetectionContext,
    strategies: Sequence[str] = STRATEGY_NAMES,
) -> tuple[str, np.ndarray] | None:
    """Try strategies in order on a prepared context.

    Returns:
        (strategy name, ordered 4x2 pixel corners) of the first hit, or None
    """
    w, h = ctx.width, ctx.height
    for name in strategies:
        strategy = STRATEGIES.get(name)
        if strategy is None:
            raise ConfigurationError("strategies", f"unknown strategy '{name}'")

        logger.debug(f"Trying {name} detection...")
        corners = strategy(ctx)
        if corners is None:
            logger.debug(f"{name}: no quad")
            continue

        # Returned quads lie inside the frame
        corners = order_corners(np.clip(corners, 0.0, [w, h]))
        if not validate_quad(corners, w, h):
            logger.debug(f"{name}: quad rejected by acceptance gate")
            continue
        return name, corners

    return None


def detect_quad(
    image: np.ndarray,
    max_side: int = DEFAULT_DETECT_MAX_SIDE,
    strategies: Sequence[str] = STRATEGY_NAMES,
    rng: np.random.Generator | None = None,
    ransac_iterations: int = DEFAULT_RANSAC_ITERATIONS,
) -> Quad | None:
    """Detect the document boundary in a BGR (or gray) image.

    Args:
        image: uint8 image
        max_side: Longer side of the working image
        strategies: Strategy names in priority order
        rng: Random source for RANSAC; a fresh unseeded one if None
        ransac_iterations: Hypotheses per RANSAC line fit

    Returns:
        Corners normalized to [0, 1] in tl, tr, br, bl order, or None
        when no strategy finds a valid quad
    """
    small = downscale(image, max_side)
    ctx = DetectionContext(
        gray=to_gray(small),
        rng=rng if rng is not None else np.random.default_rng(),
        ransac_iterations=ransac_iterations,
    )
    found = run_strategies(ctx, strategies)
    if found is None:
        logger.debug("No document boundary found by any strategy")
        return None

    name, corners = found
    logger.info(f"Document boundary found by {name} detection")
    return Quad.from_pixels(corners, ctx.width, ctx.height)
