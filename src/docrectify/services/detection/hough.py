"""Hough-line strategy (last resort).

Votes every Canny edge pixel into a rho-theta accumulator, keeps local
maxima, and builds the quad from the best-scoring horizontal and vertical
line pairs. The horizontal (30-150 degrees) and vertical (<60 or >120
degrees) ranges overlap so that rotated documents still get both families.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
from scipy import ndimage

from docrectify.constants import (
    HOUGH_MAX_LINES_PER_FAMILY,
    HOUGH_NMS_RADIUS,
    HOUGH_THETA_STEPS,
    HOUGH_VOTE_FRACTION,
    MIN_QUAD_AREA_RATIO,
)
from docrectify.services.detection.candidates import DetectionContext, within_bounds
from docrectify.services.geometry import contour_area, line_intersection, order_corners, validate_quad

logger = logging.getLogger(__name__)

BOUNDS_MARGIN_RATIO = 0.1
SPREAD_BASE_WEIGHT = 0.6
SPREAD_WEIGHT = 0.4


@dataclass(frozen=True)
class HoughLine:
    rho: float
    theta: float
    votes: int

    @property
    def degrees(self) -> float:
        return self.theta * 180.0 / math.pi


def hough_lines(edges: np.ndarray) -> list[HoughLine]:
    """Detect lines in an edge map.

    Peaks need at least 0.08 x max(w, h) votes and must not have a strictly
    larger neighbour within the 11x11 suppression window.

    Returns:
        Lines sorted by votes, strongest first
    """
    h, w = edges.shape
    max_rho = int(math.ceil(math.hypot(w, h)))
    rho_size = 2 * max_rho + 1

    thetas = np.arange(HOUGH_THETA_STEPS) * math.pi / HOUGH_THETA_STEPS
    cos_t, sin_t = np.cos(thetas), np.sin(thetas)

    ys, xs = np.nonzero(edges)
    acc = np.zeros((rho_size, HOUGH_THETA_STEPS), dtype=np.int64)
    if len(xs) == 0:
        return []

    theta_idx = np.arange(HOUGH_THETA_STEPS)
    # Chunk the edge pixels to bound the size of the vote matrix
    for start in range(0, len(xs), 4096):
        x = xs[start : start + 4096, None].astype(np.float64)
        y = ys[start : start + 4096, None].astype(np.float64)
        rho = np.floor(x * cos_t + y * sin_t + 0.5).astype(np.int64) + max_rho
        flat = (rho * HOUGH_THETA_STEPS + theta_idx).ravel()
        acc += np.bincount(flat, minlength=acc.size).reshape(acc.shape)

    threshold = max(w, h) * HOUGH_VOTE_FRACTION
    window = 2 * HOUGH_NMS_RADIUS + 1
    local_max = ndimage.maximum_filter(acc, size=window, mode="constant", cval=0)
    peaks = (acc >= threshold) & (acc >= local_max)

    rows, cols = np.nonzero(peaks)
    lines = [
        HoughLine(float(r - max_rho), float(thetas[t]), int(acc[r, t]))
        for r, t in zip(rows, cols)
    ]
    lines.sort(key=lambda line: line.votes, reverse=True)
    return lines


def _best_pair(lines: list[HoughLine], intercept) -> tuple[HoughLine, HoughLine] | None:
    """Pick the pair maximizing combined votes weighted by intercept spread.

    The returned pair is ordered by intercept (top before bottom, left before right).
    """
    n = len(lines)
    intercepts = [intercept(line) for line in lines]
    max_spread = 0.0
    for i in range(n):
        for j in range(i + 1, n):
            max_spread = max(max_spread, abs(intercepts[i] - intercepts[j]))

    best = None
    best_score = 0.0
    for i in range(n):
        for j in range(i + 1, n):
            spread = abs(intercepts[i] - intercepts[j])
            score = (lines[i].votes + lines[j].votes) * (
                SPREAD_BASE_WEIGHT + SPREAD_WEIGHT * spread / (max_spread or 1)
            )
            if score > best_score:
                best_score = score
                best = (lines[i], lines[j]) if intercepts[i] < intercepts[j] else (lines[j], lines[i])
    return best


def find_best_quad(lines: list[HoughLine], w: int, h: int) -> np.ndarray | None:
    """Build a quad from the strongest horizontal and vertical line pairs.

    Returns:
        Ordered 4x2 pixel corners, or None
    """
    if len(lines) < 4:
        return None

    horizontal = [line for line in lines if 30 < line.degrees < 150][:HOUGH_MAX_LINES_PER_FAMILY]
    vertical = [line for line in lines if line.degrees < 60 or line.degrees > 120][:HOUGH_MAX_LINES_PER_FAMILY]
    if len(horizontal) < 2 or len(vertical) < 2:
        return None

    best_h = _best_pair(horizontal, lambda line: line.rho / math.sin(line.theta))
    best_v = _best_pair(vertical, lambda line: line.rho / math.cos(line.theta))
    if best_h is None or best_v is None:
        return None

    top, bottom = best_h
    left, right = best_v
    corners = []
    for a, b in ((top, left), (top, right), (bottom, right), (bottom, left)):
        pt = line_intersection((a.rho, a.theta), (b.rho, b.theta))
        if pt is None:
            return None
        corners.append(pt)

    side = max(w, h)
    low, high = -BOUNDS_MARGIN_RATIO * side, (1 + BOUNDS_MARGIN_RATIO) * side
    if not within_bounds(corners, low, high, low, high):
        return None

    quad = np.array(corners, dtype=np.float64)
    if contour_area(quad) < MIN_QUAD_AREA_RATIO * w * h:
        return None
    return order_corners(quad)


def detect(ctx: DetectionContext) -> np.ndarray | None:
    """Run the Hough-line strategy.

    Returns:
        Ordered 4x2 pixel corners, or None
    """
    w, h = ctx.width, ctx.height
    lines = hough_lines(ctx.edges)
    logger.debug(f"Hough: {len(lines)} peak lines")
    quad = find_best_quad(lines, w, h)
    if quad is None or not validate_quad(quad, w, h):
        return None
    return quad
