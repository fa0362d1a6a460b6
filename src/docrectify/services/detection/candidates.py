"""Shared state and quad extraction helpers for the detection strategies."""

import logging
from dataclasses import dataclass, field
from functools import cached_property

import numpy as np

from docrectify.constants import DEFAULT_RANSAC_ITERATIONS
from docrectify.services.geometry import (
    contour_area,
    convex_hull,
    douglas_peucker,
    order_corners,
    perimeter,
    validate_quad,
)
from docrectify.services.preprocessing import canny_edges

logger = logging.getLogger(__name__)


@dataclass
class DetectionContext:
    """One detection pass over a downscaled gray image.

    Attributes:
        gray: float64 gray image (already downscaled)
        rng: Random source for RANSAC sampling
        ransac_iterations: Hypotheses per RANSAC line fit
    """

    gray: np.ndarray
    rng: np.random.Generator = field(default_factory=np.random.default_rng)
    ransac_iterations: int = DEFAULT_RANSAC_ITERATIONS

    @property
    def width(self) -> int:
        return int(self.gray.shape[1])

    @property
    def height(self) -> int:
        return int(self.gray.shape[0])

    @cached_property
    def edges(self) -> np.ndarray:
        """Canny edge map, computed once and shared by the edge-based strategies."""
        return canny_edges(self.gray)


def quad_from_hull(
    hull: np.ndarray,
    epsilons: tuple[float, ...],
    w: int,
    h: int,
) -> tuple[np.ndarray | None, float]:
    """Simplify a hull at several tolerances and keep the largest valid quad.

    Each epsilon is a fraction of the hull perimeter. A 4-vertex
    simplification is validated directly; a 5-vertex one is retried with
    each vertex dropped once.

    Args:
        hull: Convex hull vertices
        epsilons: Tolerances as fractions of the hull perimeter
        w: Image width
        h: Image height

    Returns:
        (quad, area) of the best valid quad, or (None, 0.0)
    """
    peri = perimeter(hull)
    best_quad = None
    best_area = 0.0

    for frac in epsilons:
        approx = douglas_peucker(hull, frac * peri)
        if len(approx) == 4:
            candidates = [approx]
        elif len(approx) == 5:
            candidates = [np.delete(approx, skip, axis=0) for skip in range(5)]
        else:
            continue

        for quad in candidates:
            if not validate_quad(quad, w, h):
                continue
            area = contour_area(quad)
            if area > best_area:
                best_area = area
                best_quad = quad

    return best_quad, best_area


def best_quad_from_point_sets(
    point_sets: list[np.ndarray],
    epsilons: tuple[float, ...],
    w: int,
    h: int,
    min_hull_area: float = 0.0,
    max_hull_area: float | None = None,
) -> np.ndarray | None:
    """Hull each point set and return the largest valid quad among them, ordered."""
    best_quad = None
    best_area = 0.0

    for pts in point_sets:
        hull = convex_hull(pts)
        if len(hull) < 4:
            continue
        hull_area = contour_area(hull)
        if max_hull_area is not None and hull_area > max_hull_area:
            continue
        if hull_area < min_hull_area:
            continue

        quad, area = quad_from_hull(hull, epsilons, w, h)
        if quad is not None and area > best_area:
            best_area = area
            best_quad = quad

    if best_quad is None:
        return None
    return order_corners(best_quad)


def within_bounds(corners: np.ndarray, low_x: float, high_x: float, low_y: float, high_y: float) -> bool:
    """True if every corner lies inside the given box (inclusive)."""
    corners = np.asarray(corners, dtype=np.float64)
    return bool(
        np.all(corners[:, 0] >= low_x)
        and np.all(corners[:, 0] <= high_x)
        and np.all(corners[:, 1] >= low_y)
        and np.all(corners[:, 1] <= high_y)
    )
