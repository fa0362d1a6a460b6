"""Brightness segmentation strategy.

Separates the page from the background with a global Otsu threshold,
trying light-on-dark first and dark-on-light second, and fits a quad to
the boundary of the largest plausible regions.
"""

import logging

import numpy as np
from scipy import ndimage

from docrectify.services.detection.candidates import DetectionContext, best_quad_from_point_sets
from docrectify.services.preprocessing import (
    EIGHT_CONNECTED,
    dilate,
    erode,
    gaussian_blur,
    label_components,
    otsu_threshold,
)

logger = logging.getLogger(__name__)

BLUR_PASSES = 3
CLOSE_RADIUS = 3
TOP_COMPONENTS = 3
MIN_COMPONENT_RATIO = 0.05
MAX_COMPONENT_RATIO = 0.95
MIN_BOUNDARY_PIXELS = 20
MIN_HULL_RATIO = 0.05
MAX_HULL_RATIO = 0.90
EPSILONS = (0.015, 0.02, 0.03, 0.04, 0.06)


def boundary_pixels(labels: np.ndarray, label: int) -> np.ndarray:
    """(x, y) pixels of a component that touch the image border or another label.

    Returns:
        Nx2 float64 array
    """
    region = labels == label
    # A pixel is interior when all 8 neighbours share its label
    interior = ndimage.binary_erosion(region, structure=EIGHT_CONNECTED, border_value=0)
    ys, xs = np.nonzero(region & ~interior)
    return np.column_stack([xs, ys]).astype(np.float64)


def detect(ctx: DetectionContext) -> np.ndarray | None:
    """Run the brightness segmentation strategy.

    Returns:
        Ordered 4x2 pixel corners, or None
    """
    w, h = ctx.width, ctx.height
    area = w * h
    blurred = gaussian_blur(ctx.gray, passes=BLUR_PASSES)
    thresh = otsu_threshold(blurred)
    logger.debug(f"Segmentation: Otsu threshold {thresh}")

    for light_document in (True, False):
        binary = blurred > thresh if light_document else blurred <= thresh
        closed = erode(dilate(binary, CLOSE_RADIUS), CLOSE_RADIUS)
        labels, components = label_components(closed)

        point_sets = []
        for label, size in components[:TOP_COMPONENTS]:
            if size < MIN_COMPONENT_RATIO * area or size > MAX_COMPONENT_RATIO * area:
                continue
            pts = boundary_pixels(labels, label)
            if len(pts) >= MIN_BOUNDARY_PIXELS:
                point_sets.append(pts)

        quad = best_quad_from_point_sets(
            point_sets,
            EPSILONS,
            w,
            h,
            min_hull_area=MIN_HULL_RATIO * area,
            max_hull_area=MAX_HULL_RATIO * area,
        )
        if quad is not None:
            return quad

    return None
