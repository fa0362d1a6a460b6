"""Edge-contour strategy.

Links broken Canny edges by dilation (radius 2, then 4, then 8 only if
nothing was found) and fits a quad to the hull of the original edge
pixels of each large linked component.
"""

import logging

import numpy as np

from docrectify.services.detection.candidates import DetectionContext, best_quad_from_point_sets
from docrectify.services.preprocessing import dilate, label_components

logger = logging.getLogger(__name__)

DILATION_RADII = (2, 4, 8)
TOP_COMPONENTS = 5
MIN_EDGE_PIXELS = 20
MAX_HULL_RATIO = 0.90
EPSILONS = (0.015, 0.02, 0.03, 0.04, 0.06, 0.08)


def detect(ctx: DetectionContext) -> np.ndarray | None:
    """Run the edge-contour strategy.

    Returns:
        Ordered 4x2 pixel corners, or None
    """
    w, h = ctx.width, ctx.height
    edges = ctx.edges > 0
    if not edges.any():
        return None

    for radius in DILATION_RADII:
        labels, components = label_components(dilate(edges, radius))

        edge_labels = labels[edges]
        ys, xs = np.nonzero(edges)
        point_sets = []
        for label, _size in components[:TOP_COMPONENTS]:
            member = edge_labels == label
            if np.count_nonzero(member) < MIN_EDGE_PIXELS:
                continue
            point_sets.append(np.column_stack([xs[member], ys[member]]).astype(np.float64))

        quad = best_quad_from_point_sets(point_sets, EPSILONS, w, h, max_hull_area=MAX_HULL_RATIO * w * h)
        if quad is not None:
            logger.debug(f"Edge contour: quad found at dilation radius {radius}")
            return quad

    return None
