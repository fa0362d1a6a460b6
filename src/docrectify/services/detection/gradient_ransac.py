"""Gradient-direction RANSAC strategy.

Strong ridge pixels are split into two direction families (the document's
roughly orthogonal edge pairs). Each family is fitted with up to five
RANSAC lines and the two most separated lines become that family's edges.
The four family intersections are the corners.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np

from docrectify.services.detection.candidates import DetectionContext, within_bounds
from docrectify.services.geometry import intersect_line_eq, order_corners, validate_quad
from docrectify.services.preprocessing import gaussian_blur, non_max_suppression, sobel_gradients

logger = logging.getLogger(__name__)

# Magnitude cutoffs tried in order: top 10%, 20%, 35% of ridge pixels
THRESHOLD_FRACTIONS = (0.10, 0.20, 0.35)
# Relative tolerance so ridge pixels that differ only by rounding are not split
PERCENTILE_TOLERANCE = 1e-9

MIN_RIDGE_PIXELS = 50
MIN_GROUP_PIXELS = 20
HISTOGRAM_SMOOTH_RADIUS = 5
SECOND_PEAK_OFFSETS = (60, 120)
SECOND_PEAK_MIN_RATIO = 0.05
DIRECTION_TOLERANCE_DEG = 25

MAX_LINES_PER_GROUP = 5
MIN_REMAINING_POINTS = 10
MIN_LINE_INLIERS = 5
MIN_DIST_THRESHOLD = 2.0
DIST_THRESHOLD_RATIO = 0.006
MIN_SEPARATION_RATIO = 0.10
CORNER_MARGIN_RATIO = 0.15

# Upper bound on hypotheses x points evaluated at once
_CHUNK_ELEMENTS = 2_000_000


@dataclass
class RansacLine:
    """A fitted line ``a x + b y + c = 0`` with its inliers."""

    a: float
    b: float
    c: float
    count: int
    score: float
    inliers: np.ndarray
    cx: float
    cy: float

    @property
    def coefficients(self) -> tuple[float, float, float]:
        return self.a, self.b, self.c


def ransac_line(
    points: np.ndarray,
    iterations: int,
    dist_thresh: float,
    rng: np.random.Generator,
) -> RansacLine | None:
    """Fit one line to points by random pair sampling.

    Each hypothesis is the line through two distinct random points; its
    score is inlier count times the inlier spread along the line.
    Hypotheses with fewer than five inliers are ignored.

    Args:
        points: Nx2 pixel coordinates
        iterations: Number of random pairs to try
        dist_thresh: Maximum point-to-line distance of an inlier
        rng: Random source

    Returns:
        Best line with its inlier mask and centroid, or None
    """
    pts = np.asarray(points, dtype=np.float64)
    n = len(pts)
    if n < 2:
        return None

    i1 = rng.integers(0, n, size=iterations)
    i2 = rng.integers(0, n - 1, size=iterations)
    i2 = i2 + (i2 >= i1)

    p1, p2 = pts[i1], pts[i2]
    la = p2[:, 1] - p1[:, 1]
    lb = p1[:, 0] - p2[:, 0]
    lc = p2[:, 0] * p1[:, 1] - p1[:, 0] * p2[:, 1]
    norm = np.hypot(la, lb)
    valid = norm >= 1e-10
    la, lb, lc = la[valid] / norm[valid], lb[valid] / norm[valid], lc[valid] / norm[valid]
    if len(la) == 0:
        return None

    x, y = pts[:, 0], pts[:, 1]
    best_score = 0.0
    best = (0.0, 0.0, 0.0)
    chunk = max(1, _CHUNK_ELEMENTS // n)

    for start in range(0, len(la), chunk):
        a = la[start : start + chunk, None]
        b = lb[start : start + chunk, None]
        c = lc[start : start + chunk, None]
        inlier = np.abs(a * x + b * y + c) < dist_thresh
        counts = inlier.sum(axis=1)
        proj = -b * x + a * y
        max_p = np.where(inlier, proj, -np.inf).max(axis=1)
        min_p = np.where(inlier, proj, np.inf).min(axis=1)
        with np.errstate(invalid="ignore"):
            scores = np.where(counts >= MIN_LINE_INLIERS, counts * (max_p - min_p), 0.0)
        k = int(np.argmax(scores))
        if scores[k] > best_score:
            best_score = float(scores[k])
            best = (float(a[k, 0]), float(b[k, 0]), float(c[k, 0]))

    if best_score == 0:
        return None

    a, b, c = best
    mask = np.abs(a * x + b * y + c) < dist_thresh
    count = int(mask.sum())
    cx, cy = (float(x[mask].mean()), float(y[mask].mean())) if count else (0.0, 0.0)
    return RansacLine(a, b, c, count, best_score, mask, cx, cy)


def _direction_peaks(bins: np.ndarray) -> tuple[int, int] | None:
    """Dominant direction bin and the strongest bin 60-120 degrees away from it."""
    hist = np.bincount(bins, minlength=180).astype(np.float64)
    offsets = np.arange(-HISTOGRAM_SMOOTH_RADIUS, HISTOGRAM_SMOOTH_RADIUS + 1)
    smoothed = np.array([hist[(i + offsets) % 180].sum() for i in range(180)])

    pk1 = int(np.argmax(smoothed))
    lo, hi = SECOND_PEAK_OFFSETS
    candidates = (pk1 + np.arange(lo, hi + 1)) % 180
    pk2 = int(candidates[int(np.argmax(smoothed[candidates]))])
    if smoothed[pk2] < smoothed[pk1] * SECOND_PEAK_MIN_RATIO:
        return None
    return pk1, pk2


def _circular_distance(bins: np.ndarray, peak: int) -> np.ndarray:
    d = np.abs(bins - peak)
    return np.where(d > 90, 180 - d, d)


def _fit_edge_pair(points: np.ndarray, ctx: DetectionContext, dist_thresh: float) -> list[RansacLine] | None:
    """Fit up to five lines and return the most separated pair."""
    lines: list[RansacLine] = []
    remaining = points
    while len(lines) < MAX_LINES_PER_GROUP and len(remaining) > MIN_REMAINING_POINTS:
        line = ransac_line(remaining, ctx.ransac_iterations, dist_thresh, ctx.rng)
        if line is None or line.count < MIN_LINE_INLIERS:
            break
        lines.append(line)
        remaining = remaining[~line.inliers]

    if len(lines) < 2:
        return None

    best_sep = 0.0
    best_pair = None
    for i in range(len(lines)):
        for j in range(i + 1, len(lines)):
            li, lj = lines[i], lines[j]
            sep = abs(li.a * lj.cx + li.b * lj.cy + li.c)
            if sep > best_sep:
                best_sep = sep
                best_pair = [li, lj]

    if best_pair is None or best_sep < min(ctx.width, ctx.height) * MIN_SEPARATION_RATIO:
        return None
    return best_pair


def detect(ctx: DetectionContext) -> np.ndarray | None:
    """Run the gradient-direction RANSAC strategy.

    Returns:
        Ordered 4x2 pixel corners, or None
    """
    w, h = ctx.width, ctx.height
    if w < 3 or h < 3:
        return None

    blurred = gaussian_blur(ctx.gray, passes=2)
    mag, direction = sobel_gradients(blurred)
    nms = non_max_suppression(mag, direction)

    all_mags = np.sort(nms[nms > 0])[::-1]
    if len(all_mags) < MIN_RIDGE_PIXELS:
        return None

    inner = nms[1:-1, 1:-1]
    inner_dir = direction[1:-1, 1:-1]
    dist_thresh = max(MIN_DIST_THRESHOLD, min(w, h) * DIST_THRESHOLD_RATIO)

    for frac in THRESHOLD_FRACTIONS:
        mag_th = all_mags[min(int(math.floor(len(all_mags) * frac)), len(all_mags) - 1)]
        ys, xs = np.nonzero(inner >= mag_th * (1 - PERCENTILE_TOLERANCE))
        if len(xs) < MIN_RIDGE_PIXELS:
            continue

        gd = inner_dir[ys, xs]
        gd = np.where(gd < 0, gd + math.pi, gd)
        bins = np.clip(np.floor(gd * 180 / math.pi).astype(np.int64), 0, 179)

        peaks = _direction_peaks(bins)
        if peaks is None:
            continue
        pk1, pk2 = peaks

        coords = np.column_stack([xs + 1, ys + 1]).astype(np.float64)
        in_g1 = _circular_distance(bins, pk1) <= DIRECTION_TOLERANCE_DEG
        in_g2 = ~in_g1 & (_circular_distance(bins, pk2) <= DIRECTION_TOLERANCE_DEG)
        groups = [coords[in_g1], coords[in_g2]]
        if len(groups[0]) < MIN_GROUP_PIXELS or len(groups[1]) < MIN_GROUP_PIXELS:
            continue

        pairs = []
        for group in groups:
            pair = _fit_edge_pair(group, ctx, dist_thresh)
            if pair is None:
                break
            pairs.append(pair)
        if len(pairs) < 2:
            logger.debug(f"RANSAC: no separated edge pair at top {frac:.0%}")
            continue

        corners = []
        for first in pairs[0]:
            for second in pairs[1]:
                pt = intersect_line_eq(first.coefficients, second.coefficients)
                if pt is None:
                    break
                corners.append(pt)
        if len(corners) != 4:
            continue

        margin = max(w, h) * CORNER_MARGIN_RATIO
        if not within_bounds(corners, -margin, w + margin, -margin, h + margin):
            continue

        ordered = order_corners(np.array(corners))
        if not validate_quad(ordered, w, h):
            continue
        return ordered

    return None
