"""Linear algebra and geometry primitives.

Homography estimation and inversion, convex hulls, polyline simplification,
line intersection and the quad acceptance gate shared by every detection
strategy. Points are (x, y) in pixel space unless stated otherwise.
"""

import logging
import math

import numpy as np

from docrectify.constants import (
    COLLINEAR_RELATIVE_AREA,
    CONVEXITY_EPSILON,
    MAX_QUAD_ANGLE_DEG,
    MIN_QUAD_ANGLE_DEG,
    MIN_QUAD_AREA_RATIO,
    MIN_QUAD_EDGE_RATIO,
    SINGULAR_EPSILON,
)

logger = logging.getLogger(__name__)


# ── Linear systems ──


def solve(a: np.ndarray, b: np.ndarray) -> np.ndarray | None:
    """Solve ``a @ x = b`` by Gaussian elimination with partial pivoting.

    Args:
        a: n x n coefficient matrix
        b: right-hand side of length n

    Returns:
        Solution vector, or None if any pivot magnitude is below 1e-10.
    """
    m = np.hstack([np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64).reshape(-1, 1)])
    n = m.shape[0]

    for col in range(n):
        pivot = col + int(np.argmax(np.abs(m[col:, col])))
        if pivot != col:
            m[[col, pivot]] = m[[pivot, col]]
        if abs(m[col, col]) < SINGULAR_EPSILON:
            return None
        factors = m[col + 1 :, col] / m[col, col]
        m[col + 1 :, col:] -= factors[:, None] * m[col, col:]

    x = np.zeros(n, dtype=np.float64)
    for i in range(n - 1, -1, -1):
        x[i] = (m[i, n] - m[i, i + 1 : n] @ x[i + 1 :]) / m[i, i]
    return x


def compute_homography(src: np.ndarray, dst: np.ndarray) -> np.ndarray | None:
    """Compute the 3x3 projective map taking four src points onto four dst points.

    The bottom-right entry is fixed to 1 and the remaining eight unknowns
    come from the direct linear transform system.

    Args:
        src: 4x2 source points
        dst: 4x2 destination points

    Returns:
        3x3 homography, or None if the system is singular.
    """
    src = np.asarray(src, dtype=np.float64)
    dst = np.asarray(dst, dtype=np.float64)
    a = np.zeros((8, 8), dtype=np.float64)
    b = np.zeros(8, dtype=np.float64)

    for i in range(4):
        sx, sy = src[i]
        dx, dy = dst[i]
        a[2 * i] = [sx, sy, 1, 0, 0, 0, -dx * sx, -dx * sy]
        a[2 * i + 1] = [0, 0, 0, sx, sy, 1, -dy * sx, -dy * sy]
        b[2 * i] = dx
        b[2 * i + 1] = dy

    h = solve(a, b)
    if h is None:
        return None
    return np.append(h, 1.0).reshape(3, 3)


def invert3x3(m: np.ndarray) -> np.ndarray | None:
    """Invert a 3x3 matrix by cofactors; None if |det| < 1e-10."""
    (a, b, c), (d, e, f), (g, h, k) = np.asarray(m, dtype=np.float64)
    det = a * (e * k - f * h) - b * (d * k - f * g) + c * (d * h - e * g)
    if abs(det) < SINGULAR_EPSILON:
        return None
    inv = np.array(
        [
            [e * k - f * h, c * h - b * k, b * f - c * e],
            [f * g - d * k, a * k - c * g, c * d - a * f],
            [d * h - e * g, b * g - a * h, a * e - b * d],
        ],
        dtype=np.float64,
    )
    return inv / det


def apply_homography(h: np.ndarray, pts: np.ndarray) -> np.ndarray:
    """Map Nx2 points through a homography (with perspective division)."""
    pts = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    homog = np.hstack([pts, np.ones((len(pts), 1))]) @ np.asarray(h, dtype=np.float64).T
    return homog[:, :2] / homog[:, 2:3]


# ── Polygons ──


def _cross(o: tuple, a: tuple, b: tuple) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def convex_hull(points: np.ndarray) -> np.ndarray:
    """Monotone-chain convex hull.

    Points are deduplicated and sorted by x then y; collinear points are
    dropped from the hull. Inputs with fewer than 3 points are returned
    unchanged.

    Args:
        points: Nx2 array of points

    Returns:
        Hull vertices as a Kx2 float64 array, counter-clockwise in a
        y-up frame (clockwise on screen).
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if len(pts) < 3:
        return pts.copy()

    unique = np.unique(pts, axis=0)  # lexicographic: x, then y
    if len(unique) < 3:
        return unique
    ordered = [tuple(p) for p in unique.tolist()]

    lower: list[tuple] = []
    for p in ordered:
        while len(lower) >= 2 and _cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)

    upper: list[tuple] = []
    for p in reversed(ordered):
        while len(upper) >= 2 and _cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)

    return np.array(lower[:-1] + upper[:-1], dtype=np.float64)


def douglas_peucker(points: np.ndarray, epsilon: float) -> np.ndarray:
    """Simplify an open polyline, keeping points farther than epsilon from the chord.

    Iterative with an explicit stack; the first and last points are always kept.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    n = len(pts)
    if n <= 2:
        return pts.copy()

    keep = np.zeros(n, dtype=bool)
    keep[0] = keep[-1] = True
    stack = [(0, n - 1)]

    while stack:
        si, ei = stack.pop()
        if ei - si < 2:
            continue
        sx, sy = pts[si]
        ex, ey = pts[ei]
        dx, dy = ex - sx, ey - sy
        inner = pts[si + 1 : ei]
        len_sq = dx * dx + dy * dy
        if len_sq < SINGULAR_EPSILON:
            d = np.hypot(inner[:, 0] - sx, inner[:, 1] - sy)
        else:
            d = np.abs(dy * inner[:, 0] - dx * inner[:, 1] + ex * sy - ey * sx) / math.sqrt(len_sq)
        k = int(np.argmax(d))
        if d[k] > epsilon:
            idx = si + 1 + k
            keep[idx] = True
            stack.append((si, idx))
            stack.append((idx, ei))

    return pts[keep]


def perimeter(pts: np.ndarray) -> float:
    """Length of the closed polygon through pts."""
    pts = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    return float(np.sum(np.linalg.norm(pts - np.roll(pts, -1, axis=0), axis=1)))


def contour_area(pts: np.ndarray) -> float:
    """Absolute polygon area (shoelace formula)."""
    pts = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    x, y = pts[:, 0], pts[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y)) / 2.0)


def is_convex(pts: np.ndarray) -> bool:
    """True if every non-degenerate turn of the closed polygon has the same sign."""
    pts = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    n = len(pts)
    if n < 3:
        return False

    sign = 0
    for i in range(n):
        a, b, c = pts[i], pts[(i + 1) % n], pts[(i + 2) % n]
        cross = (b[0] - a[0]) * (c[1] - b[1]) - (b[1] - a[1]) * (c[0] - b[0])
        if abs(cross) < CONVEXITY_EPSILON:
            continue
        s = 1 if cross > 0 else -1
        if sign == 0:
            sign = s
        elif s != sign:
            return False
    return sign != 0


def order_corners(pts: np.ndarray) -> np.ndarray:
    """Canonicalize four points to tl, tr, br, bl.

    Points are sorted by y (ties by x) and split into the top and bottom
    pairs; each pair is then sorted by x.
    """
    pts = np.asarray(pts, dtype=np.float64).reshape(4, 2)
    by_y = pts[np.lexsort((pts[:, 0], pts[:, 1]))]
    top = by_y[:2][np.argsort(by_y[:2, 0], kind="stable")]
    bottom = by_y[2:][np.argsort(by_y[2:, 0], kind="stable")]
    return np.array([top[0], top[1], bottom[1], bottom[0]], dtype=np.float64)


def interior_angles(pts: np.ndarray) -> np.ndarray:
    """Angle in degrees at each vertex of the closed polygon."""
    pts = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    v1 = np.roll(pts, 1, axis=0) - pts
    v2 = np.roll(pts, -1, axis=0) - pts
    norms = np.linalg.norm(v1, axis=1) * np.linalg.norm(v2, axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        cos = np.sum(v1 * v2, axis=1) / norms
    cos = np.clip(np.nan_to_num(cos, nan=1.0), -1.0, 1.0)
    return np.degrees(np.arccos(cos))


def validate_quad(pts: np.ndarray, w: int, h: int) -> bool:
    """The acceptance gate for candidate document quads.

    A quad passes when it is convex, covers at least 10% of the w x h
    image, has every edge at least 10% of min(w, h) and every interior
    angle within [30, 150] degrees.
    """
    pts = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    if not np.all(np.isfinite(pts)) or not is_convex(pts):
        return False
    if contour_area(pts) < MIN_QUAD_AREA_RATIO * w * h:
        return False

    edges = np.linalg.norm(np.roll(pts, -1, axis=0) - pts, axis=1)
    if np.any(edges < min(w, h) * MIN_QUAD_EDGE_RATIO):
        return False

    angles = interior_angles(pts)
    return bool(np.all((angles >= MIN_QUAD_ANGLE_DEG) & (angles <= MAX_QUAD_ANGLE_DEG)))


def has_collinear_triplet(pts: np.ndarray) -> bool:
    """True if any three of the four corners are (nearly) collinear.

    The tolerance is relative to the squared extent of the points, so a
    tiny or a huge quad are judged alike.
    """
    pts = np.asarray(pts, dtype=np.float64).reshape(4, 2)
    extent = float(np.max(np.ptp(pts, axis=0)))
    if extent < SINGULAR_EPSILON:
        return True
    limit = COLLINEAR_RELATIVE_AREA * extent * extent
    for skip in range(4):
        a, b, c = (pts[i] for i in range(4) if i != skip)
        if abs(_cross(a, b, c)) / 2.0 < limit:
            return True
    return False


# ── Lines ──


def line_intersection(
    l1: tuple[float, float], l2: tuple[float, float]
) -> tuple[float, float] | None:
    """Intersect two polar lines ``x cos(theta) + y sin(theta) = rho``.

    Args:
        l1: (rho, theta) of the first line
        l2: (rho, theta) of the second line

    Returns:
        (x, y), or None when the lines are parallel.
    """
    rho1, theta1 = l1
    rho2, theta2 = l2
    c1, s1 = math.cos(theta1), math.sin(theta1)
    c2, s2 = math.cos(theta2), math.sin(theta2)
    det = c1 * s2 - c2 * s1
    if abs(det) < SINGULAR_EPSILON:
        return None
    x = (rho1 * s2 - rho2 * s1) / det
    y = (rho2 * c1 - rho1 * c2) / det
    return x, y


def line_through(p1: np.ndarray, p2: np.ndarray) -> tuple[float, float, float] | None:
    """Normalized implicit line ``a x + b y + c = 0`` through two points."""
    x1, y1 = float(p1[0]), float(p1[1])
    x2, y2 = float(p2[0]), float(p2[1])
    a = y2 - y1
    b = x1 - x2
    norm = math.hypot(a, b)
    if norm < SINGULAR_EPSILON:
        return None
    c = x2 * y1 - x1 * y2
    return a / norm, b / norm, c / norm


def intersect_line_eq(
    l1: tuple[float, float, float], l2: tuple[float, float, float]
) -> tuple[float, float] | None:
    """Intersect two implicit lines; None when they are parallel."""
    a1, b1, c1 = l1
    a2, b2, c2 = l2
    det = a1 * b2 - a2 * b1
    if abs(det) < SINGULAR_EPSILON:
        return None
    x = (b1 * c2 - b2 * c1) / det
    y = (a2 * c1 - a1 * c2) / det
    return x, y
