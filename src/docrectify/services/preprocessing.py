"""Image preprocessing for boundary detection and enhancement.

Grayscale conversion, the fixed 5x5 Gaussian, Sobel gradients,
non-maximum suppression, Canny edges with an Otsu-derived threshold,
global and adaptive thresholds, square-window morphology and
8-connected component labeling.

All functions take and return numpy arrays; gray images are float64
so repeated blurs do not accumulate rounding.
"""

import logging

import cv2
import numpy as np
from scipy import ndimage

from docrectify.constants import (
    CANNY_LOW_RATIO,
    GAUSSIAN_KERNEL_SUM,
    GRADIENT_NOISE_FLOOR,
    HISTOGRAM_BINS,
    OTSU_DEFAULT_THRESHOLD,
)

logger = logging.getLogger(__name__)

GAUSSIAN_KERNEL = (
    np.array(
        [
            [1, 4, 7, 4, 1],
            [4, 16, 26, 16, 4],
            [7, 26, 41, 26, 7],
            [4, 16, 26, 16, 4],
            [1, 4, 7, 4, 1],
        ],
        dtype=np.float64,
    )
    / GAUSSIAN_KERNEL_SUM
)

EIGHT_CONNECTED = np.ones((3, 3), dtype=bool)

EDGE_STRONG = 255
EDGE_WEAK = 128


def to_gray(image: np.ndarray) -> np.ndarray:
    """BT.601 luma of a BGR image as float64 (0.299 R + 0.587 G + 0.114 B)."""
    if image.ndim == 2:
        return image.astype(np.float64)
    bgr = image[:, :, :3].astype(np.float64)
    return 0.114 * bgr[:, :, 0] + 0.587 * bgr[:, :, 1] + 0.299 * bgr[:, :, 2]


def gaussian_blur(gray: np.ndarray, passes: int = 1) -> np.ndarray:
    """Apply the 5x5 Gaussian (sum 273) with edge-clamped sampling."""
    out = np.asarray(gray, dtype=np.float64)
    for _ in range(passes):
        out = cv2.filter2D(out, cv2.CV_64F, GAUSSIAN_KERNEL, borderType=cv2.BORDER_REPLICATE)
    return out


def sobel_gradients(gray: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """3x3 Sobel magnitude and direction (atan2(gy, gx)).

    Only interior pixels are computed; the one-pixel border is zero.

    Returns:
        (magnitude, direction) float64 arrays shaped like ``gray``
    """
    gray = np.asarray(gray, dtype=np.float64)
    mag = np.zeros_like(gray)
    direction = np.zeros_like(gray)
    h, w = gray.shape
    if h < 3 or w < 3:
        return mag, direction

    gx = cv2.Sobel(gray, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_64F, 0, 1, ksize=3)
    inner = (slice(1, h - 1), slice(1, w - 1))
    mag[inner] = np.hypot(gx[inner], gy[inner])
    direction[inner] = np.arctan2(gy[inner], gx[inner])
    flat = mag < GRADIENT_NOISE_FLOOR
    mag[flat] = 0.0
    direction[flat] = 0.0
    return mag, direction


def non_max_suppression(mag: np.ndarray, direction: np.ndarray) -> np.ndarray:
    """Thin gradient ridges by comparing each pixel with its two neighbours across the edge.

    The direction is quantized into four sectors (0, 45, 90, 135 degrees);
    a pixel survives when its magnitude is at least that of both neighbours.
    """
    h, w = mag.shape
    out = np.zeros_like(mag, dtype=np.float64)
    if h < 3 or w < 3:
        return out

    angle = np.degrees(direction[1:-1, 1:-1])
    angle = np.where(angle < 0, angle + 180.0, angle)
    m = mag[1:-1, 1:-1]

    def shifted(dy: int, dx: int) -> np.ndarray:
        return mag[1 + dy : h - 1 + dy, 1 + dx : w - 1 + dx]

    horizontal = (angle < 22.5) | (angle >= 157.5)
    diag_up = (angle >= 22.5) & (angle < 67.5)
    vertical = (angle >= 67.5) & (angle < 112.5)
    diag_down = (angle >= 112.5) & (angle < 157.5)

    n1 = np.select(
        [horizontal, diag_up, vertical, diag_down],
        [shifted(0, -1), shifted(-1, 1), shifted(-1, 0), shifted(-1, -1)],
    )
    n2 = np.select(
        [horizontal, diag_up, vertical, diag_down],
        [shifted(0, 1), shifted(1, -1), shifted(1, 0), shifted(1, 1)],
    )
    out[1:-1, 1:-1] = np.where((m >= n1) & (m >= n2), m, 0.0)
    return out


def otsu_from_histogram(hist: np.ndarray, default: int = OTSU_DEFAULT_THRESHOLD) -> int:
    """Bin index maximizing the between-class variance.

    The first maximum wins; ``default`` is returned when the histogram has
    a single populated class.
    """
    hist = np.asarray(hist, dtype=np.float64)
    total = hist.sum()
    sum_all = float(np.dot(np.arange(len(hist)), hist))
    sum_b = 0.0
    w_b = 0.0
    best_thresh = default
    best_var = 0.0

    for t in range(len(hist)):
        w_b += hist[t]
        if w_b == 0:
            continue
        w_f = total - w_b
        if w_f == 0:
            break
        sum_b += t * hist[t]
        m_b = sum_b / w_b
        m_f = (sum_all - sum_b) / w_f
        between = w_b * w_f * (m_b - m_f) ** 2
        if between > best_var:
            best_var = between
            best_thresh = t
    return best_thresh


def otsu_threshold(gray: np.ndarray) -> int:
    """Global Otsu threshold of a gray image (values rounded into 256 bins)."""
    bins = np.clip(np.floor(np.asarray(gray, dtype=np.float64) + 0.5), 0, 255).astype(np.int64)
    hist = np.bincount(bins.ravel(), minlength=HISTOGRAM_BINS)
    return otsu_from_histogram(hist)


def hysteresis(nms: np.ndarray, low: float, high: float) -> np.ndarray:
    """Keep pixels >= low that are 8-connected to a pixel >= high.

    Returns:
        uint8 mask with 255 for edge pixels
    """
    candidates = nms >= low
    strong = nms >= high
    labels, count = ndimage.label(candidates, structure=EIGHT_CONNECTED)
    if count == 0:
        return np.zeros(nms.shape, dtype=np.uint8)
    keep = np.zeros(count + 1, dtype=bool)
    keep[np.unique(labels[strong])] = True
    keep[0] = False
    return np.where(keep[labels], EDGE_STRONG, 0).astype(np.uint8)


def canny_edges(gray: np.ndarray) -> np.ndarray:
    """Canny edge map of a gray image.

    Blur once, Sobel, non-maximum suppression, then hysteresis with the
    high threshold from Otsu over the histogram of surviving ridge
    magnitudes (scaled to 0-255) and the low threshold at half of it.

    Returns:
        uint8 mask, 255 on edges
    """
    blurred = gaussian_blur(gray)
    mag, direction = sobel_gradients(blurred)
    nms = non_max_suppression(mag, direction)

    max_mag = float(nms.max()) if nms.size else 0.0
    if max_mag < 1:
        return np.zeros(nms.shape, dtype=np.uint8)

    ridge = nms[nms > 0]
    bins = np.minimum(np.floor(ridge / max_mag * 255), 255).astype(np.int64)
    hist = np.bincount(bins, minlength=HISTOGRAM_BINS)
    best = otsu_from_histogram(hist, default=0)

    high = best / 255.0 * max_mag
    low = high * CANNY_LOW_RATIO
    # Suppressed pixels are never edges, even when low rounds to zero
    edges = hysteresis(np.where(nms > 0, nms, -1.0), low, high)
    logger.debug(f"Canny: max={max_mag:.1f} high={high:.1f} edges={int(np.count_nonzero(edges))}")
    return edges


def adaptive_threshold(gray: np.ndarray, block_size: int, offset: float) -> np.ndarray:
    """Binarize against the mean of a clamped block_size window.

    The window mean comes from a summed-area table; a pixel becomes 0 when
    it is darker than ``mean - offset`` and 255 otherwise.
    """
    gray = np.asarray(gray, dtype=np.float64)
    h, w = gray.shape
    integral = cv2.integral(gray, sdepth=cv2.CV_64F)
    half = block_size // 2

    ys = np.arange(h)
    xs = np.arange(w)
    y1 = np.maximum(0, ys - half)[:, None]
    y2 = np.minimum(h - 1, ys + half)[:, None]
    x1 = np.maximum(0, xs - half)[None, :]
    x2 = np.minimum(w - 1, xs + half)[None, :]

    area = (y2 - y1 + 1) * (x2 - x1 + 1)
    total = integral[y2 + 1, x2 + 1] - integral[y1, x2 + 1] - integral[y2 + 1, x1] + integral[y1, x1]
    mean = total / area
    return np.where(gray < mean - offset, 0, 255).astype(np.uint8)


def _square(radius: int) -> np.ndarray:
    return np.ones((2 * radius + 1, 2 * radius + 1), dtype=bool)


def dilate(mask: np.ndarray, radius: int) -> np.ndarray:
    """Binary dilation by a (2r+1) square; returns a bool mask."""
    return ndimage.binary_dilation(np.asarray(mask) > 0, structure=_square(radius))


def erode(mask: np.ndarray, radius: int) -> np.ndarray:
    """Binary erosion by a (2r+1) square; pixels outside the image count as unset."""
    return ndimage.binary_erosion(np.asarray(mask) > 0, structure=_square(radius), border_value=0)


def label_components(mask: np.ndarray) -> tuple[np.ndarray, list[tuple[int, int]]]:
    """Label 8-connected components of a binary mask.

    Returns:
        (labels, components) where labels is an int array (0 = background)
        and components lists (label, pixel_count) sorted by count descending
    """
    labels, count = ndimage.label(np.asarray(mask) > 0, structure=EIGHT_CONNECTED)
    if count == 0:
        return labels, []
    sizes = np.bincount(labels.ravel(), minlength=count + 1)
    order = np.argsort(-sizes[1:], kind="stable") + 1
    return labels, [(int(lbl), int(sizes[lbl])) for lbl in order]
