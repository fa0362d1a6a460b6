"""Perspective rectifier.

Maps a source quad onto an upright rectangle by inverse warping: every
destination pixel is traced back through the inverse homography and
bilinearly sampled from the source. Destination pixels that land outside
the source are black.
"""

import logging

import cv2
import numpy as np

from docrectify.constants import DEFAULT_MIN_OUTPUT_SIZE
from docrectify.services.geometry import compute_homography, has_collinear_triplet, invert3x3
from docrectify.utils.exceptions import NumericalError

logger = logging.getLogger(__name__)

# Destination tile side per cv2.remap call
_TILE = 512
# Source coordinates this far below zero are rounding residue of an exact edge
_EDGE_TOLERANCE = 1e-6
# cv2.remap requires every image side below SHRT_MAX
_REMAP_MAX_SIDE = 32767


def output_size(corners: np.ndarray, min_size: int = DEFAULT_MIN_OUTPUT_SIZE) -> tuple[int, int]:
    """Destination (width, height) for ordered pixel corners tl, tr, br, bl.

    Width is the longer of the top and bottom edges, height the longer of
    the left and right edges, each rounded and raised to ``min_size``.
    """
    tl, tr, br, bl = np.asarray(corners, dtype=np.float64).reshape(4, 2)
    dw = int(np.floor(max(np.linalg.norm(tl - tr), np.linalg.norm(bl - br)) + 0.5))
    dh = int(np.floor(max(np.linalg.norm(tl - bl), np.linalg.norm(tr - br)) + 0.5))
    return max(dw, min_size), max(dh, min_size)


def rectification_homography(corners: np.ndarray, width: int, height: int) -> np.ndarray:
    """Inverse homography mapping destination pixels back to the source quad.

    Raises:
        NumericalError: If the quad is degenerate or the map is singular
    """
    src = np.asarray(corners, dtype=np.float64).reshape(4, 2)
    if not np.all(np.isfinite(src)) or has_collinear_triplet(src):
        logger.warning("Rectification rejected: three corners are collinear")
        raise NumericalError("homography", "three corners are collinear")

    dst = np.array([[0, 0], [width, 0], [width, height], [0, height]], dtype=np.float64)
    h = compute_homography(src, dst)
    if h is None:
        logger.warning("Homography system is singular")
        raise NumericalError("homography")

    h_inv = invert3x3(h)
    if h_inv is None:
        logger.warning("Homography is not invertible")
        raise NumericalError("inverse homography", "matrix is singular")
    return h_inv


def _sample_bilinear(image: np.ndarray, sx: np.ndarray, sy: np.ndarray) -> np.ndarray:
    """Bilinear lookup with clamped neighbours, for regions too wide for cv2.remap."""
    sh, sw = image.shape[:2]
    x0 = np.clip(np.floor(sx), 0, sw - 1).astype(np.intp)
    y0 = np.clip(np.floor(sy), 0, sh - 1).astype(np.intp)
    fx = np.clip(sx - x0, 0.0, 1.0)
    fy = np.clip(sy - y0, 0.0, 1.0)
    x1 = np.minimum(x0 + 1, sw - 1)
    y1 = np.minimum(y0 + 1, sh - 1)
    if image.ndim == 3:
        fx = fx[..., None]
        fy = fy[..., None]

    def at(ys, xs):
        return image[ys, xs].astype(np.float64)

    top = at(y0, x0) * (1.0 - fx) + at(y0, x1) * fx
    bottom = at(y1, x0) * (1.0 - fx) + at(y1, x1) * fx
    value = top * (1.0 - fy) + bottom * fy
    return np.clip(np.floor(value + 0.5), 0, 255).astype(np.uint8)


def _sample_tile(image: np.ndarray, sx: np.ndarray, sy: np.ndarray, inside: np.ndarray) -> np.ndarray:
    """Sample one destination tile from the source window it actually reads."""
    sh, sw = image.shape[:2]
    tile = np.zeros(sx.shape + image.shape[2:], dtype=np.uint8)
    if not inside.any():
        return tile

    sx = np.where(inside, np.maximum(sx, 0), 0)
    sy = np.where(inside, np.maximum(sy, 0), 0)
    x_lo = int(np.floor(sx[inside].min()))
    y_lo = int(np.floor(sy[inside].min()))
    x_hi = min(int(np.floor(sx[inside].max())) + 2, sw)
    y_hi = min(int(np.floor(sy[inside].max())) + 2, sh)
    window = image[y_lo:y_hi, x_lo:x_hi]

    if max(window.shape[:2]) >= _REMAP_MAX_SIDE:
        tile[inside] = _sample_bilinear(window, sx[inside] - x_lo, sy[inside] - y_lo)
        return tile

    map_x = np.where(inside, sx - x_lo, 0).astype(np.float32)
    map_y = np.where(inside, sy - y_lo, 0).astype(np.float32)
    tile = cv2.remap(
        np.ascontiguousarray(window),
        map_x,
        map_y,
        interpolation=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_REPLICATE,
    )
    tile[~inside] = 0
    return tile


def warp_inverse(image: np.ndarray, h_inv: np.ndarray, width: int, height: int) -> np.ndarray:
    """Fill a width x height image by sampling ``image`` through ``h_inv``.

    A destination pixel is sampled when its source point satisfies
    0 <= x < src_w and 0 <= y < src_h; neighbours past the last row or
    column are clamped. Everything else is black.

    The destination is processed in tiles and each tile reads only the
    source window it maps into, so neither side is bound by the cv2.remap
    size limit.
    """
    sh, sw = image.shape[:2]
    out = np.zeros((height, width) + image.shape[2:], dtype=np.uint8)

    for y0 in range(0, height, _TILE):
        ys = np.arange(y0, min(y0 + _TILE, height), dtype=np.float64)
        for x0 in range(0, width, _TILE):
            xs = np.arange(x0, min(x0 + _TILE, width), dtype=np.float64)
            gx, gy = np.meshgrid(xs, ys)
            w = h_inv[2, 0] * gx + h_inv[2, 1] * gy + h_inv[2, 2]
            with np.errstate(divide="ignore", invalid="ignore"):
                sx = (h_inv[0, 0] * gx + h_inv[0, 1] * gy + h_inv[0, 2]) / w
                sy = (h_inv[1, 0] * gx + h_inv[1, 1] * gy + h_inv[1, 2]) / w
            inside = (sx >= -_EDGE_TOLERANCE) & (sx < sw) & (sy >= -_EDGE_TOLERANCE) & (sy < sh)
            out[y0 : y0 + len(ys), x0 : x0 + len(xs)] = _sample_tile(image, sx, sy, inside)

    return out


def rectify_pixels(
    image: np.ndarray,
    corners: np.ndarray,
    min_size: int = DEFAULT_MIN_OUTPUT_SIZE,
) -> np.ndarray:
    """Rectify the quad ``corners`` (pixel space, tl, tr, br, bl) of ``image``.

    Returns:
        uint8 image of the computed output size

    Raises:
        NumericalError: If no usable homography exists for the quad
    """
    width, height = output_size(corners, min_size)
    h_inv = rectification_homography(corners, width, height)
    logger.info(f"Rectifying {image.shape[1]}x{image.shape[0]} source to {width}x{height}")
    return warp_inverse(image, h_inv, width, height)
