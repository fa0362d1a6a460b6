"""Enhancement filters applied after rectification.

Three modes: black-and-white (adaptive threshold), grayscale contrast
stretch, and per-channel color stretch with a mild brightening gamma.
Every filter returns a new uint8 BGR buffer and leaves its input untouched.
"""

import logging
import math

import cv2
import numpy as np

from docrectify.constants import (
    BW_MIN_BLOCK_SIZE,
    BW_THRESHOLD_OFFSET,
    COLOR_GAMMA,
    STRETCH_HIGH_PERCENTILE,
    STRETCH_LOW_PERCENTILE,
)
from docrectify.services.config import EnhanceMode
from docrectify.services.preprocessing import adaptive_threshold, to_gray

logger = logging.getLogger(__name__)


def bw_block_size(width: int, height: int) -> int:
    """Adaptive threshold window: about an eighth of the short side, odd, at least 15."""
    block = max(BW_MIN_BLOCK_SIZE, int(math.floor(min(width, height) / 8 + 0.5)) | 1)
    if block % 2 == 0:
        block += 1
    return block


def _percentile_range(values: np.ndarray) -> tuple[float, float]:
    """Low and high stretch points: the values at ranks floor(n*0.01) and floor(n*0.99)."""
    flat = values.ravel()
    n = flat.size
    lo_idx = int(math.floor(n * STRETCH_LOW_PERCENTILE))
    hi_idx = min(int(math.floor(n * STRETCH_HIGH_PERCENTILE)), n - 1)
    part = np.partition(flat, (lo_idx, hi_idx))
    return float(part[lo_idx]), float(part[hi_idx])


def enhance_bw(image: np.ndarray) -> np.ndarray:
    """Binarize with a local-mean threshold (offset 10) into pure black and white."""
    h, w = image.shape[:2]
    gray = to_gray(image)
    block = bw_block_size(w, h)
    logger.debug(f"BW enhancement: block size {block}")
    bw = adaptive_threshold(gray, block, BW_THRESHOLD_OFFSET)
    return cv2.cvtColor(bw, cv2.COLOR_GRAY2BGR)


def enhance_gray(image: np.ndarray) -> np.ndarray:
    """Grayscale with the 1st..99th percentile range stretched to 0..255."""
    gray = to_gray(image)
    lo, hi = _percentile_range(gray)
    span = (hi - lo) or 1.0
    v = np.floor((gray - lo) / span * 255 + 0.5)
    out = np.clip(v, 0, 255).astype(np.uint8)
    return cv2.cvtColor(out, cv2.COLOR_GRAY2BGR)


def enhance_color(image: np.ndarray) -> np.ndarray:
    """Stretch each channel to its 1st..99th percentile range, then apply gamma 0.85."""
    levels = np.arange(256, dtype=np.float64)
    channels = []
    for channel in cv2.split(image):
        lo, hi = _percentile_range(channel)
        span = (hi - lo) or 1.0
        stretched = np.clip((levels - lo) / span * 255, 0, 255)
        lut = np.floor(np.power(stretched / 255, COLOR_GAMMA) * 255 + 0.5).astype(np.uint8)
        channels.append(cv2.LUT(channel, lut))
    return cv2.merge(channels)


def enhance(image: np.ndarray, mode: EnhanceMode | str) -> np.ndarray:
    """Apply the filter selected by ``mode``."""
    mode = EnhanceMode.parse(mode)
    if mode is EnhanceMode.BW:
        return enhance_bw(image)
    if mode is EnhanceMode.GRAY:
        return enhance_gray(image)
    return enhance_color(image)
