"""
DocRectify - Image Input Module

Decodes the image payloads accepted by the engine into uint8 BGR arrays.
"""

import base64
import binascii
import os
from typing import Any

import cv2
import numpy as np

from docrectify.utils.exceptions import InputImageError
from docrectify.utils.logger import logger

ImageSource = Any  # bytes | str | os.PathLike | np.ndarray


def _decode_bytes(data: bytes, source: str) -> np.ndarray:
    if not data:
        raise InputImageError("empty payload", source)
    buf = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise InputImageError("could not decode image data", source)
    return img


def _decode_base64(text: str) -> np.ndarray:
    """Decode a base64 string, with or without a ``data:image/...;base64,`` prefix."""
    payload = text.strip()
    source = "base64"
    if payload.startswith("data:"):
        header, sep, payload = payload.partition(",")
        if not sep or ";base64" not in header:
            raise InputImageError("unsupported data URL", "data-url")
        source = "data-url"
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InputImageError(f"invalid base64: {e}", source) from e
    return _decode_bytes(data, source)


def to_bgr(img: np.ndarray) -> np.ndarray:
    """Normalize an array to a contiguous uint8 HxWx3 BGR buffer.

    Gray (HxW or HxWx1) and BGRA (HxWx4) inputs are converted; 16-bit
    inputs are scaled down to 8 bits.

    Raises:
        InputImageError: If the array cannot be an image
    """
    if not isinstance(img, np.ndarray):
        raise InputImageError(f"expected an ndarray, got {type(img).__name__}")
    if img.dtype == np.uint16:
        img = (img >> 8).astype(np.uint8)
    elif img.dtype != np.uint8:
        if not np.issubdtype(img.dtype, np.number):
            raise InputImageError(f"unsupported dtype {img.dtype}")
        img = np.clip(np.rint(img), 0, 255).astype(np.uint8)

    if img.ndim == 3 and img.shape[2] == 1:
        img = img[:, :, 0]

    if img.ndim == 2:
        img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    elif img.ndim == 3 and img.shape[2] == 4:
        img = cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
    elif not (img.ndim == 3 and img.shape[2] == 3):
        raise InputImageError(f"unsupported image shape {img.shape}")

    if img.shape[0] < 1 or img.shape[1] < 1:
        raise InputImageError("image has no pixels")
    return np.ascontiguousarray(img)


def load_image(source: ImageSource) -> np.ndarray:
    """Load an image from any accepted payload.

    Args:
        source: Encoded bytes, a base64 / data-URL string, a file path
                (str or PathLike) or an ndarray

    Returns:
        uint8 BGR image of shape (H, W, 3)

    Raises:
        InputImageError: If the payload is malformed or undecodable
    """
    if isinstance(source, np.ndarray):
        return to_bgr(source)

    if isinstance(source, (bytes, bytearray, memoryview)):
        return to_bgr(_decode_bytes(bytes(source), "bytes"))

    if isinstance(source, os.PathLike):
        source = os.fspath(source)

    if isinstance(source, str):
        if source.startswith("data:"):
            return to_bgr(_decode_base64(source))
        # A short string naming an existing file is a path, anything else base64
        if len(source) < 4096 and os.path.isfile(source):
            logger.debug(f"Reading image from {source}")
            try:
                with open(source, "rb") as f:
                    data = f.read()
            except OSError as e:
                raise InputImageError(str(e), source) from e
            return to_bgr(_decode_bytes(data, source))
        return to_bgr(_decode_base64(source))

    raise InputImageError(f"unsupported payload type {type(source).__name__}")
