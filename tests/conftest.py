"""Pytest configuration for docrectify tests.

Provides synthetic photographs: a bright document on a dark background
and a featureless gray frame. The document spans 20%..80% of both axes,
so detected corners should land near (0.2, 0.2) .. (0.8, 0.8).
"""

import base64

import cv2
import numpy as np
import pytest

from docrectify.services.config import ScannerConfig
from docrectify.services.scanner import DocumentScanner

SCENE_WIDTH = 800
SCENE_HEIGHT = 600
SCENE_CORNERS = np.array([[0.2, 0.2], [0.8, 0.2], [0.8, 0.8], [0.2, 0.8]])
CORNER_TOLERANCE = 0.02


def make_scene(width: int = SCENE_WIDTH, height: int = SCENE_HEIGHT) -> np.ndarray:
    """Dark background (30) with a bright document (220) over the middle 60%."""
    img = np.full((height, width, 3), 30, dtype=np.uint8)
    img[int(height * 0.2) : int(height * 0.8), int(width * 0.2) : int(width * 0.8)] = 220
    return img


def png_bytes(img: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


@pytest.fixture
def scene():
    return make_scene()


@pytest.fixture
def uniform_image():
    return np.full((SCENE_HEIGHT, SCENE_WIDTH, 3), 128, dtype=np.uint8)


@pytest.fixture
def scene_png(scene):
    return png_bytes(scene)


@pytest.fixture
def scene_base64(scene_png):
    return base64.b64encode(scene_png).decode("ascii")


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def scanner():
    return DocumentScanner(ScannerConfig(seed=7))
