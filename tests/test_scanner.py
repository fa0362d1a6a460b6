"""Tests for the DocumentScanner engine facade."""

import base64

import numpy as np
import pytest

from conftest import CORNER_TOLERANCE, SCENE_CORNERS, png_bytes
from docrectify.services.config import DEFAULT_CORNERS, FULL_CORNERS, EnhanceMode, Quad, ScannerConfig
from docrectify.services.scanner import DocumentScanner, coerce_quad
from docrectify.utils.exceptions import ConfigurationError, InputImageError, NumericalError, ValidationError


class TestDetect:
    """Boundary detection through every accepted payload type."""

    def test_detect_from_bytes(self, scanner, scene_png):
        quad = scanner.detect(scene_png)
        assert quad is not None
        np.testing.assert_allclose(quad.to_array(), SCENE_CORNERS, atol=CORNER_TOLERANCE)

    def test_detect_from_base64_and_data_url(self, scanner, scene_base64):
        plain = scanner.detect(scene_base64)
        url = scanner.detect("data:image/png;base64," + scene_base64)
        assert plain is not None and url is not None
        np.testing.assert_allclose(url.to_array(), SCENE_CORNERS, atol=CORNER_TOLERANCE)

    def test_detect_from_path(self, scanner, scene_png, tmp_path):
        path = tmp_path / "scene.png"
        path.write_bytes(scene_png)
        assert scanner.detect(path) is not None
        assert scanner.detect(str(path)) is not None

    def test_detect_miss(self, scanner, uniform_image):
        assert scanner.detect(uniform_image) is None

    def test_corrupt_payload(self, scanner):
        with pytest.raises(InputImageError):
            scanner.detect(b"not an image")

    def test_seeded_scanners_agree(self, scene):
        a = DocumentScanner(ScannerConfig(seed=3)).detect(scene)
        b = DocumentScanner(ScannerConfig(seed=3)).detect(scene)
        assert a == b


class TestAcceleratedDetector:
    """The optional platform detector and its fallback to the cascade."""

    def test_result_is_used_and_ordered(self, scene):
        unordered = [[0.7, 0.75], [0.3, 0.25], [0.75, 0.3], [0.25, 0.7]]
        scanner = DocumentScanner(accelerated_detector=lambda img: unordered)
        quad = scanner.detect(scene)
        np.testing.assert_allclose(
            quad.to_array(), [[0.3, 0.25], [0.75, 0.3], [0.7, 0.75], [0.25, 0.7]]
        )

    def test_coordinates_are_clamped(self, scene):
        scanner = DocumentScanner(
            accelerated_detector=lambda img: Quad.from_array([[-0.1, 0], [1.2, 0], [1, 1], [0, 1]])
        )
        corners = scanner.detect(scene).to_array()
        assert corners.min() >= 0.0
        assert corners.max() <= 1.0

    def test_exception_falls_back_to_cascade(self, scene):
        def broken(img):
            raise RuntimeError("model unavailable")

        quad = DocumentScanner(ScannerConfig(seed=1), accelerated_detector=broken).detect(scene)
        assert quad is not None
        np.testing.assert_allclose(quad.to_array(), SCENE_CORNERS, atol=CORNER_TOLERANCE)

    def test_none_falls_back_to_cascade(self, scene):
        calls = []

        def nothing(img):
            calls.append(img.shape)
            return None

        quad = DocumentScanner(ScannerConfig(seed=1), accelerated_detector=nothing).detect(scene)
        assert calls == [(600, 800, 3)]
        assert quad is not None

    def test_garbage_result_falls_back(self, scene):
        quad = DocumentScanner(ScannerConfig(seed=1), accelerated_detector=lambda img: "junk").detect(scene)
        assert quad is not None


class TestRectify:
    def test_full_frame_dimensions(self, scanner, scene_png):
        result = scanner.rectify(scene_png, FULL_CORNERS, EnhanceMode.COLOR)
        assert (result.width, result.height) == (800, 600)
        assert (result.src_width, result.src_height) == (800, 600)
        assert result.pixels.shape == (600, 800, 3)
        assert result.mode is EnhanceMode.COLOR

    def test_accepts_wire_dict_and_mode_name(self, scanner, scene):
        result = scanner.rectify(scene, DEFAULT_CORNERS.to_dict(), "gray")
        assert (result.width, result.height) == (640, 480)
        assert result.mode is EnhanceMode.GRAY

    def test_minimum_output_size(self, scanner, scene):
        tiny = Quad.from_array([[0.5, 0.5], [0.52, 0.5], [0.52, 0.52], [0.5, 0.52]])
        result = scanner.rectify(scene, tiny)
        assert result.width == 100
        assert result.height == 100

    def test_document_region_is_white_in_bw(self, scanner, scene):
        quad = Quad.from_array(SCENE_CORNERS)
        result = scanner.rectify(scene, quad, EnhanceMode.BW)
        assert (result.pixels[5:-5, 5:-5] == 255).all()

    def test_encoded_output_decodes(self, scanner, scene):
        import cv2

        result = scanner.rectify(scene, DEFAULT_CORNERS)
        decoded = cv2.imdecode(np.frombuffer(base64.b64decode(result.to_base64()), np.uint8), cv2.IMREAD_COLOR)
        assert decoded.shape == (480, 640, 3)

    def test_collinear_corners(self, scanner, scene):
        quad = Quad.from_array([[0, 0], [0.5, 0], [1, 0], [0.5, 1]])
        with pytest.raises(NumericalError):
            scanner.rectify(scene, quad)

    def test_missing_corners(self, scanner, scene):
        with pytest.raises(ValidationError):
            scanner.rectify(scene, None)

    def test_bad_mode(self, scanner, scene):
        with pytest.raises(ValidationError, match="mode"):
            scanner.rectify(scene, DEFAULT_CORNERS, "sepia")


class TestPreviewFilters:
    def test_three_low_resolution_variants(self, scanner, scene):
        previews = scanner.preview_filters(scene, DEFAULT_CORNERS)
        # 800x600 is first reduced to 500x375
        for img in (previews.bw, previews.gray, previews.color):
            assert img.shape == (300, 400, 3)

    def test_encode_all(self, scanner, scene_png):
        encoded = scanner.preview_filters(scene_png, DEFAULT_CORNERS).encode_all(70)
        assert set(encoded) == {"bw", "gray", "color"}
        for data in encoded.values():
            assert base64.b64decode(data)[:2] == b"\xff\xd8"

    def test_small_quad_uses_preview_minimum(self, scanner, scene):
        tiny = Quad.from_array([[0.5, 0.5], [0.52, 0.5], [0.52, 0.52], [0.5, 0.52]])
        previews = scanner.preview_filters(scene, tiny)
        assert previews.gray.shape[:2] == (50, 50)


class TestCoerceQuad:
    def test_sequence(self):
        assert coerce_quad([[0, 0], [1, 0], [1, 1], [0, 1]]) == FULL_CORNERS

    def test_wrong_shape(self):
        with pytest.raises(ValidationError):
            coerce_quad([[0, 0], [1, 0]])

    def test_non_numeric(self):
        with pytest.raises(ValidationError):
            coerce_quad("corners")


class TestScannerConfig:
    def test_invalid_config_rejected(self):
        with pytest.raises(ConfigurationError):
            DocumentScanner(ScannerConfig(detect_max_side=0))

    def test_detect_max_side_override(self, scanner, scene):
        quad = scanner.detect(png_bytes(scene), max_side=250)
        assert quad is not None
        np.testing.assert_allclose(quad.to_array(), SCENE_CORNERS, atol=0.03)
