"""Error handling and edge case tests for image input and the exception hierarchy."""

import base64

import cv2
import numpy as np
import pytest

from docrectify.utils.exceptions import (
    ConfigurationError,
    DocRectifyError,
    InputImageError,
    NumericalError,
    ValidationError,
)
from docrectify.utils.image_io import load_image, to_bgr


class TestExceptionMessages:
    """Message formatting and hierarchy."""

    def test_all_derive_from_base(self):
        for exc in (InputImageError(), NumericalError("x"), ValidationError("f", "bad"), ConfigurationError("s", "bad")):
            assert isinstance(exc, DocRectifyError)

    def test_details_in_str(self):
        assert str(DocRectifyError("boom", "ctx")) == "boom (ctx)"
        assert str(DocRectifyError("boom")) == "boom"

    def test_input_image_error(self):
        err = InputImageError("empty payload", "bytes")
        assert str(err) == "Invalid image input: empty payload (source=bytes)"
        assert err.reason == "empty payload"

    def test_numerical_error(self):
        err = NumericalError("inverse homography", "matrix is singular")
        assert str(err) == "Failed to compute inverse homography: matrix is singular"

    def test_validation_error(self):
        err = ValidationError("mode", "expected bw, gray or color", "sepia")
        assert str(err) == "Invalid mode: expected bw, gray or color (got sepia)"
        assert err.field == "mode"
        assert str(ValidationError("corners", "corners are required")) == "Invalid corners: corners are required"

    def test_configuration_error(self):
        err = ConfigurationError("seed", "must be an integer or null")
        assert str(err) == "Bad setting 'seed': must be an integer or null"
        assert err.setting == "seed"


class TestLoadImage:
    """Payload decoding and its failure modes."""

    def test_empty_bytes(self):
        with pytest.raises(InputImageError, match="empty payload"):
            load_image(b"")

    def test_undecodable_bytes(self):
        with pytest.raises(InputImageError, match="could not decode"):
            load_image(b"\x00\x01\x02\x03")

    def test_invalid_base64(self):
        with pytest.raises(InputImageError, match="invalid base64"):
            load_image("not base64 at all!!")

    def test_unsupported_data_url(self):
        with pytest.raises(InputImageError, match="unsupported data URL"):
            load_image("data:image/png,rawdata")

    def test_unsupported_type(self):
        with pytest.raises(InputImageError, match="unsupported payload type int"):
            load_image(42)

    def test_png_roundtrip_types(self, tmp_path):
        img = np.zeros((10, 12, 3), dtype=np.uint8)
        img[2:5, 3:7] = (10, 20, 30)
        ok, buf = cv2.imencode(".png", img)
        data = buf.tobytes()
        b64 = base64.b64encode(data).decode("ascii")
        path = tmp_path / "img.png"
        path.write_bytes(data)

        for source in (data, bytearray(data), memoryview(data), b64, f"data:image/png;base64,{b64}", path):
            np.testing.assert_array_equal(load_image(source), img)


class TestToBgr:
    def test_gray_to_bgr(self):
        out = to_bgr(np.full((4, 5), 9, dtype=np.uint8))
        assert out.shape == (4, 5, 3)
        assert (out == 9).all()

    def test_single_channel(self):
        assert to_bgr(np.zeros((4, 5, 1), dtype=np.uint8)).shape == (4, 5, 3)

    def test_bgra_drops_alpha(self):
        img = np.zeros((3, 3, 4), dtype=np.uint8)
        img[..., :3] = (1, 2, 3)
        img[..., 3] = 255
        out = to_bgr(img)
        assert out.shape == (3, 3, 3)
        assert tuple(out[0, 0]) == (1, 2, 3)

    def test_sixteen_bit(self):
        out = to_bgr(np.full((2, 2, 3), 0xFF00, dtype=np.uint16))
        assert out.dtype == np.uint8
        assert (out == 0xFF).all()

    def test_float_is_rounded_and_clipped(self):
        out = to_bgr(np.array([[-5.0, 100.4, 300.0]]))
        np.testing.assert_array_equal(out[0, :, 0], [0, 100, 255])

    def test_bad_shape(self):
        with pytest.raises(InputImageError, match="unsupported image shape"):
            to_bgr(np.zeros((2, 2, 2), dtype=np.uint8))

    def test_empty(self):
        with pytest.raises(InputImageError):
            to_bgr(np.zeros((0, 5, 3), dtype=np.uint8))
