"""
Document scanner orchestrator.

Exposes the three engine operations: detect the document boundary,
rectify and enhance a document, and render the three filter previews.
"""

import logging
import threading
from typing import Any, Protocol

import numpy as np

from docrectify.services.config import (
    EnhanceMode,
    FilterPreviews,
    Quad,
    ScanResult,
    ScannerConfig,
)
from docrectify.services.detection import detect_quad, downscale
from docrectify.services.enhance import enhance, enhance_bw, enhance_color, enhance_gray
from docrectify.services.geometry import order_corners
from docrectify.services.rectifier import rectify_pixels
from docrectify.utils.exceptions import ValidationError
from docrectify.utils.image_io import ImageSource, load_image

logger = logging.getLogger(__name__)


class AcceleratedDetector(Protocol):
    """A platform detector consulted before the cascade.

    It receives the decoded BGR image and returns normalized corners in
    tl, tr, br, bl order, or None.
    """

    def __call__(self, image: np.ndarray) -> Quad | None: ...


def coerce_quad(value: Any) -> Quad:
    """Accept a Quad, the ``{tl: {x, y}, ...}`` dict shape, or a 4x2 sequence.

    Raises:
        ValidationError: If the value cannot be read as four corners
    """
    if isinstance(value, Quad):
        return value
    if isinstance(value, dict):
        return Quad.from_dict(value)
    if value is None:
        raise ValidationError("corners", "corners are required")
    try:
        return Quad.from_array(value)
    except (TypeError, ValueError) as e:
        raise ValidationError("corners", "expected four (x, y) points", repr(value)[:80]) from e


class DocumentScanner:
    """
    Detection and rectification engine.

    Calls are independent; the only shared state is the RANSAC random
    source, which is guarded so concurrent calls stay safe.

    Example:
        scanner = DocumentScanner()
        quad = scanner.detect("photo.jpg") or DEFAULT_CORNERS
        result = scanner.rectify("photo.jpg", quad, EnhanceMode.GRAY)
    """

    def __init__(
        self,
        config: ScannerConfig | None = None,
        accelerated_detector: AcceleratedDetector | None = None,
        rng: np.random.Generator | None = None,
    ):
        """
        Initialize the scanner.

        Args:
            config: Scanner configuration; defaults are used if None.
            accelerated_detector: Optional detector tried before the cascade.
                                 Its failures (None or an exception) fall
                                 back to the cascade.
            rng: Random source for RANSAC. Defaults to one seeded from
                 ``config.seed``.
        """
        self.config = config or ScannerConfig()
        self.config.validate()
        self.accelerated_detector = accelerated_detector
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self._rng_lock = threading.Lock()

    def _call_rng(self) -> np.random.Generator:
        """Derive an independent generator for one detection call."""
        with self._rng_lock:
            seed = int(self.rng.integers(0, 2**63 - 1))
        return np.random.default_rng(seed)

    def _try_accelerated(self, image: np.ndarray) -> Quad | None:
        if self.accelerated_detector is None:
            return None
        try:
            found = self.accelerated_detector(image)
        except Exception as e:
            logger.warning(f"Accelerated detector failed, falling back to cascade: {e}")
            return None
        if found is None:
            logger.debug("Accelerated detector found nothing, falling back to cascade")
            return None
        try:
            quad = coerce_quad(found)
        except ValidationError as e:
            logger.warning(f"Accelerated detector returned unusable corners: {e}")
            return None
        return Quad.from_array(np.clip(order_corners(quad.to_array()), 0.0, 1.0))

    def detect(self, image: ImageSource, max_side: int | None = None) -> Quad | None:
        """Find the document boundary.

        Args:
            image: Encoded bytes, base64 / data-URL string, file path or ndarray
            max_side: Longer side of the working image (config default if None)

        Returns:
            Normalized corners, or None when no strategy finds a document

        Raises:
            InputImageError: If the image cannot be decoded
        """
        img = load_image(image)

        quad = self._try_accelerated(img)
        if quad is not None:
            logger.info("Document boundary found by accelerated detector")
            return quad

        return detect_quad(
            img,
            max_side=max_side or self.config.detect_max_side,
            strategies=self.config.strategies,
            rng=self._call_rng(),
            ransac_iterations=self.config.ransac_iterations,
        )

    def rectify(
        self,
        image: ImageSource,
        quad: Quad | dict | Any,
        mode: EnhanceMode | str = EnhanceMode.BW,
    ) -> ScanResult:
        """Rectify the quad region of an image and apply an enhancement filter.

        Args:
            image: Any accepted image payload
            quad: Normalized corners (Quad, wire dict or 4x2 sequence)
            mode: Enhancement mode

        Returns:
            ScanResult with the enhanced pixels

        Raises:
            InputImageError: If the image cannot be decoded
            ValidationError: If the corners or mode are malformed
            NumericalError: If no homography exists for the quad
        """
        mode = EnhanceMode.parse(mode)
        quad = coerce_quad(quad)
        img = load_image(image)
        sh, sw = img.shape[:2]

        warped = rectify_pixels(img, quad.to_pixels(sw, sh), self.config.min_output_size)
        pixels = enhance(warped, mode)
        return ScanResult(
            pixels=pixels,
            width=int(pixels.shape[1]),
            height=int(pixels.shape[0]),
            src_width=sw,
            src_height=sh,
            mode=mode,
        )

    def preview_filters(self, image: ImageSource, quad: Quad | dict | Any) -> FilterPreviews:
        """Rectify once at low resolution and render all three filters.

        Raises:
            InputImageError: If the image cannot be decoded
            ValidationError: If the corners are malformed
            NumericalError: If no homography exists for the quad
        """
        quad = coerce_quad(quad)
        small = downscale(load_image(image), self.config.preview_max_side)
        sh, sw = small.shape[:2]

        warped = rectify_pixels(small, quad.to_pixels(sw, sh), self.config.preview_min_output_size)
        return FilterPreviews(
            bw=enhance_bw(warped.copy()),
            gray=enhance_gray(warped.copy()),
            color=enhance_color(warped.copy()),
        )
