"""
Live preview overlay support.

Pure helpers for temporal smoothing and preview aspect compensation, and
a session object that throttles preview detection and serializes it with
the final capture.
"""

import logging
import threading
import time
from collections.abc import Callable

from docrectify.constants import DEFAULT_ASPECT_TOLERANCE
from docrectify.services.config import (
    DEFAULT_CORNERS,
    EnhanceMode,
    Point2D,
    Quad,
    ScannerConfig,
    ScanResult,
    SmoothingState,
)
from docrectify.services.scanner import DocumentScanner
from docrectify.utils.exceptions import InputImageError
from docrectify.utils.image_io import ImageSource, load_image

logger = logging.getLogger(__name__)


def lerp_quad(a: Quad, b: Quad, t: float) -> Quad:
    """Move every corner of ``a`` a fraction ``t`` of the way toward ``b``."""

    def lerp(p: Point2D, q: Point2D) -> Point2D:
        return Point2D(p.x + (q.x - p.x) * t, p.y + (q.y - p.y) * t)

    return Quad(lerp(a.tl, b.tl), lerp(a.tr, b.tr), lerp(a.br, b.br), lerp(a.bl, b.bl))


def remap_for_preview(
    quad: Quad,
    snap_w: float,
    snap_h: float,
    view_w: float,
    view_h: float,
    tolerance: float = DEFAULT_ASPECT_TOLERANCE,
) -> Quad:
    """Convert snapshot-normalized corners to a center-cropped preview's coordinates.

    A preview showing a wider snapshot crops its left and right sides, so x
    is remapped; a taller snapshot loses top and bottom, so y is remapped.
    Nothing changes when the aspect ratios differ by less than ``tolerance``
    or a size is unknown.
    """
    if not (view_w and view_h and snap_w and snap_h):
        return quad
    snap_ar = snap_w / snap_h
    prev_ar = view_w / view_h
    if abs(snap_ar - prev_ar) / max(snap_ar, prev_ar) < tolerance:
        return quad

    if snap_ar > prev_ar:
        visible = prev_ar / snap_ar
        offset = (1 - visible) / 2

        def remap(p: Point2D) -> Point2D:
            return Point2D((p.x - offset) / visible, p.y)

    else:
        visible = snap_ar / prev_ar
        offset = (1 - visible) / 2

        def remap(p: Point2D) -> Point2D:
            return Point2D(p.x, (p.y - offset) / visible)

    return Quad(remap(quad.tl), remap(quad.tr), remap(quad.br), remap(quad.bl))


def smooth_tick(
    state: SmoothingState,
    detected: Quad | None,
    now: float,
    factor: float,
    stale_after: float,
) -> tuple[SmoothingState, Quad | None]:
    """Advance the smoothing state by one detection result.

    A detection is blended with the previous corners (weight ``factor``
    on the new one) and stamped with ``now``. A miss keeps the
    previous corners on screen while they are younger than ``stale_after``
    seconds; after that the state is cleared.

    Returns:
        (new state, corners to display or None)
    """
    if detected is not None:
        corners = lerp_quad(state.corners, detected, factor) if state.corners else detected
        return SmoothingState(corners=corners, timestamp=now), corners

    if state.corners is not None and now - state.timestamp < stale_after:
        return state, state.corners
    return SmoothingState(), None


class LivePreviewSession:
    """Owns the overlay state of one camera preview.

    Preview passes never overlap: a tick arriving while another pass runs,
    or while a capture is pending, returns the current overlay unchanged.
    """

    def __init__(
        self,
        scanner: DocumentScanner,
        view_size: tuple[float, float] | None = None,
        config: ScannerConfig | None = None,
        clock: Callable[[], float] | None = None,
    ):
        """
        Args:
            scanner: Engine used for detection and capture
            view_size: (width, height) of the preview surface, if known
            config: Timing settings; the scanner's config if None
            clock: Time source in seconds; time.monotonic if None
        """
        self.scanner = scanner
        self.view_size = view_size
        self.config = config or scanner.config
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._state = SmoothingState()
        self._overlay: Quad | None = None
        self._detecting = False
        self._capturing = False

    @property
    def state(self) -> SmoothingState:
        return self._state

    @property
    def overlay(self) -> Quad | None:
        return self._overlay

    @property
    def busy(self) -> bool:
        return self._detecting

    def tick(self, frame: ImageSource, now: float | None = None) -> Quad | None:
        """Run one preview detection pass and return the corners to draw."""
        with self._lock:
            if self._detecting or self._capturing:
                return self._overlay
            self._detecting = True

        try:
            img = load_image(frame)
            detected = self.scanner.detect(img)
            if detected is not None and self.view_size:
                view_w, view_h = self.view_size
                detected = remap_for_preview(
                    detected, img.shape[1], img.shape[0], view_w, view_h, self.config.aspect_tolerance
                )
            stamp = self._clock() if now is None else now
            with self._lock:
                self._state, self._overlay = smooth_tick(
                    self._state,
                    detected,
                    stamp,
                    self.config.smoothing_factor,
                    self.config.stale_after_seconds,
                )
        except InputImageError as e:
            logger.warning(f"Preview frame skipped: {e}")
        finally:
            with self._lock:
                self._detecting = False

        return self._overlay

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Poll until no preview pass is in flight.

        Returns:
            True once idle, False if ``timeout`` seconds passed first
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._detecting:
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(self.config.capture_poll_interval)
        return True

    def capture(
        self,
        image: ImageSource,
        quad: Quad | None = None,
        mode: EnhanceMode | str = EnhanceMode.BW,
    ) -> ScanResult:
        """Rectify a captured photo once preview detection has settled.

        Corners come from ``quad`` if given, else from a fresh detection on
        the photo, else the default inset frame.
        """
        with self._lock:
            self._capturing = True
        try:
            self.wait_idle()
            img = load_image(image)
            if quad is None:
                quad = self.scanner.detect(img)
                if quad is None:
                    logger.info("No document found in capture, using default corners")
                    quad = DEFAULT_CORNERS
            return self.scanner.rectify(img, quad, mode)
        finally:
            with self._lock:
                self._capturing = False
