"""Fiducial marker detection.

This module provides:
- Abstract Detector interface for pluggable detection backends
- ArucoMarkerDetector implementation using OpenCV's ArUco module
- Bounded wait for a detector that initializes asynchronously
"""

import logging
import threading
from abc import ABC, abstractmethod

import cv2
import numpy as np

from cardcal.config import DETECTOR_READY_TIMEOUT_S
from cardcal.markers import get_dictionary
from cardcal.validation import DetectedMarker, Point

logger = logging.getLogger(__name__)


class DetectorUnavailableError(RuntimeError):
    """Raised when a marker detector does not become ready in time."""


class Detector(ABC):
    """Abstract base class for marker detection.

    Readiness is a one-shot signal: a backend calls ``mark_ready`` once its
    resources are loaded, and callers block on ``wait_ready`` with a timeout.
    """

    def __init__(self) -> None:
        self._ready = threading.Event()

    def mark_ready(self) -> None:
        """Signal that the detector can accept images."""
        self._ready.set()

    def is_ready(self) -> bool:
        """Return True once the detector can accept images."""
        return self._ready.is_set()

    def wait_ready(self, timeout: float) -> bool:
        """Block until ready or until timeout seconds pass.

        Returns:
            True if the detector became ready
        """
        return self._ready.wait(timeout)

    @abstractmethod
    def detect(self, pixels: np.ndarray) -> list[DetectedMarker]:
        """Detect markers in an image.

        Args:
            pixels: uint8 array of shape (H, W), (H, W, 3) RGB or (H, W, 4) RGBA

        Returns:
            Detected markers with image-space corners; empty if none found

        Raises:
            ValueError: If pixels is not a valid image array
        """
        raise NotImplementedError


class ArucoMarkerDetector(Detector):
    """Detector using OpenCV's ArucoDetector with the codec's dictionary."""

    def __init__(self, initialize_in_background: bool = False) -> None:
        """Build the OpenCV detector.

        Args:
            initialize_in_background: Build the detector on a worker thread;
                callers must wait for readiness before detecting
        """
        super().__init__()
        self._detector: cv2.aruco.ArucoDetector | None = None
        if initialize_in_background:
            threading.Thread(target=self._initialize, daemon=True).start()
        else:
            self._initialize()

    def _initialize(self) -> None:
        params = cv2.aruco.DetectorParameters()
        params.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_SUBPIX
        self._detector = cv2.aruco.ArucoDetector(get_dictionary(), params)
        logger.info("ArucoMarkerDetector initialized")
        self.mark_ready()

    def detect(self, pixels: np.ndarray) -> list[DetectedMarker]:
        """Detect ArUco markers.

        Raises:
            ValueError: If pixels is not a valid image array
            DetectorUnavailableError: If called before initialization finished
        """
        if self._detector is None or not self.is_ready():
            raise DetectorUnavailableError("ArucoMarkerDetector is not initialized yet")

        gray = to_grayscale(pixels)
        corners, ids, _rejected = self._detector.detectMarkers(gray)

        markers: list[DetectedMarker] = []
        if ids is None:
            logger.debug("No markers detected")
            return markers

        for marker_corners, marker_id in zip(corners, ids.flatten()):
            # OpenCV returns corners as (1, 4, 2) per marker
            points = tuple(Point(x=float(cx), y=float(cy)) for cx, cy in marker_corners.reshape(4, 2))
            markers.append(DetectedMarker(id=int(marker_id), corners=points))

        logger.debug(f"Detected marker ids: {sorted(m.id for m in markers)}")
        return markers


def to_grayscale(pixels: np.ndarray) -> np.ndarray:
    """Convert an RGB/RGBA/grayscale uint8 array to a single-channel image.

    Raises:
        ValueError: If the array is not a uint8 image
    """
    if not isinstance(pixels, np.ndarray) or pixels.dtype != np.uint8:
        raise ValueError("Image must be a uint8 numpy array")
    if pixels.ndim == 2:
        return pixels
    if pixels.ndim == 3 and pixels.shape[2] == 3:
        return cv2.cvtColor(pixels, cv2.COLOR_RGB2GRAY)
    if pixels.ndim == 3 and pixels.shape[2] == 4:
        return cv2.cvtColor(pixels, cv2.COLOR_RGBA2GRAY)
    raise ValueError(f"Unsupported image shape: {pixels.shape}")


def wait_until_ready(detector: Detector, timeout: float = DETECTOR_READY_TIMEOUT_S) -> None:
    """Wait for a detector to become ready.

    Args:
        detector: Detector to wait on
        timeout: Maximum wait in seconds

    Raises:
        DetectorUnavailableError: If the detector is not ready within timeout
    """
    if detector.is_ready():
        return
    logger.info(f"Waiting up to {timeout}s for {type(detector).__name__} to become ready")
    if not detector.wait_ready(timeout):
        raise DetectorUnavailableError(
            f"{type(detector).__name__} not ready after {timeout}s"
        )
