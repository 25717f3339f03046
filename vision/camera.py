"""OpenCV/V4L2 capture, low-light check, and the identify frame transform."""

import base64
import logging
import threading
from typing import Any

from config import settings

logger = logging.getLogger(__name__)

# Low-light detection threshold (mean brightness 0-255)
LOW_LIGHT_THRESHOLD = 30


class CameraUnavailableError(RuntimeError):
    """Camera missing, busy, or access denied."""


def open_camera(
    index: int = 0,
    width: int = 1280,
    height: int = 720,
    fps: int = 30,
    device_path: str | None = None,
):
    """Open OpenCV VideoCapture. Use device_path (e.g. /dev/video0) if set, else index. Returns cap or None."""
    try:
        import cv2

        source = device_path if device_path else index
        cap = cv2.VideoCapture(source)
        if not cap.isOpened():
            return None
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        cap.set(cv2.CAP_PROP_FPS, fps)
        return cap
    except Exception as e:
        logger.warning("Camera open failed: %s", e)
        return None


def read_frame(cap) -> Any | None:
    """Read one frame; returns frame or None."""
    if cap is None:
        return None
    try:
        ok, frame = cap.read()
        return frame if ok else None
    except Exception:
        return None


def check_low_light(frame, threshold: int = LOW_LIGHT_THRESHOLD) -> bool:
    """True if the frame is too dark for reliable identification."""
    if frame is None:
        return False
    try:
        import cv2
        import numpy as np

        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        mean_brightness = float(np.mean(gray))
        if mean_brightness < threshold:
            logger.info(
                "Low-light detected (brightness=%.1f < %d). "
                "Identification may fail.",
                mean_brightness, threshold,
            )
            return True
        return False
    except Exception:
        return False


def transform_frame(
    frame,
    max_width: int = settings.IDENTIFY_MAX_WIDTH,
    quality: int = settings.IDENTIFY_JPEG_QUALITY,
) -> str | None:
    """Downscale to at most ``max_width`` (aspect kept), JPEG-recompress, base64.

    Returns None if the frame is empty or encoding fails.
    """
    if frame is None or getattr(frame, "size", 0) == 0:
        return None
    import cv2

    height, width = frame.shape[:2]
    if width > max_width > 0:
        scale = max_width / width
        frame = cv2.resize(
            frame, (max_width, max(1, int(round(height * scale)))), interpolation=cv2.INTER_AREA
        )
    ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        logger.warning("JPEG encode failed")
        return None
    return base64.b64encode(buf.tobytes()).decode("ascii")


class Camera:
    """The front camera used by the identification loop.

    Blocking (OpenCV); callers go through an executor.  ``close`` waits for a
    capture that is still running so the device is never released mid-read.
    """

    def __init__(
        self,
        index: int = settings.CAMERA_INDEX,
        device_path: str | None = settings.CAMERA_DEVICE,
        width: int = settings.CAMERA_WIDTH,
        height: int = settings.CAMERA_HEIGHT,
        fps: int = settings.CAMERA_FPS,
    ) -> None:
        self.index = index
        self.device_path = device_path
        self.width = width
        self.height = height
        self.fps = fps
        self._cap = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def open(self) -> None:
        """Open the device. Raises CameraUnavailableError."""
        with self._lock:
            if self._cap is not None:
                return
            cap = open_camera(self.index, self.width, self.height, self.fps, self.device_path)
            if cap is None:
                raise CameraUnavailableError(
                    f"Could not open camera {self.device_path or self.index}"
                )
            self._cap = cap
        logger.info("Camera opened (%s)", self.device_path or self.index)

    def close(self) -> None:
        with self._lock:
            cap, self._cap = self._cap, None
        if cap is not None:
            cap.release()
            logger.info("Camera released")

    def capture_base64(
        self,
        max_width: int = settings.IDENTIFY_MAX_WIDTH,
        quality: int = settings.IDENTIFY_JPEG_QUALITY,
    ) -> str | None:
        """Grab one frame and return it transformed, or None on failure."""
        with self._lock:
            frame = read_frame(self._cap)
        if frame is None:
            logger.warning("Camera snapshot failed")
            return None
        check_low_light(frame)
        return transform_frame(frame, max_width, quality)
