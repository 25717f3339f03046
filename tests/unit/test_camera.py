"""Unit tests for vision.camera – frame transform and the Camera wrapper (no device needed)."""

import base64
from unittest.mock import MagicMock, patch

import cv2
import numpy as np
import pytest
from vision.camera import Camera, CameraUnavailableError, check_low_light, transform_frame


def _decode(b64: str) -> np.ndarray:
    data = np.frombuffer(base64.b64decode(b64), dtype=np.uint8)
    return cv2.imdecode(data, cv2.IMREAD_COLOR)


@pytest.mark.unit
class TestTransformFrame:
    def test_downscales_to_max_width_keeping_aspect(self):
        frame = np.full((720, 1280, 3), 128, dtype=np.uint8)
        img = _decode(transform_frame(frame, max_width=640, quality=20))
        assert img.shape[:2] == (360, 640)

    def test_small_frame_is_not_upscaled(self):
        frame = np.full((240, 320, 3), 200, dtype=np.uint8)
        img = _decode(transform_frame(frame, max_width=640, quality=50))
        assert img.shape[:2] == (240, 320)

    def test_output_is_jpeg(self):
        frame = np.zeros((100, 100, 3), dtype=np.uint8)
        raw = base64.b64decode(transform_frame(frame, max_width=640, quality=20))
        assert raw[:2] == b"\xff\xd8"

    def test_lower_quality_is_smaller(self):
        rng = np.random.default_rng(0)
        frame = rng.integers(0, 255, (480, 640, 3), dtype=np.uint8)
        assert len(transform_frame(frame, 640, 10)) < len(transform_frame(frame, 640, 90))

    def test_empty_frame(self):
        assert transform_frame(None) is None
        assert transform_frame(np.zeros((0, 0, 3), dtype=np.uint8)) is None


@pytest.mark.unit
def test_check_low_light():
    assert check_low_light(np.zeros((10, 10, 3), dtype=np.uint8)) is True
    assert check_low_light(np.full((10, 10, 3), 200, dtype=np.uint8)) is False
    assert check_low_light(None) is False


@pytest.mark.unit
class TestCamera:
    def test_open_failure_raises(self):
        with patch("vision.camera.open_camera", return_value=None):
            cam = Camera(index=3)
            with pytest.raises(CameraUnavailableError):
                cam.open()
            assert not cam.is_open

    def test_capture_and_close(self):
        cap = MagicMock()
        cap.read.return_value = (True, np.full((720, 1280, 3), 90, dtype=np.uint8))
        with patch("vision.camera.open_camera", return_value=cap):
            cam = Camera()
            cam.open()
            assert cam.is_open
            img = _decode(cam.capture_base64(max_width=320, quality=30))
            assert img.shape[1] == 320
            cam.close()
        cap.release.assert_called_once()
        assert not cam.is_open

    def test_failed_snapshot_returns_none(self):
        cap = MagicMock()
        cap.read.return_value = (False, None)
        with patch("vision.camera.open_camera", return_value=cap):
            cam = Camera()
            cam.open()
            assert cam.capture_base64() is None

    def test_capture_when_closed_returns_none(self):
        assert Camera().capture_base64() is None
