"""Mic capture (sounddevice) into memory, WAV encoding, device enumeration."""

import base64
import io
import logging
import threading
import time
import wave
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from config import settings

logger = logging.getLogger(__name__)


class MicrophoneUnavailableError(RuntimeError):
    """No usable input device, or access to it was denied."""


@dataclass
class CaptureSession:
    """One in-flight recording: the open stream and when it started."""

    handle: Any
    started_at: float
    sample_rate: int
    chunks: list[np.ndarray] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def duration_sec(self) -> float:
        with self._lock:
            samples = sum(len(c) for c in self.chunks)
        return samples / self.sample_rate


def encode_wav(samples: np.ndarray, sample_rate: int = settings.RECORD_SAMPLE_RATE) -> bytes:
    """Mono 16-bit PCM samples → WAV file bytes."""
    pcm = np.asarray(samples)
    if pcm.dtype != np.int16:
        pcm = (np.clip(pcm, -1.0, 1.0) * 32767).astype(np.int16)
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm.tobytes())
    return buf.getvalue()


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class Recorder:
    """Start/stop microphone capture. At most one CaptureSession at a time.

    Blocking (PortAudio); the dialogue session calls it through an executor.
    """

    def __init__(
        self,
        sample_rate: int = settings.RECORD_SAMPLE_RATE,
        device_index: int | None = None,
        max_duration_sec: float = settings.MAX_RECORD_SEC,
    ) -> None:
        self.sample_rate = sample_rate
        self.device_index = device_index
        self.max_duration_sec = max_duration_sec
        self._session: CaptureSession | None = None

    @property
    def active(self) -> bool:
        return self._session is not None

    def start(self) -> CaptureSession:
        """Open the input stream and begin buffering. Raises MicrophoneUnavailableError."""
        if self._session is not None:
            return self._session
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise MicrophoneUnavailableError(f"sounddevice unavailable: {e}") from e

        max_samples = int(self.max_duration_sec * self.sample_rate)

        def _callback(indata, frames, time_info, status):
            if status:
                logger.debug("Audio input status: %s", status)
            session = self._session
            if session is None:
                return
            with session._lock:
                if sum(len(c) for c in session.chunks) < max_samples:
                    session.chunks.append(indata[:, 0].copy())

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype=np.int16,
                device=self.device_index,
                callback=_callback,
            )
            self._session = CaptureSession(
                handle=stream, started_at=time.monotonic(), sample_rate=self.sample_rate
            )
            stream.start()
        except Exception as e:
            self._session = None
            raise MicrophoneUnavailableError(f"Could not open microphone: {e}") from e
        logger.info("Recording started (device=%s)", self.device_index)
        return self._session

    def stop(self) -> bytes | None:
        """Stop and release the stream; return WAV bytes, or None if not recording."""
        session, self._session = self._session, None
        if session is None:
            return None
        try:
            session.handle.stop()
            session.handle.close()
        except Exception as e:
            logger.warning("Closing input stream failed: %s", e)
        with session._lock:
            samples = np.concatenate(session.chunks) if session.chunks else np.zeros(0, dtype=np.int16)
        logger.info("Recording stopped (%.1f s)", len(samples) / session.sample_rate)
        return encode_wav(samples, session.sample_rate)


def list_input_devices() -> list[dict]:
    """Enumerate input devices (e.g. headset HFP, USB mic)."""
    try:
        import sounddevice as sd

        return [
            {
                "index": i,
                "name": d.get("name", ""),
                "channels": d.get("max_input_channels", 0),
                "sr": d.get("default_samplerate"),
            }
            for i, d in enumerate(sd.query_devices())
            if d.get("max_input_channels", 0) > 0
        ]
    except Exception as e:
        logger.warning("Could not list input devices: %s", e)
        return []


def get_default_input_index() -> int | None:
    """Default system input device index."""
    try:
        import sounddevice as sd

        return sd.default.device[0]
    except Exception:
        return None
