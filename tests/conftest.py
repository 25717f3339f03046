"""Pytest fixtures and fakes: socket.io client, audio backend, camera, recorder, speaker."""

import asyncio
import threading
import time

import pytest
import socketio

from audio.backend import AudioBackend, AudioBackendError
from audio.input import MicrophoneUnavailableError
from audio.mode import AudioModeController
from channel.handle import Channel
from config import settings
from dialogue.models import Identity
from vision.camera import CameraUnavailableError
from voice.announcer import SpeechAnnouncer

FAKE_FRAME = "ZmFrZS1qcGVn"
FAKE_WAV = b"RIFF\x24\x00\x00\x00WAVEfmt "


class FakeSocketClient:
    """Stand-in for socketio.AsyncClient: records emits, lets tests push server events."""

    def __init__(self, connected: bool = True, reachable: bool = True):
        self.handlers: dict = {}
        self.connected = connected
        self.reachable = reachable
        self.emitted: list[tuple[str, object]] = []
        self.connect_calls = 0

    def on(self, event, handler=None, namespace=None):
        self.handlers[event] = handler

    async def connect(self, url, transports=None, wait_timeout=None):
        self.connect_calls += 1
        if not self.reachable:
            raise socketio.exceptions.ConnectionError("Connection refused")
        self.connected = True
        await self.handlers["connect"]()

    async def disconnect(self):
        self.connected = False
        await self.handlers["disconnect"]()

    async def emit(self, event, data=None, namespace=None, callback=None):
        self.emitted.append((event, data))

    async def server_emit(self, event, payload=None):
        """Deliver an event as if the server had sent it."""
        if payload is None:
            await self.handlers["*"](event)
        else:
            await self.handlers["*"](event, payload)

    def sent(self, event: str) -> list:
        return [data for name, data in self.emitted if name == event]


class RecordingBackend(AudioBackend):
    """Records every hardware call with a timestamp; can be told to fail."""

    def __init__(self):
        self.calls: list[tuple[str, object, float]] = []
        self.fail_apply = False
        self.fail_enable = False
        self._lock = threading.Lock()

    def apply(self, config):
        if self.fail_apply:
            raise AudioBackendError("audio session reconfiguration denied")
        with self._lock:
            self.calls.append(("apply", "capture" if config.allows_recording else "playback", time.monotonic()))

    def set_enabled(self, enabled):
        if self.fail_enable:
            raise AudioBackendError("engine busy")
        with self._lock:
            self.calls.append(("enabled", enabled, time.monotonic()))

    def names(self) -> list[tuple[str, object]]:
        return [(name, arg) for name, arg, _ in self.calls]


class FakeCamera:
    """Returns a fixed base64 frame; ``delay`` simulates a slow snapshot."""

    def __init__(self, available: bool = True, frame: str | None = FAKE_FRAME, delay: float = 0.0):
        self.available = available
        self.frame = frame
        self.delay = delay
        self.is_open = False
        self.opened = 0
        self.closed = 0
        self.captures = 0
        self.finished = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def open(self):
        if not self.available:
            raise CameraUnavailableError("camera permission denied")
        self.is_open = True
        self.opened += 1

    def close(self):
        if self.is_open:
            self.closed += 1
        self.is_open = False

    def capture_base64(self, max_width=None, quality=None):
        with self._lock:
            self.captures += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.active -= 1
            self.finished += 1
        return self.frame


class FakeRecorder:
    def __init__(self, audio: bytes | None = FAKE_WAV, available: bool = True):
        self.audio = audio
        self.available = available
        self.active = False
        self.starts = 0
        self.stops = 0

    def start(self):
        if not self.available:
            raise MicrophoneUnavailableError("microphone permission denied")
        self.active = True
        self.starts += 1
        return object()

    def stop(self):
        if not self.active:
            return None
        self.active = False
        self.stops += 1
        return self.audio


class FakeSpeaker:
    """``speak_fn`` for the announcer; each utterance takes ``duration`` seconds."""

    def __init__(self, duration: float = 0.0):
        self.duration = duration
        self.started: list[str] = []
        self.completed: list[str] = []
        self.cancelled: list[str] = []
        self.locales: list[str] = []

    async def __call__(self, text, locale):
        self.started.append(text)
        self.locales.append(locale)
        try:
            await asyncio.sleep(self.duration)
        except asyncio.CancelledError:
            self.cancelled.append(text)
            raise
        self.completed.append(text)
        return True


async def _eventually(predicate, timeout: float = 2.0, step: float = 0.005) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(step)


@pytest.fixture
def eventually():
    """``await eventually(lambda: ...)`` polls until the condition holds."""
    return _eventually


@pytest.fixture
def sio():
    return FakeSocketClient()


@pytest.fixture
def channel(sio):
    return Channel("http://robot-server.test:3000", client=sio)


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def controller(backend):
    return AudioModeController(backend, capture_settle=0.01, playback_settle=0.02, reset_pause=0.005)


@pytest.fixture
def speaker():
    return FakeSpeaker()


@pytest.fixture
def announcer(controller, speaker):
    a = SpeechAnnouncer(controller, speak_fn=speaker, locale="en-US")
    controller.set_playback_interrupt(a.stop_all)
    return a


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def recorder():
    return FakeRecorder()


@pytest.fixture
def identity():
    return Identity(id="u1", display_name="Kim")


@pytest.fixture
def fast_ticks(monkeypatch):
    """Allow identification intervals well below the 1.5 s floor."""
    monkeypatch.setattr(settings, "IDENTIFY_INTERVAL_MIN_SEC", 0.01)
