"""Audio mode controller: sole owner of the shared mic/speaker resource.

The phone/headset audio path is either configured for capture (HFP, mic
live, call routing) or for playback (speaker routing, other apps ducked),
never both.  Switching is slow and sticky: going from capture back to
playback does not reliably restore speaker routing unless the engine is
reset and given time to settle.

Every transition is therefore acquire → configure → delay → commit under
one asyncio.Lock, so a second request waits for the first to commit rather
than interleaving.  A failed configuration is logged and leaves the mode at
its last committed value; callers carry on optimistically.

Capture is held from enter_capture() until reset_hardware(): a playback
request made meanwhile (an announcement arriving mid-recording) waits for
the release instead of switching the device under the recorder.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from audio.backend import CAPTURE_CONFIG, PLAYBACK_CONFIG, AudioBackend, AudioBackendError, ModeConfig
from config import settings

logger = logging.getLogger(__name__)


class AudioMode(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    PLAYING = "playing"


class AudioModeController:
    """Serialized mode transitions for one audio resource.

    Parameters
    ----------
    backend : AudioBackend
        Hardware seam (pactl, null, or a test double).
    capture_settle, playback_settle, reset_pause : float, optional
        Seconds; default to the ``settings`` millisecond values.
    """

    def __init__(
        self,
        backend: AudioBackend,
        capture_settle: float | None = None,
        playback_settle: float | None = None,
        reset_pause: float | None = None,
    ) -> None:
        self._backend = backend
        self.capture_settle = (
            settings.CAPTURE_SETTLE_MS / 1000 if capture_settle is None else capture_settle
        )
        self.playback_settle = (
            settings.PLAYBACK_SETTLE_MS / 1000 if playback_settle is None else playback_settle
        )
        self.reset_pause = settings.RESET_PAUSE_MS / 1000 if reset_pause is None else reset_pause
        self._mode = AudioMode.IDLE
        self._lock = asyncio.Lock()
        self._playback_interrupt: Callable[[], Awaitable[None] | None] | None = None
        # Cleared by enter_capture(), set again only by reset_hardware().
        self._capture_released = asyncio.Event()
        self._capture_released.set()

    @property
    def mode(self) -> AudioMode:
        return self._mode

    @property
    def capture_held(self) -> bool:
        """True from enter_capture() until the following reset_hardware()."""
        return not self._capture_released.is_set()

    @property
    def busy(self) -> bool:
        """True while a transition holds the resource."""
        return self._lock.locked()

    def set_playback_interrupt(self, fn: Callable[[], Awaitable[None] | None] | None) -> None:
        """Hook that stops any in-flight announcement before capture is entered."""
        self._playback_interrupt = fn

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def enter_capture(self) -> AudioMode:
        """Stop playback if needed, apply capture config, settle, commit CAPTURING."""
        async with self._lock:
            self._capture_released.clear()
            if self._mode is AudioMode.CAPTURING:
                return self._mode
            # An announcement still waiting for playback mode must not start after us.
            if self._playback_interrupt is not None:
                result = self._playback_interrupt()
                if inspect.isawaitable(result):
                    await result
            await self._transition(CAPTURE_CONFIG, AudioMode.CAPTURING, self.capture_settle)
            return self._mode

    async def enter_playback(self) -> AudioMode:
        """Apply playback config (speaker, background, duck others), settle, commit PLAYING.

        While a capture is held this waits for reset_hardware() to release it.
        """
        while True:
            await self._capture_released.wait()
            async with self._lock:
                if self.capture_held:
                    # Capture re-entered between the release and the lock.
                    continue
                if self._mode is AudioMode.PLAYING:
                    return self._mode
                await self._transition(PLAYBACK_CONFIG, AudioMode.PLAYING, self.playback_settle)
                return self._mode

    async def reset_hardware(self) -> bool:
        """Disable, pause, re-enable the engine; commits IDLE on success.

        Must run after a capture session and before the next enter_playback()
        so the platform drops call-mode routing.  Releases the capture hold
        even when the reset fails, since the recording is over either way.
        """
        async with self._lock:
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self._backend.set_enabled, False)
                await asyncio.sleep(self.reset_pause)
                await loop.run_in_executor(None, self._backend.set_enabled, True)
            except AudioBackendError as e:
                logger.warning("Audio engine reset failed (mode stays %s): %s", self._mode.value, e)
                return False
            finally:
                self._capture_released.set()
            self._mode = AudioMode.IDLE
            logger.debug("Audio engine reset")
            return True

    async def _transition(self, config: ModeConfig, target: AudioMode, settle: float) -> bool:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._backend.apply, config)
        except AudioBackendError as e:
            logger.warning(
                "Audio mode %s not applied (mode stays %s): %s",
                target.value, self._mode.value, e,
            )
            return False
        await asyncio.sleep(settle)
        self._mode = target
        logger.debug("Audio mode → %s", target.value)
        return True
