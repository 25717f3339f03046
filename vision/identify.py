"""Identification loop: periodic camera frame → ``identify`` until the service names the user.

One cancellable repeating task owns the cadence.  Every stop condition
(identity resolved, explicit cancel, focus lost) goes through ``stop()``,
which cancels the timer, releases the channel subscriptions and closes the
camera.  A capture already running when ``stop()`` is called finishes, but
its frame is dropped rather than emitted.

Ticks that fire while the previous capture+emit is still pending are
skipped (``skipped_ticks``), so at most one identify request is in flight.
"""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from channel import protocol
from channel.handle import Channel, Subscription
from config import settings
from config.prompts import phrase
from dialogue.models import Identity
from vision.camera import Camera, CameraUnavailableError

logger = logging.getLogger(__name__)


class LoopState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class StopReason(Enum):
    IDENTIFIED = "identified"
    CANCELLED = "cancelled"
    FOCUS_LOST = "focus-lost"


def clamp_interval(seconds: float | None) -> float:
    """Keep the capture period within the supported 1.5–5 s window."""
    if seconds is None:
        seconds = settings.IDENTIFY_INTERVAL_SEC
    return min(max(float(seconds), settings.IDENTIFY_INTERVAL_MIN_SEC), settings.IDENTIFY_INTERVAL_MAX_SEC)


class IdentificationLoop:
    """Stopped → Running → Stopped.

    Parameters
    ----------
    channel : Channel
        Shared channel; ``identify`` goes out, ``auth-success`` /
        ``identify-success`` / ``auth-fail`` come back.
    camera : Camera
        Opened on ``start()``, closed on ``stop()``.
    interval : float, optional
        Seconds between ticks (clamped to 1.5–5).
    on_status : callable, optional
        ``fn(message)`` for the user-facing status line.
    """

    def __init__(
        self,
        channel: Channel,
        camera: Camera,
        interval: float | None = None,
        locale: str | None = None,
        max_width: int | None = None,
        quality: int | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> None:
        self._channel = channel
        self._camera = camera
        self.interval = clamp_interval(interval)
        self.locale = locale or settings.LOCALE
        self.max_width = max_width or settings.IDENTIFY_MAX_WIDTH
        self.quality = quality or settings.IDENTIFY_JPEG_QUALITY
        self._on_status = on_status
        self.status_message = ""
        self._state = LoopState.STOPPED
        self._timer: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None
        self._subs: list[Subscription] = []
        self._generation = 0
        self._identified: asyncio.Future | None = None
        # start() and stop() both await the camera; one at a time.
        self._lifecycle = asyncio.Lock()
        self.identity: Identity | None = None
        self.skipped_ticks = 0
        self.emitted = 0

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is LoopState.RUNNING

    def _set_status(self, message: str) -> None:
        self.status_message = message
        if self._on_status is not None:
            self._on_status(message)

    def _future(self) -> asyncio.Future:
        if self._identified is None:
            self._identified = asyncio.get_running_loop().create_future()
        return self._identified

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Open the camera and begin ticking. False if the camera is unavailable."""
        async with self._lifecycle:
            return await self._start()

    async def _start(self) -> bool:
        if self.running:
            return True
        if self._identified is not None and self._identified.done() and self.identity is None:
            # The previous run was cancelled; new waiters get a fresh future.
            self._identified = None
        self._future()
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._camera.open)
        except CameraUnavailableError as e:
            logger.warning("Identification not started: %s", e)
            self._set_status(phrase("camera_permission", self.locale))
            return False

        self._generation += 1
        self._subs = [self._channel.on(event, self._on_identity) for event in protocol.IDENTITY_EVENTS]
        self._subs.append(self._channel.on(protocol.AUTH_FAIL, self._on_fail))
        self._state = LoopState.RUNNING
        self._timer = asyncio.create_task(self._run(self._generation))
        self._set_status(phrase("look_at_camera", self.locale))
        logger.info("Identification loop started (every %.1f s)", self.interval)
        return True

    async def stop(self, reason: StopReason = StopReason.CANCELLED) -> None:
        """Single teardown point for every stop condition. Safe to call repeatedly.

        Serialized with ``start()``: a start requested while the camera is
        being released waits, then reopens it.
        """
        async with self._lifecycle:
            await self._stop(reason)

    async def _stop(self, reason: StopReason) -> None:
        if not self.running:
            return
        self._state = LoopState.STOPPED
        self._generation += 1
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        for sub in self._subs:
            self._channel.off(sub)
        self._subs = []

        # Let a running capture finish (its frame is discarded) before the device goes away.
        inflight, self._inflight = self._inflight, None
        if inflight is not None and not inflight.done() and inflight is not asyncio.current_task():
            await asyncio.wait([inflight])
        await asyncio.get_running_loop().run_in_executor(None, self._camera.close)
        logger.info("Identification loop stopped (%s)", reason.value)

        if reason is StopReason.CANCELLED and self._identified is not None and not self._identified.done():
            self._identified.set_result(None)

    async def focus_changed(self, focused: bool) -> None:
        """Screen focus: losing it stops the loop; regaining it restarts until identified."""
        if focused:
            if self.identity is None and not self.running:
                await self.start()
        else:
            await self.stop(StopReason.FOCUS_LOST)

    async def wait_identified(self) -> Identity | None:
        """Resolve with the bound Identity, or None if the loop was cancelled first."""
        return await asyncio.shield(self._future())

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def _run(self, generation: int) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if generation != self._generation:
                return
            if self._inflight is not None and not self._inflight.done():
                self.skipped_ticks += 1
                logger.debug("Previous identify cycle still pending; tick skipped")
                continue
            self._inflight = asyncio.create_task(self._cycle(generation))

    async def _cycle(self, generation: int) -> None:
        loop = asyncio.get_running_loop()
        try:
            image = await loop.run_in_executor(
                None, self._camera.capture_base64, self.max_width, self.quality
            )
        except Exception as e:
            logger.warning("Snapshot failed: %s", e)
            return
        if generation != self._generation:
            logger.debug("Loop stopped during capture; frame discarded")
            return
        if image is None:
            return
        logger.debug("Identify frame: %d base64 chars", len(image))
        if await self._channel.emit(protocol.IDENTIFY, protocol.identify_payload(image, self.locale)):
            self.emitted += 1
        else:
            self._set_status(phrase("not_connected", self.locale))

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _on_identity(self, payload) -> None:
        if not self.running:
            logger.debug("Identity event after stop ignored")
            return
        try:
            identity = protocol.parse_identity(payload)
        except protocol.ProtocolError as e:
            logger.warning("Ignoring identity event: %s", e)
            return
        self.identity = identity
        await self.stop(StopReason.IDENTIFIED)
        self._set_status(phrase("welcome", self.locale, name=identity.display_name))
        logger.info("Identified %s (%s)", identity.display_name, identity.id)
        future = self._future()
        if not future.done():
            future.set_result(identity)

    def _on_fail(self, payload) -> None:
        logger.debug("Identification failed; retrying on next tick")
        self._set_status(phrase("identify_fail", self.locale))
