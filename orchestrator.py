"""Async orchestrator: connect → identify (camera) → welcome → dialogue; teardown.

One asyncio loop drives everything.  The shared pieces are built once and
passed by reference:

  - Channel               one socket.io connection (channel/handle.py)
  - AudioModeController   sole owner of the mic/speaker resource
  - SpeechAnnouncer       speaks through the controller; registered as the
                          controller's playback interrupt so capture always
                          silences speech first

The identification loop is fully torn down (timer, subscriptions, camera)
before the dialogue session is created, so the two never contend for the
camera or the identity events.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from audio.backend import create_backend
from audio.input import Recorder
from audio.mode import AudioModeController
from channel.handle import Channel, get_channel
from config import settings
from config.prompts import phrase
from dialogue.models import ConversationTurn, Identity
from dialogue.session import DialogueSession, SessionStatus
from vision.camera import Camera
from vision.identify import IdentificationLoop
from voice.announcer import SpeechAnnouncer

logger = logging.getLogger(__name__)


@dataclass
class ClientComponents:
    """Everything the orchestrator shares between identification and dialogue."""

    channel: Channel
    controller: AudioModeController
    announcer: SpeechAnnouncer
    camera: Camera | None = None
    recorder: Recorder | None = None


def build_components(
    channel: Channel | None = None,
    use_camera: bool = True,
    on_speaking: Callable[[bool], None] | None = None,
) -> ClientComponents:
    """Real hardware: pactl backend, sounddevice recorder, OpenCV camera, Piper voice."""
    controller = AudioModeController(create_backend())
    announcer = SpeechAnnouncer(controller, on_speaking=on_speaking)
    controller.set_playback_interrupt(announcer.stop_all)
    return ClientComponents(
        channel=channel or get_channel(),
        controller=controller,
        announcer=announcer,
        camera=Camera() if use_camera else None,
        recorder=Recorder(),
    )


class _LogFrontEnd:
    """Used when no front-end is attached: status and turns go to the log."""

    def show_status(self, message: str) -> None:
        logger.info("Status: %s", message)

    def show_turn(self, turn: ConversationTurn) -> None:
        logger.info("[%s] %s", turn.originator.value, turn.text)

    def show_session_status(self, status: SessionStatus, message: str) -> None:
        logger.info("Session %s: %s", status.value, message)

    async def run(self, session: DialogueSession) -> None:
        await asyncio.Event().wait()


async def _keep_connecting(channel: Channel, period: float) -> None:
    """Retry the initial connect until it succeeds."""
    while not channel.connected:
        await asyncio.sleep(period)
        if await channel.connect():
            return


async def identify_user(
    components: ClientComponents,
    locale: str,
    interval: float | None = None,
    on_status: Callable[[str], None] | None = None,
) -> Identity | None:
    """Run the identification loop until the service names the user, then greet them.

    If the camera cannot be opened the loop is retried on the next period;
    returns None only if cancelled.
    """
    loop = IdentificationLoop(
        components.channel, components.camera, interval=interval, locale=locale, on_status=on_status,
    )
    try:
        while not await loop.start():
            await asyncio.sleep(loop.interval)
        identity = await loop.wait_identified()
    finally:
        await loop.stop()
    if identity is None:
        return None
    # The dialogue starts only once the welcome has been spoken (or cut off).
    await components.announcer.announce(phrase("welcome", locale, name=identity.display_name), locale)
    return identity


async def run_orchestrator(
    components: ClientComponents | None = None,
    identity: Identity | None = None,
    front_end: Any = None,
    locale: str | None = None,
    interval: float | None = None,
) -> DialogueSession | None:
    """Connect, identify (unless ``identity`` is given), then run the dialogue.

    ``front_end`` provides ``show_status``, ``show_turn``,
    ``show_session_status`` and ``async run(session)``; the session lasts
    until ``run`` returns.  Returns the closed session, or None if
    identification never completed.
    """
    components = components or build_components(use_camera=identity is None)
    front_end = front_end or _LogFrontEnd()
    locale = locale or settings.LOCALE
    channel = components.channel
    reconnect: asyncio.Task | None = None

    if not await channel.connect():
        front_end.show_status(phrase("not_connected", locale))
        reconnect = asyncio.create_task(_keep_connecting(channel, settings.SOCKET_RETRY_SEC))

    # Speaker routing before anything is spoken.
    await components.controller.enter_playback()

    try:
        if identity is None:
            if components.camera is None:
                logger.error("No camera and no --user given; cannot identify")
                return None
            identity = await identify_user(components, locale, interval, front_end.show_status)
            if identity is None:
                return None
        else:
            logger.info("Identification bypassed for %s (%s)", identity.display_name, identity.id)
            front_end.show_status(phrase("welcome", locale, name=identity.display_name))

        session = DialogueSession(
            identity,
            channel,
            components.controller,
            components.announcer,
            recorder=components.recorder,
            locale=locale,
            on_turn=front_end.show_turn,
            on_status=front_end.show_session_status,
        )
        async with session:
            await front_end.run(session)
        return session
    finally:
        if reconnect is not None:
            reconnect.cancel()
        await components.announcer.stop_all()
