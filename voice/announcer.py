"""Speech announcer: at most one audible utterance, routed through the audio mode controller."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from audio.mode import AudioModeController
from config import settings
from voice import tts

logger = logging.getLogger(__name__)

SpeakFn = Callable[[str, str], Awaitable[bool]]


class SpeechAnnouncer:
    """Serializes spoken announcements.

    ``announce`` cancels whatever is being spoken, asks the controller for
    playback mode (which includes the settle delay), marks speaking, and
    speaks.  A newer request always wins: an older one that is still
    waiting to start gives up instead of speaking.

    Parameters
    ----------
    controller : AudioModeController
        Shared owner of the audio resource.
    speak_fn : callable, optional
        ``await speak_fn(text, locale) -> bool``.  Defaults to Piper + aplay.
    on_speaking : callable, optional
        ``fn(bool)`` on every speaking flag change (drives the "mouth").
    """

    def __init__(
        self,
        controller: AudioModeController,
        speak_fn: SpeakFn | None = None,
        locale: str | None = None,
        on_speaking: Callable[[bool], None] | None = None,
    ) -> None:
        self._controller = controller
        self._speak = speak_fn or tts.speak
        self.locale = locale or settings.LOCALE
        self._on_speaking = on_speaking
        self._speaking = False
        self._current: asyncio.Task | None = None
        self._generation = 0
        self._stops = 0
        self._background: set[asyncio.Task] = set()

    @property
    def speaking(self) -> bool:
        return self._speaking

    def _set_speaking(self, value: bool) -> None:
        if self._speaking == value:
            return
        self._speaking = value
        if self._on_speaking is not None:
            self._on_speaking(value)

    async def announce(self, text: str, locale: str | None = None) -> bool:
        """Speak ``text``, preempting any current utterance.

        Returns True if it played to completion, False if it was preempted,
        stopped, or the speech backend failed.
        """
        self._generation += 1
        generation = self._generation
        await self._cancel_current()
        if generation != self._generation:
            # A newer announce() arrived while we were stopping the old one.
            return False
        task = asyncio.create_task(self._utter(text, locale or self.locale))
        self._current = task
        try:
            await asyncio.wait([task])
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task.cancelled():
            return False
        return task.result()

    def say(self, text: str, locale: str | None = None) -> asyncio.Task:
        """Fire-and-forget ``announce``; the task is kept alive until done."""
        task = asyncio.create_task(self._announce_queued(text, locale, self._stops))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def stop_all(self) -> None:
        """Cancel the current utterance, even mid-playback.

        ``say`` requests queued before this call return False without speaking.
        """
        self._stops += 1
        self._generation += 1
        await self._cancel_current()

    async def _cancel_current(self) -> None:
        task, self._current = self._current, None
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.wait([task])
        logger.debug("Announcement cancelled")

    async def _announce_queued(self, text: str, locale: str | None, stops: int) -> bool:
        if stops != self._stops:
            logger.debug("Queued announcement dropped: %r", text[:60])
            return False
        return await self.announce(text, locale)

    async def wait(self) -> None:
        """Wait until scheduled and current announcements have finished."""
        while self._background or (self._current is not None and not self._current.done()):
            pending = set(self._background)
            if self._current is not None:
                pending.add(self._current)
            await asyncio.wait(pending)

    async def _utter(self, text: str, locale: str) -> bool:
        await self._controller.enter_playback()
        self._set_speaking(True)
        try:
            ok = await self._speak(text, locale)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Speech failed: %r", text[:60])
            ok = False
        finally:
            self._set_speaking(False)
        if ok:
            logger.debug("Spoke: %r", text[:60])
        return ok
