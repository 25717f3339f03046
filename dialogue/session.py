"""Dialogue session: the turn-based exchange after the user is identified.

Input is typed text or a recorded utterance (transcribed by the service).
Responses become Agent turns and are spoken; Confirmable responses wait
for a yes/no.  An emergency escalation flow runs beside ordinary turns.

The microphone path goes through the shared AudioModeController:

    enter_capture → record … stop → release pause → reset_hardware
    → enter_playback → audio-upload

so the next announcement is routed to the speaker, not the earpiece.
"""

import asyncio
import logging
from collections.abc import Callable
from contextlib import ExitStack
from enum import Enum
from typing import Any

from audio.input import MicrophoneUnavailableError, Recorder, to_base64
from audio.mode import AudioModeController
from channel import protocol
from channel.handle import Channel
from config import settings
from config.prompts import phrase
from dialogue.models import ConversationTurn, Identity, Originator, Transcript, TurnKind
from voice.announcer import SpeechAnnouncer

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    IDLE = "idle"
    LISTENING = "listening"
    THINKING = "thinking"
    PROCESSING = "processing"
    EXECUTING = "executing"
    URGENT = "urgent"
    ERROR = "error"


class DialogueSession:
    """State machine for one identified user's conversation.

    Parameters
    ----------
    identity : Identity
        Bound for the session's lifetime.
    channel : Channel
        Shared channel (``command``, ``audio-upload``, ``action-confirm`` out;
        ``command-response``, ``user-speech`` in).
    controller : AudioModeController
        Owner of the audio resource; shared with the announcer.
    announcer : SpeechAnnouncer
        Speaks responses and local phrases.
    recorder : Recorder, optional
        Microphone; without one, recording reports the permission error.
    response_timeout : float, optional
        Seconds to wait for a response before offering ``retry()``.
    capture_release : float, optional
        Seconds between stopping the recorder and resetting the engine.
    on_turn, on_status : callable, optional
        ``on_turn(turn)`` after every append; ``on_status(status, message)``
        after every status change.
    """

    def __init__(
        self,
        identity: Identity,
        channel: Channel,
        controller: AudioModeController,
        announcer: SpeechAnnouncer,
        recorder: Recorder | None = None,
        locale: str | None = None,
        response_timeout: float | None = None,
        capture_release: float | None = None,
        on_turn: Callable[[ConversationTurn], None] | None = None,
        on_status: Callable[[SessionStatus, str], None] | None = None,
    ) -> None:
        self.identity = identity
        self._channel = channel
        self._controller = controller
        self._announcer = announcer
        self._recorder = recorder
        self.locale = locale or settings.LOCALE
        self.response_timeout = (
            settings.RESPONSE_TIMEOUT_SEC if response_timeout is None else response_timeout
        )
        self.capture_release = (
            settings.CAPTURE_RELEASE_MS / 1000 if capture_release is None else capture_release
        )
        self._on_turn = on_turn
        self._on_status = on_status

        self.transcript = Transcript()
        self.status = SessionStatus.IDLE
        self.status_message = phrase("status_idle", self.locale)
        self.escalation_pending = False
        self.retry_available = False
        self._last_request: tuple[str, dict] | None = None
        self._timeout_task: asyncio.Task | None = None
        self._recording = False
        self._mic_lock = asyncio.Lock()
        self._scope: ExitStack | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        return self._scope is not None

    @property
    def recording(self) -> bool:
        return self._recording

    def open(self) -> "DialogueSession":
        """Subscribe to inbound dialogue events."""
        if self._scope is None:
            scope = ExitStack()
            scope.enter_context(self._channel.subscribed({
                protocol.COMMAND_RESPONSE: self.handle_response,
                protocol.USER_SPEECH: self.handle_user_speech,
            }))
            self._scope = scope
            logger.info("Dialogue session opened for %s", self.identity.display_name)
        return self

    async def close(self) -> None:
        """Release subscriptions, stop any recording and silence the announcer."""
        scope, self._scope = self._scope, None
        if scope is None:
            return
        scope.close()
        self._cancel_timeout()
        # Speech waiting for the capture to end must not start once it is released.
        await self._announcer.stop_all()
        if self._recording and self._recorder is not None:
            self._recording = False
            await asyncio.get_running_loop().run_in_executor(None, self._recorder.stop)
            await self._controller.reset_hardware()
        logger.info("Dialogue session closed")

    async def __aenter__(self) -> "DialogueSession":
        return self.open()

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _append(self, originator: Originator, text: str, kind: TurnKind = TurnKind.SIMPLE,
                action_token: Any = None) -> ConversationTurn:
        turn = self.transcript.append(ConversationTurn(originator, text, kind, action_token))
        if self._on_turn is not None:
            self._on_turn(turn)
        return turn

    def _set_status(self, status: SessionStatus, key: str | None = None) -> None:
        self.status = status
        self.status_message = phrase(key or f"status_{status.value}", self.locale)
        if self._on_status is not None:
            self._on_status(status, self.status_message)

    def _say(self, text: str) -> asyncio.Task:
        return self._announcer.say(text, self.locale)

    async def _send(self, event: str, payload: dict, expect_response: bool = True) -> bool:
        """Emit; on "not connected" append a local Agent turn and show the error state."""
        if await self._channel.emit(event, payload):
            if expect_response:
                self._last_request = (event, payload)
                self._arm_timeout()
            return True
        self._append(Originator.AGENT, phrase("not_connected", self.locale))
        if self.status is not SessionStatus.URGENT:
            self._set_status(SessionStatus.ERROR, "not_connected")
        return False

    def _arm_timeout(self) -> None:
        self._cancel_timeout()
        self.retry_available = False
        if self.response_timeout > 0:
            self._timeout_task = asyncio.create_task(self._expire(self.response_timeout))

    def _cancel_timeout(self) -> None:
        task, self._timeout_task = self._timeout_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _expire(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._timeout_task = None
        logger.warning("No response within %.0f s", delay)
        self.retry_available = True
        self._set_status(SessionStatus.IDLE, "status_timeout")

    # ------------------------------------------------------------------
    # Typed input
    # ------------------------------------------------------------------

    async def submit_text(self, text: str) -> bool:
        """Send a typed command. Empty or whitespace-only input is ignored."""
        text = (text or "").strip()
        if not text:
            return False
        self._append(Originator.USER, text)
        self._set_status(SessionStatus.PROCESSING)
        return await self._send(protocol.COMMAND, protocol.command_payload(self.identity.id, text))

    async def retry(self) -> bool:
        """Re-send the last request after a response timeout."""
        if not self.retry_available or self._last_request is None:
            return False
        self.retry_available = False
        event, payload = self._last_request
        logger.info("Retrying %r", event)
        self._set_status(SessionStatus.PROCESSING)
        return await self._send(event, payload)

    # ------------------------------------------------------------------
    # Recorded input
    # ------------------------------------------------------------------

    async def submit_recorded_utterance(self) -> bool:
        """Enter capture mode and start recording. False if already recording or no mic."""
        async with self._mic_lock:
            if self._recording:
                return False
            if self._recorder is None:
                self._set_status(SessionStatus.ERROR, "mic_permission")
                return False
            await self._controller.enter_capture()
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self._recorder.start)
            except MicrophoneUnavailableError as e:
                logger.warning("Recording not started: %s", e)
                self._set_status(SessionStatus.ERROR, "mic_permission")
                await self._restore_playback()
                return False
            self._recording = True
            self._set_status(SessionStatus.LISTENING)
            return True

    async def finish_recorded_utterance(self) -> bool:
        """Stop recording, give the speaker back, upload. No-op if not recording."""
        async with self._mic_lock:
            if not self._recording:
                return False
            self._recording = False
            self._set_status(SessionStatus.PROCESSING)
            loop = asyncio.get_running_loop()
            try:
                wav = await loop.run_in_executor(None, self._recorder.stop)
            except Exception as e:
                logger.warning("Stopping recorder failed: %s", e)
                wav = None
            await asyncio.sleep(self.capture_release)
            await self._restore_playback()

            if not wav:
                self._set_status(SessionStatus.ERROR, "status_send_failed")
                return False
            try:
                audio_b64 = to_base64(wav)
            except (TypeError, ValueError) as e:
                logger.warning("Encoding recording failed: %s", e)
                self._set_status(SessionStatus.ERROR, "status_send_failed")
                return False
            logger.debug("Uploading %d bytes of audio", len(wav))
            return await self._send(
                protocol.AUDIO_UPLOAD,
                protocol.audio_upload_payload(audio_b64, settings.RECORD_FORMAT, self.identity.id),
            )

    async def toggle_microphone(self) -> bool:
        """Mic button: start recording, or stop and send."""
        if self._recording:
            return await self.finish_recorded_utterance()
        return await self.submit_recorded_utterance()

    async def _restore_playback(self) -> None:
        await self._controller.reset_hardware()
        await self._controller.enter_playback()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def handle_response(self, payload: Any) -> None:
        """``command-response``: echo recognized text, append the Agent turn, speak it."""
        try:
            response = protocol.parse_command_response(payload)
        except protocol.ProtocolError as e:
            logger.warning("Ignoring response: %s", e)
            return
        self._cancel_timeout()
        self.retry_available = False
        self._set_status(SessionStatus.IDLE)
        if response.recognized_text:
            self._append(Originator.USER, response.recognized_text)
        self._append(Originator.AGENT, response.text, response.kind, response.action_token)
        if response.text.strip():
            self._say(response.text)

    def handle_user_speech(self, payload: Any) -> None:
        """``user-speech``: the service's transcript arrives before its answer."""
        try:
            text = protocol.parse_user_speech(payload)
        except protocol.ProtocolError as e:
            logger.warning("Ignoring user-speech: %s", e)
            return
        if text is None:
            return
        self._append(Originator.USER, text)
        self._set_status(SessionStatus.THINKING)

    # ------------------------------------------------------------------
    # Confirmations
    # ------------------------------------------------------------------

    async def confirm_turn(self, turn_id: str, accepted: bool) -> bool:
        """Answer a Confirmable turn. Only the first answer counts."""
        turn = self.transcript.get(turn_id)
        if turn is None or turn.kind is not TurnKind.CONFIRMABLE or not turn.resolve():
            return False
        if accepted:
            self._append(Originator.USER, phrase("accept", self.locale))
            self._set_status(SessionStatus.EXECUTING)
            await self._send(
                protocol.ACTION_CONFIRM,
                protocol.action_confirm_payload(self.identity.id, turn.action_token),
            )
        else:
            self._append(Originator.USER, phrase("decline", self.locale))
            self._say(phrase("cancelled", self.locale))
        return True

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    def trigger_escalation(self) -> None:
        """Ask whether to send an emergency call. Always available."""
        self.escalation_pending = True
        self._say(phrase("escalation_prompt", self.locale))

    async def confirm_escalation(self) -> bool:
        if not self.escalation_pending:
            return False
        self.escalation_pending = False
        self._append(Originator.SYSTEM, phrase("escalation_sent", self.locale))
        self._set_status(SessionStatus.URGENT)
        self._say(phrase("escalation_ack", self.locale))
        logger.warning("Emergency call sent for %s", self.identity.id)
        await self._send(
            protocol.COMMAND,
            protocol.command_payload(self.identity.id, phrase("escalation_command", self.locale)),
            expect_response=False,
        )
        return True

    def cancel_escalation(self) -> bool:
        if not self.escalation_pending:
            return False
        self.escalation_pending = False
        self._say(phrase("escalation_cancelled", self.locale))
        return True
