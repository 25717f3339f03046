"""Event names and payload shapes exchanged with the remote assistant service.

Outbound payloads are built here so every call site sends the same field
names; inbound payloads are normalized here so the rest of the client never
sees aliases (``identify-success`` vs ``auth-success``, ``recognized_text``
at the top level vs nested under ``meta``).
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from dialogue.models import Identity, TurnKind

# ── Event names ───────────────────────────────────────────────────────
IDENTIFY = "identify"
AUTH_SUCCESS = "auth-success"
IDENTIFY_SUCCESS = "identify-success"  # alias of auth-success
AUTH_FAIL = "auth-fail"
COMMAND = "command"
COMMAND_RESPONSE = "command-response"
AUDIO_UPLOAD = "audio-upload"
ACTION_CONFIRM = "action-confirm"
USER_SPEECH = "user-speech"

# Pseudo-events dispatched by the channel itself
CONNECT = "connect"
DISCONNECT = "disconnect"

IDENTITY_EVENTS = (AUTH_SUCCESS, IDENTIFY_SUCCESS)


class ProtocolError(ValueError):
    """Inbound payload does not have the expected shape."""


@dataclass(frozen=True)
class CommandResponse:
    """Normalized ``command-response`` payload."""

    text: str
    kind: TurnKind
    action_token: Any = None
    recognized_text: str | None = None


# ── Outbound ──────────────────────────────────────────────────────────

def identify_payload(image_b64: str, lang: str) -> dict:
    return {"image": image_b64, "lang": lang}


def command_payload(user_id: str, text: str) -> dict:
    return {"userId": user_id, "text": text}


def audio_upload_payload(audio_b64: str, fmt: str, user_id: str) -> dict:
    return {"audioData": audio_b64, "format": fmt, "userId": user_id}


def action_confirm_payload(user_id: str, action_token: Any) -> dict:
    return {"userId": user_id, "command": action_token}


# ── Inbound ───────────────────────────────────────────────────────────

def _require_mapping(payload: Any, event: str) -> Mapping:
    if not isinstance(payload, Mapping):
        raise ProtocolError(f"{event}: expected an object, got {type(payload).__name__}")
    return payload


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_identity(payload: Any) -> Identity:
    """``auth-success {id, name}`` → Identity."""
    data = _require_mapping(payload, AUTH_SUCCESS)
    user_id = _clean_text(data.get("id"))
    if user_id is None:
        raise ProtocolError(f"{AUTH_SUCCESS}: missing id")
    name = _clean_text(data.get("name")) or _clean_text(data.get("displayName")) or user_id
    return Identity(id=user_id, display_name=name)


def parse_command_response(payload: Any) -> CommandResponse:
    """Normalize ``command-response``.

    ``recognized_text`` is taken from the top level first, then from
    ``meta.recognized_text``.  The action token is the raw ``meta`` value and
    is only kept for Confirmable responses.
    """
    data = _require_mapping(payload, COMMAND_RESPONSE)
    meta = data.get("meta")
    recognized = _clean_text(data.get("recognized_text"))
    if recognized is None and isinstance(meta, Mapping):
        recognized = _clean_text(meta.get("recognized_text"))
    kind = TurnKind.CONFIRMABLE if data.get("type") == TurnKind.CONFIRMABLE.value else TurnKind.SIMPLE
    text = data.get("text")
    return CommandResponse(
        text="" if text is None else str(text),
        kind=kind,
        action_token=meta if kind is TurnKind.CONFIRMABLE else None,
        recognized_text=recognized,
    )


def parse_user_speech(payload: Any) -> str | None:
    """``user-speech {text}`` → recognized text, or None when empty."""
    data = _require_mapping(payload, USER_SPEECH)
    return _clean_text(data.get("text"))
