"""Spoken and displayed phrases, per locale.

The client was first built for Korean-speaking elderly users, so the ko-KR phrases
are the reference wording and ``en-US`` mirrors them.  Keys are shared
by the identification loop (status lines), the dialogue session (turn texts,
status lines) and the announcer (everything that is spoken).

Placeholders use ``str.format`` names (``{name}``).
"""

import logging

from config import settings

logger = logging.getLogger(__name__)

# ── Korean (reference wording) ────────────────────────────────────
_KO = {
    # Identification
    "look_at_camera": "카메라를 바라봐 주세요...",
    "camera_permission": "얼굴 인식을 위해 카메라 권한이 필요합니다.",
    "identify_fail": "인증에 실패했습니다. 다시 시도해 주세요.",
    "welcome": "{name}님, 환영합니다.",
    "not_connected": "서버 연결 안 됨",
    # Session status
    "status_idle": "대기 중",
    "status_listening": "듣고 있어요...",
    "status_thinking": "생각 중...",
    "status_processing": "처리 중...",
    "status_executing": "실행 중...",
    "status_urgent": "긴급 상황",
    "status_error": "오류 발생",
    "status_send_failed": "전송 실패",
    "status_timeout": "응답이 없습니다. 다시 시도해 주세요.",
    "mic_permission": "마이크 권한이 필요합니다.",
    # Confirmations
    "accept": "네, 해주세요.",
    "decline": "아니요.",
    "cancelled": "취소했습니다.",
    # Escalation
    "escalation_prompt": "긴급 호출을 하시겠습니까?",
    "escalation_sent": "🚨 긴급 호출이 발송되었습니다.",
    "escalation_ack": "긴급 호출이 발송되었습니다.",
    "escalation_cancelled": "취소되었습니다.",
    "escalation_command": "SOS 긴급 호출",
}

# ── English ───────────────────────────────────────────────────────────
_EN = {
    "look_at_camera": "Please look at the camera...",
    "camera_permission": "Camera permission is required for face identification.",
    "identify_fail": "Identification failed. Please try again.",
    "welcome": "Welcome, {name}.",
    "not_connected": "Not connected to the server",
    "status_idle": "Idle",
    "status_listening": "Listening...",
    "status_thinking": "Thinking...",
    "status_processing": "Processing...",
    "status_executing": "Executing...",
    "status_urgent": "Emergency",
    "status_error": "Error",
    "status_send_failed": "Send failed",
    "status_timeout": "No response. Please try again.",
    "mic_permission": "Microphone permission is required.",
    "accept": "Yes, please.",
    "decline": "No.",
    "cancelled": "Cancelled.",
    "escalation_prompt": "Do you want to send an emergency call?",
    "escalation_sent": "🚨 Emergency call has been sent.",
    "escalation_ack": "Emergency call has been sent.",
    "escalation_cancelled": "Cancelled.",
    "escalation_command": "SOS emergency call",
}

PHRASES: dict[str, dict[str, str]] = {
    "ko-KR": _KO,
    "en-US": _EN,
}


def phrase(key: str, locale: str | None = None, **kwargs: str) -> str:
    """Look up a phrase for ``locale`` (default: settings.LOCALE) and fill placeholders.

    Unknown locales fall back to en-US; unknown keys raise KeyError.
    """
    table = PHRASES.get(locale or settings.LOCALE)
    if table is None:
        logger.debug("No phrase table for %r; using en-US", locale)
        table = _EN
    text = table[key]
    return text.format(**kwargs) if kwargs else text
