"""Unit tests for config.prompts and voice.tts (no Piper or aplay needed)."""

from unittest.mock import AsyncMock, patch

import pytest
from config import settings
from config.prompts import PHRASES, phrase
from voice import tts


@pytest.mark.unit
class TestPhrases:
    def test_locales_share_keys(self):
        assert set(PHRASES["ko-KR"]) == set(PHRASES["en-US"])

    def test_welcome_fills_name(self):
        assert phrase("welcome", "en-US", name="Kim") == "Welcome, Kim."
        assert phrase("welcome", "ko-KR", name="김") == "김님, 환영합니다."

    def test_unknown_locale_falls_back_to_english(self):
        assert phrase("status_idle", "fr-FR") == "Idle"

    def test_unknown_key_raises(self):
        with pytest.raises(KeyError):
            phrase("no_such_phrase", "en-US")


@pytest.mark.unit
def test_voice_for_falls_back_to_english():
    assert tts.voice_for("ko-KR") == settings.TTS_VOICES["ko-KR"]
    assert tts.voice_for("xx-XX") == settings.TTS_VOICES["en-US"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_synthesize_blank_text_skips_piper():
    with patch("asyncio.create_subprocess_exec") as spawn:
        assert await tts.synthesize("   ", "voice.onnx") is None
    spawn.assert_not_called()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_speak_plays_synthesized_wav(tmp_path):
    wav = tmp_path / "out.wav"
    with (
        patch("voice.tts.synthesize", AsyncMock(return_value=wav)) as synth,
        patch("voice.tts.play_wav", AsyncMock(return_value=True)) as play,
    ):
        assert await tts.speak("hello", "en-US") is True
    synth.assert_awaited_once_with("hello", settings.TTS_VOICES["en-US"], rate=settings.SPEECH_RATE)
    play.assert_awaited_once_with(wav)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_speak_without_synthesis_returns_false():
    with (
        patch("voice.tts.synthesize", AsyncMock(return_value=None)),
        patch("voice.tts.play_wav", AsyncMock()) as play,
    ):
        assert await tts.speak("hello") is False
    play.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_play_missing_file(tmp_path):
    from audio.output import play_wav

    assert await play_wav(tmp_path / "missing.wav") is False
