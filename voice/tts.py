"""TTS: Piper per locale, played through audio/output.py.

Both steps run as subprocesses so an announcement can be cut off at any
point by cancelling the coroutine.
"""

import asyncio
import logging
import sys
import tempfile
from pathlib import Path

from audio.output import play_wav
from config import settings

logger = logging.getLogger(__name__)


def voice_for(locale: str | None) -> str:
    """Piper model path for ``locale``; falls back to the en-US voice."""
    return settings.TTS_VOICES.get(locale or settings.LOCALE) or settings.TTS_VOICES["en-US"]


async def synthesize(
    text: str,
    voice: str,
    out_dir: Path | None = None,
    rate: float = 1.0,
) -> Path | None:
    """Synthesize text to WAV using Piper. Returns path to WAV or None."""
    if not text.strip():
        return None
    out_dir = out_dir or Path(tempfile.gettempdir())
    out_path = out_dir / "robot_tts.wav"
    # Piper speaks slower with a larger length scale
    length_scale = 1.0 / rate if rate > 0 else 1.0
    piper_cmd = [
        sys.executable, "-m", "piper",
        "--model", voice,
        "--length_scale", f"{length_scale:.3f}",
        "--output_file", str(out_path),
    ]
    try:
        proc = await asyncio.create_subprocess_exec(
            *piper_cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        logger.warning("Piper not available (pip install piper-tts)")
        return None
    try:
        _, stderr = await asyncio.wait_for(proc.communicate(text.encode("utf-8")), timeout=30)
    except asyncio.TimeoutError:
        logger.warning("TTS timed out")
        proc.kill()
        await proc.wait()
        return None
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise
    if proc.returncode == 0 and out_path.exists():
        return out_path
    logger.warning("Piper failed: %s", stderr.decode(errors="replace") if stderr else proc.returncode)
    return None


async def speak(text: str, locale: str | None = None) -> bool:
    """Synthesize and play ``text``. True when playback ran to completion."""
    wav = await synthesize(text, voice_for(locale), rate=settings.SPEECH_RATE)
    if wav is None:
        return False
    return await play_wav(wav)


def is_tts_available() -> bool:
    """Check if Piper is available."""
    import subprocess

    try:
        proc = subprocess.run(
            [sys.executable, "-m", "piper", "--help"],
            capture_output=True,
            timeout=5,
        )
        return proc.returncode == 0
    except Exception:
        return False
