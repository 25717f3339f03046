"""WAV playback to the default sink (aplay), cancellable mid-file."""

import asyncio
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


async def play_wav(path: str | Path, timeout: float = 60) -> bool:
    """Play a WAV file to the default sink. Cancelling the caller kills aplay."""
    path = Path(path)
    if not path.exists():
        logger.error("WAV not found: %s", path)
        return False
    try:
        proc = await asyncio.create_subprocess_exec(
            "aplay", "-q", str(path),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        logger.warning("Playback failed: %s", e)
        return False
    try:
        _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Playback timeout: %s", path)
        proc.kill()
        await proc.wait()
        return False
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise
    if proc.returncode != 0:
        logger.warning("Playback failed: %s", stderr.decode(errors="replace").strip() or proc.returncode)
        return False
    return True
