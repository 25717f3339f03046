#!/usr/bin/env python3
"""Download the Piper voice used for announcements (en-US by default).
Run from project root with venv active. Korean has no Piper voice upstream; set ROBOT_TTS_VOICE_KO instead.
"""

import argparse
import sys
import urllib.request
from pathlib import Path

# Project root (parent of scripts/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent
VOICES_DIR = PROJECT_ROOT / "models" / "voices"
PIPER_VOICES = "https://huggingface.co/rhasspy/piper-voices/resolve/main"

# name → path under the piper-voices repo
VOICES = {
    "en_US-amy-medium": "en/en_US/amy/medium",
}


def _log(msg: str) -> None:
    print(f"[bootstrap] {msg}", flush=True)


def download_piper_voice_if_missing(name: str) -> bool:
    """Ensure <name>.onnx (and .json) exist under models/voices; download if missing."""
    if name not in VOICES:
        _log(f"Unknown voice {name!r}; known: {', '.join(VOICES)}")
        return False
    VOICES_DIR.mkdir(parents=True, exist_ok=True)
    try:
        for filename in (f"{name}.onnx", f"{name}.onnx.json"):
            path = VOICES_DIR / filename
            if path.exists():
                continue
            url = f"{PIPER_VOICES}/{VOICES[name]}/{filename}"
            _log(f"Downloading Piper voice: {filename}")
            urllib.request.urlretrieve(url, path)
    except OSError as e:
        _log(f"Piper voice download failed: {e}")
        return False
    _log(f"Piper voice ready: models/voices/{name}.onnx")
    return True


def main() -> int:
    parser = argparse.ArgumentParser(description="Download Piper voices for the robot client")
    parser.add_argument("--voice", default="en_US-amy-medium", help="Voice name (default: en_US-amy-medium)")
    args = parser.parse_args()
    return 0 if download_piper_voice_if_missing(args.voice) else 1


if __name__ == "__main__":
    sys.exit(main())
