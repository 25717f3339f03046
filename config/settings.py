"""Server address, capture cadence, audio settle delays and locale for the robot client.

Audio settle delays (measured on phones and BT headsets, see audio/mode.py):
  - capture settle  >=100 ms  (mic routing is applied quickly)
  - playback settle >=300 ms  (speaker routing after HFP capture is slow;
    raise to 500 if the first syllable of an announcement is clipped)
  - reset pause     >=50 ms   (between disabling and re-enabling the engine)
"""

import os

# Paths
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# ── Remote service (socket.io) ───────────────────────────────────────
ROBOT_SERVER_URL = os.environ.get("ROBOT_SERVER_URL", "http://192.168.0.4:3000")
SOCKET_TRANSPORTS = ["websocket"]
# Seconds to wait for the initial connect before running in "not connected" mode
SOCKET_CONNECT_TIMEOUT_SEC = float(os.environ.get("ROBOT_CONNECT_TIMEOUT_SEC", "5"))
# Initial-connect retry period while the server is unreachable (socket.io
# only reconnects by itself after a connection has been established once)
SOCKET_RETRY_SEC = float(os.environ.get("ROBOT_CONNECT_RETRY_SEC", "5"))

# ── Locale ───────────────────────────────────────────────────────────
# Phrase tables exist for ko-KR and en-US (config/prompts.py).
LOCALE = os.environ.get("ROBOT_LOCALE", "en-US")

# ── Identification loop ──────────────────────────────────────────────
IDENTIFY_INTERVAL_MIN_SEC = 1.5
IDENTIFY_INTERVAL_MAX_SEC = 5.0
IDENTIFY_INTERVAL_SEC = float(os.environ.get("ROBOT_IDENTIFY_INTERVAL_SEC", "5.0"))
# Frames are downscaled to this width before JPEG recompression.
IDENTIFY_MAX_WIDTH = int(os.environ.get("ROBOT_IDENTIFY_MAX_WIDTH", "640"))
IDENTIFY_JPEG_QUALITY = int(os.environ.get("ROBOT_IDENTIFY_JPEG_QUALITY", "20"))

# Vision – front camera. Use index 0 by default.
# Set ROBOT_CAMERA_DEVICE=/dev/video0 to force a device path.
CAMERA_DEVICE = os.environ.get("ROBOT_CAMERA_DEVICE")  # None = use index
CAMERA_INDEX = int(os.environ.get("ROBOT_CAMERA_INDEX", "0"))
CAMERA_WIDTH = 1280
CAMERA_HEIGHT = 720
CAMERA_FPS = 30

# ── Audio mode controller ────────────────────────────────────────────
CAPTURE_SETTLE_MS = int(os.environ.get("ROBOT_CAPTURE_SETTLE_MS", "100"))
PLAYBACK_SETTLE_MS = int(os.environ.get("ROBOT_PLAYBACK_SETTLE_MS", "300"))
RESET_PAUSE_MS = int(os.environ.get("ROBOT_RESET_PAUSE_MS", "50"))
# Pause after the recorder is stopped, before the engine reset.
CAPTURE_RELEASE_MS = int(os.environ.get("ROBOT_CAPTURE_RELEASE_MS", "200"))

# PulseAudio card (e.g. bluez_card.XX_XX_XX_XX_XX_XX). None = first bluez card, if any.
AUDIO_CARD = os.environ.get("ROBOT_AUDIO_CARD")
# HFP profile gives the headset mic but routes output to the "earpiece";
# A2DP gives full-quality speaker output with no mic.
CAPTURE_PROFILE = os.environ.get("ROBOT_CAPTURE_PROFILE", "headset-head-unit")
PLAYBACK_PROFILE = os.environ.get("ROBOT_PLAYBACK_PROFILE", "a2dp-sink")
# "pulse" (pactl) or "null" (log only, for desktops and CI)
AUDIO_BACKEND = os.environ.get("ROBOT_AUDIO_BACKEND", "pulse")

# Recording
RECORD_SAMPLE_RATE = 16000
RECORD_FORMAT = "wav"
MAX_RECORD_SEC = float(os.environ.get("ROBOT_MAX_RECORD_SEC", "30"))

# ── Voice ────────────────────────────────────────────────────────────
# Piper voices per locale: path to .onnx (default from models/voices/).
# Piper ships no Korean voice; point ROBOT_TTS_VOICE_KO at a compatible model.
_VOICES_DIR = os.path.join(PROJECT_ROOT, "models", "voices")
TTS_VOICES = {
    "en-US": os.environ.get("ROBOT_TTS_VOICE_EN", os.path.join(_VOICES_DIR, "en_US-amy-medium.onnx")),
    "ko-KR": os.environ.get("ROBOT_TTS_VOICE_KO", os.path.join(_VOICES_DIR, "ko_KR-default.onnx")),
}
# 1.0 = normal speed; slightly slower is easier to follow for elderly users.
SPEECH_RATE = float(os.environ.get("ROBOT_SPEECH_RATE", "0.9"))

# ── Dialogue ─────────────────────────────────────────────────────────
# No response to command/audio-upload/action-confirm within this many seconds
# reverts the session to idle and offers a retry.
RESPONSE_TIMEOUT_SEC = float(os.environ.get("ROBOT_RESPONSE_TIMEOUT_SEC", "30"))
