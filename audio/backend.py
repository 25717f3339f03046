"""Audio hardware seam: apply a mode configuration, enable/disable the engine (pactl/wpctl).

The controller in audio/mode.py is the only caller.  Backends are
synchronous (``subprocess.run``); the controller runs them in an executor.

PulseAudio mapping of a :class:`ModeConfig`:
  - capture   → card profile ``headset-head-unit`` (HFP: mic on, call routing)
  - playback  → card profile ``a2dp-sink`` (speaker routing, full quality)
  - duck_others → ``module-role-ducking`` loaded once (other streams are
    lowered, not stopped, while we speak)
  - engine disable/enable → suspend/resume default sink and source
"""

import logging
import subprocess
from dataclasses import dataclass

from config import settings

logger = logging.getLogger(__name__)


class AudioBackendError(RuntimeError):
    """The platform refused an audio reconfiguration."""


@dataclass(frozen=True)
class ModeConfig:
    """Hardware configuration for one audio mode."""

    allows_recording: bool
    speaker_route: bool = True
    stays_active_in_background: bool = True
    duck_others: bool = True


CAPTURE_CONFIG = ModeConfig(allows_recording=True)
PLAYBACK_CONFIG = ModeConfig(allows_recording=False)


def _pactl(*args: str, timeout: float = 5) -> str:
    """Run pactl; return stdout or raise AudioBackendError."""
    try:
        out = subprocess.run(
            ["pactl", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        raise AudioBackendError(f"pactl {' '.join(args)}: {e}") from e
    if out.returncode != 0:
        raise AudioBackendError(f"pactl {' '.join(args)}: {out.stderr.strip() or out.returncode}")
    return out.stdout


def get_default_sink_name() -> str | None:
    """Query default Pulse sink (e.g. BT headset A2DP)."""
    try:
        return _pactl("get-default-sink").strip() or None
    except AudioBackendError as e:
        logger.debug("pactl get-default-sink failed: %s", e)
        return None


def get_default_source_name() -> str | None:
    """Query default Pulse source (e.g. HFP mic or USB mic)."""
    try:
        return _pactl("get-default-source").strip() or None
    except AudioBackendError as e:
        logger.debug("pactl get-default-source failed: %s", e)
        return None


def find_bluez_card() -> str | None:
    """First bluez card name from ``pactl list short cards``, or None."""
    try:
        out = _pactl("list", "short", "cards")
    except AudioBackendError as e:
        logger.debug("pactl list cards failed: %s", e)
        return None
    for line in out.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[1].startswith("bluez_card."):
            return parts[1]
    return None


class AudioBackend:
    """Interface: apply a mode config and toggle the audio engine."""

    def apply(self, config: ModeConfig) -> None:
        raise NotImplementedError

    def set_enabled(self, enabled: bool) -> None:
        raise NotImplementedError


class NullAudioBackend(AudioBackend):
    """Logs only. For desktops without a switchable card, and CI."""

    def apply(self, config: ModeConfig) -> None:
        logger.debug("Null audio backend: apply %s", config)

    def set_enabled(self, enabled: bool) -> None:
        logger.debug("Null audio backend: enabled=%s", enabled)


class PulseAudioBackend(AudioBackend):
    """PulseAudio / PipeWire-pulse backend driven through pactl."""

    def __init__(
        self,
        card: str | None = None,
        capture_profile: str = settings.CAPTURE_PROFILE,
        playback_profile: str = settings.PLAYBACK_PROFILE,
    ) -> None:
        self.card = card or settings.AUDIO_CARD or find_bluez_card()
        self.capture_profile = capture_profile
        self.playback_profile = playback_profile
        self._ducking_loaded = False
        if self.card:
            logger.info("Audio card: %s", self.card)
        else:
            logger.info("No switchable audio card; profiles will not be changed")

    def apply(self, config: ModeConfig) -> None:
        if self.card:
            profile = self.capture_profile if config.allows_recording else self.playback_profile
            _pactl("set-card-profile", self.card, profile)
        if config.duck_others and not self._ducking_loaded:
            _pactl("load-module", "module-role-ducking")
            self._ducking_loaded = True

    def set_enabled(self, enabled: bool) -> None:
        flag = "0" if enabled else "1"
        _pactl("suspend-sink", "@DEFAULT_SINK@", flag)
        _pactl("suspend-source", "@DEFAULT_SOURCE@", flag)


def create_backend(name: str | None = None) -> AudioBackend:
    """Backend by name ("pulse" or "null"); default from settings.AUDIO_BACKEND."""
    name = name or settings.AUDIO_BACKEND
    if name == "null":
        return NullAudioBackend()
    if name == "pulse":
        return PulseAudioBackend()
    raise ValueError(f"Unknown audio backend: {name!r}")
