#!/usr/bin/env python3
"""Robot client – identify the user by camera, then talk to the assistant service. Entry: parse args, run."""

import argparse
import asyncio
import logging
import sys

from config import settings
from utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Robot client – camera identification and voice/text dialogue over socket.io"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--dry-run", action="store_true", help="Only print effective config and exit")
    parser.add_argument(
        "--test-audio",
        action="store_true",
        help="List audio input devices and default sink/source, then exit",
    )
    parser.add_argument(
        "--server-url",
        default=None,
        help=f"Assistant service URL (default: {settings.ROBOT_SERVER_URL})",
    )
    parser.add_argument(
        "--locale",
        default=None,
        choices=["en-US", "ko-KR"],
        help=f"Phrase and voice locale (default: {settings.LOCALE})",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between identification frames (1.5-5)",
    )
    parser.add_argument(
        "--user",
        metavar="ID:NAME",
        default=None,
        help="Skip camera identification and start the dialogue as this user",
    )
    parser.add_argument(
        "--no-camera",
        action="store_true",
        help="Do not open the camera (requires --user)",
    )
    return parser.parse_args(argv)


def parse_user(value: str):
    """``"u1:Kim"`` → Identity(id="u1", display_name="Kim"); the name defaults to the id."""
    from dialogue.models import Identity

    user_id, _, name = value.partition(":")
    user_id = user_id.strip()
    if not user_id:
        raise ValueError(f"invalid --user {value!r}; expected ID:NAME")
    return Identity(id=user_id, display_name=name.strip() or user_id)


def _apply_overrides(args) -> None:
    if args.server_url:
        settings.ROBOT_SERVER_URL = args.server_url
    if args.locale:
        settings.LOCALE = args.locale
    if args.interval is not None:
        from vision.identify import clamp_interval

        settings.IDENTIFY_INTERVAL_SEC = clamp_interval(args.interval)


def _handle_dry_run() -> int:
    from vision.identify import clamp_interval

    logger.info(
        "Dry run: config OK, project_root=%s, server=%s, locale=%s",
        settings.PROJECT_ROOT,
        settings.ROBOT_SERVER_URL,
        settings.LOCALE,
    )
    logger.info(
        "Identify every %.1f s (max width %d, JPEG quality %d); audio backend=%s, "
        "settle capture=%d ms playback=%d ms reset=%d ms",
        clamp_interval(settings.IDENTIFY_INTERVAL_SEC),
        settings.IDENTIFY_MAX_WIDTH,
        settings.IDENTIFY_JPEG_QUALITY,
        settings.AUDIO_BACKEND,
        settings.CAPTURE_SETTLE_MS,
        settings.PLAYBACK_SETTLE_MS,
        settings.RESET_PAUSE_MS,
    )
    from voice.tts import is_tts_available, voice_for

    logger.info("TTS voice: %s (rate %.2f)", voice_for(settings.LOCALE), settings.SPEECH_RATE)
    if not is_tts_available():
        logger.warning("Piper not available (pip install -e .[tts]); announcements will be silent")
    return 0


def _handle_test_audio() -> int:
    from audio import backend
    from audio import input as audio_input

    print("Input devices:", audio_input.list_input_devices())
    print("Default input index:", audio_input.get_default_input_index())
    print("Default sink:", backend.get_default_sink_name())
    print("Default source:", backend.get_default_source_name())
    print("Bluetooth card:", backend.find_bluez_card())
    return 0


async def _run_client(identity, use_camera: bool) -> None:
    from channel.handle import close_channel
    from gui.console import ConsoleFrontEnd
    from orchestrator import build_components, run_orchestrator

    front_end = ConsoleFrontEnd()
    components = build_components(use_camera=use_camera, on_speaking=front_end.set_speaking)
    try:
        await run_orchestrator(
            components,
            identity=identity,
            front_end=front_end,
            locale=settings.LOCALE,
            interval=settings.IDENTIFY_INTERVAL_SEC,
        )
    finally:
        await close_channel()


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    _apply_overrides(args)

    if args.dry_run:
        return _handle_dry_run()

    if args.test_audio:
        return _handle_test_audio()

    identity = None
    if args.user:
        try:
            identity = parse_user(args.user)
        except ValueError as e:
            logger.error("%s", e)
            return 2
    elif args.no_camera:
        logger.error("--no-camera needs --user ID:NAME (nothing else can identify the user)")
        return 2

    try:
        asyncio.run(_run_client(identity, use_camera=identity is None and not args.no_camera))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
