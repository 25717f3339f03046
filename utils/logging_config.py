"""Logging configuration for the robot client."""

import logging
import sys


def setup_logging(level: int = logging.INFO) -> None:
    """Configure root logger for console."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )
    # socket.io / engine.io log every packet at INFO
    if level > logging.DEBUG:
        logging.getLogger("socketio").setLevel(logging.WARNING)
        logging.getLogger("engineio").setLevel(logging.WARNING)
