"""Logging setup for voice-bridge entry points."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", fmt: str = LOG_FORMAT) -> None:
    """Configure the root logger.

    Args:
        level: Logging level name
        fmt: Log record format
    """
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=fmt, force=True)
    # websockets logs every handshake failure at INFO
    logging.getLogger("websockets").setLevel(logging.WARNING)
