#!/usr/bin/env python3
"""
logging_setup.py - Logging Configuration

Usage:
    from target_follower.common.logging_setup import setup_logging

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
"""

import logging

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(
    level: int = logging.INFO,
    format_string: str = DEFAULT_FORMAT,
    datefmt: str = "%H:%M:%S",
) -> logging.Logger:
    """
    Configure logging for the flight controller.

    Args:
        level: Logging level (default: INFO).
        format_string: Log message format.
        datefmt: Date format string.

    Returns:
        logging.Logger: Configured root logger.
    """
    logging.basicConfig(
        level=level,
        format=format_string,
        datefmt=datefmt,
    )
    # MAVSDK's gRPC channel is chatty at DEBUG
    logging.getLogger("grpc").setLevel(max(level, logging.INFO))
    return logging.getLogger()
