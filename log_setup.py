"""Loguru sinks for the accel CLI and REST server."""

import os
import sys

from loguru import logger

CONSOLE_FORMAT = "<level>{level: <7}</level> {time:HH:mm:ss} <cyan>{module}</cyan> {message}"
FILE_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSS} {level} [{module}.{function}] {message}"


def setup_logger(
    level: str = "INFO",
    log_file: str | None = None,
    rotation: str = "5 MB",
    retention: int = 5,
) -> None:
    """Route accel logs to stderr, and to ``log_file`` when one is configured."""
    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)
    if not log_file:
        return
    folder = os.path.dirname(log_file)
    if folder:
        os.makedirs(folder, exist_ok=True)
    # retention counts rotated files kept next to the active one
    logger.add(log_file, level=level, format=FILE_FORMAT, rotation=rotation, retention=retention)
    logger.debug(f"Writing {level} logs to {log_file}")
