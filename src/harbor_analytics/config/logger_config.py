"""Logger configuration for hosts embedding the Harbor client."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

PACKAGE = "harbor_analytics"


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None, colorize: bool = True) -> None:
    """Configure loguru sinks and enable the library's log records.

    Sets up:
    - Console output to stderr with colored output
    - Optional file output with rotation, retention and compression

    The library disables its own records on import; calling this opts in.
    """

    # Remove default loguru handler
    logger.remove()

    logger.add(
        sink=sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level,
        colorize=colorize,
    )

    if log_file is not None:
        logger.add(
            sink=str(log_file),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level=level,
            rotation="10 MB",
            retention="7 days",
            compression="gz",
            enqueue=True,  # Timer and delivery threads log concurrently
        )

    logger.enable(PACKAGE)

    if log_file is not None:
        logger.info(f"File logging enabled: {log_file}")
