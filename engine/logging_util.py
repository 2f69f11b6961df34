from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(name: str, level: int | str = logging.INFO) -> logging.Logger:
    """Configure a logger with the project-wide format.

    Args:
        name: logger name (usually the root package, e.g. "engine")
        level: logging level, numeric or by name ("DEBUG", "INFO", ...)

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # evita handler duplicati se create_app() viene chiamata più volte
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        logger.addHandler(handler)

    return logger
