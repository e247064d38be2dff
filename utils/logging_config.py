"""Logging configuration for the app packages."""

from __future__ import annotations

import logging
import sys

APP_LOGGERS = ("core", "features", "integrations", "ui", "utils")


def setup_logging(level: int = logging.INFO) -> list[logging.Logger]:
    """Attach a stdout handler to each app package logger. Loggers that already have one are left alone."""
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )
    loggers = []
    for name in APP_LOGGERS:
        logger = logging.getLogger(name)
        loggers.append(logger)
        if logger.handlers:
            continue
        logger.setLevel(level)
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return loggers
