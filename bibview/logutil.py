from __future__ import annotations

import os
import sys

from loguru import logger


def configure_logger():
    fmt = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {message}"
    level = os.getenv("BIBVIEW_LOG_LEVEL", "INFO")
    logger.remove()
    # stdout is left to command output
    logger.add(
        sys.stderr,
        format=fmt,
        colorize=False,
        level=level,
        backtrace=False,
        diagnose=False,
    )

    # Optional file sink
    log_file = os.getenv("BIBVIEW_LOG_FILE")
    if log_file:
        try:
            logger.add(
                log_file,
                format=fmt,
                rotation=os.getenv("BIBVIEW_LOG_ROTATION", "10 MB"),
                retention=os.getenv("BIBVIEW_LOG_RETENTION", "7 days"),
                level=level,
            )
        except OSError as e:
            logger.warning("Cannot open log file {}: {}", log_file, e)
    return logger


# Initialize logger on import
configure_logger()
