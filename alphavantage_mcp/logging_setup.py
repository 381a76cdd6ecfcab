"""
Logging configuration for the server process.

Everything goes to stderr: stdout is reserved for stdio MCP frames.
"""
from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGGER_NAME = "alphavantage-mcp"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
MAX_LOG_BYTES = 20 * 1024 * 1024
BACKUP_COUNT = 14


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    """Configure the server logger and return it.

    Components receive children of this logger (``logger.getChild("client")``)
    through their constructors instead of looking loggers up themselves.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)
    logger.propagate = False

    # Reconfiguring (tests, repeated main() calls) must not stack handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

        combined = RotatingFileHandler(
            os.path.join(log_dir, "combined.log"),
            maxBytes=MAX_LOG_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        combined.setFormatter(formatter)
        logger.addHandler(combined)

        errors = RotatingFileHandler(
            os.path.join(log_dir, "error.log"),
            maxBytes=MAX_LOG_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        errors.setLevel(logging.ERROR)
        errors.setFormatter(formatter)
        logger.addHandler(errors)

    return logger
