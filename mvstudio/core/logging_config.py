"""
MV Studio Logging Configuration

All loggers live under the "mvstudio" namespace, e.g. "mvstudio.media.orchestrator".
Every retry ladder step is logged there, so a verbose run shows which
model, request shape and backoff produced the final image.
"""

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Optional


class LogLevel(Enum):
    """Log level enumeration."""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR


ROOT_LOGGER_NAME = "mvstudio"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
VERBOSE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Transport libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")

_configured = False


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    log_file: Optional[Path] = None,
    verbose: bool = False
) -> logging.Logger:
    """
    Configure the mvstudio logger tree.

    Calling this again replaces the previous handlers, so the CLI can
    reconfigure after the import-time default.

    Args:
        level: Minimum level for mvstudio loggers
        log_file: Also write to this file (parent directories are created)
        verbose: Include line numbers in each record

    Returns:
        The mvstudio root logger
    """
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level.value)
    root.handlers.clear()

    formatter = logging.Formatter(VERBOSE_LOG_FORMAT if verbose else LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if level != LogLevel.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
    root.debug(f"Logging configured: level={level.name}, file={log_file}")
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Get a namespaced logger, e.g. get_logger("media.provenance").

    Sets up default logging on first use.
    """
    if not _configured:
        setup_logging()
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
