"""Logging for patchwright: a rotating session log plus terse console warnings."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

__all__ = ["setup_logger", "get_logger", "ROOT_LOGGER", "LOG_FILENAME"]

ROOT_LOGGER = "patchwright"
LOG_FILENAME = "patchwright.log"

CONSOLE_FORMAT = "[%(levelname).1s] %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
MAX_LOG_BYTES = 2 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# Provider SDKs log every request at INFO.
_NOISY_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore")


def setup_logger(verbose: bool = False, log_dir: Optional[Path] = None) -> logging.Logger:
    """Configure the ``patchwright`` logger tree and return its root.

    The file under ``log_dir`` (``<home>/logs`` by default) records INFO and
    up, DEBUG with ``verbose``. The console only shows warnings unless
    ``verbose`` is set, so streamed replies are not broken up by log lines.
    Calling it again replaces the previous handlers.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    if log_dir is None:
        from .config import CONFIG_DIR
        log_dir = CONFIG_DIR / "logs"
    try:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            Path(log_dir) / LOG_FILENAME,
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as e:
        logger.warning("File logging disabled: %s", e)
    else:
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Module logger under the ``patchwright`` tree."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
