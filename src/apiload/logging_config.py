from __future__ import annotations

import logging
import sys
from pathlib import Path

from apiload.errors import ConfigurationError

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-24s | %(message)s"
# these log a line per request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str = "INFO", log_file: str | Path | None = None) -> logging.Logger:
    """Route ``apiload`` log records to stderr and, optionally, ``log_file``.

    Stdout is left to the live progress line and the final summary. Calling
    this again replaces the handlers installed by the previous call.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ConfigurationError(f"Unknown log level {level!r}")

    logger = logging.getLogger("apiload")
    logger.setLevel(numeric)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S")
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))

    def log_uncaught(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logger.critical("Run aborted", exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = log_uncaught
    if log_file:
        logger.debug(f"Also logging to {log_file}")
    return logger
