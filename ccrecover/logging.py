"""Logging setup shared by the CLI, the service and the pipeline stages."""

from __future__ import annotations

import logging
from pathlib import Path

ROOT_LOGGER = "ccrecover"
CONSOLE_FORMAT = "[ccrecover] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``ccrecover.<name>``; stage modules pass their stage name."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Route ccrecover records to stderr and, when ``log_file`` is given, to that file too.

    Calling this again replaces (and closes) the handlers of the previous call.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_path, encoding="utf-8")
        sink.setLevel(level)
        sink.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(sink)
        logger.debug("Writing log records to %s", log_path)

    return logger


__all__ = ["configure_logging", "get_logger"]
