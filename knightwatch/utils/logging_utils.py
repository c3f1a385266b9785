# ==============================================================================
# logging_utils.py  –  Console + file logging for the sync engine
#
# Features:
#   ✔ Every module logger writes to stdout and to a per-run file
#   ✔ KNIGHTWATCH_LOG_DIR overrides the target directory
#   ✔ KNIGHTWATCH_LOG_TO_FILE=false keeps output on the console only
#   ✔ Idempotent: clears handlers before re-adding
# ==============================================================================

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

# ------------------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------------------

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_DEFAULT_LEVEL = logging.INFO
_RUN_STAMP = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")


# ------------------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------------------


def _logs_dir() -> Path:
    """KNIGHTWATCH_LOG_DIR if set, else <repo>/logs."""
    override = os.getenv("KNIGHTWATCH_LOG_DIR")
    if override:
        return Path(override)
    return Path(__file__).resolve().parents[2] / "logs"


def _file_logging_enabled() -> bool:
    return os.getenv("KNIGHTWATCH_LOG_TO_FILE", "true").strip().lower() in {
        "1",
        "true",
        "yes",
    }


def _file_handler(
    logs_dir: Path, logger_name: str, fmt: logging.Formatter
) -> Optional[logging.Handler]:
    """
    One file per logger per process run. Returns None (console only) when the
    directory cannot be created or written.
    """
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        path = logs_dir / f"{logger_name}_{_RUN_STAMP}.log"
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError:
        logging.getLogger().warning("Cannot write logs to %s", logs_dir)
        return None

    handler.setFormatter(fmt)
    return handler


# ------------------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------------------


def setup_logger(
    name: str,
    level: int = _DEFAULT_LEVEL,
    logs_dir: Union[str, Path, None] = None,
) -> logging.Logger:
    """
    Return a configured `logging.Logger`.

    Parameters
    ----------
    name : str
        Logger name (also used in the log file name).
    level : int
        Logging level (INFO by default).
    logs_dir : str | Path | None
        Override log directory (default: KNIGHTWATCH_LOG_DIR or <repo>/logs).
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if _file_logging_enabled():
        handler = _file_handler(
            Path(logs_dir) if logs_dir else _logs_dir(), name, formatter
        )
        if handler:
            logger.addHandler(handler)

    return logger


def set_level(level: int) -> None:
    """Apply `level` to every logger created through `setup_logger`."""
    for name, logger in logging.Logger.manager.loggerDict.items():
        if isinstance(logger, logging.Logger) and name.startswith("knightwatch."):
            logger.setLevel(level)
