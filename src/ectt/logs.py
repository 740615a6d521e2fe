# =============================================================================
# Logging Setup
# =============================================================================
# The terminal belongs to the UI, so logs go to a file in the XDG state
# directory, rotated every hour:
#
#   $XDG_STATE_HOME/ectt/ectt.log
#
# Level: INFO, DEBUG with --debug, or whatever $ECTT_LOG_LEVEL says.
# =============================================================================

import logging
import os
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from ectt.config import get_xdg_state_home

LOG_FILE_NAME = "ectt.log"
LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s"

# Hourly files, one day of history
BACKUP_COUNT = 24


def log_file_path() -> Path:
    """Returns the path to the log file."""
    return get_xdg_state_home() / LOG_FILE_NAME


def resolve_level(debug: bool = False) -> int:
    """Pick the log level from the environment or the --debug flag."""
    env_level = os.environ.get("ECTT_LOG_LEVEL")
    if env_level:
        level = logging.getLevelName(env_level.upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if debug else logging.INFO


def configure_logging(debug: bool = False, path: Path | None = None) -> Path:
    """
    Send all ectt logging to the rotating log file.

    Args:
        debug: Log at DEBUG instead of INFO.
        path: Log file to use instead of the default.

    Returns:
        The log file path.
    """
    path = path or log_file_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = TimedRotatingFileHandler(
        path,
        when="H",
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()
    root.addHandler(handler)
    root.setLevel(resolve_level(debug))

    # Wire-level chatter from the protocol libraries only in debug mode
    if not debug:
        for noisy in ("aioimaplib", "aiosmtplib", "httpx", "httpcore"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    return path
