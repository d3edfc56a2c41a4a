"""
Logging for stakepool.

Every module asks for a child of the `stakepool` logger (stakepool.pool,
stakepool.validators, ...). Output goes to a colored console handler and,
when enabled, to `stakepool.log` inside the configured log directory.
Configuration happens once per process; the CLI calls setup_logging() to
replace the implicit default with the user's settings.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, TextIO

import colorlog

ROOT_LOGGER = "stakepool"
LOG_FILE_NAME = "stakepool.log"

DATE_FORMAT = "%H:%M:%S"
CONSOLE_FORMAT = "%(log_color)s%(asctime)s %(levelname).1s%(reset)s %(name)-22s %(message)s"
FILE_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)-8s %(name)s: %(message)s"

LEVEL_COLORS = {
    "DEBUG": "white",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def _console_handler(level: int, stream: Optional[TextIO]) -> logging.Handler:
    # sys.stdout is looked up per call so test runners that swap it are honored
    handler = colorlog.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LEVEL_COLORS)
    )
    return handler


def _file_handler(path: Path, level: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


class StakePoolLogger:
    """Process-wide owner of the handlers on the `stakepool` logger."""

    _configured = False
    _log_file: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[str] = None,
        log_to_file: bool = False,
        stream: Optional[TextIO] = None,
    ) -> None:
        """
        Attach handlers to the `stakepool` logger. No-op once configured.

        Args:
            level: Threshold for the logger and every handler
            log_dir: Directory holding the log file (default ./logs)
            log_to_file: Also write records to LOG_FILE_NAME in log_dir
            stream: Console stream, stdout when omitted
        """
        if cls._configured:
            return

        root = logging.getLogger(ROOT_LOGGER)
        root.setLevel(level)
        root.addHandler(_console_handler(level, stream))

        if log_to_file:
            cls._log_file = Path(log_dir or "logs") / LOG_FILE_NAME
            root.addHandler(_file_handler(cls._log_file, level))

        cls._configured = True

    @classmethod
    def reset(cls) -> None:
        """Close and detach all handlers so setup() can run again."""
        root = logging.getLogger(ROOT_LOGGER)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        cls._configured = False
        cls._log_file = None

    @classmethod
    def log_file(cls) -> Optional[Path]:
        """Path of the active log file, if file logging is on."""
        return cls._log_file

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        if not cls._configured:
            cls.setup()
        return logging.getLogger(ROOT_LOGGER).getChild(name)


def get_logger(name: str) -> logging.Logger:
    """Logger for one subsystem, e.g. get_logger("pool") -> stakepool.pool"""
    return StakePoolLogger.get_logger(name)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    log_to_file: bool = False,
) -> Optional[Path]:
    """
    Reconfigure logging from scratch.

    Returns:
        The log file path when file logging is enabled, else None
    """
    StakePoolLogger.reset()
    StakePoolLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file)
    return StakePoolLogger.log_file()
