"""
Logging — leveled, colored, optionally timestamped diagnostics.

Adds two levels on top of the standard ones:

    CMD   (22)  an executed command line
    HINT  (25)  a notice that is not a problem

``init_logging(LogConfig(...))`` configures the ``qolbuild`` logger tree
once at program start.  Modules keep using ``logging.getLogger(__name__)``.
"""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Optional

CMD = 22
HINT = 25

logging.addLevelName(CMD, "CMD")
logging.addLevelName(HINT, "HINT")

LOGGER_NAME = "qolbuild"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
LOG_FORMAT_NO_TIME = "[%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

RESET = "\x1b[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\x1b[90m",     # gray
    logging.INFO: "\x1b[32m",      # green
    CMD: "\x1b[36m",               # cyan
    HINT: "\x1b[34m",              # blue
    logging.WARNING: "\x1b[33m",   # yellow
    logging.ERROR: "\x1b[31m",     # red
    logging.CRITICAL: "\x1b[35m",  # purple
}

LEVEL_NAMES = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "CMD": CMD,
    "HINT": HINT,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
    "NONE": logging.CRITICAL + 10,
}


def parse_level(name: str) -> int:
    """Map a level name (case-insensitive) to its numeric value."""
    try:
        return LEVEL_NAMES[name.strip().upper()]
    except KeyError:
        raise ValueError(f"Unknown log level: {name!r}") from None


@dataclass(frozen=True)
class LogConfig:
    """Explicit logger configuration, passed to ``init_logging``."""

    level: int = logging.INFO
    color: bool = False
    timestamps: bool = True
    file: Optional[str] = None
    # ERROR exits with status 1, CRITICAL aborts.
    exit_on_error: bool = False


class LevelColorFormatter(logging.Formatter):
    """Wraps the level name in an ANSI color when ``color`` is set."""

    def __init__(self, color: bool = False, timestamps: bool = True):
        super().__init__(
            fmt=LOG_FORMAT if timestamps else LOG_FORMAT_NO_TIME,
            datefmt=DATE_FORMAT,
        )
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        if not self.color:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{LEVEL_COLORS.get(record.levelno, RESET)}{original}{RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class FatalLevelHandler(logging.Handler):
    """Terminates the process after an ERROR or CRITICAL record is emitted.

    Must be installed after the output handlers so the diagnostic is
    written before the process goes away.
    """

    def __init__(self):
        super().__init__(level=logging.ERROR)

    def emit(self, record: logging.LogRecord) -> None:
        for handler in logging.getLogger(LOGGER_NAME).handlers:
            if handler is not self:
                handler.flush()
        if record.levelno >= logging.CRITICAL:
            os.abort()
        raise SystemExit(1)


def init_logging(config: LogConfig) -> logging.Logger:
    """
    Configure the ``qolbuild`` logger according to *config*.

    Replaces any handlers installed by a previous call, so calling it
    again with a new config is safe.  Returns the configured logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(config.level)
    logger.propagate = False

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(LevelColorFormatter(config.color, config.timestamps))
    logger.addHandler(stream)

    if config.file:
        sink = logging.FileHandler(config.file, encoding="utf-8")
        sink.setFormatter(LevelColorFormatter(False, True))
        logger.addHandler(sink)

    if config.exit_on_error:
        logger.addHandler(FatalLevelHandler())

    return logger
