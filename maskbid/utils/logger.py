"""
Centralized logging configuration for MaskBid.

Colored console output and an optional log file, one logger per subsystem
(decoder, sync, solver, storage, api, workflow, cli). Every handler masks
bearer credentials, so a token that ends up in a message (an echoed
header, a failed request) never reaches the console or the file.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Dict, Optional

import colorlog

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Floors applied below DEBUG verbosity: per-write store chatter and
# per-request access lines stay out of INFO output
SUBSYSTEM_LEVELS: Dict[str, int] = {
    "storage": logging.WARNING,
    "api.request": logging.WARNING,
}

_BEARER = re.compile(r"(Bearer\s+)([^\s,;'\"]+)", re.IGNORECASE)


def redact(secret: Optional[str], visible: int = 6) -> str:
    """Show only the leading characters of a secret for log lines."""
    if not secret:
        return "<none>"
    if len(secret) <= visible:
        return "..."
    return secret[:visible] + "..."


class RedactingFilter(logging.Filter):
    """Rewrites 'Bearer <token>' in a record to its redacted form."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _BEARER.sub(lambda m: m.group(1) + redact(m.group(2)), message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


class MaskBidLogger:
    """Centralized logger for MaskBid components"""

    _initialized = False
    _console: Optional[logging.Handler] = None
    _file: Optional[logging.Handler] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[str] = None,
        log_to_file: bool = False,
    ):
        """
        Setup or adjust logging configuration.

        The console handler is created once; later calls only change levels
        and may add the file handler, so a CLI flag still takes effect after
        modules have fetched their loggers at import time.

        Args:
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
            log_dir: Directory for log files. If None, uses ./logs
            log_to_file: Whether to write logs to file
        """
        root_logger = logging.getLogger("maskbid")

        if not cls._initialized:
            root_logger.handlers.clear()
            console_handler = colorlog.StreamHandler(sys.stdout)
            console_handler.setFormatter(colorlog.ColoredFormatter(
                "%(log_color)s" + LOG_FORMAT.replace("%(levelname)-8s", "%(levelname)-8s%(reset)s"),
                datefmt=DATE_FORMAT,
                log_colors={
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "red,bg_white",
                },
            ))
            console_handler.addFilter(RedactingFilter())
            root_logger.addHandler(console_handler)
            cls._console = console_handler
            cls._initialized = True

        root_logger.setLevel(level)
        cls._console.setLevel(level)

        for subsystem, floor in SUBSYSTEM_LEVELS.items():
            sub_logger = logging.getLogger(f"maskbid.{subsystem}")
            sub_logger.setLevel(max(level, floor) if level > logging.DEBUG else logging.NOTSET)

        if log_to_file and cls._file is None:
            log_path = Path(log_dir) if log_dir else Path("logs")
            log_path.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path / "maskbid.log")
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
            file_handler.addFilter(RedactingFilter())
            root_logger.addHandler(file_handler)
            cls._file = file_handler
        if cls._file is not None:
            cls._file.setLevel(level)

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger for a specific subsystem.

        Args:
            name: Subsystem name (e.g., 'decoder', 'solver', 'storage.sqlite')

        Returns:
            Logger instance
        """
        if not cls._initialized:
            cls.setup()

        return logging.getLogger(f"maskbid.{name}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific subsystem"""
    return MaskBidLogger.get_logger(name)


def setup_logging(level: int = logging.INFO, log_dir: Optional[str] = None):
    """Apply the process log level, writing to a file when log_dir is given"""
    MaskBidLogger.setup(level=level, log_dir=log_dir, log_to_file=log_dir is not None)
