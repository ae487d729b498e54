"""
Logging for Penny Channel.

Every module logs through a child of the `penny` logger, named after its
subsystem:

    penny.session      controller lifecycle (create, bids, close, disconnect)
    penny.reconciler   adopted and dropped remote updates
    penny.ledger       committed and refused ledger entries
    penny.allocation   settlement capping
    penny.countdown    window start and expiry
    penny.protocol     malformed push frames (DEBUG)
    penny.clearnode    in-process clearnode requests and push delivery

The console gets colored output; the CLI can add a plain-text file log
under the configured log directory.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog

ROOT_LOGGER = "penny"
LOG_FILE = "penny.log"

CONSOLE_FORMAT = "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s"
FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


class PennyLogger:
    """Configures the `penny` logger tree once per process (or on demand)."""

    _initialized = False
    _log_file: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[Union[str, Path]] = None,
        log_to_file: bool = False,
        force: bool = False,
    ):
        """
        Attach handlers to the `penny` logger.

        Args:
            level: Threshold for every penny.* logger
            log_dir: Directory for penny.log (default ./logs)
            log_to_file: Also write a plain-text log file
            force: Replace handlers installed by an earlier call
        """
        if cls._initialized and not force:
            return

        root_logger = logging.getLogger(ROOT_LOGGER)
        root_logger.setLevel(level)
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

        console_handler = colorlog.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS)
        )
        root_logger.addHandler(console_handler)

        cls._log_file = None
        if log_to_file:
            directory = Path(log_dir) if log_dir else Path("logs")
            directory.mkdir(parents=True, exist_ok=True)
            cls._log_file = directory / LOG_FILE

            file_handler = logging.FileHandler(cls._log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
            root_logger.addHandler(file_handler)

        cls._initialized = True

    @classmethod
    def log_file(cls) -> Optional[Path]:
        """Path of the active file log, if any."""
        return cls._log_file

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Logger for a subsystem, e.g. get_logger('ledger') -> penny.ledger."""
        if not cls._initialized:
            cls.setup()
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a Penny subsystem"""
    return PennyLogger.get_logger(name)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[Union[str, Path]] = None,
    log_to_file: bool = False,
):
    """(Re)configure logging; used by the CLI and tests"""
    PennyLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file, force=True)
