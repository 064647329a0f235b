"""Logging for Network Survey.

All loggers hang off the ``netsurvey`` root. Until ``setup_logging`` runs
the root only has a NullHandler, so importing the discovery package as a
library prints nothing. The CLI configures a rotating log file in the
data directory plus a terse stderr handler that stays out of the way of
scan progress output.
"""
import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional, Sequence, TextIO

from config.constants import STORAGE

ROOT_LOGGER_NAME = 'netsurvey'

_FILE_FORMAT = '%(asctime)s %(levelname)-8s %(name)s: %(message)s'
_CONSOLE_FORMAT = '%(levelname)s %(name)s: %(message)s'
_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_loggers: Dict[str, logging.Logger] = {}

logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


class ConsoleFormatter(logging.Formatter):
    """Colors the level name when the target stream is a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, stream: TextIO):
        super().__init__(fmt=_CONSOLE_FORMAT)
        self.colored = hasattr(stream, 'isatty') and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not self.colored:
            return super().format(record)
        # Copy so the file handler never sees escape codes
        record = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(record.levelno, '')
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(
    data_dir: Optional[Path] = None,
    debug: bool = False,
    console_output: bool = True,
    log_to_file: bool = True
) -> logging.Logger:
    """Configure the ``netsurvey`` logger tree.

    Safe to call again; handlers are replaced, not stacked.

    Args:
        data_dir: Where ``network_survey.log`` is written. Defaults to
            ``~/.network-survey``.
        debug: Log DEBUG to the file and to stderr.
        console_output: Add the stderr handler (warnings only unless debug).
        log_to_file: Add the rotating file handler.

    Returns:
        The ``netsurvey`` root logger.
    """
    if data_dir is None:
        data_dir = Path.home() / STORAGE.DATA_DIR_NAME

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    root.propagate = False
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if log_to_file:
        data_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            data_dir / STORAGE.LOG_FILE,
            maxBytes=STORAGE.LOG_MAX_BYTES,
            backupCount=STORAGE.LOG_BACKUP_COUNT,
            encoding='utf-8'
        )
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
        root.addHandler(file_handler)

    if console_output:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.DEBUG if debug else logging.WARNING)
        console.setFormatter(ConsoleFormatter(sys.stderr))
        root.addHandler(console)

    if not root.handlers:
        root.addHandler(logging.NullHandler())

    root.debug(f"Logging to {data_dir if log_to_file else 'console only'} (debug={debug})")
    return root


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, e.g. ``discovery.sweep`` -> ``netsurvey.discovery.sweep``.

    Only the last two dotted components of ``name`` are kept.
    """
    short_name = '.'.join(name.split('.')[-2:])
    if short_name not in _loggers:
        _loggers[short_name] = logging.getLogger(f'{ROOT_LOGGER_NAME}.{short_name}')
    return _loggers[short_name]


def log_exception(logger: logging.Logger, message: str, exc: BaseException) -> None:
    """Log ``message: ExcType: text`` at ERROR with the traceback attached."""
    logger.error(
        f"{message}: {type(exc).__name__}: {exc}",
        exc_info=exc,
        extra={'exception_type': type(exc).__name__}
    )


def log_command(
    logger: logging.Logger,
    command: Sequence[str],
    returncode: int,
    duration_ms: float
) -> None:
    """One DEBUG line per finished command.

    A sweep runs hundreds of pings and most of them fail, so a nonzero
    exit is not worth more than DEBUG.
    """
    shown = ' '.join(command[:3]) + (' ...' if len(command) > 3 else '')
    outcome = 'ok' if returncode == 0 else f'rc={returncode}'
    logger.debug(f"{shown}: {outcome} in {duration_ms:.1f}ms")


class LogContext:
    """Logs how long a block took, or that it failed.

    Example:
        >>> with LogContext(logger, "Ping sweep of 192.168.1.0/24"):
        ...     await sweeper.sweep("192.168.1.0/24")
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.DEBUG):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[float] = None

    @property
    def elapsed_ms(self) -> float:
        if self.start_time is None:
            return 0.0
        return (time.monotonic() - self.start_time) * 1000

    def __enter__(self):
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.logger.log(self.level, f"{self.operation} took {self.elapsed_ms:.0f}ms")
        elif issubclass(exc_type, Exception):
            self.logger.error(
                f"{self.operation} failed after {self.elapsed_ms:.0f}ms: {exc_val}")
        return False
