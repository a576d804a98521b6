"""Logging setup for loom-teardown"""
import copy
import logging
import sys
from pathlib import Path
from typing import Optional

from loom_teardown.constants import DEFAULT_DATA_DIR, DRY_RUN_PREFIX

LOG_FILE_NAME = 'loom-teardown.log'
DETAILED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Logger names with these prefixes are shortened in output
LOGGER_PREFIXES = ('loom_teardown.', 'services.')

# Third-party loggers that echo every git invocation at DEBUG/INFO
NOISY_LOGGERS = ('git.cmd', 'git.util', 'git.repo')


class ColoredFormatter(logging.Formatter):
    """Colors level names on a terminal and highlights dry-run lines."""

    LEVEL_COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    DRY_RUN_COLOR = '\033[1;36m'
    RESET = '\033[0m'

    def __init__(self, *args, use_color: Optional[bool] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = sys.stderr.isatty() if use_color is None else use_color

    def format(self, record):
        if not self.use_color:
            return super().format(record)

        # Other handlers share the record, so color a copy
        record = copy.copy(record)
        color = self.LEVEL_COLORS.get(record.levelname)
        if color:
            record.levelname = f"{color}{record.levelname}{self.RESET}"
        message = record.getMessage()
        if message.startswith(DRY_RUN_PREFIX):
            record.msg = f"{self.DRY_RUN_COLOR}{DRY_RUN_PREFIX}{self.RESET}{message[len(DRY_RUN_PREFIX):]}"
            record.args = None
        return super().format(record)


def _file_handler(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / LOG_FILE_NAME, mode='w')  # One teardown per file
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt=DETAILED_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(verbose: bool = False, debug: bool = False, log_dir: Optional[Path] = None) -> None:
    """
    Configure logging for a teardown run.

    Args:
        verbose: Show INFO messages (each step outcome)
        debug: Show DEBUG messages with timestamps, GitPython command logging,
            and keep a copy in a log file
        log_dir: Directory for the debug log file (defaults to the data directory)
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    if debug:
        console_handler.setFormatter(ColoredFormatter(fmt=DETAILED_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(_file_handler(Path(log_dir or DEFAULT_DATA_DIR)))
    else:
        console_handler.setFormatter(ColoredFormatter(fmt='[%(name)s] %(message)s'))
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, named without the package prefix."""
    for prefix in LOGGER_PREFIXES:
        if name.startswith(prefix):
            name = name[len(prefix):]
    return logging.getLogger(name)
