"""
Logging Utilities

Provides a colored console formatter and helpers for module loggers
and optional file logging.
"""

import logging
import os
from typing import Optional

APP_LOGGER_NAME = "marketplace"


class CustomFormatter(logging.Formatter):
    """
    A custom formatter for logging messages with different log levels.

    Attributes:
        grey (str): ANSI escape sequence for grey color.
        yellow (str): ANSI escape sequence for yellow color.
        red (str): ANSI escape sequence for red color.
        bold_red (str): ANSI escape sequence for bold red color.
        reset (str): ANSI escape sequence to reset color.
        fmt (str): The log message format.
        FORMATS (dict): Log level to format string.
    """
    grey = "\x1b[37;20m"
    yellow = "\x1b[33;20m"
    red = "\x1b[31;20m"
    bold_red = "\x1b[31;1m"
    dark_grey = "\x1b[30;1m"
    reset = "\x1b[0m"
    fmt = '[%(levelname)s] %(asctime)s %(name)s - %(message)s'

    FORMATS = {
        logging.DEBUG: dark_grey + fmt + reset,
        logging.INFO: grey + fmt + reset,
        logging.WARNING: yellow + fmt + reset,
        logging.ERROR: red + fmt + reset,
        logging.CRITICAL: bold_red + fmt + reset
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno, self.fmt)
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def _configure_root() -> logging.Logger:
    root = logging.getLogger(APP_LOGGER_NAME)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(CustomFormatter())
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger that writes through the application's console handler.

    Args:
        name: Usually the calling module's __name__.

    Returns:
        logging.Logger: A child of the application logger.
    """
    _configure_root()
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")


def setup_file_logging(log_file: Optional[str], level: int = logging.INFO) -> None:
    """
    Add a plain-text file handler to the application logger.

    Args:
        log_file: Path of the log file, or None to log to console only.
        level: Logging level applied to the application logger.
    """
    root = _configure_root()
    root.setLevel(level)

    if not log_file:
        return

    directory = os.path.dirname(os.path.abspath(log_file))
    if not os.path.exists(directory):
        os.makedirs(directory)

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter('[%(levelname)s] %(asctime)s %(name)s - %(message)s'))
    root.addHandler(file_handler)
