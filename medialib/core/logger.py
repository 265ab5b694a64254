"""
Logging configuration for medialib.

This module sets up the logging system with multiple outputs:
    - Console: Real-time messages with tqdm-compatible formatting
    - log_full_<timestamp>.log: Complete log of all events (DEBUG and above)
    - log_errors_<timestamp>.log: Only ERROR and CRITICAL level messages
    - sync_failures_<timestamp>.log: Files that could not be indexed

Library modules never configure handlers themselves; they only call
get_logger(__name__). The application shell calls setup_logging() once.

Usage:
    from medialib.core.logger import setup_logging, get_logger

    setup_logging(config.logging.directory)  # Call once at startup
    logger = get_logger(__name__)

    logger.info("Starting sync")
    log_extraction_failure(logger, folder_id, "Album/01.mp3", "Truncated file")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

import colorama
from colorama import Fore, Style
from tqdm import tqdm


LOG_FULL_FILENAME = "log_full"
LOG_ERRORS_FILENAME = "log_errors"
SYNC_FAILURES_FILENAME = "sync_failures"

FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are far too chatty at DEBUG
_QUIET_LIBRARIES = ("urllib3", "requests", "PIL", "mutagen")


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that prefixes console messages with a colored level name.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bright Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Fore.BLUE,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Style.BRIGHT + Fore.RED,
    }

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return f"{record.levelname}: {record.getMessage()}"
        color = self.LEVEL_COLORS.get(record.levelno, Fore.WHITE)
        return f"{color}{record.levelname}{Style.RESET_ALL}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to the console without breaking tqdm bars.

    tqdm redraws its bar in place with carriage returns; a plain stream
    handler would tear it. tqdm.write() prints above any active bar.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class ExtractionFailureHandler(logging.Handler):
    """
    Handler that collects files which could not be indexed into a report.

    Only records carrying a 'failed_file_path' extra field are written.
    The report format is:

        [folder_id] Album/01 - Song.mp3
            reason: Truncated MPEG frame

    Attributes:
        report_path: Path to the sync_failures log file.
        report_file: Open file handle, set by open().
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file for writing (overwrites existing content)."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "failed_file_path"):
            return

        if self.report_file is None:
            return

        try:
            folder_id = getattr(record, "failed_file_folder", "?")
            path = getattr(record, "failed_file_path", "")
            reason = getattr(record, "failed_file_reason", "")

            self.report_file.write(f"[{folder_id}] {path}\n")
            self.report_file.write(f"    reason: {reason}\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """Close the report file handle. Safe to call multiple times."""
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(log_dir: Path, level: str = "INFO", colored_output: bool = True) -> None:
    """
    Configure the logging system for the application shell.

    Should be called ONCE at startup, after the configuration is loaded
    and before any sync is started.

    Args:
        log_dir: Directory where log files will be created.
        level: Console log level name. Files always receive DEBUG.
        colored_output: Color the console level prefix.

    Behavior:
        1. Create log_dir if it doesn't exist
        2. Configure root logger level to DEBUG
        3. Console handler (TqdmLoggingHandler) at the requested level
        4. Full log file handler at DEBUG
        5. Error-only log file handler
        6. Sync failures report handler
    """
    colorama.init()

    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    console_handler.setFormatter(ColoredConsoleFormatter(use_colors=colored_output))
    root_logger.addHandler(console_handler)

    full_handler = logging.FileHandler(
        log_dir / f"{LOG_FULL_FILENAME}_{timestamp}.log", mode="w", encoding="utf-8"
    )
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_handler = logging.FileHandler(
        log_dir / f"{LOG_ERRORS_FILENAME}_{timestamp}.log", mode="w", encoding="utf-8"
    )
    error_handler.setLevel(logging.DEBUG)
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    failures_handler = ExtractionFailureHandler(log_dir / f"{SYNC_FAILURES_FILENAME}_{timestamp}.log")
    failures_handler.open()
    root_logger.addHandler(failures_handler)

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.

    Returns:
        logging.Logger: A logger configured by setup_logging(). Loggers
        obtained before setup_logging() propagate to whatever the host
        application configured.
    """
    return logging.getLogger(name)


def log_extraction_failure(
    logger: logging.Logger,
    folder_id: str,
    path: str,
    reason: str
) -> None:
    """
    Log a file whose metadata could not be extracted.

    Attaches the extra fields ExtractionFailureHandler writes to the
    sync failures report.

    Args:
        logger: The logger to use for the message.
        folder_id: Source root the file belongs to.
        path: Path of the file relative to its root.
        reason: Description of why extraction failed.
    """
    logger.error(
        f"Could not index {path}: {reason}",
        extra={
            "failed_file_folder": folder_id,
            "failed_file_path": path,
            "failed_file_reason": reason,
        }
    )


def shutdown_logging() -> None:
    """
    Flush and close every handler on the root logger.

    Typically called in a finally block at application exit.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        root_logger.removeHandler(handler)
