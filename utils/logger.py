#!/usr/bin/env python3
# utils/logger.py
"""Logging setup for the wantlist checker.

Every run gets two loggers:

1.  **console_logger:** progress, waits and the list of matches in the terminal, through
    `rich.logging.RichHandler`.
2.  **main_logger:** the run log file `<logs_base_dir>/<logging.main_log_file>`. Records go
    through a `QueueHandler`; a `QueueListener` thread writes them, so file I/O never runs
    on the event loop.

The run log brackets each run with a `RunBanner` and keeps only the last
`logging.max_runs` runs. File records are formatted by `CompactFormatter` (one-letter
levels, source paths shortened to `$LOGS`, `~` or the bare file name).
"""

from __future__ import annotations

import logging
import os
import queue
import sys
import time

from collections.abc import Callable
from datetime import datetime
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

CONSOLE_LOGGER_NAME = "console_logger"
FILE_LOGGER_NAME = "main_logger"
RUN_LABEL = "Wantlist Checker"

BANNER_RULE = "=" * 80
RUN_START_MARKER = "NEW RUN:"
RUN_END_MARKER = "END RUN:"

FILE_RECORD_FORMAT = "%(asctime)s %(levelname).1s [%(name)s] %(short_pathname)s:%(lineno)d - %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class RunBanner:
    """Start and end banners of one run, and trimming of old runs from the log file."""

    def __init__(self, label: str = RUN_LABEL, max_runs: int = 3, clock: Callable[[], float] = time.monotonic):
        self.label = label
        self.max_runs = max_runs
        self._clock = clock
        self._started = clock()

    @staticmethod
    def _block(text: str) -> str:
        return f"\n{BANNER_RULE}\n{text}\n{BANNER_RULE}\n"

    def opening(self) -> str:
        """Banner written before the first record of the run."""
        return self._block(f"{RUN_START_MARKER} {self.label} - {datetime.now().strftime(FILE_DATE_FORMAT)}")

    def closing(self) -> str:
        """Banner written when the run log is closed."""
        return self._block(f"{RUN_END_MARKER} {self.label} - Total time: {self._clock() - self._started:.2f}s")

    def trim(self, log_file: str) -> None:
        """Drop everything before the last `max_runs` runs of the log file."""
        if self.max_runs <= 0 or not os.path.exists(log_file):
            return

        try:
            with open(log_file, encoding="utf-8", errors="ignore") as f:
                lines = f.readlines()

            # A run starts at the rule line above its start marker
            run_starts = [i - 1 for i, line in enumerate(lines) if i > 0 and line.startswith(RUN_START_MARKER)]
            if len(run_starts) <= self.max_runs:
                return

            temp_path = f"{log_file}.tmp"
            with open(temp_path, "w", encoding="utf-8") as f:
                f.writelines(lines[run_starts[-self.max_runs] :])
            os.replace(temp_path, log_file)
        except OSError as e:
            # The logging system may already be shut down here
            print(f"Could not trim run log {log_file}: {e}", file=sys.stderr)


def ensure_directory(path: str, error_logger: logging.Logger | None = None) -> None:
    """Create `path` and its parents if they do not exist yet."""
    if not path:
        return
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        message = f"Cannot create directory {path}: {e}"
        if error_logger:
            error_logger.error(message)
        else:
            print(message, file=sys.stderr)


def run_log_path(config: dict[str, Any]) -> str:
    """Return the run log file path from the config, creating its directory."""
    log_file = config.get("logging", {}).get("main_log_file", "main/main.log")
    path = os.path.join(config.get("logs_base_dir", "logs"), log_file)
    ensure_directory(os.path.dirname(path))
    return path


def shorten_path(path: str, logs_dir: str | None = None) -> str:
    """Shorten a source path for file log records.

    Paths under the logs directory become `$LOGS/...` and paths under the home
    directory start with `~`. Any other absolute path is reduced to its file name.
    """
    if not path:
        return ""

    norm_path = os.path.normpath(path)
    for root, alias in ((logs_dir, "$LOGS"), (str(Path.home()), "~")):
        if not root:
            continue
        root = os.path.normpath(os.path.abspath(root))
        if norm_path == root:
            return alias
        if norm_path.startswith(root + os.sep):
            return alias + norm_path[len(root) :]

    return os.path.basename(norm_path) if os.path.isabs(norm_path) else norm_path


class CompactFormatter(logging.Formatter):
    """Run log formatter; provides `%(short_pathname)s` to the format string."""

    def __init__(
        self,
        fmt: str = FILE_RECORD_FORMAT,
        datefmt: str = FILE_DATE_FORMAT,
        logs_dir: str | None = None,
    ):
        super().__init__(fmt, datefmt)
        self.logs_dir = logs_dir

    def format(self, record: logging.LogRecord) -> str:
        record.short_pathname = shorten_path(record.pathname, self.logs_dir)
        try:
            return super().format(record)
        finally:
            # The record is shared with any other handler
            del record.short_pathname


class RunLogHandler(logging.FileHandler):
    """Appends to the run log: opening banner before the first record, closing banner and trim on close."""

    def __init__(self, filename: str, banner: RunBanner):
        ensure_directory(os.path.dirname(filename))
        super().__init__(filename, mode="a", encoding="utf-8")
        self.banner = banner
        self._opened = False
        self._closed = False

    def emit(self, record: logging.LogRecord) -> None:
        if not self._opened and self.stream is not None:
            self._opened = True
            try:
                self.stream.write(self.banner.opening())
            except OSError:
                self.handleError(record)
        super().emit(record)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        try:
            if self._opened and self.stream is not None:
                self.stream.write(self.banner.closing())
                self.flush()
        except OSError as e:
            print(f"Could not finish run log {self.baseFilename}: {e}", file=sys.stderr)
        finally:
            super().close()
            self.banner.trim(self.baseFilename)


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _console_logger(level: int) -> logging.Logger:
    logger = logging.getLogger(CONSOLE_LOGGER_NAME)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(
            RichHandler(
                console=Console(),
                show_path=False,
                enable_link_path=False,
                log_time_format="%H:%M:%S",
            )
        )
    for handler in logger.handlers:
        handler.setLevel(level)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def _file_logger(config: dict[str, Any], level: int) -> tuple[logging.Logger, QueueListener]:
    banner = RunBanner(max_runs=config.get("logging", {}).get("max_runs", 3))
    handler = RunLogHandler(run_log_path(config), banner)
    handler.setFormatter(CompactFormatter(logs_dir=config.get("logs_base_dir")))
    handler.setLevel(level)

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue()
    listener = QueueListener(log_queue, handler, respect_handler_level=True)
    listener.start()

    logger = logging.getLogger(FILE_LOGGER_NAME)
    # A queue left from an earlier call has no listener any more
    for stale in [h for h in logger.handlers if isinstance(h, QueueHandler)]:
        logger.removeHandler(stale)
    logger.addHandler(QueueHandler(log_queue))
    logger.setLevel(level)
    logger.propagate = False
    return logger, listener


def get_loggers(
    config: dict[str, Any],
) -> tuple[logging.Logger, logging.Logger, QueueListener | None]:
    """Create the console logger and the run log logger.

    Returns:
        (console_logger, error_logger, listener). The listener must be stopped at shutdown.
        If the run log cannot be opened, both loggers fall back to `logging.basicConfig`
        output on stderr and the listener is None.

    """
    levels = config.get("logging", {}).get("levels", {})
    try:
        console_logger = _console_logger(_level(levels.get("console", "INFO")))
        error_logger, listener = _file_logger(config, _level(levels.get("main_file", "INFO")))
    except (OSError, ValueError) as e:
        print(f"FATAL ERROR: Failed to configure logging: {e}", file=sys.stderr)
        logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
        logging.getLogger(__name__).critical(f"Fallback basic logging configured due to error: {e}")
        return logging.getLogger("console_fallback"), logging.getLogger("error_fallback"), None

    console_logger.debug(f"Run log: {shorten_path(run_log_path(config), config.get('logs_base_dir'))}")
    return console_logger, error_logger, listener
