#!/usr/bin/env python3
"""
Logging setup for BGP Validator

One root configuration per process:
- Console output on stderr, colored when attached to a terminal
- Rotating log file (logs/execute.log, 10 MB x 3 by default)
- systemd journal when running under a unit

Feed sessions are long-running and the websockets/urllib3 loggers are very
chatty at DEBUG, so those are held at WARNING unless DEBUG is requested.
"""

import logging
import logging.handlers
import os
import sys
import time
from pathlib import Path
from typing import Dict, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that flood the feed session log at DEBUG
NOISY_LOGGERS = ("websockets", "urllib3")


class BGPValidatorFormatter(logging.Formatter):
    """Formatter that colors the whole line by level on a terminal"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = False):
        super().__init__(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
        self.use_colors = use_colors

    def format(self, record):
        formatted = super().format(record)
        color = self.COLORS.get(record.levelname) if self.use_colors else None
        return f"{color}{formatted}{self.RESET}" if color else formatted


def _console_handler(level: int, colors: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(BGPValidatorFormatter(use_colors=colors and sys.stderr.isatty()))
    return handler


def _file_handler(level: int, log_file: str, max_bytes: int, backup_count: int) -> logging.Handler:
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count
    )
    handler.setLevel(level)
    handler.setFormatter(BGPValidatorFormatter())
    return handler


def _journal_handler(level: int) -> Optional[logging.Handler]:
    """JournalHandler when python-systemd is installed and we run as a unit"""
    if not _is_running_as_service():
        return None
    try:
        from systemd import journal
    except ImportError:
        return None

    handler = journal.JournalHandler(SYSLOG_IDENTIFIER="bgp-validator")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(name)s - %(levelname)s - %(message)s"))
    return handler


def setup_logging(config_manager=None, level: str = None,
                  log_to_file: bool = None, console_colors: bool = True) -> Dict[str, logging.Handler]:
    """
    Configure the root logger for a CLI run

    Args:
        config_manager: ConfigManager supplying the logging section
        level: Level name overriding the configured one (-v / -q)
        log_to_file: Override for the configured file logging switch
        console_colors: Color console lines on a terminal

    Returns:
        Installed handlers keyed by "console", "file" and "journal"
    """
    settings = config_manager.get_config().logging if config_manager is not None else None

    level_name = (level or (settings.level if settings else "INFO")).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    if log_to_file is None:
        log_to_file = bool(settings and settings.log_to_file and settings.log_file)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    handlers = {"console": _console_handler(numeric_level, console_colors)}
    if log_to_file:
        handlers["file"] = _file_handler(
            numeric_level, settings.log_file, settings.max_bytes, settings.backup_count
        )
    journal_handler = _journal_handler(numeric_level)
    if journal_handler is not None:
        handlers["journal"] = journal_handler

    for handler in handlers.values():
        root_logger.addHandler(handler)

    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    get_logger("logging").info(
        f"Logging configured: level={level_name}, handlers={list(handlers)}"
    )
    return handlers


def _is_running_as_service() -> bool:
    """systemd sets INVOCATION_ID / JOURNAL_STREAM for unit processes"""
    return os.getenv("INVOCATION_ID") is not None or os.getenv("JOURNAL_STREAM") is not None


def get_logger(name: str) -> logging.Logger:
    """Get a logger in the bgp-validator namespace"""
    if not name.startswith("bgp-validator"):
        name = f"bgp-validator.{name}"
    return logging.getLogger(name)


class LoggingTimer:
    """Log the start, end and wall time of an operation"""

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time = None
        self.duration = None

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.log(self.level, f"Starting {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.monotonic() - self.start_time
        if exc_type is None:
            self.logger.log(self.level, f"Completed {self.operation} in {self.duration:.3f}s")
        else:
            self.logger.error(f"Failed {self.operation} after {self.duration:.3f}s: {exc_val}")
        return False
