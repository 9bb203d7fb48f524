"""Logging configuration for the archiver.

Every run logs to two places: the console (human, simple or JSON format)
and a run-scoped, append-only text file named after the run's start time
(``archive_YYYYMMDD_HHMMSS.log``). Components receive their logger
explicitly (see :func:`get_logger`) rather than configuring anything
themselves.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "get_logger",
    "run_log_path",
    "setup_logging",
]

LOG_FILE_TEMPLATE = "archive_{stamp}.log"

_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Format log records as JSON for structured logging."""

    def __init__(self, include_context: bool = True):
        super().__init__()
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_context:
            log_data["module"] = record.module
            log_data["function"] = record.funcName
            log_data["line"] = record.lineno

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields (e.g. from LoggerAdapter context)
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Format log records in human-readable format with colors (optional)."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
        "RESET": "\033[0m",
    }

    def __init__(self, use_colors: bool = False):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            reset = self.COLORS["RESET"]
            return f"{color}{formatted}{reset}"

        return formatted


def get_log_level_from_env() -> int:
    """Read ARCHIVER_LOG_LEVEL (falling back to LOG_LEVEL), default INFO."""
    level_name = os.environ.get("ARCHIVER_LOG_LEVEL") or os.environ.get(
        "LOG_LEVEL", "INFO"
    )
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else logging.INFO


def run_log_path(log_dir: Union[str, Path], started_at: Optional[datetime] = None) -> Path:
    """Return the run log path for a run started at ``started_at``."""
    stamp = (started_at or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return Path(log_dir) / LOG_FILE_TEMPLATE.format(stamp=stamp)


def setup_logging(
    level: Optional[int] = None,
    format_type: str = "human",
    log_file: Optional[Path] = None,
    use_colors: bool = False,
) -> None:
    """Configure the root logger for an archive run.

    Args:
        level: Logging level (defaults to ARCHIVER_LOG_LEVEL or INFO)
        format_type: Console format ('human', 'json', 'simple')
        log_file: Run log file; opened in append mode, always human-readable
        use_colors: Use ANSI colors in console output
    """
    if level is None:
        level = get_log_level_from_env()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        handler.close()
        root_logger.removeHandler(handler)

    if format_type == "json":
        formatter: logging.Formatter = JSONFormatter()
    elif format_type == "simple":
        formatter = logging.Formatter("%(levelname)s: %(message)s")
    else:
        formatter = HumanReadableFormatter(use_colors=use_colors)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(HumanReadableFormatter(use_colors=False))
        root_logger.addHandler(file_handler)


def get_logger(
    name: str, extra: Optional[Dict[str, Any]] = None
) -> Union[logging.Logger, logging.LoggerAdapter]:
    """Get a logger, wrapped in an adapter when run context is given.

    Example:
        >>> logger = get_logger("archiver.cutover", extra={"table": "orders"})
        >>> logger.info("Starting archive")
    """
    logger = logging.getLogger(name)

    if extra:
        return logging.LoggerAdapter(logger, extra)

    return logger
