"""
Structured Logging Configuration

Console and file logging for the engine. Records may carry simulation
context through ``extra={"patient_id": ..., "cycle": ...}``; the formatter
renders it as a bracketed suffix so per-patient lines can be grepped.
"""
import logging
import sys
from typing import Optional
from datetime import datetime, timezone

CONTEXT_FIELDS = ("patient_id", "cycle")


def _context_suffix(record: logging.LogRecord) -> str:
    parts = [
        f"{name}={getattr(record, name)}"
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    ]
    return f" [{' '.join(parts)}]" if parts else ""


class StructuredFormatter(logging.Formatter):
    """Colourised console formatter with UTC timestamps and simulation context."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        record.timestamp = datetime.now(timezone.utc).isoformat()

        color = self.COLORS.get(record.levelname, self.COLORS['RESET']) if self.use_color else ""
        reset = self.COLORS['RESET'] if self.use_color else ""

        log_message = (
            f"{color}[{record.timestamp}] "
            f"{record.levelname:8} "
            f"[{record.name}] "
            f"{record.getMessage()}"
            f"{_context_suffix(record)}{reset}"
        )

        if record.exc_info:
            log_message += f"\n{self.formatException(record.exc_info)}"

        return log_message


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure engine-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path; written without ANSI colours
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Replace only handlers installed by a previous setup_logging() call
    for handler in list(root_logger.handlers):
        if getattr(handler, "_nephrosim", False):
            root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter(use_color=sys.stdout.isatty()))
    console_handler._nephrosim = True
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter(use_color=False))
        file_handler._nephrosim = True
        root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Module name (typically __name__)
    """
    return logging.getLogger(name)
