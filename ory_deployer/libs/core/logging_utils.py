"""
Logging Utilities Module.

Console logging for the deployer: colored, prefixed lines that distinguish
step markers, successes, warnings and errors. Errors go to stderr, everything
else to stdout.
"""

import logging
import sys
from typing import Optional, TextIO

RED = '\033[0;31m'
GREEN = '\033[0;32m'
YELLOW = '\033[1;33m'
BLUE = '\033[0;34m'
NC = '\033[0m'

STEP_PREFIX = "==>"
SUCCESS_PREFIX = "✓"
WARNING_PREFIX = "⚠"
ERROR_PREFIX = "✗"


class ConsoleFormatter(logging.Formatter):
    """Prefix each record with the marker for its kind"""

    def __init__(self, use_color: bool = False):
        super().__init__('%(message)s')
        self.use_color = use_color

    def _prefix(self, record: logging.LogRecord) -> str:
        if getattr(record, "step", False):
            return self._paint(BLUE, STEP_PREFIX)
        if record.levelno >= logging.ERROR:
            return self._paint(RED, ERROR_PREFIX)
        if record.levelno >= logging.WARNING:
            return self._paint(YELLOW, WARNING_PREFIX)
        if record.levelno >= logging.INFO:
            return self._paint(GREEN, SUCCESS_PREFIX)
        return ""

    def _paint(self, color: str, text: str) -> str:
        if not self.use_color:
            return text
        return f"{color}{text}{NC}"

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        prefix = self._prefix(record)
        return f"{prefix} {message}" if prefix else message


class _BelowErrorFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.ERROR


def _supports_color(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def setup_logging(debug: bool = False, stdout: Optional[TextIO] = None,
                  stderr: Optional[TextIO] = None) -> None:
    """
    Configure logging for the application.

    Args:
        debug: Enable debug-level logging if True
        stdout: Stream for informational output (defaults to sys.stdout)
        stderr: Stream for error output (defaults to sys.stderr)
    """
    level = logging.DEBUG if debug else logging.INFO
    out_stream = stdout or sys.stdout
    err_stream = stderr or sys.stderr

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    out_handler = logging.StreamHandler(out_stream)
    out_handler.setLevel(level)
    out_handler.addFilter(_BelowErrorFilter())
    out_handler.setFormatter(ConsoleFormatter(use_color=_supports_color(out_stream)))

    err_handler = logging.StreamHandler(err_stream)
    err_handler.setLevel(logging.ERROR)
    err_handler.setFormatter(ConsoleFormatter(use_color=_supports_color(err_stream)))

    root_logger.addHandler(out_handler)
    root_logger.addHandler(err_handler)

    # Reduce noise from the HTTP and Kubernetes client libraries
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('kubernetes').setLevel(logging.WARNING)

    if debug:
        logging.getLogger(__name__).debug("Debug mode enabled")


def log_step(logger: logging.Logger, message: str) -> None:
    """Log a step marker line"""
    logger.info(message, extra={"step": True})
