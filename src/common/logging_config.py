"""
Logging configuration for TenPod.

Console logs go to stderr (level names coloured on a terminal); an
optional rotating file log is written as plain text or JSON lines.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
import json
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(filename)s:%(lineno)d] %(message)s"

# Record attribute that LogContext fills in
CONTEXT_ATTR = "vm_context"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the active VM context if any."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.filename}:{record.lineno}",
        }
        context = getattr(record, CONTEXT_ATTR, None)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class ColoredFormatter(logging.Formatter):
    """Console formatter that colours the level name."""

    LEVEL_COLORS = {
        "DEBUG": "36",     # cyan
        "INFO": "32",      # green
        "WARNING": "33",   # yellow
        "ERROR": "31",     # red
        "CRITICAL": "35",  # magenta
    }

    def formatMessage(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname)
        if color is None:
            return super().formatMessage(record)
        # Work on a copy so file handlers still see the plain level name
        tinted = logging.makeLogRecord(record.__dict__)
        tinted.levelname = f"\033[{color}m{record.levelname}\033[0m"
        return super().formatMessage(tinted)


def setup_logging(
    level: int = logging.WARNING,
    log_file: Optional[Path] = None,
    json_logs: bool = False,
):
    """
    Configure logging for the TenPod command line tools.

    Console output goes to stderr so that it never mixes with command
    output on stdout.

    Args:
        level: Console logging level (default: WARNING)
        log_file: Path to a rotating log file (optional)
        json_logs: Use JSON format for the file log
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if log_file else level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    formatter_class = ColoredFormatter if sys.stderr.isatty() else logging.Formatter
    console_handler.setFormatter(formatter_class(CONSOLE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter() if json_logs else logging.Formatter(FILE_FORMAT))
        root_logger.addHandler(file_handler)

    logging.getLogger("jinja2").setLevel(logging.WARNING)


class LogContext:
    """
    Tag every record logged inside the block with the VM being operated on.

    Example:
        with LogContext(vm_name="TenPod", operation="start"):
            logger.info("Launching hypervisor")
    """

    def __init__(self, vm_name: str, operation: Optional[str] = None):
        self.context = {"vm_name": vm_name}
        if operation:
            self.context["operation"] = operation
        self._previous_factory = None

    def __enter__(self):
        self._previous_factory = previous = logging.getLogRecordFactory()
        context = self.context

        def factory(*args, **kwargs):
            record = previous(*args, **kwargs)
            setattr(record, CONTEXT_ATTR, context)
            return record

        logging.setLogRecordFactory(factory)
        return self

    def __exit__(self, *exc_info):
        logging.setLogRecordFactory(self._previous_factory)
