"""
JSON logging formatter for rbridge with proper prefixes.

Bridge log entries and interpreter output are formatted as JSON lines
carrying a prefix which tells the two sources apart.
"""

"""
Copyright (c) 2025 Firefly Software Solutions Inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at:

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional

BRIDGE_PREFIX = "rbridge::bridge::log"
INTERPRETER_PREFIX = "rbridge::interpreter::log"
INTERPRETER_LOGGER_NAME = "rbridge.interpreter"


class RBridgeJSONFormatter(logging.Formatter):
    """
    JSON formatter for the rbridge logging system.

    Formats all log entries as single-line JSON with a prefix:
    - rbridge::bridge::log for the Python side of the bridge
    - rbridge::interpreter::log for output captured from the interpreter
    """

    # LogRecord attributes which are never reported as extra fields
    excluded_fields = frozenset(
        {
            "name",
            "msg",
            "args",
            "levelname",
            "levelno",
            "pathname",
            "filename",
            "module",
            "exc_info",
            "exc_text",
            "stack_info",
            "lineno",
            "funcName",
            "created",
            "msecs",
            "relativeCreated",
            "thread",
            "threadName",
            "processName",
            "process",
            "taskName",
            "message",
        }
    )

    def __init__(
        self, prefix: Optional[str] = None, include_extra: bool = True, include_thread: bool = True
    ):
        """
        Initialize the JSON formatter.

        Args:
            prefix: Log prefix to use. If None, defaults to rbridge::bridge::log
            include_extra: Whether to include extra fields from log records
            include_thread: Whether to include the thread name
        """
        super().__init__()
        self.prefix = prefix or BRIDGE_PREFIX
        self.include_extra = include_extra
        self.include_thread = include_thread

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "prefix": self.prefix,
        }

        if self.include_thread and record.thread:
            log_data["thread"] = record.threadName or str(record.thread)

        if record.filename:
            log_data["module"] = record.filename
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        if self.include_extra:
            extra_data = self._extract_extra_fields(record)
            if extra_data:
                log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, separators=(",", ":"), default=str)

    def _extract_extra_fields(self, record: logging.LogRecord) -> Dict[str, Any]:
        """Fields passed through ``extra=`` when logging."""
        extra = {}
        for key, value in record.__dict__.items():
            if key in self.excluded_fields or key.startswith("_"):
                continue
            if value is not None and value != "":
                extra[key] = value
        return extra


class PythonLogFormatter(RBridgeJSONFormatter):
    """JSON formatter for bridge log entries (rbridge::bridge::log)."""

    def __init__(self, include_extra: bool = True, include_thread: bool = True):
        super().__init__(
            prefix=BRIDGE_PREFIX, include_extra=include_extra, include_thread=include_thread
        )


class InterpreterLogFormatter(RBridgeJSONFormatter):
    """
    JSON formatter for interpreter output (rbridge::interpreter::log).

    Thread and source location are omitted: they would name the bridge
    internals, not the interpreter.
    """

    def __init__(self, include_extra: bool = True):
        super().__init__(prefix=INTERPRETER_PREFIX, include_extra=include_extra, include_thread=False)

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "prefix": self.prefix,
        }
        if self.include_extra:
            log_data.update(self._extract_extra_fields(record))
        return json.dumps(log_data, separators=(",", ":"), default=str)


def create_json_handler(
    level: int = logging.INFO, formatter_type: str = "python", stream=None
) -> logging.Handler:
    """
    Create a logging handler with JSON formatting.

    Args:
        level: Logging level
        formatter_type: Type of formatter ("python" or "interpreter")
        stream: Output stream (defaults to sys.stdout)

    Returns:
        Configured logging handler
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)

    if formatter_type == "interpreter":
        formatter = InterpreterLogFormatter()
    else:
        formatter = PythonLogFormatter()

    handler.setFormatter(formatter)
    return handler


def configure_json_logging(
    logger_name: str = "rbridge",
    level: int = logging.INFO,
    enable_interpreter_logs: bool = True,
    stream=None,
) -> logging.Logger:
    """
    Configure JSON logging for one logger tree.

    Args:
        logger_name: Name of the logger to configure
        level: Logging level
        enable_interpreter_logs: Whether interpreter output gets its own handler
        stream: Output stream (defaults to sys.stdout)

    Returns:
        Configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(create_json_handler(level, "python", stream))

    if enable_interpreter_logs:
        interpreter_logger = logging.getLogger(INTERPRETER_LOGGER_NAME)
        interpreter_logger.handlers.clear()
        interpreter_logger.addHandler(create_json_handler(level, "interpreter", stream))
        # Prevent propagation to avoid duplicate logs
        interpreter_logger.propagate = False

    return logger
