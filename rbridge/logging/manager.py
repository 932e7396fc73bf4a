"""
Centralized logging manager for rbridge.

Sets up console and file logging with JSON or text formatting, and a
dedicated logger receiving the interpreter's output lines.
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

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import List, Optional

from .json_formatter import INTERPRETER_LOGGER_NAME, InterpreterLogFormatter, PythonLogFormatter

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class RBridgeLoggingManager:
    """
    Central manager for the rbridge logging system.

    Accepts either a BridgeConfig or a LoggingConfig. Handlers installed by
    the manager are tracked and removed again on shutdown.
    """

    def __init__(self, config=None, stream=None):
        """
        Initialize the logging manager.

        Args:
            config: BridgeConfig or LoggingConfig with the logging settings
            stream: Console stream (defaults to sys.stdout)
        """
        self.config = config
        self.stream = stream
        self.configured = False
        self._handlers: List[logging.Handler] = []
        self._interpreter_handlers: List[logging.Handler] = []

        # Default settings if no config provided
        self.log_level = logging.INFO
        self.format_type = "json"
        self.interpreter_log_level = logging.INFO
        self.output_file = None
        self.max_file_size_mb = 100
        self.backup_count = 5
        self.include_thread_info = True

        logging_config = getattr(config, "logging", config)
        if logging_config is not None:
            self.log_level = getattr(logging, logging_config.level)
            self.format_type = logging_config.format
            self.interpreter_log_level = getattr(logging, logging_config.interpreter_log_level)
            self.output_file = logging_config.output_file
            self.max_file_size_mb = logging_config.max_file_size_mb
            self.backup_count = logging_config.backup_count
            self.include_thread_info = logging_config.include_thread_info

        env_level = os.getenv("RBRIDGE_INTERPRETER_LOG_LEVEL")
        if env_level:
            self.interpreter_log_level = getattr(logging, env_level.upper(), self.interpreter_log_level)

    def setup_logging(self) -> None:
        """Setup the complete rbridge logging system."""
        if self.configured:
            return

        self._setup_bridge_logging()
        self._setup_interpreter_logging()
        self.configured = True

        logging.getLogger("rbridge.logging").info(
            "rbridge logging system initialized",
            extra={
                "log_level": logging.getLevelName(self.log_level),
                "format_type": self.format_type,
                "output_file": self.output_file,
            },
        )

    def _bridge_formatter(self) -> logging.Formatter:
        if self.format_type == "json":
            return PythonLogFormatter(include_thread=self.include_thread_info)
        return logging.Formatter(TEXT_FORMAT)

    def _interpreter_formatter(self) -> logging.Formatter:
        if self.format_type == "json":
            return InterpreterLogFormatter()
        return logging.Formatter(TEXT_FORMAT)

    def _setup_bridge_logging(self) -> None:
        bridge_logger = logging.getLogger("rbridge")
        bridge_logger.setLevel(self.log_level)

        console_handler = logging.StreamHandler(self.stream or sys.stdout)
        console_handler.setFormatter(self._bridge_formatter())
        console_handler.setLevel(self.log_level)
        bridge_logger.addHandler(console_handler)
        self._handlers.append(console_handler)

        if self.output_file:
            file_handler = self._create_file_handler(Path(self.output_file))
            file_handler.setFormatter(self._bridge_formatter())
            bridge_logger.addHandler(file_handler)
            self._handlers.append(file_handler)

    def _setup_interpreter_logging(self) -> None:
        """Interpreter output goes to its own handlers and never propagates."""
        interpreter_logger = logging.getLogger(INTERPRETER_LOGGER_NAME)
        interpreter_logger.setLevel(self.interpreter_log_level)

        console_handler = logging.StreamHandler(self.stream or sys.stdout)
        console_handler.setFormatter(self._interpreter_formatter())
        interpreter_logger.addHandler(console_handler)
        self._interpreter_handlers.append(console_handler)

        if self.output_file:
            file_handler = self._create_file_handler(Path(self.output_file).with_suffix(".r.log"))
            file_handler.setFormatter(self._interpreter_formatter())
            interpreter_logger.addHandler(file_handler)
            self._interpreter_handlers.append(file_handler)

        # Prevent interpreter logs from propagating to avoid duplicates
        interpreter_logger.propagate = False

    def _create_file_handler(self, output_path: Path) -> logging.Handler:
        """File-based logging with rotation."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            filename=str(output_path),
            maxBytes=self.max_file_size_mb * 1024 * 1024,  # Convert MB to bytes
            backupCount=self.backup_count,
            encoding="utf-8",
        )
        handler.setLevel(self.log_level)
        return handler

    def get_logger(self, name: str) -> logging.Logger:
        """Get a configured logger for the given name."""
        if not self.configured:
            self.setup_logging()
        return logging.getLogger(name)

    def shutdown(self) -> None:
        """Remove the installed handlers and close them."""
        bridge_logger = logging.getLogger("rbridge")
        for handler in self._handlers:
            bridge_logger.removeHandler(handler)
            handler.close()

        interpreter_logger = logging.getLogger(INTERPRETER_LOGGER_NAME)
        for handler in self._interpreter_handlers:
            interpreter_logger.removeHandler(handler)
            handler.close()
        interpreter_logger.propagate = True

        self._handlers.clear()
        self._interpreter_handlers.clear()
        self.configured = False


# Global logging manager instance
_logging_manager: Optional[RBridgeLoggingManager] = None


def get_logging_manager(config=None) -> RBridgeLoggingManager:
    """Get or create the global logging manager."""
    global _logging_manager

    if _logging_manager is None:
        _logging_manager = RBridgeLoggingManager(config)

    return _logging_manager


def setup_rbridge_logging(config=None) -> None:
    """Setup rbridge logging system."""
    manager = get_logging_manager(config)
    manager.setup_logging()


def get_rbridge_logger(name: str) -> logging.Logger:
    """Get an rbridge logger with proper configuration."""
    manager = get_logging_manager()
    return manager.get_logger(f"rbridge.{name}")


def shutdown_rbridge_logging() -> None:
    """Shutdown the rbridge logging system."""
    global _logging_manager

    if _logging_manager:
        _logging_manager.shutdown()
        _logging_manager = None
