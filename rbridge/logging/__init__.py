"""
Logging utilities and configuration for rbridge.

Provides JSON logging with distinct prefixes for bridge and interpreter
output, and centralized configuration of the handlers.
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

from .json_formatter import (
    BRIDGE_PREFIX,
    INTERPRETER_PREFIX,
    InterpreterLogFormatter,
    PythonLogFormatter,
    RBridgeJSONFormatter,
    configure_json_logging,
    create_json_handler,
)
from .manager import (
    RBridgeLoggingManager,
    get_logging_manager,
    get_rbridge_logger,
    setup_rbridge_logging,
    shutdown_rbridge_logging,
)

__all__ = [
    "BRIDGE_PREFIX",
    "INTERPRETER_PREFIX",
    "RBridgeJSONFormatter",
    "PythonLogFormatter",
    "InterpreterLogFormatter",
    "create_json_handler",
    "configure_json_logging",
    "RBridgeLoggingManager",
    "get_logging_manager",
    "setup_rbridge_logging",
    "get_rbridge_logger",
    "shutdown_rbridge_logging",
]
