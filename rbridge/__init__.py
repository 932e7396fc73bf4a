#!/usr/bin/env python3
"""
rbridge - Record function bridge to a long-running R interpreter

Invokes a named R function once per input record through a dedicated,
long-running interpreter process, exchanging values as JSON.

Key Features:
- One interpreter process per bridge, started once and reused for every call
- Sentinel-framed responses read by background stream readers
- Clear split between fatal bridge errors and per-call errors
- Optional maximum wait per call with keep or restart policy
- Type-safe configuration with Pydantic models, from files or environment
- JSON logging of bridge activity and interpreter output

Usage:
    from rbridge import RFunctionBridge

    bridge = RFunctionBridge.create("recommend", ["arules"]).with_named_init_code("recommend")
    with bridge:
        result = bridge.invoke(["liquor", "red/blush wine"])

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

__version__ = "1.0.0"
__author__ = "Firefly Software Solutions Inc"
__license__ = "Apache 2.0"

# Configuration
from .config import BridgeConfig, ConfigurationManager, InterpreterConfig, LoggingConfig

# Core types
from .core import Collector, InvocationOutcome, ListCollector, RecordFunction, TypeConverter

# Errors
from .exceptions import (
    BridgeNotReadyError,
    BridgeStateError,
    CallError,
    ConcurrentInvocationError,
    FatalBridgeError,
    InterpreterError,
    MalformedResponseError,
    ProcessTerminatedError,
    RBridgeError,
    ResponseTimeoutError,
    StartupFailureError,
    StreamFailureError,
)

# Integration layer (bridge, process supervision, protocol)
from .integration import BridgeState, RFunctionBridge

__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Bridge
    "RFunctionBridge",
    "BridgeState",
    # Core types
    "RecordFunction",
    "Collector",
    "ListCollector",
    "InvocationOutcome",
    "TypeConverter",
    # Configuration
    "BridgeConfig",
    "InterpreterConfig",
    "LoggingConfig",
    "ConfigurationManager",
    # Errors
    "RBridgeError",
    "FatalBridgeError",
    "StartupFailureError",
    "ProcessTerminatedError",
    "StreamFailureError",
    "CallError",
    "InterpreterError",
    "MalformedResponseError",
    "ResponseTimeoutError",
    "BridgeStateError",
    "BridgeNotReadyError",
    "ConcurrentInvocationError",
]
