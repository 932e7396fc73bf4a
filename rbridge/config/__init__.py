"""
Configuration module for rbridge.

Copyright (c) 2025 Firefly Software Solutions Inc.
Licensed under the Apache License, Version 2.0 (the "License");
"""

from .bridge_config import (
    DEFAULT_STARTUP_ARGS,
    BridgeConfig,
    ConfigurationManager,
    InterpreterConfig,
    LoggingConfig,
)

__all__ = [
    "BridgeConfig",
    "InterpreterConfig",
    "LoggingConfig",
    "ConfigurationManager",
    "DEFAULT_STARTUP_ARGS",
]
