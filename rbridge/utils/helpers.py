#!/usr/bin/env python3
"""
Helper utilities for common functionality.

Provides call ID generation, duration formatting and log sanitizing.
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
import time
import uuid
from typing import Any


def generate_call_id() -> str:
    """Generate a unique ID used to correlate the log lines of one call."""
    timestamp = int(time.time() * 1000)  # Milliseconds
    unique_id = uuid.uuid4().hex[:12]
    return f"{timestamp}-{unique_id}"


def is_valid_call_id(call_id: str) -> bool:
    """
    Validate call ID format.

    Args:
        call_id: Call ID to validate

    Returns:
        True if valid format
    """
    if not call_id or not isinstance(call_id, str):
        return False

    parts = call_id.split("-")
    if len(parts) != 2:
        return False

    return parts[0].isdigit() and parts[1].isalnum() and len(parts[1]) == 12


def elapsed_ms(started: float) -> int:
    """Milliseconds elapsed since a time.monotonic() reading."""
    return int((time.monotonic() - started) * 1000)


def format_duration_ms(duration_ms: int) -> str:
    """
    Format duration in milliseconds to human-readable string.

    Args:
        duration_ms: Duration in milliseconds

    Returns:
        Formatted duration string
    """
    if duration_ms < 1000:
        return f"{duration_ms}ms"
    elif duration_ms < 60000:
        return f"{duration_ms / 1000:.1f}s"
    elif duration_ms < 3600000:
        minutes = duration_ms // 60000
        seconds = (duration_ms % 60000) // 1000
        return f"{minutes}m {seconds}s"
    else:
        hours = duration_ms // 3600000
        minutes = (duration_ms % 3600000) // 60000
        return f"{hours}h {minutes}m"


def sanitize_for_logging(data: Any, max_length: int = 200) -> str:
    """
    Render data for a log line, truncated to ``max_length`` characters.

    Args:
        data: Data to render
        max_length: Maximum length of output string

    Returns:
        String safe for logging
    """
    if isinstance(data, str):
        result = data
    else:
        try:
            result = json.dumps(data, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            result = repr(data)

    # Single line
    result = result.replace("\r", "\\r").replace("\n", "\\n")

    if len(result) > max_length:
        result = result[: max_length - 3] + "..."

    return result
