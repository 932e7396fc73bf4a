"""Utility helpers for rbridge."""

from .helpers import (
    elapsed_ms,
    format_duration_ms,
    generate_call_id,
    is_valid_call_id,
    sanitize_for_logging,
)

__all__ = [
    "generate_call_id",
    "is_valid_call_id",
    "elapsed_ms",
    "format_duration_ms",
    "sanitize_for_logging",
]
