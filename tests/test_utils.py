#!/usr/bin/env python3
"""
Unit tests for helper utilities.
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

import time

import pytest

from rbridge.utils import (
    elapsed_ms,
    format_duration_ms,
    generate_call_id,
    is_valid_call_id,
    sanitize_for_logging,
)


class TestCallIds:
    """Test call ID generation."""

    def test_generated_ids_are_valid_and_unique(self):
        ids = {generate_call_id() for _ in range(100)}

        assert len(ids) == 100
        assert all(is_valid_call_id(call_id) for call_id in ids)

    @pytest.mark.parametrize("call_id", ["", None, "abc", "123-short", "x-0123456789ab", "1-2-3"])
    def test_invalid_ids(self, call_id):
        assert not is_valid_call_id(call_id)


class TestDurations:
    """Test duration helpers."""

    def test_elapsed_ms(self):
        started = time.monotonic() - 0.25

        assert 250 <= elapsed_ms(started) < 5000

    @pytest.mark.parametrize(
        "duration_ms, expected",
        [(15, "15ms"), (1500, "1.5s"), (125000, "2m 5s"), (3723000, "1h 2m")],
    )
    def test_format_duration(self, duration_ms, expected):
        assert format_duration_ms(duration_ms) == expected


class TestSanitizeForLogging:
    """Test log rendering of values."""

    def test_values_rendered_as_json(self):
        assert sanitize_for_logging(["liquor", 1]) == '["liquor", 1]'

    def test_single_line(self):
        assert sanitize_for_logging("a\nb\r") == "a\\nb\\r"

    def test_truncated(self):
        result = sanitize_for_logging("x" * 500, max_length=20)

        assert len(result) == 20
        assert result.endswith("...")

    def test_unserializable_falls_back_to_str(self):
        assert "object" in sanitize_for_logging([object()])
