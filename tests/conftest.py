"""
Shared fixtures: bridges driving the fake interpreter in tests/fixtures.
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

import sys
from pathlib import Path

import pytest

from rbridge.config import BridgeConfig, InterpreterConfig
from rbridge.integration import RFunctionBridge

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_R = str(FIXTURES_DIR / "fake_r.py")


def fake_interpreter(*extra_args: str, **settings) -> InterpreterConfig:
    """Interpreter settings starting the fake R with the usual R flags."""
    return InterpreterConfig(
        executable=sys.executable,
        startup_args=[FAKE_R, "--vanilla", "-q", "--slave", *extra_args],
        **settings,
    )


def fake_config(function_name: str = "echo", **settings) -> BridgeConfig:
    """Bridge configuration for the fake R with short test timings."""
    settings.setdefault("interpreter", fake_interpreter())
    settings.setdefault("poll_interval_ms", 20)
    settings.setdefault("startup_timeout_ms", 10000)
    return BridgeConfig(function_name=function_name, **settings)


@pytest.fixture
def make_bridge():
    """Factory for unprepared bridges; every bridge made is cleaned up afterwards."""
    bridges = []

    def factory(function_name: str = "echo", **settings) -> RFunctionBridge:
        bridge = RFunctionBridge(fake_config(function_name, **settings))
        bridges.append(bridge)
        return bridge

    yield factory

    for bridge in bridges:
        bridge.cleanup()


@pytest.fixture
def ready_bridge(make_bridge):
    """Prepared bridge calling the fake's echo function."""
    bridge = make_bridge("echo")
    bridge.prepare()
    return bridge
