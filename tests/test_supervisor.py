#!/usr/bin/env python3
"""
Tests for the interpreter process supervisor, run against the fake interpreter.
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

import pytest

from conftest import FAKE_R, fake_interpreter
from rbridge.config import InterpreterConfig
from rbridge.exceptions import ProcessTerminatedError, StartupFailureError
from rbridge.integration.supervisor import ProcessSupervisor


@pytest.fixture
def supervisor():
    supervisor = ProcessSupervisor(fake_interpreter())
    yield supervisor
    supervisor.terminate()


class TestProcessSupervisor:
    """Test process start, I/O and termination."""

    def test_command_uses_quiet_startup(self, supervisor):
        assert supervisor.command == [sys.executable, FAKE_R, "--vanilla", "-q", "--slave"]

    def test_default_command(self):
        supervisor = ProcessSupervisor(InterpreterConfig())

        assert supervisor.command == ["/usr/bin/R", "--vanilla", "-q", "--slave"]
        assert not supervisor.started
        assert supervisor.pid is None
        assert supervisor.exit_code is None

    def test_write_reaches_interpreter(self, supervisor):
        """Written commands are flushed so the interpreter sees them right away."""
        supervisor.start()
        supervisor.write("write('hello', stdout())\nwrite('oops', stderr())\n")

        assert supervisor.responses.get(timeout=10) == "hello"
        assert supervisor.errors.get(timeout=10) == "oops"
        assert supervisor.is_alive()

    def test_missing_executable_is_startup_failure(self):
        supervisor = ProcessSupervisor(InterpreterConfig(executable="/nonexistent/bin/R"))

        with pytest.raises(StartupFailureError, match="/nonexistent/bin/R"):
            supervisor.start()

        assert not supervisor.started

    def test_immediate_exit_is_startup_failure(self):
        """An interpreter exiting during the startup check reports its error output."""
        supervisor = ProcessSupervisor(
            fake_interpreter("--exit-immediately", startup_check_ms=10000)
        )

        with pytest.raises(StartupFailureError, match="return value 2.*cannot start"):
            supervisor.start()

        assert not supervisor.is_alive()

    def test_start_twice_rejected(self, supervisor):
        supervisor.start()

        with pytest.raises(StartupFailureError, match="already started"):
            supervisor.start()

    def test_exit_detected(self, supervisor):
        supervisor.start()
        supervisor.write("quit(save = 'no')\n")

        assert supervisor.wait_for_exit(10)
        assert not supervisor.is_alive()
        assert supervisor.exit_code == 0

    def test_terminate_is_idempotent(self, supervisor):
        supervisor.start()
        pid = supervisor.pid

        supervisor.terminate()
        supervisor.terminate()

        assert pid is not None
        assert not supervisor.is_alive()
        assert supervisor.exit_code is not None

    def test_terminate_before_start(self):
        supervisor = ProcessSupervisor(fake_interpreter())

        supervisor.terminate()

        assert not supervisor.is_alive()

    def test_write_after_terminate_fails(self, supervisor):
        supervisor.start()
        supervisor.terminate()

        with pytest.raises(ProcessTerminatedError):
            supervisor.write("write('x', stdout())\n")

    def test_write_before_start_fails(self):
        supervisor = ProcessSupervisor(fake_interpreter())

        with pytest.raises(ProcessTerminatedError, match="not running"):
            supervisor.write("x\n")

    def test_drain_errors(self, supervisor):
        supervisor.start()
        supervisor.write("write('a', stderr())\nwrite('b', stderr())\nquit()\n")
        supervisor.wait_for_exit(10)
        supervisor.join_readers(timeout=5)

        assert supervisor.drain_errors() == ["a", "b"]
        assert supervisor.drain_errors() == []
        assert supervisor.reader_failure() is None
