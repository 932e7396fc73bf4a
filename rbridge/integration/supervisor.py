"""
Interpreter process supervision.

Owns the child process, its input pipe and the two readers draining its
output and error pipes.
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
import os
import queue
import subprocess
from typing import Dict, List, Optional

from ..config.bridge_config import InterpreterConfig
from ..exceptions import ProcessTerminatedError, StartupFailureError
from .stream_reader import StreamReader

logger = logging.getLogger(__name__)


class ProcessSupervisor:
    """
    Starts, feeds, probes and stops one interpreter process.

    Output lines are available on ``responses`` (stdout) and ``errors``
    (stderr), each filled by its own StreamReader.
    """

    def __init__(self, config: InterpreterConfig, reader_idle_interval: float = 0.005):
        self._config = config
        self._reader_idle_interval = reader_idle_interval
        self._process: Optional[subprocess.Popen] = None
        self._stdout_reader: Optional[StreamReader] = None
        self._stderr_reader: Optional[StreamReader] = None
        self._terminated = False
        self.responses: "queue.Queue[str]" = queue.Queue()
        self.errors: "queue.Queue[str]" = queue.Queue()

    @property
    def command(self) -> List[str]:
        return self._config.get_command()

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def exit_code(self) -> Optional[int]:
        """Exit status of the process, or None while it runs (or was never started)."""
        if self._process is None:
            return None
        return self._process.poll()

    @property
    def started(self) -> bool:
        return self._process is not None

    def _build_env(self) -> Optional[Dict[str, str]]:
        if not self._config.env:
            return None
        env = dict(os.environ)
        env.update(self._config.env)
        return env

    def start(self) -> None:
        """Spawn the interpreter and start draining its output streams."""
        if self._process is not None:
            raise StartupFailureError("Interpreter process already started")

        command = self.command
        logger.info(f"Starting interpreter: {' '.join(command)}")

        try:
            self._process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                cwd=self._config.working_dir,
                env=self._build_env(),
            )
        except OSError as e:
            logger.error(f"Failed to start interpreter {command[0]}: {e}")
            raise StartupFailureError(
                f"Could not start interpreter {command[0]!r}, please check install and settings: {e}"
            ) from e

        self._stdout_reader = StreamReader(
            self._process.stdout, self.responses, "stdout", self._reader_idle_interval
        )
        self._stderr_reader = StreamReader(
            self._process.stderr, self.errors, "stderr", self._reader_idle_interval
        )
        self._stdout_reader.start()
        self._stderr_reader.start()

        # An interpreter that cannot start usually exits right away
        if self._config.startup_check_ms and self.wait_for_exit(
            self._config.startup_check_ms / 1000
        ):
            exit_code = self._process.returncode
            self._stderr_reader.join(timeout=1.0)
            stderr = self.drain_errors()
            self.terminate()
            raise StartupFailureError(
                f"Interpreter exited immediately with return value {exit_code}: "
                f"{' '.join(stderr) or 'no error output'}"
            )

        logger.info(f"Interpreter process started (pid {self._process.pid})")

    def write(self, text: str) -> None:
        """Send command text to the interpreter and flush it."""
        if self._process is None or self._process.stdin is None:
            raise ProcessTerminatedError("Interpreter process is not running")

        try:
            self._process.stdin.write(text.encode("utf-8"))
            self._process.stdin.flush()
        except (BrokenPipeError, ValueError, OSError) as e:
            raise ProcessTerminatedError(
                f"Could not write to interpreter: {e}", exit_code=self.exit_code
            ) from e

    def is_alive(self) -> bool:
        """Non-blocking liveness probe."""
        return self._process is not None and self._process.poll() is None

    def wait_for_exit(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for the process to exit; True if it did."""
        if self._process is None:
            return True
        try:
            self._process.wait(timeout=timeout)
            return True
        except subprocess.TimeoutExpired:
            return False

    def reader_failure(self) -> Optional[StreamReader]:
        """The first reader which stopped on a read error, if any."""
        for reader in (self._stdout_reader, self._stderr_reader):
            if reader is not None and reader.failed:
                return reader
        return None

    def join_readers(self, timeout: float) -> None:
        """Wait for both readers to reach the end of their streams."""
        for reader in (self._stdout_reader, self._stderr_reader):
            if reader is not None:
                reader.join(timeout=timeout)

    def drain_errors(self) -> List[str]:
        """Remove and return every line currently in the error queue."""
        lines = []
        while True:
            try:
                lines.append(self.errors.get_nowait())
            except queue.Empty:
                return lines

    def terminate(self) -> None:
        """Stop the process. Safe to call repeatedly, before start or after exit."""
        process = self._process
        if process is None or self._terminated:
            return
        self._terminated = True

        try:
            if process.stdin and not process.stdin.closed:
                try:
                    process.stdin.close()
                except OSError:
                    pass

            if process.poll() is None:
                process.terminate()
                try:
                    process.wait(timeout=self._config.shutdown_timeout_ms / 1000)
                except subprocess.TimeoutExpired:
                    logger.warning(f"Interpreter (pid {process.pid}) did not stop, killing it")
                    process.kill()
                    process.wait()

            self.join_readers(timeout=1.0)
            logger.info(f"Interpreter (pid {process.pid}) stopped with return value {process.returncode}")
        except Exception as e:
            logger.error(f"Error stopping interpreter (pid {process.pid}): {e}")
