"""
Function bridge to a long-running R interpreter.

A separate interpreter process is started by prepare(). Each invoke()
sends one function call and blocks until the framed response has been
read back from the interpreter's output.

Any error occurring during prepare() is fatal: the bridge refuses to
become usable. Errors reported for a single call are raised for that
call only and are never retried.
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
import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from ..config.bridge_config import BridgeConfig, InterpreterConfig
from ..core.function import RecordFunction
from ..exceptions import (
    BridgeNotReadyError,
    BridgeStateError,
    CallError,
    ConcurrentInvocationError,
    FatalBridgeError,
    InterpreterError,
    ProcessTerminatedError,
    ResponseTimeoutError,
    StartupFailureError,
    StreamFailureError,
)
from ..logging.json_formatter import INTERPRETER_LOGGER_NAME
from ..utils.helpers import elapsed_ms, generate_call_id, sanitize_for_logging
from .protocol import ERROR_FENCE, FrameDecoder, ProtocolCodec, parse_payload
from .supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


class BridgeState(Enum):
    """Lifecycle states of a function bridge."""

    UNPREPARED = "UNPREPARED"
    READY = "READY"
    FAILED = "FAILED"
    TERMINATED = "TERMINATED"


class RFunctionBridge(RecordFunction):
    """
    Invokes one interpreter function per record through a dedicated process.

    Usage:
        bridge = RFunctionBridge.create("recommend", ["arules"]).with_named_init_code("recommend")
        with bridge:
            bridge.invoke(["liquor", "red/blush wine"])

    Only one call may be in flight at a time; a concurrent invoke() is
    rejected with ConcurrentInvocationError.
    """

    def __init__(self, config: BridgeConfig):
        self._config = config
        self._codec = ProtocolCodec(config.function_name)
        self._supervisor: Optional[ProcessSupervisor] = None
        self._state = BridgeState.UNPREPARED
        self._failure: Optional[BaseException] = None
        self._lock = threading.Lock()
        self._busy = False
        self._preparing = False
        self._poll_interval = config.poll_interval_ms / 1000
        self._calls_completed = 0
        # Output of abandoned calls still to be discarded
        self._stale_frames = 0
        self._stale_fences = 0
        # Interpreter output streaming state
        self._interpreter_log_buffer = deque(maxlen=config.log_buffer_size)
        self._interpreter_log_followers: List[Callable[[str, str], None]] = []
        self._interpreter_logger = logging.getLogger(INTERPRETER_LOGGER_NAME)
        # Honor env var for log level
        lvl = os.getenv("RBRIDGE_INTERPRETER_LOG_LEVEL") or config.logging.interpreter_log_level
        self._interpreter_logger.setLevel(getattr(logging, lvl.upper(), logging.INFO))

    @classmethod
    def create(
        cls,
        function_name: str,
        libraries: Optional[Sequence[str]] = None,
        executable: str = "/usr/bin/R",
        **settings: Any,
    ) -> "RFunctionBridge":
        """Build a bridge from the common settings; extra settings go to BridgeConfig."""
        interpreter = settings.pop("interpreter", None) or InterpreterConfig(executable=executable)
        config = BridgeConfig(
            function_name=function_name,
            libraries=list(libraries or []),
            interpreter=interpreter,
            **settings,
        )
        return cls(config)

    def with_init_code(self, code: str) -> "RFunctionBridge":
        """New unprepared bridge sending ``code`` after the libraries are loaded."""
        self._require_unprepared("with_init_code")
        return type(self)(self._config.with_init_code(code))

    def with_named_init_code(self, name: str) -> "RFunctionBridge":
        """New unprepared bridge using the init script ``<name>.R``."""
        self._require_unprepared("with_named_init_code")
        return type(self)(self._config.with_named_init_code(name))

    @property
    def config(self) -> BridgeConfig:
        return self._config

    @property
    def state(self) -> BridgeState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is BridgeState.READY

    @property
    def failure(self) -> Optional[BaseException]:
        """The fatal error which put the bridge in the FAILED state."""
        return self._failure

    @property
    def process_id(self) -> Optional[int]:
        return self._supervisor.pid if self._supervisor else None

    @property
    def calls_completed(self) -> int:
        return self._calls_completed

    def _require_unprepared(self, operation: str) -> None:
        if self._state is not BridgeState.UNPREPARED:
            raise BridgeStateError(f"{operation}() requires an unprepared bridge, state is {self._state.value}")

    # ----------------------------- lifecycle -----------------------------

    def prepare(self) -> None:
        """Start the interpreter, load the libraries and run the init code."""
        with self._lock:
            self._require_unprepared("prepare")
            if self._preparing:
                raise BridgeStateError("prepare() is already running")
            self._preparing = True

        try:
            self._start_interpreter()
        except Exception as e:
            if isinstance(e, StartupFailureError):
                error = e
            else:
                error = StartupFailureError(f"Could not start interpreter, please check install and settings: {e}")
                error.__cause__ = e
            logger.error(f"Failed to prepare function bridge for {self._config.function_name}: {error}")
            self._fail(error)
            raise error
        finally:
            self._preparing = False

        with self._lock:
            cancelled = self._state is not BridgeState.UNPREPARED
            if not cancelled:
                self._state = BridgeState.READY
        if cancelled:
            # cleanup() ran before the new process was visible to it
            self._supervisor.terminate()
            raise BridgeStateError("Function bridge was cleaned up while prepare() was running")
        logger.info(f"Function bridge ready: {self._config.function_name} (pid {self.process_id})")

    def _start_interpreter(self) -> None:
        init_code = self._config.resolve_init_code()

        supervisor = ProcessSupervisor(
            self._config.interpreter, reader_idle_interval=self._config.reader_idle_ms / 1000
        )
        self._supervisor = supervisor
        self._stale_frames = 0
        self._stale_fences = 0
        supervisor.start()

        libraries = self._config.get_libraries()
        logger.info(f"Loading interpreter libraries: {', '.join(libraries)}")
        supervisor.write(self._codec.encode_libraries(libraries))

        if init_code is not None:
            logger.debug(f"Sending init code ({len(init_code)} characters)")
            supervisor.write(self._codec.encode_init_code(init_code))

        if self._config.startup_handshake:
            self._handshake()

    def _handshake(self) -> None:
        """Wait until the interpreter has processed every startup command."""
        self._supervisor.write("".join(self._codec.encode_sync()))
        deadline = time.monotonic() + self._config.startup_timeout_ms / 1000
        try:
            _, stderr = self._await_frame(deadline, abort_on_error=False)
        except ResponseTimeoutError as e:
            raise StartupFailureError(
                f"Interpreter did not finish initialization within {e.waited_seconds:.1f}s"
            ) from e
        except CallError as e:
            raise StartupFailureError(f"Unexpected interpreter output during initialization: {e}") from e

        if stderr:
            logger.warning(f"Interpreter reported {len(stderr)} message(s) during initialization")

    def cleanup(self) -> None:
        """Terminate the interpreter. Safe to call repeatedly or before prepare()."""
        with self._lock:
            previous = self._state
            if self._state is not BridgeState.FAILED:
                self._state = BridgeState.TERMINATED

        if self._supervisor is not None:
            self._supervisor.terminate()

        if previous is not self._state:
            logger.info(f"Function bridge {self._config.function_name} terminated")

    def __enter__(self) -> "RFunctionBridge":
        self.prepare()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def _fail(self, error: BaseException) -> None:
        """Poison the bridge after a fatal error and stop the interpreter."""
        with self._lock:
            if self._state in (BridgeState.UNPREPARED, BridgeState.READY):
                self._state = BridgeState.FAILED
                self._failure = error
        if self._supervisor is not None:
            self._supervisor.terminate()

    # ------------------------------- calls -------------------------------

    def invoke(self, values: Sequence[Any]) -> Optional[List[Any]]:
        """
        Call the function once on ``values``.

        Returns:
            The decoded result list, or None when the function produced no result

        Raises:
            BridgeNotReadyError: prepare() was not called, or the bridge failed or was cleaned up
            ConcurrentInvocationError: another call is in progress
            FatalBridgeError: the interpreter died; the bridge is now unusable
            CallError: this call failed; the bridge stays usable
        """
        self._begin_call()
        try:
            return self._invoke(values)
        finally:
            with self._lock:
                self._busy = False

    def _begin_call(self) -> None:
        with self._lock:
            if self._state is not BridgeState.READY:
                if self._state is BridgeState.FAILED:
                    message = f"Function bridge failed and cannot be used: {self._failure}"
                elif self._state is BridgeState.UNPREPARED:
                    message = "Function bridge not ready: prepare() has not been called"
                else:
                    message = "Function bridge not ready: it has been cleaned up"
                raise BridgeNotReadyError(message, self._state.value, self._failure)
            if self._busy:
                raise ConcurrentInvocationError(
                    "Another call is in progress on this bridge; only one call at a time is supported"
                )
            self._busy = True

    def _invoke(self, values: Sequence[Any]) -> Optional[List[Any]]:
        call_id = generate_call_id()
        started = time.monotonic()
        commands = self._codec.encode_call(values)

        logger.debug(
            f"[IPC] Python → R [{call_id}]: {self._config.function_name}({sanitize_for_logging(list(values))})"
        )

        try:
            self._check_before_call()
            self._supervisor.write("".join(commands))

            deadline = started + self._config.max_wait_ms / 1000 if self._config.max_wait_ms else None
            decoder, stderr = self._await_frame(deadline, abort_on_error=True)
            if stderr:
                raise InterpreterError(f"Error from the interpreter: {' '.join(stderr)}", stderr)

            result = parse_payload(decoder.payload)
        except FatalBridgeError as e:
            logger.error(f"[IPC] R → Python [{call_id}]: fatal {type(e).__name__}: {e}")
            self._fail(e)
            raise
        except ResponseTimeoutError as e:
            logger.error(f"[IPC] R → Python [{call_id}]: {e}")
            self._handle_timeout(e)
            raise
        except CallError as e:
            logger.error(f"[IPC] R → Python [{call_id}]: {type(e).__name__}: {e}")
            raise

        self._calls_completed += 1
        logger.debug(
            f"[IPC] R → Python [{call_id}]: {sanitize_for_logging(result)} in {elapsed_ms(started)}ms"
        )
        return result

    def _check_before_call(self) -> None:
        """Fail fast on pending error output or a dead interpreter before sending."""
        errors: List[str] = []
        self._collect_errors(errors)
        self._check_health(errors)
        if errors:
            raise InterpreterError(f"Error from the interpreter: {' '.join(errors)}", errors)

    def _handle_timeout(self, error: ResponseTimeoutError) -> None:
        if self._config.timeout_policy == "restart":
            logger.warning(f"Restarting interpreter after timeout (pid {self.process_id})")
            try:
                self._supervisor.terminate()
                self._start_interpreter()
            except Exception as e:
                fatal = StartupFailureError(f"Could not restart interpreter after timeout: {e}")
                fatal.__cause__ = e
                self._fail(fatal)
                raise fatal from error

            with self._lock:
                cancelled = self._state is not BridgeState.READY
            if cancelled:
                self._supervisor.terminate()
                logger.info("Bridge cleaned up during restart, new interpreter stopped")
                return
            logger.info(f"Interpreter restarted (pid {self.process_id})")
        else:
            logger.warning(
                "Interpreter left running after timeout; the late response will be discarded"
            )

    # ------------------------------ waiting ------------------------------

    def _await_frame(
        self, deadline: Optional[float], abort_on_error: bool
    ) -> Tuple[FrameDecoder, List[str]]:
        """
        Read one response frame and the error output of the same call.

        Blocks on the response queue in slices of poll_interval_ms, checking
        the error queue, the readers and the process between slices.
        """
        supervisor = self._supervisor
        decoder = FrameDecoder(skip_frames=self._stale_frames)
        self._stale_frames = 0
        errors: List[str] = []
        fence_seen = False
        started = time.monotonic()

        try:
            while not decoder.done:
                try:
                    line = supervisor.responses.get(timeout=self._wait_slice(deadline))
                except queue.Empty:
                    line = None

                if line is not None:
                    decoder.feed(line)
                else:
                    self._check_health(errors, supervisor.responses)
                    self._check_deadline(deadline, started)

                fence_seen = self._collect_errors(errors) or fence_seen
                if errors and abort_on_error:
                    fence_seen = self._drain_to_fence(errors, fence_seen)
                    raise InterpreterError(f"Error from the interpreter: {' '.join(errors)}", errors)

            while not fence_seen:
                try:
                    line = supervisor.errors.get(timeout=self._wait_slice(deadline))
                except queue.Empty:
                    self._check_health(errors, supervisor.errors)
                    self._check_deadline(deadline, started)
                    continue
                fence_seen = self._accept_error_line(line, errors)
        except Exception:
            self._stale_frames = decoder.skip_frames + (0 if decoder.done else 1)
            if not fence_seen:
                self._stale_fences += 1
            raise
        finally:
            for line in decoder.skipped:
                self._record_interpreter_output("STDOUT", line, logging.DEBUG)
            for line in decoder.chatter:
                self._record_interpreter_output("STDOUT", line, logging.INFO)

        return decoder, errors

    def _drain_to_fence(self, errors: List[str], fence_seen: bool) -> bool:
        """Collect the rest of a multi-line error, waiting at most error_drain_ms for the fence."""
        deadline = time.monotonic() + self._config.error_drain_ms / 1000
        while not fence_seen:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                line = self._supervisor.errors.get(timeout=min(remaining, self._poll_interval))
            except queue.Empty:
                continue
            fence_seen = self._accept_error_line(line, errors)
        return fence_seen

    def _wait_slice(self, deadline: Optional[float]) -> float:
        if deadline is None:
            return self._poll_interval
        return max(0.001, min(self._poll_interval, deadline - time.monotonic()))

    def _check_deadline(self, deadline: Optional[float], started: float) -> None:
        if deadline is not None and time.monotonic() >= deadline:
            waited = time.monotonic() - started
            raise ResponseTimeoutError(f"No response from interpreter after {waited:.1f}s", waited)

    def _collect_errors(self, errors: List[str]) -> bool:
        """Drain the error queue without blocking; True once this call's fence was read."""
        while True:
            try:
                line = self._supervisor.errors.get_nowait()
            except queue.Empty:
                return False
            if self._accept_error_line(line, errors):
                return True

    def _accept_error_line(self, line: str, errors: List[str]) -> bool:
        if self._stale_fences:
            if line == ERROR_FENCE:
                self._stale_fences -= 1
            else:
                self._record_interpreter_output("STDERR", line, logging.WARNING)
            return False

        if line == ERROR_FENCE:
            return True

        errors.append(line)
        level = logging.ERROR if line.lstrip().startswith("Error") else logging.WARNING
        self._record_interpreter_output("STDERR", line, level)
        return False

    def _check_health(self, errors: List[str], pending: Optional["queue.Queue[str]"] = None) -> None:
        """
        Raise a fatal error when a reader failed or the process has exited.

        Output still waiting in ``pending`` is left to be consumed first.
        """
        supervisor = self._supervisor

        failed_reader = supervisor.reader_failure()
        if failed_reader is not None:
            raise StreamFailureError(
                f"Could not read {failed_reader.name} stream from interpreter: {failed_reader.failure}",
                failed_reader.name,
                exit_code=supervisor.exit_code,
            )

        if supervisor.is_alive():
            return

        # Dead process: let the readers deliver whatever is left
        supervisor.join_readers(timeout=1.0)
        if pending is not None and not pending.empty():
            return

        for line in supervisor.drain_errors():
            if line != ERROR_FENCE:
                errors.append(line)
                self._record_interpreter_output("STDERR", line, logging.ERROR)

        message = f"Interpreter has terminated with return value: {supervisor.exit_code}"
        if errors:
            message += f" ({' '.join(errors)})"
        raise ProcessTerminatedError(message, exit_code=supervisor.exit_code, stderr=errors)

    # ----------------------- interpreter output APIs -----------------------

    def _record_interpreter_output(self, stream_name: str, line: str, level: int) -> None:
        """Dispatch one interpreter output line to the logger, buffer and followers."""
        timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
        formatted = f"[{timestamp}] [R][{stream_name}] {line}"
        self._interpreter_log_buffer.append((stream_name, formatted))
        self._interpreter_logger.log(level, formatted)

        for cb in list(self._interpreter_log_followers):
            try:
                cb(formatted, stream_name)
            except Exception as e:
                logger.warning(f"Removing failing interpreter log follower {cb!r}: {e}")
                self._interpreter_log_followers.remove(cb)

    def set_interpreter_log_level(self, level: Union[int, str]) -> None:
        """Set the Python logger level for interpreter output (e.g., logging.INFO or 'DEBUG')."""
        if isinstance(level, str):
            level = getattr(logging, level.upper(), logging.INFO)
        self._interpreter_logger.setLevel(level)

    def get_interpreter_logs(self, count: int = 100) -> List[str]:
        """Return the last N interpreter output lines (formatted)."""
        return [entry[1] for entry in list(self._interpreter_log_buffer)[-count:]]

    def follow_interpreter_logs(self, callback: Callable[[str, str], None]) -> None:
        """Register a callback(line: str, stream: str) to receive new interpreter output lines."""
        if callable(callback):
            self._interpreter_log_followers.append(callback)

    def __repr__(self) -> str:
        return (
            f"RFunctionBridge(function={self._config.function_name!r}, "
            f"state={self._state.value}, pid={self.process_id})"
        )
