"""
Exception hierarchy for the R function bridge.

Failures are split into two families:

- FatalBridgeError: the interpreter process cannot be used any more
  (it failed to start, exited, or one of its streams broke). The bridge
  is poisoned and every later call fails fast.
- CallError: something went wrong for a single invocation (error output,
  malformed response, timeout). The bridge stays usable.

None of these errors is retryable: a call may have side effects inside
the interpreter, so callers skip the record instead of re-sending it.
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

from typing import List, Optional, Sequence


class RBridgeError(Exception):
    """Base class for every error raised by rbridge."""

    retryable = False


class FatalBridgeError(RBridgeError):
    """The interpreter process is unusable; the bridge must not be used again."""


class StartupFailureError(FatalBridgeError):
    """The interpreter could not be started or initialized."""


class ProcessTerminatedError(FatalBridgeError):
    """The interpreter process exited while the bridge was using it."""

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stderr: Optional[Sequence[str]] = None,
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr: List[str] = list(stderr or [])


class StreamFailureError(ProcessTerminatedError):
    """A background reader could not read one of the interpreter streams."""

    def __init__(self, message: str, stream_name: str, exit_code: Optional[int] = None):
        super().__init__(message, exit_code=exit_code)
        self.stream_name = stream_name


class CallError(RBridgeError):
    """A single invocation failed; later invocations may still succeed."""


class InterpreterError(CallError):
    """The interpreter reported errors on its error stream for this call."""

    def __init__(self, message: str, stderr: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.stderr: List[str] = list(stderr or [])


class MalformedResponseError(CallError):
    """The response frame violated the protocol or did not parse."""

    def __init__(self, message: str, payload: Optional[str] = None):
        super().__init__(message)
        self.payload = payload


class ResponseTimeoutError(CallError):
    """No complete response arrived within the configured maximum wait."""

    def __init__(self, message: str, waited_seconds: float):
        super().__init__(message)
        self.waited_seconds = waited_seconds


class BridgeStateError(RBridgeError):
    """An operation was attempted in a state that does not allow it."""


class BridgeNotReadyError(BridgeStateError):
    """invoke() was called on a bridge that is not prepared or no longer usable."""

    def __init__(self, message: str, state: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.state = state
        self.cause = cause


class ConcurrentInvocationError(BridgeStateError):
    """A second invoke() was attempted while another call was in flight."""
