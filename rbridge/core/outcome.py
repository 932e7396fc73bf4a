"""InvocationOutcome - Result of one record invocation, as reported by the CLI."""

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

from dataclasses import dataclass, field
from typing import Any, List, Optional

from dataclasses_json import dataclass_json

from ..exceptions import FatalBridgeError


@dataclass_json
@dataclass
class InvocationOutcome:
    """Result of one record invocation."""

    call_id: str
    input: List[Any] = field(default_factory=list)
    result: Optional[List[Any]] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0
    fatal: bool = False

    @property
    def is_success(self) -> bool:
        return self.error_kind is None

    @property
    def has_result(self) -> bool:
        return self.result is not None

    @classmethod
    def from_error(
        cls, call_id: str, values: List[Any], error: BaseException, duration_ms: int = 0
    ) -> "InvocationOutcome":
        """Create from a failed call."""
        return cls(
            call_id=call_id,
            input=list(values),
            error_kind=type(error).__name__,
            error=str(error),
            duration_ms=duration_ms,
            fatal=isinstance(error, FatalBridgeError),
        )
