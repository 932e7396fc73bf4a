"""Record function contract used by batch executors."""

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
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Tuple

from ..exceptions import CallError
from .type_conversion import TypeConverter, get_type_converter

logger = logging.getLogger(__name__)


class Collector(ABC):
    """Receives the values emitted for a record."""

    @abstractmethod
    def emit(self, values: Tuple[Any, ...]) -> None:
        """Emit one output tuple."""


class ListCollector(Collector):
    """Collector keeping emitted tuples in memory."""

    def __init__(self):
        self.emitted: List[Tuple[Any, ...]] = []

    def emit(self, values: Tuple[Any, ...]) -> None:
        self.emitted.append(values)

    def __len__(self) -> int:
        return len(self.emitted)


class RecordFunction(ABC):
    """
    A function applied once per record by a batch executor.

    The executor calls ``prepare()`` once, then ``execute()`` for each
    record, then ``cleanup()`` once.
    """

    type_converter: TypeConverter = get_type_converter()

    @abstractmethod
    def prepare(self) -> None:
        """Acquire resources; failures are fatal and abort the batch."""

    @abstractmethod
    def invoke(self, values: Sequence[Any]) -> Optional[List[Any]]:
        """Apply the function to ordered values; None means no result."""

    @abstractmethod
    def cleanup(self) -> None:
        """Release resources. Must be idempotent."""

    def execute(self, record: Any, collector: Collector) -> bool:
        """
        Apply the function to one record and emit its result.

        Per-call failures are logged and the record is skipped: calls may
        have side effects, so they are never retried. Fatal failures
        propagate to the executor.

        Returns:
            True if a result was emitted
        """
        values = self.type_converter.coerce_record(record)
        try:
            result = self.invoke(values)
        except CallError as e:
            logger.error(f"Error while calling interpreter, assuming non retry-able, skipping record: {e}")
            return False

        output = self.type_converter.coerce_response(result)
        if output is None:
            return False
        collector.emit(output)
        return True
