"""
Type conversion between host records and the JSON values exchanged with
the interpreter.
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
import logging
import math
from dataclasses import fields, is_dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class TypeConverter:
    """
    Converts record values into JSON-serializable values and responses
    back into emitted value tuples.

    Records are ordered: a sequence is kept as-is, a mapping contributes
    its values in insertion order, a pydantic model or dataclass its
    fields in declaration order.
    """

    def to_serializable(self, value: Any) -> Any:
        """
        Convert a Python value to its JSON-serializable equivalent.

        Args:
            value: Python object to convert

        Returns:
            JSON-serializable equivalent
        """
        if value is None:
            return None

        # Handle primitive types (already JSON serializable)
        if isinstance(value, (bool, int, str)):
            return value

        if isinstance(value, float):
            # JSON has no NaN or infinity
            return value if math.isfinite(value) else None

        if isinstance(value, Decimal):
            return float(value)

        # Handle datetime objects -> ISO string
        if isinstance(value, (datetime, date)):
            return value.isoformat()

        if isinstance(value, timedelta):
            return value.total_seconds()

        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")

        # Handle collections
        if isinstance(value, Mapping):
            return {str(k): self.to_serializable(v) for k, v in value.items()}

        if isinstance(value, (list, tuple, set, frozenset)):
            items = sorted(value, key=repr) if isinstance(value, (set, frozenset)) else value
            return [self.to_serializable(item) for item in items]

        # Handle Pydantic models
        if isinstance(value, BaseModel):
            return self.to_serializable(value.model_dump())

        # Handle dataclasses
        if is_dataclass(value) and not isinstance(value, type):
            return {field.name: self.to_serializable(getattr(value, field.name)) for field in fields(value)}

        # Handle custom objects by converting to string
        try:
            return json.loads(json.dumps(value, default=str))
        except (TypeError, ValueError):
            logger.debug(f"Converting object of type {type(value)} to string")
            return str(value)

    def coerce_record(self, record: Any) -> List[Any]:
        """Ordered call input for one record."""
        if isinstance(record, BaseModel):
            values: Sequence[Any] = list(record.model_dump().values())
        elif is_dataclass(record) and not isinstance(record, type):
            values = [getattr(record, field.name) for field in fields(record)]
        elif isinstance(record, Mapping):
            values = list(record.values())
        elif isinstance(record, (str, bytes)):
            values = [record]
        elif isinstance(record, Sequence):
            values = record
        else:
            try:
                values = list(record)
            except TypeError:
                values = [record]
        return [self.to_serializable(value) for value in values]

    def coerce_response(self, result: Optional[Sequence[Any]]) -> Optional[Tuple[Any, ...]]:
        """Values emitted for a call result; None when there is no result."""
        if result is None:
            return None
        return tuple(result)


# Global type converter instance
_type_converter = TypeConverter()


def get_type_converter() -> TypeConverter:
    """Get the global type converter instance."""
    return _type_converter
