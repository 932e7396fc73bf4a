"""
Core types for rbridge: the record function contract, call outcomes and
record type conversion.
"""

from .function import Collector, ListCollector, RecordFunction
from .outcome import InvocationOutcome
from .type_conversion import TypeConverter, get_type_converter

__all__ = [
    "Collector",
    "ListCollector",
    "RecordFunction",
    "InvocationOutcome",
    "TypeConverter",
    "get_type_converter",
]
