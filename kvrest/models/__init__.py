"""
Data models for the engine and the operations built on it.
"""

from kvrest.models.operation import Operation
from kvrest.models.scan import ABSOLUTE_MAX, Bound, Direction, ScanRequest, ScanResult
from kvrest.models.wal import WAL
from kvrest.models.write_batch import Record, RecordType, WriteBatch

__all__ = [
    "ABSOLUTE_MAX",
    "Bound",
    "Direction",
    "Operation",
    "Record",
    "RecordType",
    "ScanRequest",
    "ScanResult",
    "WAL",
    "WriteBatch",
]
