"""
Operations built on top of a KeyValueStore.
"""

from kvrest.operations.batch_mutator import MAX_BATCH_OPERATIONS, BatchMutator
from kvrest.operations.lookup import multi_get
from kvrest.operations.range_iterator import RangeIterator
from kvrest.operations.snapshot_exporter import EXPORT_CHUNK_SIZE, SnapshotExporter

__all__ = [
    "BatchMutator",
    "EXPORT_CHUNK_SIZE",
    "MAX_BATCH_OPERATIONS",
    "RangeIterator",
    "SnapshotExporter",
    "multi_get",
]
