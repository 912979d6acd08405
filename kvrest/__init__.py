"""
REST server over an embedded sorted key-value store.

This package provides:
- Engine - WAL backed sorted store with cursors and snapshots
- RangeIterator - bounded, directional, paginated scans
- BatchMutator - atomic multi-operation writes
- SnapshotExporter - consistent copy of the whole keyspace
- multi_get - multi-key lookups that skip missing keys
"""

from kvrest.engine.engine import Engine
from kvrest.operations.batch_mutator import BatchMutator
from kvrest.operations.lookup import multi_get
from kvrest.operations.range_iterator import RangeIterator
from kvrest.operations.snapshot_exporter import SnapshotExporter

__all__ = ["Engine", "RangeIterator", "BatchMutator", "SnapshotExporter", "multi_get"]
