"""
Storage engine: WAL, in-memory sorted index, cursors and snapshots.
"""

from kvrest.engine.engine import Engine, EngineSnapshot

__all__ = ["Engine", "EngineSnapshot"]
