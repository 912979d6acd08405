"""
Abstract base classes the operations depend on.
"""

from kvrest.interfaces.cursor import Cursor
from kvrest.interfaces.store import KeyValueStore, Snapshot

__all__ = ["Cursor", "KeyValueStore", "Snapshot"]
