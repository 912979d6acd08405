"""
KeyValueStore and Snapshot abstract base classes.

The range iterator, batch mutator and snapshot exporter read and write
through these interfaces only.
"""

from abc import ABC, abstractmethod

from kvrest.interfaces.cursor import Cursor
from kvrest.models.write_batch import WriteBatch


class Snapshot(ABC):
    """Immutable point-in-time view of a store."""

    @abstractmethod
    def get(self, key: bytes) -> bytes | None:
        """Value of key as of the snapshot, None if absent."""
        pass

    @abstractmethod
    def cursor(self) -> Cursor:
        """Cursor over the snapshot's keyspace."""
        pass

    @abstractmethod
    def release(self) -> None:
        """Release the snapshot. Further reads raise SnapshotReleasedError."""
        pass

    def __enter__(self) -> "Snapshot":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


class KeyValueStore(ABC):
    """
    Ordered byte-string keyspace with atomic batch commits.

    Implementations:
    - Engine: WAL backed store in kvrest.engine
    """

    @abstractmethod
    async def get(self, key: bytes) -> bytes | None:
        """
        Retrieve the value for a given key.

        Args:
            key: The key to look up.

        Returns:
            The value if found, None otherwise.
        """
        pass

    @abstractmethod
    async def write(self, batch: WriteBatch) -> None:
        """
        Commit all records of a batch atomically.

        Args:
            batch: Records to apply, in order.

        Raises:
            EngineError: If the commit fails; nothing is applied.
        """
        pass

    @abstractmethod
    def cursor(self) -> Cursor:
        """Cursor over an implicit snapshot of the current keyspace."""
        pass

    @abstractmethod
    def snapshot(self) -> Snapshot:
        """Capture a point-in-time view of the keyspace."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Flush and release all resources."""
        pass
