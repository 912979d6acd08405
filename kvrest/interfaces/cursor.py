"""
Cursor abstract base class for bidirectional traversal of a sorted keyspace.
"""

from abc import ABC, abstractmethod


class Cursor(ABC):
    """
    A position in a sorted, immutable view of the keyspace.

    A freshly created cursor is not positioned; call first(), last() or
    seek() before reading. Stepping off either end leaves the cursor
    invalid.
    """

    @abstractmethod
    def first(self) -> bool:
        """Move to the smallest key. Returns valid()."""
        pass

    @abstractmethod
    def last(self) -> bool:
        """Move to the largest key. Returns valid()."""
        pass

    @abstractmethod
    def seek(self, target: bytes) -> bool:
        """
        Move to the smallest key >= target.

        Args:
            target: Key to seek to.

        Returns:
            valid(); False when every key is smaller than target.
        """
        pass

    @abstractmethod
    def next(self) -> bool:
        """Step towards larger keys. Returns valid()."""
        pass

    @abstractmethod
    def prev(self) -> bool:
        """Step towards smaller keys. Returns valid()."""
        pass

    @abstractmethod
    def valid(self) -> bool:
        """Whether the cursor currently points at an entry."""
        pass

    @abstractmethod
    def key(self) -> bytes:
        """Key at the current position."""
        pass

    @abstractmethod
    def value(self) -> bytes:
        """Value at the current position."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the view held by this cursor."""
        pass

    def __enter__(self) -> "Cursor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
