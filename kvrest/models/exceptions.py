"""
Custom exceptions for the storage engine and the operations built on it.
"""


class EngineError(Exception):
    """Base class for failures of the underlying storage engine."""


class WALCorruptionError(EngineError):
    """
    Raised when WAL record corruption is detected via checksum mismatch.

    This is a fail-fast error indicating data integrity issues.
    """

    def __init__(self, expected: int, actual: int, entry_offset: int):
        """
        Initialize corruption error.

        Args:
            expected: Expected CRC32 checksum.
            actual: Actual CRC32 checksum computed.
            entry_offset: File offset where corruption detected.
        """
        self.expected = expected
        self.actual = actual
        self.entry_offset = entry_offset
        super().__init__(
            f"WAL corruption detected at offset {entry_offset}: "
            f"expected CRC32 0x{expected:08x}, got 0x{actual:08x}"
        )


class EngineClosedError(EngineError):
    """Raised when an engine is used after close()."""


class SnapshotReleasedError(EngineError):
    """Raised when a released snapshot is read from."""


class DatabaseExistsError(EngineError):
    """Raised when creating a database at a path that already holds one."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Database already exists at {path}")


class BatchError(Exception):
    """Base class for batches rejected before reaching the engine."""


class BadBatchError(BatchError):
    """Raised when a batch contains an operation that is neither put nor delete."""

    def __init__(self, index: int, op: object):
        self.index = index
        self.op = op
        super().__init__(f"Bad write batch: unknown op {op!r} at position {index}")


class OversizeBatchError(BatchError):
    """Raised when a batch holds more operations than allowed."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Batch of {size} operations exceeds the limit of {limit}")
