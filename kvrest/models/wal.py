import asyncio
import logging
import os
import time
import zlib
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import BinaryIO

from kvrest.models.exceptions import EngineError, WALCorruptionError
from kvrest.models.write_batch import WriteBatch

logger = logging.getLogger(__name__)


class WAL:
    """
    Write-Ahead Log for durability.

    Every committed WriteBatch is one checksummed record, so a batch is
    either fully recovered or not at all. Supports iteration for recovery
    after crashes.
    """

    def __init__(self, file_path: str) -> None:
        """
        Initialize WAL.

        Args:
            file_path: Path to the WAL file.
        """
        self.file_path = file_path
        self._file: BinaryIO | None = None

        # Periodic fsync configuration
        self._fsync_interval_ms: int = 0  # 0 = always fsync (default)
        self._last_fsync_time: float = 0.0  # time.monotonic()
        self._lock = asyncio.Lock()

        # Offset of an incomplete trailing record found while iterating
        self._torn_offset: int | None = None

        # Set when a failed append could not be rolled back
        self._failed = False

    def set_fsync_interval(self, fsync_interval_ms: int) -> None:
        """
        Configure fsync interval.

        Args:
            fsync_interval_ms: Milliseconds between fsyncs.
                              0 = always fsync (default).
                              Max 10000 (10 seconds).
        """
        if fsync_interval_ms < 0:
            raise ValueError(f"fsync_interval_ms must be >= 0, got {fsync_interval_ms}")
        if fsync_interval_ms > 10000:
            raise ValueError(f"fsync_interval_ms cannot exceed 10000ms, got {fsync_interval_ms}")
        self._fsync_interval_ms = fsync_interval_ms

    def open(self) -> None:
        """Open the WAL file for appending, dropping any incomplete trailing record."""
        Path(self.file_path).parent.mkdir(parents=True, exist_ok=True)
        if self._torn_offset is not None:
            os.truncate(self.file_path, self._torn_offset)
            self._torn_offset = None
        # Unbuffered so a failed append can be rolled back with ftruncate
        self._file = open(self.file_path, "ab", buffering=0)

    def size_bytes(self) -> int:
        if not os.path.exists(self.file_path):
            return 0
        return os.path.getsize(self.file_path)

    def _should_flush(self) -> bool:
        """
        Check if enough time has elapsed to flush.

        Returns:
            True if flush should happen now.
        """
        if self._fsync_interval_ms == 0:
            return True

        current_time = time.monotonic()
        elapsed_ms = (current_time - self._last_fsync_time) * 1000

        if elapsed_ms >= self._fsync_interval_ms:
            self._last_fsync_time = current_time
            return True
        return False

    def _perform_flush(self) -> None:
        """Performs the flushing to disk from Python user space -> OS kernel -> Disk"""
        self._file.flush()
        # Use fdatasync if available (Linux), fallback to fsync (macOS/Windows)
        _sync_data = getattr(os, "fdatasync", os.fsync)
        _sync_data(self._file.fileno())

    def close(self) -> None:
        """Close the WAL file, flushing pending writes."""
        if self._file:
            try:
                self._perform_flush()
            finally:
                self._file.close()
                self._file = None

    async def append(self, batch: WriteBatch) -> None:
        """
        Append a batch as a single record.

        Framing happens in the event loop, the sync to disk in the thread pool.
        If the write or the sync fails the file is truncated back to where
        the record started, so a failed batch never reappears on recovery.

        Args:
            batch: The batch to append.

        Raises:
            EngineError: If the WAL is not open, is unusable after an earlier
                         failed rollback, or the write fails.
        """
        if self._file is None:
            raise EngineError("WAL is not open")

        record_bytes = bytes(batch)
        length_bytes = len(record_bytes).to_bytes(4, "big")
        checksum = zlib.crc32(record_bytes) & 0xffffffff

        async with self._lock:
            if self._failed:
                raise EngineError(f"WAL {self.file_path} is unusable after a failed rollback")

            try:
                offset = os.fstat(self._file.fileno()).st_size
            except OSError as e:
                raise EngineError(f"WAL append failed for {self.file_path}: {e}") from e

            try:
                # Write: [length:4][record][crc32:4]
                self._write_all(length_bytes + record_bytes + checksum.to_bytes(4, "big"))
                if self._should_flush():
                    loop = asyncio.get_running_loop()
                    await loop.run_in_executor(None, self._perform_flush)
                else:
                    self._file.flush()
            except OSError as e:
                self._rollback(offset)
                raise EngineError(f"WAL append failed for {self.file_path}: {e}") from e
            except asyncio.CancelledError:
                self._rollback(offset)
                raise

    def _write_all(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = self._file.write(view)
            view = view[written:]

    def _rollback(self, offset: int) -> None:
        """Cut the file back to offset, discarding a partly written record."""
        try:
            os.ftruncate(self._file.fileno(), offset)
            self._file.seek(offset)
        except OSError as e:
            self._failed = True
            logger.error(f"Cannot roll back WAL {self.file_path} to offset {offset}: {e}")

    def __iter__(self) -> Iterator[WriteBatch]:
        """Iterate over all batches in the WAL."""
        return _WALIterator(self.file_path, on_torn=self._mark_torn)

    def _mark_torn(self, entry_offset: int) -> None:
        self._torn_offset = entry_offset


class _WALIterator(Iterator[WriteBatch]):
    """Iterator over WAL records. A torn trailing record ends iteration."""

    def __init__(self, file_path: str, on_torn: Callable[[int], None] | None = None) -> None:
        self._file_path = file_path
        self._on_torn = on_torn
        self._file: BinaryIO | None = None
        if os.path.exists(file_path):
            self._file = open(file_path, "rb")

    def __iter__(self) -> Iterator[WriteBatch]:
        return self

    def __next__(self) -> WriteBatch:
        if self._file is None:
            raise StopIteration

        try:
            entry_offset = self._file.tell()

            length_bytes = self._file.read(4)
            if not length_bytes:
                self.close()
                raise StopIteration
            if len(length_bytes) < 4:
                self._torn(entry_offset)

            length = int.from_bytes(length_bytes, "big")
            record_bytes = self._file.read(length)
            if len(record_bytes) < length:
                self._torn(entry_offset)

            checksum_bytes = self._file.read(4)
            if len(checksum_bytes) < 4:
                self._torn(entry_offset)

            expected_checksum = int.from_bytes(checksum_bytes, "big")
            actual_checksum = zlib.crc32(record_bytes) & 0xffffffff

            # Fail fast on mismatch
            if expected_checksum != actual_checksum:
                self.close()
                raise WALCorruptionError(
                    expected=expected_checksum,
                    actual=actual_checksum,
                    entry_offset=entry_offset,
                )

            return WriteBatch.from_bytes(record_bytes)
        except (StopIteration, WALCorruptionError):
            raise
        except Exception:
            self.close()
            raise

    def _torn(self, entry_offset: int) -> None:
        logger.warning(f"Ignoring incomplete record at offset {entry_offset} in {self._file_path}")
        self.close()
        if self._on_torn is not None:
            self._on_torn(entry_offset)
        raise StopIteration

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None

    def __del__(self) -> None:
        self.close()
