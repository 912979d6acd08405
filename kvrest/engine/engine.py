"""
Engine - Embedded sorted key-value store.
"""

import asyncio
import functools
import logging
import os
import shutil
from pathlib import Path

from sortedcontainers import SortedDict

from kvrest.engine.cursor import SortedDictCursor
from kvrest.engine.recoverer import IndexRecoverer, apply_batch
from kvrest.interfaces.cursor import Cursor
from kvrest.interfaces.store import KeyValueStore, Snapshot
from kvrest.models.exceptions import (
    DatabaseExistsError,
    EngineClosedError,
    EngineError,
    SnapshotReleasedError,
)
from kvrest.models.wal import WAL
from kvrest.models.write_batch import WriteBatch

logger = logging.getLogger(__name__)


class Engine(KeyValueStore):
    """
    WAL backed sorted key-value store.

    Provides:
    - get/put/delete(key): Point operations on byte-string keys
    - write(batch): Atomic multi-operation commit
    - cursor(): Bidirectional cursor over an implicit snapshot
    - snapshot(): Point-in-time view of the keyspace
    - property(name): Named engine statistics

    Architecture:
    - Every commit is appended to the WAL as one record before it is
      applied to the in-memory SortedDict
    - Cursors and snapshots share the current SortedDict; a commit made
      while any of them is open copies the map before mutating, so readers
      never observe later writes
    - A single asyncio lock serializes commits (single writer)
    """

    WAL_FILENAME = "kvrest.wal"

    # Property names served by property()
    PROP_NUM_ENTRIES = "kvrest.num-entries"
    PROP_SEQUENCE = "kvrest.sequence"
    PROP_WAL_BYTES = "kvrest.wal-bytes"
    PROP_SNAPSHOTS = "kvrest.snapshots"
    PROP_STATS = "kvrest.stats"

    def __init__(
        self,
        storage_dir: str,
        fsync_interval_ms: int = 0,
        error_if_exists: bool = False,
    ) -> None:
        """
        Open or create a database.

        Args:
            storage_dir: Directory for persistent storage.
            fsync_interval_ms: Milliseconds between WAL fsyncs (default: 0 = always fsync).
                              Maximum: 10000 (10 seconds).
            error_if_exists: Raise DatabaseExistsError instead of opening an
                             existing database.
        """
        if fsync_interval_ms < 0:
            raise ValueError(f"fsync_interval_ms must be >= 0, got {fsync_interval_ms}")
        if fsync_interval_ms > 10000:
            raise ValueError(
                f"fsync_interval_ms cannot exceed 10000ms (10 seconds), got {fsync_interval_ms}"
            )

        if not storage_dir or not storage_dir.strip():
            raise ValueError("storage_dir cannot be empty")

        storage_dir = os.path.abspath(storage_dir)

        if error_if_exists and self.exists(storage_dir):
            raise DatabaseExistsError(storage_dir)

        # Check parent directory is writable (if dir doesn't exist)
        if not os.path.exists(storage_dir):
            parent = os.path.dirname(storage_dir)
            if not os.access(parent, os.W_OK):
                raise PermissionError(
                    f"Cannot create storage_dir: {storage_dir}. "
                    f"Parent directory not writable: {parent}"
                )
        elif not os.access(storage_dir, os.W_OK):
            raise PermissionError(f"storage_dir not writable: {storage_dir}")

        self._storage_dir = storage_dir
        self._fsync_interval_ms = fsync_interval_ms

        self._data: SortedDict
        self._wal: WAL

        # Open cursors and snapshots sharing the current map
        self._readers = 0
        self._generation = 0

        self._seq = 0
        self._open_snapshots = 0
        self._closed = False

        self._write_lock = asyncio.Lock()

        self._initialize()

    @classmethod
    async def create(
        cls,
        storage_dir: str,
        fsync_interval_ms: int = 0,
        error_if_exists: bool = False,
    ) -> "Engine":
        """
        Async factory that runs WAL recovery in the thread pool.

        Args:
            storage_dir: Directory for persistent storage.
            fsync_interval_ms: Milliseconds between WAL fsyncs.
            error_if_exists: Refuse to open an existing database.

        Returns:
            Opened Engine instance.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            functools.partial(
                cls,
                storage_dir,
                fsync_interval_ms=fsync_interval_ms,
                error_if_exists=error_if_exists,
            ),
        )

    @staticmethod
    def exists(storage_dir: str) -> bool:
        """Whether storage_dir is a non-empty directory or any other file."""
        if not os.path.exists(storage_dir):
            return False
        if not os.path.isdir(storage_dir):
            return True
        return bool(os.listdir(storage_dir))

    @staticmethod
    def destroy(storage_dir: str) -> None:
        """Remove a closed database and everything in its directory."""
        shutil.rmtree(storage_dir, ignore_errors=True)

    @property
    def storage_dir(self) -> str:
        return self._storage_dir

    def _initialize(self) -> None:
        """Create the storage directory and recover state from the WAL."""
        try:
            Path(self._storage_dir).mkdir(parents=True, exist_ok=True)

            self._wal = WAL(file_path=os.path.join(self._storage_dir, self.WAL_FILENAME))
            self._wal.set_fsync_interval(self._fsync_interval_ms)

            self._data, self._seq = IndexRecoverer().recover(self._wal)
            self._wal.open()
        except OSError as e:
            raise EngineError(f"Cannot open database at {self._storage_dir}: {e}") from e

        logger.debug(f"Opened database at {self._storage_dir} (seq={self._seq})")

    def _check_open(self) -> None:
        if self._closed:
            raise EngineClosedError(f"Database at {self._storage_dir} is closed")

    def _acquire(self) -> tuple[SortedDict, int]:
        """Share the current map with a reader until _release() is called."""
        self._readers += 1
        return self._data, self._generation

    def _reacquire(self, generation: int) -> None:
        """Register another reader of a map handed out earlier."""
        if generation == self._generation:
            self._readers += 1

    def _release(self, generation: int) -> None:
        # Maps of older generations were already detached by a write
        if generation == self._generation:
            self._readers -= 1

    async def get(self, key: bytes) -> bytes | None:
        """
        Retrieve a value by key.

        Args:
            key: The key to look up.

        Returns:
            The value if found, None otherwise.
        """
        self._check_open()
        return self._data.get(key)

    async def put(self, key: bytes, value: bytes) -> None:
        """Insert or update a single key."""
        batch = WriteBatch()
        batch.put(key, value)
        await self.write(batch)

    async def delete(self, key: bytes) -> None:
        """Delete a single key. Deleting a missing key is not an error."""
        batch = WriteBatch()
        batch.delete(key)
        await self.write(batch)

    async def write(self, batch: WriteBatch) -> None:
        """
        Commit a batch atomically.

        The batch is made durable as one WAL record, then applied to the
        index. If the WAL append fails nothing is applied.

        Args:
            batch: Records to apply, in order.
        """
        if not len(batch):
            return

        async with self._write_lock:
            self._check_open()

            batch.seq = self._seq
            await self._wal.append(batch)

            if self._readers:
                self._data = self._data.copy()
                self._generation += 1
                self._readers = 0
            apply_batch(self._data, batch)

            self._seq += len(batch)

    def cursor(self) -> Cursor:
        """Cursor over the keyspace as of this call."""
        self._check_open()
        view, generation = self._acquire()
        return SortedDictCursor(view, on_close=functools.partial(self._release, generation))

    def snapshot(self) -> "EngineSnapshot":
        """Capture a point-in-time view. Release it when done."""
        self._check_open()
        view, generation = self._acquire()
        self._open_snapshots += 1
        return EngineSnapshot(self, view, generation, self._seq)

    def _release_snapshot(self, generation: int) -> None:
        self._open_snapshots -= 1
        self._release(generation)

    def property(self, name: str) -> str | None:
        """
        Look up a named engine property.

        Args:
            name: One of the PROP_* names.

        Returns:
            The property value as text, None for unknown names.
        """
        self._check_open()

        if name == self.PROP_NUM_ENTRIES:
            return str(len(self._data))
        if name == self.PROP_SEQUENCE:
            return str(self._seq)
        if name == self.PROP_WAL_BYTES:
            return str(self._wal.size_bytes())
        if name == self.PROP_SNAPSHOTS:
            return str(self._open_snapshots)
        if name == self.PROP_STATS:
            return (
                f"storage_dir: {self._storage_dir}\n"
                f"entries: {len(self._data)}\n"
                f"sequence: {self._seq}\n"
                f"wal_bytes: {self._wal.size_bytes()}\n"
                f"open_snapshots: {self._open_snapshots}\n"
            )
        return None

    async def close(self) -> None:
        """Flush the WAL and close the database."""
        if self._closed:
            return

        async with self._write_lock:
            self._closed = True
            try:
                self._wal.close()
            except OSError as e:
                raise EngineError(f"Failed to close WAL for {self._storage_dir}: {e}") from e

        logger.debug(f"Closed database at {self._storage_dir}")

    async def __aenter__(self) -> "Engine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class EngineSnapshot(Snapshot):
    """Frozen view of an Engine taken at a given sequence number."""

    def __init__(self, engine: Engine, view: SortedDict, generation: int, seq: int) -> None:
        self._engine = engine
        self._view = view
        self._generation = generation
        self.seq = seq
        self._released = False

    def _check_live(self) -> None:
        if self._released:
            raise SnapshotReleasedError(f"Snapshot at seq {self.seq} was released")

    def get(self, key: bytes) -> bytes | None:
        self._check_live()
        return self._view.get(key)

    def cursor(self) -> Cursor:
        self._check_live()
        # The cursor may outlive the snapshot, so it holds its own claim on the map
        self._engine._reacquire(self._generation)
        return SortedDictCursor(
            self._view,
            on_close=functools.partial(self._engine._release, self._generation),
        )

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._view = SortedDict()
        self._engine._release_snapshot(self._generation)
