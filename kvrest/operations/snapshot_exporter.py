"""
SnapshotExporter - Copy a point-in-time snapshot into a brand new database.
"""

import logging
import os
import time
from collections.abc import Awaitable, Callable

from kvrest.engine.engine import Engine
from kvrest.interfaces.store import KeyValueStore
from kvrest.models.write_batch import WriteBatch

logger = logging.getLogger(__name__)

# Entries per destination commit
EXPORT_CHUNK_SIZE = 1000

# Opens a new, empty destination store; must refuse an existing one
DestinationOpener = Callable[[str], Awaitable[KeyValueStore]]


async def _open_new_engine(path: str) -> KeyValueStore:
    return await Engine.create(path, error_if_exists=True)


class SnapshotExporter:
    """
    Streams a consistent copy of a store into a fresh database.

    The copy reflects the source exactly as of the moment the snapshot is
    taken; writes made to the source during the export are not copied.
    On any failure the partial destination is removed.
    """

    def __init__(
        self,
        source: KeyValueStore,
        chunk_size: int = EXPORT_CHUNK_SIZE,
        open_destination: DestinationOpener = _open_new_engine,
        destroy_destination: Callable[[str], None] = Engine.destroy,
    ) -> None:
        """
        Initialize exporter.

        Args:
            source: Store to copy from.
            chunk_size: Number of entries written per destination batch.
            open_destination: Creates the destination store at a path.
            destroy_destination: Removes a partially written destination.
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._source = source
        self._chunk_size = chunk_size
        self._open_destination = open_destination
        self._destroy_destination = destroy_destination

    async def export(self, destination: str) -> int:
        """
        Copy the whole source keyspace to ``destination``.

        Long running: proportional to the size of the source.

        Args:
            destination: Path of the database to create.

        Returns:
            Number of entries copied.

        Raises:
            DatabaseExistsError: Something already exists at destination.
            EngineError: Reading the snapshot or writing the copy failed;
                         the destination has been removed, or emptied if
                         it was an existing empty directory.
        """
        start_time = time.perf_counter()
        # An empty directory the caller made is emptied on failure, never removed
        preexisting = os.path.isdir(destination)
        dest = await self._open_destination(destination)

        # Cleared only once every entry is written; cancellation counts as failure
        failed = True
        try:
            copied = await self._copy(dest)
            failed = False
        finally:
            try:
                await dest.close()
            except BaseException:
                failed = True
                raise
            finally:
                if failed:
                    logger.warning(f"Snapshot to {destination} failed, removing partial copy")
                    self._destroy_destination(destination)
                    if preexisting:
                        os.makedirs(destination, exist_ok=True)

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"Snapshot of {copied} entries written to {destination} in {elapsed_ms:.2f}ms")
        return copied

    async def _copy(self, dest: KeyValueStore) -> int:
        copied = 0
        with self._source.snapshot() as snapshot, snapshot.cursor() as cursor:
            batch = WriteBatch()
            cursor.first()
            while cursor.valid():
                batch.put(cursor.key(), cursor.value())
                copied += 1

                if len(batch) >= self._chunk_size:
                    await dest.write(batch)
                    batch = WriteBatch()

                cursor.next()

            if len(batch):
                await dest.write(batch)

        return copied
