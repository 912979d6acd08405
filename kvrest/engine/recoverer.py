"""
IndexRecoverer - Rebuild the in-memory index from the WAL after a restart.
"""

import logging

from sortedcontainers import SortedDict

from kvrest.models.wal import WAL
from kvrest.models.write_batch import RecordType, WriteBatch

logger = logging.getLogger(__name__)


def apply_batch(index: SortedDict, batch: WriteBatch) -> None:
    """Apply every record of a batch to the index, in order."""
    for record in batch:
        if record.type == RecordType.PUT:
            index[record.key] = record.value
        else:
            index.pop(record.key, None)


class IndexRecoverer:
    """
    Recovers the sorted index by replaying WAL batches.

    Used during startup to rebuild in-memory state from every batch that
    was durably appended before the last shutdown or crash.
    """

    def recover(self, wal: WAL) -> tuple[SortedDict, int]:
        """
        Replay all batches from the WAL.

        Args:
            wal: The WAL to replay.

        Returns:
            The recovered index and the next sequence number to assign.
        """
        index = SortedDict()
        next_seq = 0
        batches = 0

        for batch in wal:
            apply_batch(index, batch)
            next_seq = max(next_seq, batch.seq + len(batch))
            batches += 1

        if batches:
            logger.info(
                f"Recovered {batches} batches ({len(index)} keys) from {wal.file_path}"
            )
        return index, next_seq
