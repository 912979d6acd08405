"""
BatchMutator - Validate user operations and commit them as one atomic batch.
"""

import logging
from collections.abc import Sequence

from kvrest.interfaces.store import KeyValueStore
from kvrest.models.exceptions import BadBatchError, OversizeBatchError
from kvrest.models.operation import PUT, Operation
from kvrest.models.write_batch import WriteBatch

logger = logging.getLogger(__name__)

# Largest number of operations accepted in one batch
MAX_BATCH_OPERATIONS = 10_000


class BatchMutator:
    """
    Applies a list of put/delete operations all-or-nothing.

    Size and tags are checked before the store is touched, so a rejected
    batch never commits anything.
    """

    def __init__(self, store: KeyValueStore, max_operations: int = MAX_BATCH_OPERATIONS) -> None:
        if max_operations <= 0:
            raise ValueError(f"max_operations must be positive, got {max_operations}")
        self._store = store
        self._max_operations = max_operations

    def build(self, ops: Sequence[Operation]) -> WriteBatch:
        """
        Validate operations and translate them into a WriteBatch.

        Raises:
            OversizeBatchError: More than max_operations were given.
            BadBatchError: An operation is neither put nor delete.
        """
        if len(ops) > self._max_operations:
            raise OversizeBatchError(len(ops), self._max_operations)

        for index, op in enumerate(ops):
            if not op.is_valid():
                raise BadBatchError(index, op.op)

        batch = WriteBatch()
        for op in ops:
            if op.op == PUT:
                batch.put(op.key, op.value)
            else:
                batch.delete(op.key)
        return batch

    async def apply(self, ops: Sequence[Operation]) -> int:
        """
        Commit all operations atomically, in order.

        Args:
            ops: Decoded operations.

        Returns:
            Number of operations committed.

        Raises:
            OversizeBatchError, BadBatchError: Nothing was committed.
            EngineError: The commit failed; nothing is visible.
        """
        batch = self.build(ops)
        await self._store.write(batch)
        logger.debug(f"Committed batch of {len(batch)} operations")
        return len(batch)
