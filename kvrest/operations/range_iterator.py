"""
RangeIterator - Bounded, directional scans over a store cursor.
"""

from collections.abc import Callable

from kvrest.interfaces.cursor import Cursor
from kvrest.interfaces.store import KeyValueStore
from kvrest.models.scan import Bound, Direction, ScanRequest, ScanResult

# Streaming callback; returning True stops the scan early
Emit = Callable[[bytes, bytes], bool]


def _check_end(key: bytes, end: Bound, direction: Direction) -> tuple[bool, bool]:
    """
    Evaluate a key against the end bound.

    Returns:
        (emit_now, may_continue): whether ``key`` is inside the range, and
        whether keys after it in ``direction`` could still be.
    """
    if key == end.key:
        return end.inclusive, False

    if direction is Direction.BACKWARD:
        past_end = key < end.key
    else:
        past_end = key > end.key

    if past_end:
        return False, False
    return True, True


def _position(cursor: Cursor, start: Bound | None, direction: Direction) -> None:
    """
    Place the cursor on the first key the scan may visit.

    Seek always lands on the smallest key >= target, which is the right
    spot for forward scans only. Backward scans need the largest key <=
    target, so the landing spot is corrected here. An exclusive start
    skips an exact match in either direction.
    """
    if start is None:
        if direction is Direction.BACKWARD:
            cursor.last()
        else:
            cursor.first()
        return

    cursor.seek(start.key)

    if direction is Direction.BACKWARD:
        if not cursor.valid():
            # Every key is below start
            cursor.last()
        elif cursor.key() > start.key:
            cursor.prev()
        elif not start.inclusive:
            cursor.prev()
    elif cursor.valid() and not start.inclusive and cursor.key() == start.key:
        cursor.next()


class RangeIterator:
    """
    Walks a store cursor to produce a bounded, ordered slice of the keyspace.

    Items come out in traversal order (ascending forward, descending
    backward). ``truncated`` on the result is set only when an end bound
    was given and the limit stopped the scan while keys inside the bound
    remained.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def scan(self, request: ScanRequest, emit: Emit | None = None) -> ScanResult:
        """
        Run a range scan.

        Args:
            request: Bounds, direction and limit of the scan.
            emit: Optional callback invoked for every item as it is found.
                  Returning True stops the scan.

        Returns:
            ScanResult with the collected items and the truncation flag.

        Raises:
            EngineError: On any cursor failure. Items already passed to
                         ``emit`` stay delivered.
        """
        result = ScanResult()
        end = request.end
        direction = request.direction

        with self._store.cursor() as cursor:
            step = cursor.prev if request.backward else cursor.next
            _position(cursor, request.start, direction)

            count = 0
            while cursor.valid():
                key = cursor.key()

                # Limit wins over the end bound when both stop on the same key
                if count >= request.limit:
                    if end is not None:
                        result.truncated, _ = _check_end(key, end, direction)
                    break
                count += 1

                may_continue = True
                if end is not None:
                    emit_now, may_continue = _check_end(key, end, direction)
                    if not emit_now:
                        break

                value = cursor.value()
                result.items.append((key, value))
                if emit is not None and emit(key, value):
                    break
                if not may_continue:
                    break

                step()

        return result
