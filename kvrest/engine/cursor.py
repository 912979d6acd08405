"""
SortedDictCursor - bidirectional cursor over a frozen SortedDict.
"""

from collections.abc import Callable

from sortedcontainers import SortedDict

from kvrest.interfaces.cursor import Cursor
from kvrest.models.exceptions import EngineError


class SortedDictCursor(Cursor):
    """
    Index based cursor over a SortedDict that is not mutated while the
    cursor is open.

    on_close tells the owner the map is no longer read through this cursor.
    """

    def __init__(self, view: SortedDict, on_close: Callable[[], None] | None = None) -> None:
        self._view = view
        self._keys = view.keys()
        self._pos = -1
        self._closed = False
        self._on_close = on_close

    def first(self) -> bool:
        self._check_open()
        self._pos = 0
        return self.valid()

    def last(self) -> bool:
        self._check_open()
        self._pos = len(self._view) - 1
        return self.valid()

    def seek(self, target: bytes) -> bool:
        self._check_open()
        self._pos = self._view.bisect_left(target)
        return self.valid()

    def next(self) -> bool:
        self._check_open()
        if self.valid():
            self._pos += 1
        return self.valid()

    def prev(self) -> bool:
        self._check_open()
        if self.valid():
            self._pos -= 1
        return self.valid()

    def valid(self) -> bool:
        return not self._closed and 0 <= self._pos < len(self._view)

    def key(self) -> bytes:
        self._check_positioned()
        return self._keys[self._pos]

    def value(self) -> bytes:
        self._check_positioned()
        return self._view[self._keys[self._pos]]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._view = SortedDict()
        self._keys = self._view.keys()
        if self._on_close is not None:
            self._on_close()

    def _check_open(self) -> None:
        if self._closed:
            raise EngineError("Cursor is closed")

    def _check_positioned(self) -> None:
        self._check_open()
        if not self.valid():
            raise EngineError("Cursor is not positioned on an entry")
