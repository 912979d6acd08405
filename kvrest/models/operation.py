"""
Operation - a single user supplied mutation inside a batch request.
"""

from dataclasses import dataclass

PUT = "put"
DELETE = "delete"

VALID_OPS = frozenset({PUT, DELETE})


@dataclass(frozen=True)
class Operation:
    """
    A decoded batch item.

    ``op`` is kept as the raw tag the caller sent so that an unknown tag can
    be rejected together with the whole batch. ``value`` is ignored for
    deletes.
    """

    op: str
    key: bytes
    value: bytes = b""

    @classmethod
    def put(cls, key: bytes, value: bytes) -> "Operation":
        return cls(op=PUT, key=key, value=value)

    @classmethod
    def delete(cls, key: bytes) -> "Operation":
        return cls(op=DELETE, key=key)

    def is_valid(self) -> bool:
        return self.op in VALID_OPS
