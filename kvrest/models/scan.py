"""
Bounds, directions and the request/result types of a range scan.
"""

from dataclasses import dataclass, field
from enum import Enum

# Hard ceiling on the number of items a single scan may return
ABSOLUTE_MAX = 1000


class Direction(Enum):
    FORWARD = "forward"
    BACKWARD = "backward"


@dataclass(frozen=True)
class Bound:
    """
    One end of a key range. ``None`` in its place means unbounded.

    Attributes:
        key: The boundary key.
        inclusive: Whether a key equal to ``key`` belongs to the range.
    """

    key: bytes
    inclusive: bool = True

    @classmethod
    def including(cls, key: bytes) -> "Bound":
        return cls(key=bytes(key), inclusive=True)

    @classmethod
    def excluding(cls, key: bytes) -> "Bound":
        return cls(key=bytes(key), inclusive=False)


@dataclass(frozen=True)
class ScanRequest:
    """
    A fully resolved range scan.

    ``start`` is where traversal begins in ``direction``, so for a backward
    scan it is the high end of the range and ``end`` the low end.
    ``limit`` is clamped to ABSOLUTE_MAX.
    """

    start: Bound | None = None
    end: Bound | None = None
    direction: Direction = Direction.FORWARD
    limit: int = ABSOLUTE_MAX

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError(f"limit must be positive, got {self.limit}")
        if self.limit > ABSOLUTE_MAX:
            object.__setattr__(self, "limit", ABSOLUTE_MAX)

    @property
    def backward(self) -> bool:
        return self.direction is Direction.BACKWARD


@dataclass
class ScanResult:
    """
    Items in traversal order, plus whether ``limit`` stopped the scan
    before it reached an explicit end bound.
    """

    items: list[tuple[bytes, bytes]] = field(default_factory=list)
    truncated: bool = False

    def keys(self) -> list[bytes]:
        return [key for key, _ in self.items]
