"""
WriteBatch - an ordered group of mutations committed as a single unit.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import IntEnum


class RecordType(IntEnum):
    """Kind of mutation held in a batch."""

    PUT = 0
    DELETE = 1  # Value is always empty


@dataclass(frozen=True)
class Record:
    type: RecordType
    key: bytes
    value: bytes = b""


@dataclass
class WriteBatch:
    """
    Ordered list of put/delete records applied atomically by the engine.

    Attributes:
        records: Mutations in application order.
        seq: Sequence number assigned by the engine on commit.
    """

    records: list[Record] = field(default_factory=list)
    seq: int = 0

    def put(self, key: bytes, value: bytes) -> None:
        self.records.append(Record(RecordType.PUT, bytes(key), bytes(value)))

    def delete(self, key: bytes) -> None:
        self.records.append(Record(RecordType.DELETE, bytes(key)))

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records)

    def __bytes__(self) -> bytes:
        """
        Serialize the batch for the WAL.

        Format: [seq:8][count:4] then per record
        [type:1][key_len:4][key][value_len:4][value]
        """
        parts = [self.seq.to_bytes(8, "big"), len(self.records).to_bytes(4, "big")]
        for record in self.records:
            parts.append(record.type.to_bytes(1, "big"))
            parts.append(len(record.key).to_bytes(4, "big"))
            parts.append(record.key)
            parts.append(len(record.value).to_bytes(4, "big"))
            parts.append(record.value)
        return b"".join(parts)

    @classmethod
    def from_bytes(cls, data: bytes) -> "WriteBatch":
        """Deserialize from bytes."""
        offset = 0

        seq = int.from_bytes(data[offset : offset + 8], "big")
        offset += 8

        count = int.from_bytes(data[offset : offset + 4], "big")
        offset += 4

        records = []
        for _ in range(count):
            record_type = RecordType(data[offset])
            offset += 1

            key_len = int.from_bytes(data[offset : offset + 4], "big")
            offset += 4
            key = data[offset : offset + key_len]
            offset += key_len

            value_len = int.from_bytes(data[offset : offset + 4], "big")
            offset += 4
            value = data[offset : offset + value_len]
            offset += value_len

            records.append(Record(record_type, key, value))

        if offset != len(data):
            raise ValueError(f"Trailing bytes in write batch: {len(data) - offset}")

        return cls(records=records, seq=seq)
