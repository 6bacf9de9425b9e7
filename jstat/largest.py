import dataclasses
import heapq
import logging
from typing import Any, Dict, List

from .filters import decode_message
from .journal import Record
from .time import convert_realtime_timestamp_to_datetime

logger = logging.getLogger("jstat.largest")


@dataclasses.dataclass(frozen=True)
class SizeEntry:
    unit: str
    process: str
    message: bytes
    size: int
    timestamp: int
    first_seen: Any

    @classmethod
    def from_record(cls, record: Record, ordinal: Any) -> "SizeEntry":
        return cls(
            unit=record.unit,
            process=record.process,
            message=record.message,
            size=record.size,
            timestamp=record.timestamp,
            first_seen=ordinal,
        )

    def outranks(self, other: "SizeEntry") -> bool:
        """Larger size ranks higher; on equal size the earlier entry does."""
        if self.size != other.size:
            return self.size > other.size
        return self.first_seen < other.first_seen

    def __lt__(self, other: "SizeEntry") -> bool:
        # Heap order: the entry that ranks lowest sits at the top.
        return other.outranks(self)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "unit": self.unit,
            "process": self.process,
            "timestamp": str(convert_realtime_timestamp_to_datetime(self.timestamp)),
            "message": decode_message(self.message),
        }


class LargeMessages:
    """Keep the `capacity` largest records seen, in O(capacity) memory."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive: {capacity}")

        self.capacity = capacity
        self.heap: List[SizeEntry] = []

    def __len__(self) -> int:
        return len(self.heap)

    def observe(self, record: Record, ordinal: Any) -> None:
        if len(self.heap) >= self.capacity and record.size < self.heap[0].size:
            return

        self.offer(SizeEntry.from_record(record, ordinal))

    def offer(self, entry: SizeEntry) -> None:
        if len(self.heap) < self.capacity:
            heapq.heappush(self.heap, entry)
        elif entry.outranks(self.heap[0]):
            heapq.heapreplace(self.heap, entry)

    def merge(self, other: "LargeMessages") -> None:
        for entry in other.heap:
            self.offer(entry)

    def finalize(self, n: int) -> List[SizeEntry]:
        if n <= 0:
            return []

        return sorted(self.heap, key=lambda e: (-e.size, e.first_seen))[:n]
