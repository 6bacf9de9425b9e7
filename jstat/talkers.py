import dataclasses
import heapq
import logging
from typing import Any, Dict, List

from .filters import MessageKey, decode_message
from .journal import Record

logger = logging.getLogger("jstat.talkers")


@dataclasses.dataclass
class FrequencyEntry:
    key: MessageKey
    count: int
    first_seen: Any
    process: str

    @property
    def message(self) -> bytes:
        if isinstance(self.key, tuple):
            return self.key[1]
        return self.key

    def as_dict(self) -> Dict[str, Any]:
        return {
            "frequency": self.count,
            "process": self.process,
            "message": decode_message(self.message),
        }


class TopTalkers:
    """Exact frequency count of every distinct message key.

    Memory grows with the number of distinct keys; no cardinality cap is
    applied since any cap would make the ranking approximate.
    """

    def __init__(self) -> None:
        self.entries: Dict[MessageKey, FrequencyEntry] = {}

    def __len__(self) -> int:
        return len(self.entries)

    def observe(self, key: MessageKey, record: Record, ordinal: Any) -> None:
        entry = self.entries.get(key)
        if entry is None:
            self.entries[key] = FrequencyEntry(
                key=key, count=1, first_seen=ordinal, process=record.process
            )
        else:
            entry.count += 1

    def merge(self, other: "TopTalkers") -> None:
        """Fold another partial count into this one.

        Counts add, the earliest first-seen ordinal wins.
        """
        for key, theirs in other.entries.items():
            ours = self.entries.get(key)
            if ours is None:
                self.entries[key] = dataclasses.replace(theirs)
                continue

            ours.count += theirs.count
            if theirs.first_seen < ours.first_seen:
                ours.first_seen = theirs.first_seen
                ours.process = theirs.process

    def finalize(self, n: int) -> List[FrequencyEntry]:
        if n <= 0:
            return []

        return heapq.nsmallest(
            n, self.entries.values(), key=lambda e: (-e.count, e.first_seen)
        )
