import dataclasses
import logging
import re
from typing import Optional, Pattern, Tuple, Union

from .journal import Record

logger = logging.getLogger("jstat.filters")

# Message payloads are bytes; patterns match against a lossy UTF-8 view.
MESSAGE_ENCODING = "utf-8"
MESSAGE_DECODE_ERRORS = "replace"

NORMALIZE_RULES = [
    (
        re.compile(
            r"\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b",
            re.IGNORECASE,
        ),
        "<UUID>",
    ),
    (re.compile(r"\b0x[0-9a-f]+\b", re.IGNORECASE), "<HEX>"),
    (re.compile(r"\d+"), "<N>"),
]

MessageKey = Union[bytes, Tuple[str, bytes]]


def decode_message(message: bytes) -> str:
    return message.decode(MESSAGE_ENCODING, errors=MESSAGE_DECODE_ERRORS)


def normalize_message(message: bytes) -> bytes:
    """Replace variable tokens (UUIDs, hex literals, numbers) with placeholders."""
    text = decode_message(message)
    for pattern, placeholder in NORMALIZE_RULES:
        text = pattern.sub(placeholder, text)
    return text.encode(MESSAGE_ENCODING)


@dataclasses.dataclass(frozen=True)
class RecordFilter:
    """Predicate deciding which records reach the aggregators.

    All configured conditions must hold. An unset condition admits everything.
    """

    unit: Optional[str] = None
    pattern: Optional[Pattern[str]] = None
    since: Optional[int] = None
    until: Optional[int] = None

    def admit(self, record: Record) -> bool:
        if self.unit is not None and record.unit != self.unit:
            return False

        if self.since is not None and record.timestamp < self.since:
            return False

        if self.until is not None and record.timestamp >= self.until:
            return False

        if self.pattern is not None and not self.pattern.search(
            decode_message(record.message)
        ):
            return False

        return True


@dataclasses.dataclass(frozen=True)
class KeyBuilder:
    """Derive the grouping key used for frequency counting."""

    normalize: bool = False
    group_by_process: bool = False

    def key(self, record: Record) -> MessageKey:
        message = record.message
        if self.normalize:
            message = normalize_message(message)

        if self.group_by_process:
            return (record.process, message)

        return message
