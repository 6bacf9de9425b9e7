import dataclasses
import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import StatConfig
from .journal import ContainerError, Record, discover_files, open_source
from .largest import LargeMessages, SizeEntry
from .talkers import FrequencyEntry, TopTalkers

logger = logging.getLogger("jstat.aggregate")


class InputError(Exception):
    """No input could be read at all."""


@dataclasses.dataclass
class FileError:
    path: Path
    reason: str

    def as_dict(self) -> Dict[str, Any]:
        return {"path": str(self.path), "reason": self.reason}


@dataclasses.dataclass
class FileScan:
    path: Path
    talkers: Optional[TopTalkers]
    largest: Optional[LargeMessages]
    records_seen: int = 0
    records_admitted: int = 0
    error: Optional[FileError] = None


@dataclasses.dataclass
class Report:
    input: Path
    top_talkers: Optional[List[FrequencyEntry]]
    large_messages: Optional[List[SizeEntry]]
    errors: List[FileError]
    files_scanned: int
    records_seen: int
    records_admitted: int
    cancelled: bool = False

    @property
    def files_failed(self) -> int:
        return len(self.errors)

    def as_dict(self) -> Dict[str, Any]:
        obj: Dict[str, Any] = {
            "input": str(self.input),
            "files_scanned": self.files_scanned,
            "files_failed": self.files_failed,
            "records_seen": self.records_seen,
            "records_admitted": self.records_admitted,
            "cancelled": self.cancelled,
            "errors": [e.as_dict() for e in self.errors],
        }

        if self.top_talkers is not None:
            obj["top_talkers"] = [
                dict(rank=i, **e.as_dict()) for i, e in enumerate(self.top_talkers, 1)
            ]

        if self.large_messages is not None:
            obj["large_messages"] = [
                dict(rank=i, **e.as_dict())
                for i, e in enumerate(self.large_messages, 1)
            ]

        return obj


class Aggregation:
    """Scan every input file and rank its records.

    Each file is scanned into its own partial aggregators which are merged
    into the totals only once the file has been read to the end, so a file
    that fails part way contributes nothing.
    """

    def __init__(
        self,
        config: StatConfig,
        *,
        open_source: Callable[[Path], Iterable[Record]] = open_source,
        discover: Callable[..., List[Path]] = discover_files,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.config = config
        self.open_source = open_source
        self.discover = discover
        self.stop_event = stop_event if stop_event else threading.Event()
        self.record_filter = config.record_filter()
        self.key_builder = config.key_builder()

        self.talkers = self.new_talkers()
        self.largest = self.new_largest()
        self.errors: List[FileError] = []
        self.files_scanned = 0
        self.records_seen = 0
        self.records_admitted = 0
        self.cancelled = False

    def new_talkers(self) -> Optional[TopTalkers]:
        if not self.config.talkers_enabled:
            return None
        return TopTalkers()

    def new_largest(self) -> Optional[LargeMessages]:
        if not self.config.large_messages_enabled:
            return None
        return LargeMessages(self.config.large_messages)

    def stop(self) -> None:
        self.stop_event.set()

    def scan(self, path: Path, ordinal: Callable[[Record, int], Any]) -> FileScan:
        result = FileScan(
            path=path, talkers=self.new_talkers(), largest=self.new_largest()
        )

        logger.debug("scanning %s", path)
        try:
            for seq, record in enumerate(self.open_source(path)):
                result.records_seen += 1
                if not self.record_filter.admit(record):
                    continue

                result.records_admitted += 1
                position = ordinal(record, seq)
                if result.talkers is not None:
                    result.talkers.observe(
                        self.key_builder.key(record), record, position
                    )
                if result.largest is not None:
                    result.largest.observe(record, position)
        except ContainerError as exc:
            logger.warning("skipping %s: %s", path, exc.reason)
            result.error = FileError(path=path, reason=exc.reason)
            return result

        logger.debug(
            "scanned %s (records=%d admitted=%d)",
            path,
            result.records_seen,
            result.records_admitted,
        )
        return result

    def collect(self, result: FileScan) -> None:
        if result.error is not None:
            self.errors.append(result.error)
            return

        self.files_scanned += 1
        self.records_seen += result.records_seen
        self.records_admitted += result.records_admitted

        if self.talkers is not None and result.talkers is not None:
            self.talkers.merge(result.talkers)
        if self.largest is not None and result.largest is not None:
            self.largest.merge(result.largest)

    def run_sequential(self, files: List[Path]) -> None:
        counter = itertools.count()

        for path in files:
            if self.stop_event.is_set():
                logger.warning("stopping before %s", path)
                self.cancelled = True
                return

            self.collect(self.scan(path, lambda record, seq: next(counter)))

    def run_parallel(self, files: List[Path]) -> None:
        """Scan files concurrently.

        Processing order is not known in advance, so first-seen order is
        taken from the record timestamp, then file and position in file.
        """

        def _scan(index: int, path: Path) -> Optional[FileScan]:
            if self.stop_event.is_set():
                return None

            return self.scan(
                path, lambda record, seq: (record.timestamp, index, seq)
            )

        with ThreadPoolExecutor(max_workers=self.config.jobs) as executor:
            futures = [
                executor.submit(_scan, index, path)
                for index, path in enumerate(files)
            ]
            results = [f.result() for f in futures]

        for result in results:
            if result is None:
                self.cancelled = True
                continue
            self.collect(result)

    def run(self) -> Report:
        try:
            files = self.discover(self.config.input, recursive=self.config.recursive)
        except OSError as exc:
            raise InputError(f"unable to read input {self.config.input}: {exc}") from exc

        logger.debug("found %d file(s) under %s", len(files), self.config.input)
        if not files:
            raise InputError(f"no journal files found under {self.config.input}")

        if self.config.jobs > 1 and len(files) > 1:
            self.run_parallel(files)
        else:
            self.run_sequential(files)

        if self.files_scanned == 0 and not self.cancelled:
            raise InputError(
                f"none of the {len(files)} file(s) under {self.config.input} could be read"
            )

        return self.finalize()

    def finalize(self) -> Report:
        top_talkers = None
        if self.talkers is not None:
            top_talkers = self.talkers.finalize(self.config.top_talkers)

        large_messages = None
        if self.largest is not None:
            large_messages = self.largest.finalize(self.config.large_messages)

        return Report(
            input=self.config.input,
            top_talkers=top_talkers,
            large_messages=large_messages,
            errors=list(self.errors),
            files_scanned=self.files_scanned,
            records_seen=self.records_seen,
            records_admitted=self.records_admitted,
            cancelled=self.cancelled,
        )
