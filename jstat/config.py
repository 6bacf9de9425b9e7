import dataclasses
import logging
import re
from pathlib import Path
from typing import Optional, Pattern

from .filters import KeyBuilder, RecordFilter
from .time import parse_timestamp

logger = logging.getLogger("jstat.config")

OUTPUT_FORMATS = ["text", "json"]


class ConfigurationError(ValueError):
    pass


@dataclasses.dataclass(frozen=True)
class StatConfig:
    input: Path
    top_talkers: Optional[int] = None
    large_messages: Optional[int] = None
    unit: Optional[str] = None
    pattern: Optional[Pattern[str]] = None
    since: Optional[int] = None
    until: Optional[int] = None
    recursive: bool = False
    normalize: bool = False
    group_by_process: bool = False
    jobs: int = 1
    ssh_host: Optional[str] = None
    ssh_user: Optional[str] = None
    ssh_proxy_host: Optional[str] = None
    ssh_proxy_user: Optional[str] = None
    output: str = "text"

    @property
    def remote(self) -> bool:
        return self.ssh_host is not None

    @property
    def talkers_enabled(self) -> bool:
        return bool(self.top_talkers)

    @property
    def large_messages_enabled(self) -> bool:
        return bool(self.large_messages)

    def record_filter(self) -> RecordFilter:
        return RecordFilter(
            unit=self.unit, pattern=self.pattern, since=self.since, until=self.until
        )

    def key_builder(self) -> KeyBuilder:
        return KeyBuilder(
            normalize=self.normalize, group_by_process=self.group_by_process
        )

    def validate(self) -> None:
        for name in ["top_talkers", "large_messages"]:
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ConfigurationError(f"{name} must not be negative: {value}")

        if not self.talkers_enabled and not self.large_messages_enabled:
            raise ConfigurationError(
                "nothing to report, specify --top-talkers and/or --large-messages"
            )

        if self.jobs < 1:
            raise ConfigurationError(f"jobs must be at least 1: {self.jobs}")

        if (
            self.since is not None
            and self.until is not None
            and self.since >= self.until
        ):
            raise ConfigurationError("--since must be earlier than --until")

        if self.output not in OUTPUT_FORMATS:
            raise ConfigurationError(f"unknown output format: {self.output}")

        if not self.remote and not self.input.exists():
            raise ConfigurationError(f"input path does not exist: {self.input}")

    @classmethod
    def from_args(cls, args) -> "StatConfig":
        """Build and validate configuration from parsed arguments."""
        if args.input is None:
            raise ConfigurationError("input path is required")

        pattern = None
        if args.pattern is not None:
            pattern = compile_pattern(args.pattern)

        since = until = None
        if args.since is not None:
            since = convert_timestamp("--since", args.since)
        if args.until is not None:
            until = convert_timestamp("--until", args.until)

        config = cls(
            input=Path(args.input),
            top_talkers=args.top_talkers,
            large_messages=args.large_messages,
            unit=args.unit,
            pattern=pattern,
            since=since,
            until=until,
            recursive=args.recursive,
            normalize=args.normalize,
            group_by_process=args.group_by_process,
            jobs=args.jobs,
            ssh_host=args.ssh_host,
            ssh_user=args.ssh_user,
            ssh_proxy_host=args.ssh_proxy_host,
            ssh_proxy_user=args.ssh_proxy_user,
            output=args.output,
        )
        config.validate()
        logger.debug("configuration: %r", config)
        return config


def compile_pattern(pattern: str) -> Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError(f"invalid pattern {pattern!r}: {exc}") from exc


def convert_timestamp(option: str, value: str) -> int:
    try:
        return parse_timestamp(value)
    except ValueError as exc:
        raise ConfigurationError(f"{option}: {exc}") from exc
