import dataclasses
import json
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import IO, Callable, Iterator, List, Optional

import paramiko

from .ssh import SSH
from .time import MAX_REALTIME_TIMESTAMP

logger = logging.getLogger("jstat.journal")

JSON_EXPORT_SUFFIXES = (".json", ".jsonl")


class ContainerError(Exception):
    """Journal file could not be read or is corrupt."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


@dataclasses.dataclass(frozen=True)
class Record:
    unit: str
    process: str
    message: bytes
    size: int
    timestamp: int

    @classmethod
    def parse(cls, entry: dict, *, size: int) -> Optional["Record"]:
        """Build a record from a journalctl JSON entry.

        Entries without a MESSAGE field are not records and yield None.
        """
        message = entry.get("MESSAGE")
        if message is None:
            return None

        if isinstance(message, list):
            # journalctl exports non-printable payloads as byte arrays.
            message = bytes(message)
        elif isinstance(message, str):
            message = message.encode("utf-8", errors="surrogatepass")
        else:
            raise ValueError(f"unexpected MESSAGE type: {type(message).__name__}")

        timestamp = 0
        for ts_type in ["__REALTIME_TIMESTAMP", "_SOURCE_REALTIME_TIMESTAMP"]:
            ts = entry.get(ts_type)
            if ts is None:
                continue
            timestamp = int(ts)
            break

        if not 0 <= timestamp <= MAX_REALTIME_TIMESTAMP:
            raise ValueError(f"realtime timestamp out of range: {timestamp}")

        return cls(
            unit=cls._get_text(entry, "_SYSTEMD_UNIT"),
            process=cls._get_text(entry, "_COMM"),
            message=message,
            size=size,
            timestamp=timestamp,
        )

    @classmethod
    def parse_line(cls, line: bytes) -> Optional["Record"]:
        line = line.rstrip(b"\r\n")
        if not line.strip():
            return None

        entry = json.loads(line)
        if not isinstance(entry, dict):
            raise ValueError(f"journal entry is not an object: {line[:32]!r}")

        return cls.parse(entry, size=len(line))

    @staticmethod
    def _get_text(entry: dict, field: str) -> str:
        value = entry.get(field)
        if value is None:
            return ""
        if isinstance(value, list):
            return bytes(value).decode("utf-8", errors="replace")
        return str(value)


def parse_lines(path: Path, lines) -> Iterator[Record]:
    """Parse journalctl JSON output, one entry per line."""
    for lineno, line in enumerate(lines, start=1):
        try:
            record = Record.parse_line(line)
        except (ValueError, TypeError) as exc:
            raise ContainerError(path, f"malformed entry at line {lineno}: {exc}") from exc

        if record is not None:
            yield record


def build_journalctl_command(path: Path) -> List[str]:
    return ["journalctl", f"--file={path.as_posix()}", "-o", "json", "--all", "--no-pager"]


@dataclasses.dataclass
class JsonExportSource:
    """Records from a file written by `journalctl -o json`."""

    path: Path

    def __iter__(self) -> Iterator[Record]:
        try:
            with self.path.open("rb") as handle:
                yield from parse_lines(self.path, handle)
        except OSError as exc:
            raise ContainerError(self.path, exc.strerror or repr(exc)) from exc


@dataclasses.dataclass
class JournalctlSource:
    """Records from a binary journal file, decoded by a local journalctl."""

    path: Path
    popen: Callable = subprocess.Popen

    def __iter__(self) -> Iterator[Record]:
        if not self.path.is_file():
            raise ContainerError(self.path, "no such file")

        cmd = build_journalctl_command(self.path)
        logger.debug("Executing: %r", cmd)

        # stderr goes to a file so warnings cannot fill a pipe while stdout is read.
        with tempfile.TemporaryFile() as stderr:
            try:
                proc = self.popen(cmd, stdout=subprocess.PIPE, stderr=stderr)
            except OSError as exc:
                raise ContainerError(
                    self.path, f"unable to run journalctl: {exc}"
                ) from exc

            try:
                yield from parse_lines(self.path, proc.stdout)
                returncode = proc.wait()
                if returncode != 0:
                    raise ContainerError(
                        self.path,
                        f"journalctl failed (rc={returncode}): {self._read_stderr(stderr)}",
                    )
            finally:
                if proc.poll() is None:
                    proc.kill()
                    proc.wait()
                proc.stdout.close()

    @staticmethod
    def _read_stderr(stream: IO[bytes]) -> str:
        stream.seek(0)
        return stream.read().decode("utf-8", errors="replace").strip()


@dataclasses.dataclass
class RemoteJournalSource:
    """Records from a journal file on a remote host, decoded by its journalctl.

    The command output is collected whole before parsing.
    """

    path: Path
    ssh: SSH

    def __iter__(self) -> Iterator[Record]:
        cmd = build_journalctl_command(self.path)
        proc = self._run(cmd)
        if proc.returncode != 0:
            logger.debug("falling back to reading %s with sudo...", self.path)
            cmd.insert(0, "sudo")
            proc = self._run(cmd)

        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace").strip()
            raise ContainerError(
                self.path, f"journalctl failed (rc={proc.returncode}): {stderr}"
            )

        yield from parse_lines(self.path, proc.stdout.splitlines())

    def _run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        try:
            return self.ssh.run(cmd, capture_output=True, check=False)
        except (OSError, EOFError, paramiko.SSHException) as exc:
            raise ContainerError(self.path, f"ssh command failed: {exc!r}") from exc


def open_source(path: Path):
    if path.suffix in JSON_EXPORT_SUFFIXES:
        return JsonExportSource(path)
    return JournalctlSource(path)


def discover_files(path: Path, *, recursive: bool = False) -> List[Path]:
    """List candidate journal files under path in lexicographic order."""
    if path.is_file():
        return [path]

    if not path.is_dir():
        raise FileNotFoundError(2, "No such file or directory", str(path))

    if not recursive:
        return sorted(p for p in path.iterdir() if p.is_file())

    files = []
    for root, dirs, names in os.walk(path):
        dirs.sort()
        files.extend(Path(root) / n for n in names if (Path(root) / n).is_file())
    return sorted(files)


def discover_remote_files(
    ssh: SSH, path: Path, *, recursive: bool = False
) -> List[Path]:
    cmd = ["find", path.as_posix()]
    if not recursive:
        cmd.extend(["-maxdepth", "1"])
    cmd.extend(["-type", "f"])

    try:
        proc = ssh.run(cmd, capture_output=True, check=False, text=True)
        if proc.returncode != 0:
            logger.debug("falling back to listing %s with sudo...", path)
            cmd.insert(0, "sudo")
            proc = ssh.run(cmd, capture_output=True, check=True, text=True)
    except subprocess.CalledProcessError as exc:
        logger.debug("failed to list %r: %r", path, exc)
        raise FileNotFoundError(2, "No such file or directory", str(path)) from exc
    except paramiko.SSHException as exc:
        raise OSError(f"unable to list {path}: {exc!r}") from exc

    return sorted(Path(line) for line in proc.stdout.splitlines() if line.strip())
