"""Append-only JSONL log of agent process snapshots and lifecycle events.

Two kinds of daily files are written under the log directory:

* ``snapshots_<YYYY-MM-DD>.jsonl`` - one record per tracked agent, every
  ``snapshot_interval``-th scan cycle.
* ``events_<YYYY-MM-DD>.jsonl`` - ``process_start``/``process_end`` records.

Dates are UTC days of the record timestamp (epoch milliseconds). Fields are
camelCase on disk and only ever added, never renamed.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Literal, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from ..agents.models import AgentProcess

logger = logging.getLogger(__name__)

LogKind = Literal["snapshots", "events"]

_FILENAME_RE = re.compile(r"^(snapshots|events)_(\d{4}-\d{2}-\d{2})\.jsonl$")
_DAY_SECONDS = 24 * 60 * 60


class MalformedLogLine(ValueError):
    """A JSONL line could not be decoded into a record."""


class WriteFailure(RuntimeError):
    """A record could not be appended to its log file."""


class _LogRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class ProcessSnapshot(_LogRecord):
    timestamp: int
    pid: int
    label: str
    cmdline: str
    exe: str
    cpu_pct: float
    rss_kb: int | None = None
    threads: int | None = None
    cwd: str | None = None
    repo_path: str | None = None
    state: str | None = None
    sandboxed: bool | None = None
    sandbox_type: str | None = None
    start_time: int | None = None

    @classmethod
    def from_agent(cls, agent: AgentProcess, timestamp: int) -> "ProcessSnapshot":
        heuristic = agent.heuristic_state
        return cls(
            timestamp=timestamp,
            pid=agent.pid,
            label=agent.label,
            cmdline=agent.cmdline,
            exe=agent.exe,
            cpu_pct=agent.cpu_pct,
            rss_kb=agent.rss_kb,
            threads=agent.threads,
            cwd=agent.cwd,
            repo_path=agent.repo_path,
            state=heuristic.state.value if heuristic is not None else None,
            sandboxed=agent.sandboxed,
            sandbox_type=agent.sandbox_type,
            start_time=_to_millis(agent.start_time),
        )


class ProcessLifecycleEvent(_LogRecord):
    type: Literal["process_start", "process_end"]
    timestamp: int
    pid: int
    label: str
    cmdline: str
    cwd: str | None = None
    repo_path: str | None = None
    duration_ms: int | None = None


@dataclass(frozen=True, slots=True)
class LogFileInfo:
    filename: str
    path: Path
    kind: str
    date: str
    size_bytes: int
    modified_at: float


@dataclass(frozen=True, slots=True)
class LogSummary:
    snapshot_file_count: int
    event_file_count: int
    total_snapshots: int
    total_events: int
    total_size_bytes: int
    earliest_date: str | None
    latest_date: str | None
    log_dir: str


@dataclass(slots=True)
class _Seen:
    label: str
    cmdline: str
    cwd: str | None
    repo_path: str | None
    start_time: int | None


RecordT = TypeVar("RecordT", bound=_LogRecord)


def _to_millis(seconds: float | None) -> int | None:
    return None if seconds is None else int(seconds * 1000)


def utc_date(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def parse_line(line: str, model: type[RecordT]) -> RecordT:
    try:
        return model.model_validate_json(line)
    except ValidationError as exc:
        raise MalformedLogLine(str(exc)) from exc


class ProcessLogger:
    """Best-effort recorder of agent process activity.

    ``log_processes`` is meant to be subscribed to ``DataStore.on_agents_change``
    and runs synchronously in the publishing agent scan, on the event loop. The
    JSONL appends and ``rotate_logs`` are therefore blocking file I/O bounded to
    one line per agent and, at most once per UTC day, a directory listing. The
    agent scanner is the only writer, so no locking is done here.
    """

    def __init__(
        self,
        log_dir: Path,
        *,
        snapshot_interval: int = 10,
        max_age_days: int = 30,
        max_files: int = 100,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if snapshot_interval < 1:
            raise ValueError("snapshot_interval must be >= 1")
        self._log_dir = Path(log_dir).expanduser()
        self._snapshot_interval = snapshot_interval
        self._max_age_days = max_age_days
        self._max_files = max_files
        self._clock = clock or time.time
        self._scan_count = 0
        self._known: dict[int, _Seen] = {}
        self._rotation_day: str | None = None

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    @property
    def scan_count(self) -> int:
        return self._scan_count

    # -- writing -----------------------------------------------------------

    def log_processes(self, agents: Iterable[AgentProcess] | Mapping[int, AgentProcess]) -> None:
        """Record one scan cycle. Safe to register as an agents-changed callback."""

        current = list(agents.values()) if isinstance(agents, Mapping) else list(agents)
        now = int(self._clock() * 1000)
        self._scan_count += 1

        day = utc_date(now)
        if day != self._rotation_day:
            self._rotation_day = day
            self.rotate_logs()

        events = self._track_lifecycle(current, now)
        if events:
            self._write("events", day, events)
        if current and self._scan_count % self._snapshot_interval == 0:
            self._write("snapshots", day, [ProcessSnapshot.from_agent(agent, now) for agent in current])

    def _track_lifecycle(self, agents: list[AgentProcess], now: int) -> list[ProcessLifecycleEvent]:
        events: list[ProcessLifecycleEvent] = []
        present = {agent.pid for agent in agents}

        for agent in agents:
            seen = self._known.get(agent.pid)
            if seen is None:
                self._known[agent.pid] = _Seen(
                    label=agent.label,
                    cmdline=agent.cmdline,
                    cwd=agent.cwd,
                    repo_path=agent.repo_path,
                    start_time=_to_millis(agent.start_time),
                )
                events.append(
                    ProcessLifecycleEvent(
                        type="process_start",
                        timestamp=now,
                        pid=agent.pid,
                        label=agent.label,
                        cmdline=agent.cmdline,
                        cwd=agent.cwd,
                        repo_path=agent.repo_path,
                    )
                )
            else:
                seen.cwd = agent.cwd or seen.cwd
                seen.repo_path = agent.repo_path or seen.repo_path
                if seen.start_time is None:
                    seen.start_time = _to_millis(agent.start_time)

        for pid in [pid for pid in self._known if pid not in present]:
            seen = self._known.pop(pid)
            events.append(
                ProcessLifecycleEvent(
                    type="process_end",
                    timestamp=now,
                    pid=pid,
                    label=seen.label,
                    cmdline=seen.cmdline,
                    cwd=seen.cwd,
                    repo_path=seen.repo_path,
                    duration_ms=now - seen.start_time if seen.start_time is not None else None,
                )
            )
        return events

    def _write(self, kind: LogKind, day: str, records: list[_LogRecord]) -> None:
        try:
            self._append(self._log_dir / f"{kind}_{day}.jsonl", records)
        except WriteFailure as exc:
            logger.warning("Dropped process log records", extra={"kind": kind, "count": len(records), "error": str(exc)})

    def _append(self, path: Path, records: list[_LogRecord]) -> None:
        payload = "".join(record.to_json() + "\n" for record in records)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(payload)
        except OSError as exc:
            raise WriteFailure(f"{path}: {exc}") from exc

    def rotate_logs(self) -> int:
        """Delete files past the age limit, then the oldest beyond the count limit."""

        files: list[tuple[Path, float]] = []
        try:
            for path in self._log_dir.glob("*.jsonl"):
                try:
                    files.append((path, path.stat().st_mtime))
                except OSError:
                    continue
        except OSError:
            return 0

        deleted = 0
        now = self._clock()
        max_age = self._max_age_days * _DAY_SECONDS
        remaining: list[tuple[Path, float]] = []
        for path, mtime in files:
            if now - mtime > max_age:
                if self._unlink(path):
                    deleted += 1
                    continue
            remaining.append((path, mtime))

        remaining.sort(key=lambda item: item[1], reverse=True)
        for path, _ in remaining[self._max_files:]:
            if self._unlink(path):
                deleted += 1

        if deleted:
            logger.info("Rotated process logs", extra={"deleted": deleted, "log_dir": str(self._log_dir)})
        return deleted

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Could not delete process log", extra={"path": str(path), "error": str(exc)})
            return False
        return True

    # -- reading -----------------------------------------------------------

    def _list_files(self, kind: LogKind) -> list[LogFileInfo]:
        files: list[LogFileInfo] = []
        if not self._log_dir.is_dir():
            return files
        for path in self._log_dir.iterdir():
            match = _FILENAME_RE.match(path.name)
            if match is None or match.group(1) != kind:
                continue
            try:
                stats = path.stat()
            except OSError:
                continue
            files.append(
                LogFileInfo(
                    filename=path.name,
                    path=path,
                    kind=kind,
                    date=match.group(2),
                    size_bytes=stats.st_size,
                    modified_at=stats.st_mtime,
                )
            )
        files.sort(key=lambda info: info.date, reverse=True)
        return files

    def list_snapshot_files(self) -> list[LogFileInfo]:
        return self._list_files("snapshots")

    def list_event_files(self) -> list[LogFileInfo]:
        return self._list_files("events")

    def _read(self, path: Path, model: type[RecordT]) -> list[RecordT]:
        records: list[RecordT] = []
        try:
            with path.open("r", encoding="utf-8", errors="replace") as handle:
                for number, line in enumerate(handle, start=1):
                    if not line.strip():
                        continue
                    try:
                        records.append(parse_line(line, model))
                    except MalformedLogLine:
                        logger.debug("Skipping malformed log line", extra={"path": str(path), "line": number})
        except FileNotFoundError:
            return records
        except OSError as exc:
            logger.warning("Could not read process log", extra={"path": str(path), "error": str(exc)})
        return records

    def read_snapshots(self, date: str) -> list[ProcessSnapshot]:
        return self._read(self._log_dir / f"snapshots_{date}.jsonl", ProcessSnapshot)

    def read_events(self, date: str) -> list[ProcessLifecycleEvent]:
        return self._read(self._log_dir / f"events_{date}.jsonl", ProcessLifecycleEvent)

    def read_snapshots_in_range(self, start_date: str, end_date: str) -> list[ProcessSnapshot]:
        """Read every snapshot with ``start_date <= date <= end_date``, oldest day first."""

        records: list[ProcessSnapshot] = []
        for info in reversed(self.list_snapshot_files()):
            if start_date <= info.date <= end_date:
                records.extend(self._read(info.path, ProcessSnapshot))
        return records

    def read_events_in_range(self, start_date: str, end_date: str) -> list[ProcessLifecycleEvent]:
        records: list[ProcessLifecycleEvent] = []
        for info in reversed(self.list_event_files()):
            if start_date <= info.date <= end_date:
                records.extend(self._read(info.path, ProcessLifecycleEvent))
        return records

    def summary(self) -> LogSummary:
        snapshot_files = self.list_snapshot_files()
        event_files = self.list_event_files()
        dates = [info.date for info in (*snapshot_files, *event_files)]
        return LogSummary(
            snapshot_file_count=len(snapshot_files),
            event_file_count=len(event_files),
            total_snapshots=sum(len(self._read(info.path, ProcessSnapshot)) for info in snapshot_files),
            total_events=sum(len(self._read(info.path, ProcessLifecycleEvent)) for info in event_files),
            total_size_bytes=sum(info.size_bytes for info in (*snapshot_files, *event_files)),
            earliest_date=min(dates) if dates else None,
            latest_date=max(dates) if dates else None,
            log_dir=str(self._log_dir),
        )


__all__ = [
    "LogFileInfo",
    "LogSummary",
    "MalformedLogLine",
    "ProcessLifecycleEvent",
    "ProcessLogger",
    "ProcessSnapshot",
    "WriteFailure",
    "parse_line",
    "utc_date",
]
