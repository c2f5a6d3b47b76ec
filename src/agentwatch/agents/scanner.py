"""Agent process scanner."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, Literal, Sequence

from ..probes import ProcessProbe, ProcessRow
from ..repos.discovery import find_repo_root
from ..scheduling import PeriodicScanner, Timer
from .heuristics import ActivityTracker, HeuristicThresholds
from .matching import match_process
from .models import DEFAULT_MATCHERS, AgentMatcher, AgentProcess

if TYPE_CHECKING:
    from ..storage.store import DataStore

logger = logging.getLogger(__name__)

CwdResolution = Literal["auto", "off"]

_CONTAINER_MARKERS = ("docker", "containerd", "libpod")


@dataclass(frozen=True, slots=True)
class _CwdEntry:
    cwd: str | None
    repo_path: str | None
    expires_at: float


def detect_sandbox(row: ProcessRow, cgroup: str | None) -> str | None:
    """Return ``"macos"`` or ``"docker"`` when the process runs sandboxed."""

    if row.cmdline and os.path.basename(row.cmdline[0]) == "sandbox-exec":
        return "macos"
    if cgroup and any(marker in cgroup for marker in _CONTAINER_MARKERS):
        return "docker"
    return None


class ProcessScanner(PeriodicScanner):
    """Keeps a map of pid to ``AgentProcess`` for matched agent processes."""

    def __init__(
        self,
        store: DataStore,
        probe: ProcessProbe,
        *,
        matchers: Sequence[AgentMatcher] = DEFAULT_MATCHERS,
        thresholds: HeuristicThresholds | None = None,
        refresh_seconds: float = 1.0,
        cwd_resolution: CwdResolution = "auto",
        cwd_cache_seconds: float = 10.0,
        exclude_pids: Iterable[int] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        super().__init__()
        self._store = store
        self._probe = probe
        self._matchers = tuple(matchers)
        self._tracker = ActivityTracker(thresholds)
        self._refresh_seconds = refresh_seconds
        self._cwd_resolution = cwd_resolution
        self._cwd_cache_seconds = cwd_cache_seconds
        self._exclude = set(exclude_pids) if exclude_pids is not None else {os.getpid()}
        self._clock = clock or time.time
        self._cwd_cache: dict[int, _CwdEntry] = {}
        self._sandbox_cache: dict[tuple[int, float | None], str | None] = {}

    def timers(self) -> list[Timer]:
        return [Timer("processes", self._refresh_seconds, self.scan_once)]

    @property
    def matchers(self) -> tuple[AgentMatcher, ...]:
        return self._matchers

    @property
    def tracker(self) -> ActivityTracker:
        return self._tracker

    async def scan_once(self) -> dict[int, AgentProcess]:
        """Scan the process table once and publish the matched agents."""

        rows = await asyncio.to_thread(self._probe.list_processes)
        now = self._clock()
        agents: dict[int, AgentProcess] = {}

        for row in rows:
            if row.pid in self._exclude or row.pid in agents:
                continue
            cmdline = " ".join(row.cmdline) or row.name
            exe = row.exe or (row.cmdline[0] if row.cmdline else "")
            label = match_process(self._matchers, cmdline, exe)
            if label is None:
                continue

            heuristic = self._tracker.observe(row.pid, cpu_pct=row.cpu_pct, start_time=row.start_time, now=now)
            cwd, repo_path = await self._resolve_cwd(row.pid, now)
            sandbox_type = await self._sandbox_type(row)
            agents[row.pid] = AgentProcess(
                pid=row.pid,
                label=label,
                cmdline=cmdline,
                exe=exe,
                start_time=row.start_time,
                cpu_pct=row.cpu_pct or 0.0,
                rss_kb=row.rss_kb,
                threads=row.threads,
                tty=row.tty,
                cwd=cwd,
                repo_path=repo_path,
                heuristic_state=heuristic,
                sandboxed=sandbox_type is not None,
                sandbox_type=sandbox_type,
            )

        self._tracker.retain(agents)
        for pid in [pid for pid in self._cwd_cache if pid not in agents]:
            del self._cwd_cache[pid]
        for key in [key for key in self._sandbox_cache if key[0] not in agents]:
            del self._sandbox_cache[key]

        self._store.update_agents(agents)
        return agents

    async def _resolve_cwd(self, pid: int, now: float) -> tuple[str | None, str | None]:
        if self._cwd_resolution == "off":
            return None, None
        entry = self._cwd_cache.get(pid)
        if entry is not None:
            if entry.expires_at > now:
                return entry.cwd, entry.repo_path
            del self._cwd_cache[pid]

        cwd, repo_path = await asyncio.to_thread(self._lookup_cwd, pid)
        self._cwd_cache[pid] = _CwdEntry(cwd=cwd, repo_path=repo_path, expires_at=now + self._cwd_cache_seconds)
        return cwd, repo_path

    def _lookup_cwd(self, pid: int) -> tuple[str | None, str | None]:
        cwd = self._probe.cwd(pid)
        if cwd is None:
            return None, None
        return cwd, find_repo_root(cwd)

    async def _sandbox_type(self, row: ProcessRow) -> str | None:
        key = (row.pid, row.start_time)
        if key not in self._sandbox_cache:
            cgroup = await asyncio.to_thread(self._probe.cgroup, row.pid)
            self._sandbox_cache[key] = detect_sandbox(row, cgroup)
        return self._sandbox_cache[key]


__all__ = ["CwdResolution", "ProcessScanner", "detect_sandbox"]
