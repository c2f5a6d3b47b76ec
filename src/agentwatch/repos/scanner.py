"""Adaptive repository scanner."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable

from ..probes import GitProbe, ProbeError, ProbeFailure, ProbeTimeout
from ..scheduling import PeriodicScanner, Timer
from .discovery import (
    DiscoveryResult,
    detect_special_state,
    discover_repos,
    last_change_time,
    parse_porcelain_status,
    parse_upstream_counts,
    resolve_git_dir,
)
from .models import RepoHealth, RepoSpecialState, RepoStatus, RepoUpstream, init_repo_status

if TYPE_CHECKING:
    from ..storage.store import DataStore

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_DIRS = (
    "node_modules",
    "vendor",
    "dist",
    "build",
    "target",
    "__pycache__",
    "venv",
)


def next_backoff(previous: float, *, base: float, cap: float) -> float:
    """Return the backoff delay after one more consecutive failure."""

    if previous <= 0:
        return min(base, cap)
    return min(previous * 2, cap)


class RepoScanner(PeriodicScanner):
    """Keeps a map of repository path to ``RepoStatus`` current.

    Dirty repositories are rescanned every ``refresh_fast_seconds`` and clean
    ones every ``refresh_slow_seconds``. Failing repositories back off
    exponentially and keep the data of their last successful scan.
    """

    def __init__(
        self,
        store: DataStore,
        probe: GitProbe,
        *,
        roots: Iterable[str | Path] = (),
        ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS,
        refresh_fast_seconds: float = 3.0,
        refresh_slow_seconds: float = 45.0,
        discovery_seconds: float = 60.0,
        tick_seconds: float = 1.0,
        git_timeout_fast: float = 0.8,
        git_timeout_slow: float = 2.5,
        include_untracked: bool = True,
        show_clean: bool = False,
        backoff_base_seconds: float = 2.0,
        backoff_max_seconds: float = 120.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        super().__init__()
        self._store = store
        self._probe = probe
        self._roots = tuple(roots)
        self._ignore_dirs = tuple(ignore_dirs)
        self._refresh_fast = refresh_fast_seconds
        self._refresh_slow = refresh_slow_seconds
        self._discovery_seconds = discovery_seconds
        self._tick_seconds = tick_seconds
        self._timeout_fast = git_timeout_fast
        self._timeout_slow = git_timeout_slow
        self._include_untracked = include_untracked
        self._show_clean = show_clean
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._clock = clock or time.time

        self._repos: dict[str, RepoStatus] = {}
        self._next_due: dict[str, float] = {}
        self._backoff: dict[str, float] = {}
        self._in_flight: set[str] = set()
        self._errors: list[str] = []

    def timers(self) -> list[Timer]:
        return [
            Timer("discovery", self._discovery_seconds, self.discover),
            Timer("rescan", self._tick_seconds, self.rescan),
        ]

    @property
    def repos(self) -> dict[str, RepoStatus]:
        return dict(self._repos)

    def backoff_delay(self, path: str) -> float:
        return self._backoff.get(path, 0.0)

    def next_due(self, path: str) -> float | None:
        return self._next_due.get(path)

    async def discover(self) -> DiscoveryResult:
        """Run a discovery pass, adding new repositories and dropping vanished ones."""

        result = await asyncio.to_thread(discover_repos, self._roots, self._ignore_dirs)
        found = set(result.repos)
        for path in result.repos:
            if path not in self._repos:
                self._repos[path] = init_repo_status(path)
                self._next_due[path] = 0.0
                logger.debug("Discovered repository", extra={"path": path})
        for path in [path for path in self._repos if path not in found]:
            self._forget(path)
            logger.debug("Repository disappeared", extra={"path": path})

        self._errors = [str(error) for error in result.errors]
        if result.errors:
            logger.info("Skipped unreadable directories", extra={"count": len(result.errors)})
        self._publish()
        return result

    async def rescan(self, *, force: bool = False) -> list[str]:
        """Scan every repository whose next scan is due and publish the result."""

        now = self._clock()
        due = [
            path
            for path in self._repos
            if path not in self._in_flight and (force or self._next_due.get(path, 0.0) <= now)
        ]
        if not due:
            return []

        self._in_flight.update(due)
        try:
            await asyncio.gather(*(self._scan_and_record(path) for path in due))
        finally:
            self._in_flight.difference_update(due)
        self._publish()
        return due

    async def scan_once(self) -> None:
        if not self._repos:
            await self.discover()
        await self.rescan()

    async def scan_repo(self, previous: RepoStatus) -> RepoStatus:
        """Collect a fresh status for one repository.

        Raises ``ProbeError`` when a required git call fails or times out.
        """

        path = previous.path
        status_args = ["status", "--porcelain=v1"]
        if not self._include_untracked:
            status_args.append("-uno")
        porcelain = await self._probe.run(status_args, cwd=path, timeout=self._timeout_fast)
        counts = parse_porcelain_status(porcelain)

        special, changed_at = await asyncio.to_thread(self._inspect_git_dir, path, counts.conflict)
        branch = await self._branch(path)
        upstream = await self._upstream(path)

        return replace(
            previous,
            branch=branch,
            staged_count=counts.staged,
            unstaged_count=counts.unstaged,
            untracked_count=counts.untracked,
            special_state=special,
            upstream=upstream,
            last_scan_time=self._clock(),
            last_change_time=changed_at,
            health=RepoHealth(),
        )

    async def _scan_and_record(self, path: str) -> None:
        previous = self._repos.get(path)
        if previous is None:
            return
        # Discovery may forget the path while the scan is awaiting git.
        try:
            status = await self.scan_repo(previous)
        except ProbeError as exc:
            if path not in self._repos:
                return
            status = self._record_failure(previous, exc)
        else:
            if path not in self._repos:
                return
            self._backoff.pop(path, None)
            interval = self._refresh_fast if status.dirty else self._refresh_slow
            self._next_due[path] = self._clock() + interval
        self._repos[path] = status

    def _record_failure(self, previous: RepoStatus, exc: ProbeError) -> RepoStatus:
        path = previous.path
        delay = next_backoff(self._backoff.get(path, 0.0), base=self._backoff_base, cap=self._backoff_max)
        self._backoff[path] = delay
        until = self._clock() + delay
        self._next_due[path] = until
        timed_out = isinstance(exc, ProbeTimeout)
        logger.warning(
            "Repository scan failed",
            extra={"path": path, "timed_out": timed_out, "backoff_seconds": delay, "error": str(exc)},
        )
        return replace(
            previous,
            health=RepoHealth(last_error=str(exc), timed_out=timed_out, backoff_until=until),
        )

    async def _branch(self, path: str) -> str | None:
        try:
            output = await self._probe.run(
                ["rev-parse", "--abbrev-ref", "HEAD"], cwd=path, timeout=self._timeout_fast
            )
        except ProbeFailure:
            # Unborn branches have no HEAD to resolve yet.
            return None
        return output.strip() or None

    async def _upstream(self, path: str) -> RepoUpstream:
        try:
            output = await self._probe.run(
                ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}"],
                cwd=path,
                timeout=self._timeout_slow,
            )
        except ProbeFailure:
            return RepoUpstream()
        upstream_name = output.strip()
        if not upstream_name:
            return RepoUpstream()

        try:
            counts = await self._probe.run(
                ["rev-list", "--left-right", "--count", "@{upstream}...HEAD"],
                cwd=path,
                timeout=self._timeout_slow,
            )
        except ProbeFailure:
            return RepoUpstream(upstream_name=upstream_name)
        return parse_upstream_counts(upstream_name, counts)

    @staticmethod
    def _inspect_git_dir(path: str, conflict: bool) -> tuple[RepoSpecialState, float]:
        special = detect_special_state(resolve_git_dir(path), conflict=conflict)
        return special, last_change_time(path)

    def _forget(self, path: str) -> None:
        self._repos.pop(path, None)
        self._next_due.pop(path, None)
        self._backoff.pop(path, None)

    def _publish(self) -> None:
        visible: dict[str, RepoStatus] = {}
        ignored = 0
        for path, status in self._repos.items():
            if self._show_clean or status.dirty or status.health.last_error:
                visible[path] = status
            else:
                ignored += 1
        self._store.update_repos(visible, errors=self._errors, ignored_count=ignored)


__all__ = ["DEFAULT_IGNORE_DIRS", "RepoScanner", "next_backoff"]
