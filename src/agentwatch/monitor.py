"""Wires probes, scanners, store and process logger into one monitor."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from .agents import HeuristicThresholds, MatcherLoader, ProcessScanner
from .config import WatchSettings
from .ports import PortScanner
from .probes import GitProbe, ProcessProbe
from .repos import RepoScanner
from .storage import DataStore, ProcessLogger

logger = logging.getLogger(__name__)


class Monitor:
    """Owns every component of one monitoring instance."""

    def __init__(
        self,
        *,
        store: DataStore,
        repo_scanner: RepoScanner,
        process_scanner: ProcessScanner,
        port_scanner: PortScanner | None = None,
        process_logger: ProcessLogger | None = None,
    ) -> None:
        self.store = store
        self.repo_scanner = repo_scanner
        self.process_scanner = process_scanner
        self.port_scanner = port_scanner
        self.process_logger = process_logger
        self._unsubscribe: list[Callable[[], None]] = []

    @classmethod
    def from_settings(
        cls,
        settings: WatchSettings,
        *,
        git_probe: GitProbe | None = None,
        process_probe: ProcessProbe | None = None,
        port_probe: ProcessProbe | None = None,
        clock: Callable[[], float] | None = None,
    ) -> "Monitor":
        store = DataStore(wrapper_ttl_seconds=settings.wrapper_ttl_seconds, clock=clock)
        git_probe = git_probe or GitProbe(
            Path(settings.git_path) if settings.git_path else None,
            max_concurrency=settings.git_concurrency,
        )
        repo_scanner = RepoScanner(
            store,
            git_probe,
            roots=settings.roots,
            ignore_dirs=settings.ignore_dirs,
            refresh_fast_seconds=settings.repo_refresh_fast_seconds,
            refresh_slow_seconds=settings.repo_refresh_slow_seconds,
            discovery_seconds=settings.repo_discovery_seconds,
            tick_seconds=settings.repo_tick_seconds,
            git_timeout_fast=settings.git_timeout_fast_ms / 1000,
            git_timeout_slow=settings.git_timeout_slow_ms / 1000,
            include_untracked=settings.include_untracked,
            show_clean=settings.show_clean,
            backoff_base_seconds=settings.repo_backoff_base_seconds,
            backoff_max_seconds=settings.repo_backoff_max_seconds,
            clock=clock,
        )
        process_scanner = ProcessScanner(
            store,
            process_probe or ProcessProbe(),
            matchers=MatcherLoader(settings.matcher_paths).load_all(),
            thresholds=HeuristicThresholds(
                active_cpu_pct=settings.active_cpu_threshold,
                stalled_seconds=settings.stalled_seconds,
                startup_grace_seconds=settings.startup_grace_seconds,
                min_elapsed_for_stalled_seconds=settings.min_elapsed_for_stalled_seconds,
            ),
            refresh_seconds=settings.agent_refresh_seconds,
            cwd_resolution=settings.cwd_resolution,
            cwd_cache_seconds=settings.cwd_cache_seconds,
            clock=clock,
        )
        port_scanner = PortScanner(
            store,
            port_probe or ProcessProbe(),
            refresh_seconds=settings.port_refresh_seconds,
            min_port=settings.port_min,
            max_port=settings.port_max,
            clock=clock,
        )
        process_logger = ProcessLogger(
            settings.log_dir,
            snapshot_interval=settings.snapshot_interval,
            max_age_days=settings.log_max_age_days,
            max_files=settings.log_max_files,
            clock=clock,
        )
        return cls(
            store=store,
            repo_scanner=repo_scanner,
            process_scanner=process_scanner,
            port_scanner=port_scanner,
            process_logger=process_logger,
        )

    @property
    def scanners(self) -> list[RepoScanner | ProcessScanner | PortScanner]:
        scanners: list[RepoScanner | ProcessScanner | PortScanner] = [self.repo_scanner, self.process_scanner]
        if self.port_scanner is not None:
            scanners.append(self.port_scanner)
        return scanners

    @property
    def running(self) -> bool:
        return any(scanner.running for scanner in self.scanners)

    async def start(self) -> None:
        if self.running:
            return
        if self.process_logger is not None:
            self._unsubscribe.append(self.store.on_agents_change(self.process_logger.log_processes))
        self._unsubscribe.append(self.store.on_agents_change(self._drop_orphaned_wrapper_states))
        for scanner in self.scanners:
            scanner.start()
        logger.info(
            "Monitor started",
            extra={"scanners": [type(scanner).__name__ for scanner in self.scanners]},
        )

    async def stop(self) -> None:
        for scanner in self.scanners:
            await scanner.stop()
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        logger.info("Monitor stopped")

    def set_paused(self, paused: bool) -> None:
        for scanner in self.scanners:
            scanner.set_paused(paused)

    def _drop_orphaned_wrapper_states(self, _agents: object) -> None:
        orphaned = self.store.cleanup_orphaned_wrapper_states()
        if orphaned:
            logger.debug("Dropped wrapper states of exited agents", extra={"pids": orphaned})


__all__ = ["Monitor"]
