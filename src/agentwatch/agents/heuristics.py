"""CPU-based activity classification for agent processes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .models import AgentState, HeuristicState


@dataclass(frozen=True, slots=True)
class HeuristicThresholds:
    active_cpu_pct: float = 1.0
    stalled_seconds: float = 30.0
    startup_grace_seconds: float = 5.0
    min_elapsed_for_stalled_seconds: float = 10.0


def classify_activity(
    *,
    cpu_pct: float | None,
    quiet_seconds: float,
    observed_seconds: float,
    elapsed_seconds: float | None,
    thresholds: HeuristicThresholds,
) -> AgentState:
    """Classify one process.

    ``observed_seconds`` is the time since the scanner first saw the pid and
    ``elapsed_seconds`` the time since the process started (``None`` when the
    start time is unknown, in which case only the grace period applies).
    """

    if cpu_pct is None:
        return AgentState.UNKNOWN
    if cpu_pct >= thresholds.active_cpu_pct:
        return AgentState.WORKING

    in_grace = observed_seconds < thresholds.startup_grace_seconds
    too_young = elapsed_seconds is not None and elapsed_seconds < thresholds.min_elapsed_for_stalled_seconds
    if not in_grace and not too_young and quiet_seconds >= thresholds.stalled_seconds:
        return AgentState.STALLED
    return AgentState.WAITING


@dataclass(slots=True)
class _Activity:
    first_seen: float
    last_active: float | None = None


class ActivityTracker:
    """Remembers when each pid was first seen and last used CPU."""

    def __init__(self, thresholds: HeuristicThresholds | None = None) -> None:
        self.thresholds = thresholds or HeuristicThresholds()
        self._activity: dict[int, _Activity] = {}

    def observe(
        self,
        pid: int,
        *,
        cpu_pct: float | None,
        start_time: float | None,
        now: float,
    ) -> HeuristicState:
        activity = self._activity.get(pid)
        if activity is None:
            activity = self._activity[pid] = _Activity(first_seen=now)
        if cpu_pct:
            activity.last_active = now

        reference = activity.last_active if activity.last_active is not None else activity.first_seen
        quiet = max(0.0, now - reference)
        elapsed = None if start_time is None else max(0.0, now - start_time)
        state = classify_activity(
            cpu_pct=cpu_pct,
            quiet_seconds=quiet,
            observed_seconds=now - activity.first_seen,
            elapsed_seconds=elapsed,
            thresholds=self.thresholds,
        )
        return HeuristicState(state=state, cpu_pct_recent=cpu_pct or 0.0, quiet_seconds=quiet)

    def retain(self, pids: Iterable[int]) -> None:
        """Forget every pid not in ``pids``."""

        keep = set(pids)
        for pid in [pid for pid in self._activity if pid not in keep]:
            del self._activity[pid]

    def __contains__(self, pid: object) -> bool:
        return pid in self._activity


__all__ = ["ActivityTracker", "HeuristicThresholds", "classify_activity"]
