"""Periodic timer plumbing shared by the scanners."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Timer:
    name: str
    interval_seconds: float
    tick: Callable[[], Awaitable[object]]


class PeriodicScanner:
    """Runs one asyncio task per timer until stopped.

    Subclasses return their timers from ``timers()``. A failing tick is logged
    and the timer keeps running; a paused scanner skips ticks.
    """

    def __init__(self) -> None:
        self._tasks: list[asyncio.Task[None]] = []
        self._paused = False

    def timers(self) -> list[Timer]:
        raise NotImplementedError

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def paused(self) -> bool:
        return self._paused

    def set_paused(self, paused: bool) -> None:
        self._paused = paused

    def start(self) -> None:
        """Start the timers on the running event loop; repeated calls are ignored."""

        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._run_forever(timer), name=f"{type(self).__name__}.{timer.name}")
            for timer in self.timers()
        ]

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run_forever(self, timer: Timer) -> None:
        while True:
            if not self._paused:
                try:
                    await timer.tick()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception(
                        "Scanner tick failed",
                        extra={"scanner": type(self).__name__, "timer": timer.name},
                    )
            await asyncio.sleep(timer.interval_seconds)


__all__ = ["PeriodicScanner", "Timer"]
