"""Listening TCP port scanner correlating dev servers with agents."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Callable

from .probes import ProcessProbe
from .scheduling import PeriodicScanner, Timer

if TYPE_CHECKING:
    from .storage.store import DataStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ListeningPort:
    port: int
    pid: int
    process_name: str
    bind_address: str
    protocol: str
    first_seen: float
    cmdline: str | None = None
    agent_pid: int | None = None
    agent_label: str | None = None
    cwd: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PortScanner(PeriodicScanner):
    """Publishes listening ports, attributing each to an agent when the owning
    process or its parent is a tracked agent."""

    def __init__(
        self,
        store: DataStore,
        probe: ProcessProbe,
        *,
        refresh_seconds: float = 2.0,
        min_port: int = 1024,
        max_port: int = 65535,
        clock: Callable[[], float] | None = None,
    ) -> None:
        super().__init__()
        self._store = store
        self._probe = probe
        self._refresh_seconds = refresh_seconds
        self._min_port = min_port
        self._max_port = max_port
        self._clock = clock or time.time
        self._first_seen: dict[tuple[int, int], float] = {}

    def timers(self) -> list[Timer]:
        return [Timer("ports", self._refresh_seconds, self.scan_once)]

    async def scan_once(self) -> dict[int, ListeningPort]:
        sockets = await asyncio.to_thread(self._probe.listening_ports)
        rows = await asyncio.to_thread(self._probe.process_table)
        now = self._clock()

        by_pid = {row.pid: row for row in rows}
        agents = {agent.pid: agent for agent in self._store.snapshot_agents()}
        ports: dict[int, ListeningPort] = {}

        for sock in sockets:
            if sock.pid is None or not (self._min_port <= sock.port <= self._max_port):
                continue
            if sock.port in ports:
                continue
            key = (sock.port, sock.pid)
            first_seen = self._first_seen.setdefault(key, now)

            row = by_pid.get(sock.pid)
            agent = agents.get(sock.pid)
            if agent is None and row is not None and row.ppid is not None:
                agent = agents.get(row.ppid)

            ports[sock.port] = ListeningPort(
                port=sock.port,
                pid=sock.pid,
                process_name=row.name if row is not None else "",
                bind_address=sock.bind_address,
                protocol=sock.protocol,
                first_seen=first_seen,
                cmdline=" ".join(row.cmdline) if row is not None and row.cmdline else None,
                agent_pid=agent.pid if agent is not None else None,
                agent_label=agent.label if agent is not None else None,
                cwd=agent.cwd if agent is not None else None,
            )

        live = {(port.port, port.pid) for port in ports.values()}
        for key in [key for key in self._first_seen if key not in live]:
            del self._first_seen[key]

        self._store.update_ports(ports)
        return ports


__all__ = ["ListeningPort", "PortScanner"]
