"""OS process table probe backed by psutil."""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable

import psutil

logger = logging.getLogger(__name__)

_ATTRS = ["pid", "ppid", "name", "cmdline", "exe", "create_time", "num_threads", "terminal"]
_TABLE_ATTRS = ["pid", "ppid", "name", "cmdline"]


@dataclass(frozen=True, slots=True)
class ProcessRow:
    """One row of the process table."""

    pid: int
    name: str
    cmdline: tuple[str, ...]
    exe: str
    cpu_pct: float | None = None
    rss_kb: int | None = None
    threads: int | None = None
    tty: str | None = None
    start_time: float | None = None
    ppid: int | None = None


@dataclass(frozen=True, slots=True)
class SocketRow:
    """A listening TCP socket."""

    port: int
    pid: int | None
    bind_address: str
    protocol: str


class ProcessProbe:
    """Enumerate processes and per-process metrics.

    psutil measures ``cpu_percent`` between two calls on the same ``Process``
    handle, so handles are kept per pid for the lifetime of the probe.
    """

    def __init__(self) -> None:
        self._handles: dict[int, psutil.Process] = {}

    def list_processes(self) -> list[ProcessRow]:
        rows: list[ProcessRow] = []
        seen: set[int] = set()
        for proc in psutil.process_iter(_ATTRS):
            try:
                info = proc.info
                pid = info.get("pid", proc.pid)
                handle = self._handles.get(pid)
                if handle is None or handle.create_time() != info.get("create_time"):
                    handle = proc
                    self._handles[pid] = handle
                with handle.oneshot():
                    cpu_pct = handle.cpu_percent(interval=None)
                    rss_kb = handle.memory_info().rss // 1024
                rows.append(
                    ProcessRow(
                        pid=pid,
                        name=info.get("name") or "",
                        cmdline=tuple(info.get("cmdline") or ()),
                        exe=info.get("exe") or "",
                        cpu_pct=cpu_pct,
                        rss_kb=rss_kb,
                        threads=info.get("num_threads"),
                        tty=info.get("terminal"),
                        start_time=info.get("create_time"),
                        ppid=info.get("ppid"),
                    )
                )
                seen.add(pid)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        for pid in set(self._handles) - seen:
            del self._handles[pid]
        return rows

    def process_table(self) -> list[ProcessRow]:
        """List pid, parent, name and command line without sampling metrics.

        ``psutil.process_iter`` shares its ``Process`` objects across callers,
        so any ``cpu_percent`` call here would shorten the interval measured by
        ``list_processes``.
        """

        rows: list[ProcessRow] = []
        for proc in psutil.process_iter(_TABLE_ATTRS):
            info = proc.info
            rows.append(
                ProcessRow(
                    pid=info.get("pid", proc.pid),
                    name=info.get("name") or "",
                    cmdline=tuple(info.get("cmdline") or ()),
                    exe="",
                    ppid=info.get("ppid"),
                )
            )
        return rows

    def cwd(self, pid: int) -> str | None:
        try:
            return psutil.Process(pid).cwd() or None
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            return None

    def cgroup(self, pid: int) -> str | None:
        """Return the raw cgroup membership of ``pid`` on Linux."""

        path = Path("/proc") / str(pid) / "cgroup"
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None

    def listening_ports(self) -> list[SocketRow]:
        try:
            connections = psutil.net_connections(kind="tcp")
        except psutil.AccessDenied:
            logger.debug("Listing sockets requires elevated privileges on this platform")
            return []
        rows: list[SocketRow] = []
        for conn in connections:
            if conn.status != psutil.CONN_LISTEN or not conn.laddr:
                continue
            protocol = "tcp6" if conn.family == socket.AF_INET6 else "tcp"
            rows.append(
                SocketRow(
                    port=conn.laddr.port,
                    pid=conn.pid,
                    bind_address=conn.laddr.ip or "*",
                    protocol=protocol,
                )
            )
        return rows


class FakeProcessProbe(ProcessProbe):
    """Test double serving scripted process tables."""

    def __init__(  # type: ignore[override]
        self,
        rows: Iterable[ProcessRow] = (),
        *,
        cwds: dict[int, str] | None = None,
        cgroups: dict[int, str] | None = None,
        sockets: Iterable[SocketRow] = (),
    ) -> None:
        self.rows = list(rows)
        self.cwds = dict(cwds or {})
        self.cgroups = dict(cgroups or {})
        self.sockets = list(sockets)
        self.cwd_calls: list[int] = []
        self.measured_listings = 0

    def list_processes(self) -> list[ProcessRow]:  # type: ignore[override]
        self.measured_listings += 1
        return list(self.rows)

    def process_table(self) -> list[ProcessRow]:  # type: ignore[override]
        return [replace(row, cpu_pct=None, rss_kb=None) for row in self.rows]

    def cwd(self, pid: int) -> str | None:  # type: ignore[override]
        self.cwd_calls.append(pid)
        return self.cwds.get(pid)

    def cgroup(self, pid: int) -> str | None:  # type: ignore[override]
        return self.cgroups.get(pid)

    def listening_ports(self) -> list[SocketRow]:  # type: ignore[override]
        return list(self.sockets)


__all__ = ["FakeProcessProbe", "ProcessProbe", "ProcessRow", "SocketRow"]
