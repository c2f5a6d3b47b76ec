from __future__ import annotations

import asyncio

import pytest

from agentwatch.agents import AgentProcess
from agentwatch.ports import PortScanner
from agentwatch.probes import FakeProcessProbe, ProcessProbe, ProcessRow, SocketRow
from agentwatch.probes import process as process_module
from agentwatch.storage import DataStore


class StubClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def row(pid: int, name: str, *, ppid: int | None = 1) -> ProcessRow:
    return ProcessRow(pid=pid, name=name, cmdline=(name, "serve"), exe=f"/usr/bin/{name}", ppid=ppid)


def build(sockets: list[SocketRow], rows: list[ProcessRow]) -> tuple[PortScanner, FakeProcessProbe, DataStore, StubClock]:
    clock = StubClock()
    store = DataStore(clock=clock)
    store.update_agents(
        {10: AgentProcess(pid=10, label="claude", cmdline="claude", exe="/usr/bin/claude", cwd="/work/app")}
    )
    probe = FakeProcessProbe(rows, sockets=sockets)
    scanner = PortScanner(store, probe, clock=clock)
    return scanner, probe, store, clock


def test_ports_are_attributed_to_agent_or_its_children() -> None:
    scanner, _, store, _ = build(
        [
            SocketRow(port=3000, pid=20, bind_address="127.0.0.1", protocol="tcp"),
            SocketRow(port=8080, pid=10, bind_address="::", protocol="tcp6"),
            SocketRow(port=5432, pid=30, bind_address="*", protocol="tcp"),
        ],
        [row(10, "claude"), row(20, "node", ppid=10), row(30, "postgres")],
    )

    ports = asyncio.run(scanner.scan_once())

    assert sorted(ports) == [3000, 5432, 8080]
    assert ports[3000].agent_pid == 10
    assert ports[3000].agent_label == "claude"
    assert ports[3000].cwd == "/work/app"
    assert ports[3000].cmdline == "node serve"
    assert ports[8080].agent_pid == 10
    assert ports[5432].agent_pid is None
    assert store.snapshot_port_agents() == {3000: 10, 8080: 10}


def test_ports_outside_range_or_without_pid_are_skipped() -> None:
    scanner, _, _, _ = build(
        [
            SocketRow(port=22, pid=5, bind_address="*", protocol="tcp"),
            SocketRow(port=4000, pid=None, bind_address="*", protocol="tcp"),
        ],
        [row(5, "sshd")],
    )

    assert asyncio.run(scanner.scan_once()) == {}


def test_first_seen_is_kept_until_port_closes() -> None:
    socket = SocketRow(port=3000, pid=20, bind_address="127.0.0.1", protocol="tcp")
    scanner, probe, _, clock = build([socket], [row(20, "node")])

    asyncio.run(scanner.scan_once())
    clock.now = 200.0
    ports = asyncio.run(scanner.scan_once())
    assert ports[3000].first_seen == 100.0

    probe.sockets = []
    asyncio.run(scanner.scan_once())
    probe.sockets = [socket]
    clock.now = 300.0
    ports = asyncio.run(scanner.scan_once())
    assert ports[3000].first_seen == 300.0


def test_port_scan_does_not_sample_cpu() -> None:
    scanner, probe, _, _ = build(
        [SocketRow(port=3000, pid=20, bind_address="127.0.0.1", protocol="tcp")],
        [row(20, "node", ppid=10)],
    )

    ports = asyncio.run(scanner.scan_once())

    assert ports[3000].agent_pid == 10
    assert probe.measured_listings == 0


class UnmeasuredProcess:
    def __init__(self, pid: int, ppid: int, name: str) -> None:
        self.pid = pid
        self.info = {"pid": pid, "ppid": ppid, "name": name, "cmdline": [name, "serve"]}

    def cpu_percent(self, interval=None):
        raise AssertionError("process table must not sample cpu")

    def memory_info(self):
        raise AssertionError("process table must not sample memory")


def test_process_table_requests_identity_fields_only(monkeypatch: pytest.MonkeyPatch) -> None:
    requested: list[list[str]] = []

    def fake_process_iter(attrs=None):
        requested.append(list(attrs))
        return iter([UnmeasuredProcess(20, 10, "node")])

    monkeypatch.setattr(process_module.psutil, "process_iter", fake_process_iter)

    rows = ProcessProbe().process_table()

    assert requested == [["pid", "ppid", "name", "cmdline"]]
    assert [(r.pid, r.ppid, r.name, r.cmdline, r.cpu_pct) for r in rows] == [(20, 10, "node", ("node", "serve"), None)]
