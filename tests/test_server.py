from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
import json
import logging

import pytest

from agentwatch import __version__, server as server_module
from agentwatch.agents import AgentProcess, AgentState, HeuristicState
from agentwatch.config import WatchSettings
from agentwatch.monitor import Monitor
from agentwatch.probes import FakeGitProbe, FakeProcessProbe
from agentwatch.repos import init_repo_status


class StubFastMCP:
    def __init__(self, *args, **kwargs):
        self.kwargs = kwargs
        self.resources: dict[str, object] = {}
        self.tools: dict[str, object] = {}

    def resource(self, uri, **kwargs):
        def decorator(fn):
            self.resources[uri] = fn
            return fn

        return decorator

    def tool(self, *args, **kwargs):
        def decorator(fn):
            self.tools[kwargs.get("name", fn.__name__)] = fn
            return fn

        return decorator


@pytest.fixture()
def monitor(tmp_path: Path) -> Monitor:
    settings = WatchSettings(roots=[tmp_path], log_dir=tmp_path / "logs")
    return Monitor.from_settings(
        settings,
        git_probe=FakeGitProbe(),
        process_probe=FakeProcessProbe(),
        port_probe=FakeProcessProbe(),
    )


def test_create_server_registers_tools_and_status(
    monkeypatch: pytest.MonkeyPatch, monitor: Monitor, tmp_path: Path
) -> None:
    monkeypatch.setattr(server_module, "FastMCP", StubFastMCP)
    settings = WatchSettings(roots=[tmp_path], log_dir=tmp_path / "logs")
    monitor.store.update_repos({"/work/app": init_repo_status("/work/app")}, errors=["/x: denied"], ignored_count=2)
    monitor.store.update_agents(
        {
            1: AgentProcess(
                pid=1,
                label="claude",
                cmdline="claude",
                exe="/usr/bin/claude",
                heuristic_state=HeuristicState(state=AgentState.STALLED, cpu_pct_recent=0.0, quiet_seconds=90.0),
            )
        }
    )

    server = server_module.create_server(settings, monitor)

    assert server.kwargs["name"] == "agentwatch"
    assert server.kwargs["version"] == __version__
    assert set(server.tools) == {
        "list_repos",
        "list_agents",
        "list_ports",
        "report_wrapper_state",
        "clear_wrapper_state",
    }
    assert server.monitor is monitor

    status = json.loads(server.resources["resource://agentwatch/status"](SimpleNamespace(request_id="req-1")))
    assert status["server_version"] == __version__
    assert status["repos"] == {
        "count": 1,
        "dirty_count": 0,
        "ignored_count": 2,
        "errors": ["/x: denied"],
        "timed_out": [],
    }
    assert status["agents"]["state_counts"] == {"STALLED": 1}
    assert status["monitor"]["running"] is False
    assert status["process_log"]["log_dir"] == str(tmp_path / "logs")
    assert status["request_id"] == "req-1"


def test_configure_logging_uses_level(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

    server_module.configure_logging("DEBUG")

    assert captured["level"] == logging.DEBUG
    assert "%(name)s" in str(captured["format"])
