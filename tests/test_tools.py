from __future__ import annotations

from dataclasses import replace

import pytest

from agentwatch.agents import AgentProcess, AgentState, HeuristicState
from agentwatch.ports import ListeningPort
from agentwatch.repos import init_repo_status
from agentwatch.storage import DataStore
from agentwatch.tools import register_tools


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


class StubClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_agent(pid: int, label: str, state: AgentState, repo_path: str | None = None) -> AgentProcess:
    return AgentProcess(
        pid=pid,
        label=label,
        cmdline=label,
        exe=f"/usr/bin/{label}",
        repo_path=repo_path,
        heuristic_state=HeuristicState(state=state, cpu_pct_recent=0.0, quiet_seconds=0.0),
    )


@pytest.fixture()
def clock() -> StubClock:
    return StubClock()


@pytest.fixture()
def store(clock: StubClock) -> DataStore:
    store = DataStore(wrapper_ttl_seconds=60, clock=clock)
    store.update_repos(
        {
            "/work/app": replace(init_repo_status("/work/app"), untracked_count=2),
            "/work/lib": init_repo_status("/work/lib"),
        },
        errors=["/work/locked: Permission denied"],
        ignored_count=3,
    )
    store.update_agents(
        {
            1: make_agent(1, "claude", AgentState.WORKING, repo_path="/work/app"),
            2: make_agent(2, "codex", AgentState.STALLED),
        }
    )
    store.update_ports(
        {
            3000: ListeningPort(
                port=3000,
                pid=11,
                process_name="node",
                bind_address="127.0.0.1",
                protocol="tcp",
                first_seen=1.0,
                agent_pid=1,
                agent_label="claude",
            ),
            5432: ListeningPort(
                port=5432, pid=12, process_name="postgres", bind_address="*", protocol="tcp", first_seen=1.0
            ),
        }
    )
    return store


def test_register_tools_exposes_named_tools(store: DataStore) -> None:
    server = StubServer()
    handles = register_tools(server, store=store)

    assert set(server._tools) == {
        "list_repos",
        "list_agents",
        "list_ports",
        "report_wrapper_state",
        "clear_wrapper_state",
    }
    assert handles.list_repos.name == "list_repos"


def test_list_repos_filters_dirty(store: DataStore) -> None:
    handles = register_tools(StubServer(), store=store)

    everything = handles.list_repos.fn()
    dirty = handles.list_repos.fn(dirty_only=True)

    assert [repo["path"] for repo in everything["repos"]] == ["/work/app", "/work/lib"]
    assert [repo["path"] for repo in dirty["repos"]] == ["/work/app"]
    assert dirty["repos"][0]["dirty"] is True
    assert everything["errors"] == ["/work/locked: Permission denied"]
    assert everything["ignored_count"] == 3


def test_list_agents_reports_state_counts(store: DataStore) -> None:
    handles = register_tools(StubServer(), store=store)

    payload = handles.list_agents.fn()
    claude_only = handles.list_agents.fn(label="claude")

    assert [agent["pid"] for agent in payload["agents"]] == [1, 2]
    assert payload["state_counts"] == {"WORKING": 1, "STALLED": 1}
    assert payload["agent_repos"] == {"1": "/work/app"}
    assert [agent["pid"] for agent in claude_only["agents"]] == [1]


def test_list_ports_filters_agent_ports(store: DataStore) -> None:
    handles = register_tools(StubServer(), store=store)

    assert [port["port"] for port in handles.list_ports.fn()["ports"]] == [3000, 5432]
    assert [port["port"] for port in handles.list_ports.fn(agents_only=True)["ports"]] == [3000]


def test_report_wrapper_state_overrides_and_clears(store: DataStore, clock: StubClock) -> None:
    handles = register_tools(StubServer(), store=store)

    result = handles.report_wrapper_state.fn(
        pid=2,
        state="waiting",
        last_output_time=clock.now - 5,
        last_lines=["Continue? [y/N]"],
        awaiting_user=True,
    )

    assert result["wrapper_state"]["state"] == "WAITING"
    assert result["wrapper_state"]["received_at"] == clock.now
    agent = store.get_agent(2)
    assert agent is not None
    assert agent.state is AgentState.WAITING
    assert agent.awaiting_user is True

    cleared = handles.clear_wrapper_state.fn(pid=2)
    assert cleared == {"pid": 2, "removed": True}
    agent = store.get_agent(2)
    assert agent is not None and agent.state is AgentState.STALLED


def test_report_wrapper_state_rejects_unknown_state(store: DataStore) -> None:
    handles = register_tools(StubServer(), store=store)

    with pytest.raises(ValueError, match="Unknown agent state"):
        handles.report_wrapper_state.fn(pid=1, state="sleeping", last_output_time=0.0)
