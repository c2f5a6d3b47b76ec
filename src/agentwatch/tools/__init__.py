"""Tool registration for the agentwatch status server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..agents import AgentState, WrapperState
from ..storage import DataStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    list_repos: Any
    list_agents: Any
    list_ports: Any
    report_wrapper_state: Any
    clear_wrapper_state: Any


def register_tools(server: Any, *, store: DataStore) -> ToolHandles:
    """Register agentwatch's read and wrapper-push tools on the server."""

    def _list_repos(dirty_only: bool = False) -> dict[str, Any]:
        """Return the current repository snapshot."""

        repos = store.snapshot_repos()
        if dirty_only:
            repos = [repo for repo in repos if repo.dirty]
        return {
            "repos": [repo.to_dict() for repo in sorted(repos, key=lambda repo: repo.path)],
            "errors": store.snapshot_repo_errors(),
            "ignored_count": store.snapshot_repo_ignored_count(),
        }

    def _list_agents(label: str | None = None) -> dict[str, Any]:
        """Return the current agent snapshot, optionally filtered by label."""

        agents = store.snapshot_agents()
        if label:
            agents = [agent for agent in agents if agent.label == label]
        state_counts: dict[str, int] = {}
        for agent in agents:
            state_counts[agent.state.value] = state_counts.get(agent.state.value, 0) + 1
        return {
            "agents": [agent.to_dict() for agent in sorted(agents, key=lambda agent: agent.pid)],
            "state_counts": state_counts,
            "agent_repos": {str(pid): path for pid, path in store.snapshot_agent_repos().items()},
        }

    def _list_ports(agents_only: bool = False) -> dict[str, Any]:
        """Return listening ports and their agent attribution."""

        ports = store.snapshot_ports()
        if agents_only:
            ports = [port for port in ports if port.agent_pid is not None]
        return {"ports": [port.to_dict() for port in sorted(ports, key=lambda port: port.port)]}

    def _report_wrapper_state(
        pid: int,
        state: str,
        last_output_time: float,
        last_lines: list[str] | None = None,
        awaiting_user: bool = False,
        cmdline: str | None = None,
        cwd: str | None = None,
        start_time: float | None = None,
        label: str | None = None,
    ) -> dict[str, Any]:
        """Record the activity state reported by an agent wrapper."""

        normalized = state.strip().upper()
        if normalized not in AgentState.__members__:
            raise ValueError(f"Unknown agent state '{state}'")

        wrapper = WrapperState(
            state=AgentState(normalized),
            last_output_time=last_output_time,
            last_lines=last_lines or [],
            awaiting_user=awaiting_user,
            cmdline=cmdline,
            cwd=cwd,
            start_time=start_time,
            label=label,
        )
        stored = store.update_wrapper_state(pid, wrapper)
        logger.debug("Wrapper state updated", extra={"pid": pid, "state": normalized})
        return {"pid": pid, "wrapper_state": stored.model_dump(mode="json")}

    def _clear_wrapper_state(pid: int) -> dict[str, Any]:
        """Forget the wrapper state of a pid."""

        return {"pid": pid, "removed": store.remove_wrapper_state(pid)}

    list_repos = server.tool(name="list_repos")(_list_repos)
    list_agents = server.tool(name="list_agents")(_list_agents)
    list_ports = server.tool(name="list_ports")(_list_ports)
    report_wrapper_state = server.tool(name="report_wrapper_state")(_report_wrapper_state)
    clear_wrapper_state = server.tool(name="clear_wrapper_state")(_clear_wrapper_state)

    return ToolHandles(
        list_repos=list_repos,
        list_agents=list_agents,
        list_ports=list_ports,
        report_wrapper_state=report_wrapper_state,
        clear_wrapper_state=clear_wrapper_state,
    )


__all__ = ["ToolHandles", "register_tools"]
