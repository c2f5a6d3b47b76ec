"""In-memory data store shared by the scanners and their consumers."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from types import MappingProxyType
from typing import Callable, Generic, Mapping, TypeVar

from ..agents.models import AgentProcess, WrapperState
from ..ports import ListeningPort
from ..repos.models import RepoStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

ReposCallback = Callable[[list[RepoStatus]], None]
AgentsCallback = Callable[[list[AgentProcess]], None]
PortsCallback = Callable[[list[ListeningPort]], None]

_EMPTY: Mapping = MappingProxyType({})


class _Subscribers(Generic[T]):
    def __init__(self, domain: str) -> None:
        self._domain = domain
        self._callbacks: tuple[Callable[[T], None], ...] = ()

    def add(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._callbacks = (*self._callbacks, callback)

        def unsubscribe() -> None:
            self._callbacks = tuple(cb for cb in self._callbacks if cb is not callback)

        return unsubscribe

    def notify(self, payload: T) -> None:
        for callback in self._callbacks:
            try:
                callback(payload)
            except Exception:
                logger.exception("Store subscriber failed", extra={"domain": self._domain})


class DataStore:
    """Copy-on-write aggregator of scanner output and wrapper pushes.

    Every write builds a new read-only mapping and swaps the reference, so
    readers never take the lock and never observe a half-applied update.
    Writes are serialised with a lock.
    """

    def __init__(
        self,
        *,
        wrapper_ttl_seconds: float = 60.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._wrapper_ttl = wrapper_ttl_seconds
        self._clock = clock or time.time
        self._write_lock = threading.Lock()

        self._repos: Mapping[str, RepoStatus] = _EMPTY
        self._repo_errors: tuple[str, ...] = ()
        self._repo_ignored_count = 0
        self._scanned_agents: Mapping[int, AgentProcess] = _EMPTY
        self._agents: Mapping[int, AgentProcess] = _EMPTY
        self._agent_repos: Mapping[int, str] = _EMPTY
        self._ports: Mapping[int, ListeningPort] = _EMPTY
        self._port_agents: Mapping[int, int] = _EMPTY
        self._wrapper_states: Mapping[int, WrapperState] = _EMPTY

        self._repo_subscribers: _Subscribers[list[RepoStatus]] = _Subscribers("repos")
        self._agent_subscribers: _Subscribers[list[AgentProcess]] = _Subscribers("agents")
        self._port_subscribers: _Subscribers[list[ListeningPort]] = _Subscribers("ports")

    # -- subscriptions -----------------------------------------------------

    def on_repos_change(self, callback: ReposCallback) -> Callable[[], None]:
        return self._repo_subscribers.add(callback)

    def on_agents_change(self, callback: AgentsCallback) -> Callable[[], None]:
        return self._agent_subscribers.add(callback)

    def on_ports_change(self, callback: PortsCallback) -> Callable[[], None]:
        return self._port_subscribers.add(callback)

    # -- writers -----------------------------------------------------------

    def update_repos(
        self,
        repos: Mapping[str, RepoStatus],
        *,
        errors: tuple[str, ...] | list[str] = (),
        ignored_count: int = 0,
    ) -> None:
        with self._write_lock:
            self._repos = MappingProxyType(dict(repos))
            self._repo_errors = tuple(errors)
            self._repo_ignored_count = ignored_count
            snapshot = list(self._repos.values())
        self._repo_subscribers.notify(snapshot)

    def update_agents(self, agents: Mapping[int, AgentProcess]) -> None:
        with self._write_lock:
            self._scanned_agents = MappingProxyType(dict(agents))
            self._rebuild_agents()
            agents_view = self._agents
        now = self._clock()
        self._agent_subscribers.notify([self._visible(agent, now) for agent in agents_view.values()])

    def update_ports(self, ports: Mapping[int, ListeningPort]) -> None:
        with self._write_lock:
            self._ports = MappingProxyType(dict(ports))
            self._port_agents = MappingProxyType(
                {port.port: port.agent_pid for port in ports.values() if port.agent_pid is not None}
            )
            snapshot = list(self._ports.values())
        self._port_subscribers.notify(snapshot)

    def update_wrapper_state(self, pid: int, state: WrapperState) -> WrapperState:
        """Record a wrapper push; the receive time drives expiry."""

        stamped = state.model_copy(update={"received_at": self._clock()})
        with self._write_lock:
            states = dict(self._wrapper_states)
            states[pid] = stamped
            self._wrapper_states = MappingProxyType(states)
            self._rebuild_agents()
        return stamped

    def remove_wrapper_state(self, pid: int) -> bool:
        with self._write_lock:
            if pid not in self._wrapper_states:
                return False
            states = dict(self._wrapper_states)
            del states[pid]
            self._wrapper_states = MappingProxyType(states)
            self._rebuild_agents()
        return True

    def cleanup_orphaned_wrapper_states(self) -> list[int]:
        """Drop wrapper states whose pid is no longer a tracked agent."""

        with self._write_lock:
            orphaned = [pid for pid in self._wrapper_states if pid not in self._scanned_agents]
            if orphaned:
                self._wrapper_states = MappingProxyType(
                    {pid: state for pid, state in self._wrapper_states.items() if pid not in orphaned}
                )
                self._rebuild_agents()
        return orphaned

    def _rebuild_agents(self) -> None:
        merged: dict[int, AgentProcess] = {}
        for pid, agent in self._scanned_agents.items():
            wrapper = self._wrapper_states.get(pid)
            merged[pid] = replace(agent, wrapper_state=wrapper) if wrapper is not None else agent
        self._agents = MappingProxyType(merged)
        self._agent_repos = MappingProxyType(
            {pid: agent.repo_path for pid, agent in merged.items() if agent.repo_path}
        )

    # -- readers -----------------------------------------------------------

    def _is_expired(self, state: WrapperState, now: float) -> bool:
        received = state.received_at if state.received_at is not None else state.last_output_time
        return now - received > self._wrapper_ttl

    def _visible(self, agent: AgentProcess, now: float) -> AgentProcess:
        if agent.wrapper_state is not None and self._is_expired(agent.wrapper_state, now):
            return replace(agent, wrapper_state=None)
        return agent

    def snapshot_repos(self) -> list[RepoStatus]:
        return list(self._repos.values())

    def snapshot_agents(self) -> list[AgentProcess]:
        now = self._clock()
        return [self._visible(agent, now) for agent in self._agents.values()]

    def snapshot_ports(self) -> list[ListeningPort]:
        return list(self._ports.values())

    def snapshot_wrapper_states(self) -> dict[int, WrapperState]:
        return dict(self._wrapper_states)

    def snapshot_repo_errors(self) -> list[str]:
        return list(self._repo_errors)

    def snapshot_repo_ignored_count(self) -> int:
        return self._repo_ignored_count

    def snapshot_agent_repos(self) -> dict[int, str]:
        """Index of agent pid to the repository its working directory is in."""

        return dict(self._agent_repos)

    def snapshot_port_agents(self) -> dict[int, int]:
        """Index of listening port to the agent pid it is attributed to."""

        return dict(self._port_agents)

    def get_agent(self, pid: int) -> AgentProcess | None:
        agent = self._agents.get(pid)
        return self._visible(agent, self._clock()) if agent is not None else None

    def get_repo(self, path: str) -> RepoStatus | None:
        return self._repos.get(path)

    def get_port(self, port: int) -> ListeningPort | None:
        return self._ports.get(port)

    def agent_pids(self) -> list[int]:
        return list(self._agents.keys())


__all__ = ["DataStore"]
