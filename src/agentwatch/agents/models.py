"""Agent process records and matcher definitions."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AgentState(str, Enum):
    WORKING = "WORKING"
    WAITING = "WAITING"
    STALLED = "STALLED"
    IDLE = "IDLE"
    UNKNOWN = "UNKNOWN"


class MatcherKind(str, Enum):
    CMD_REGEX = "cmd_regex"
    EXE_PREFIX = "exe_prefix"
    EXE_SUFFIX = "exe_suffix"


class AgentMatcher(BaseModel):
    """One entry of the ordered signature list identifying agent processes."""

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., description="Label applied to matching processes.")
    type: MatcherKind = Field(..., description="How ``pattern`` is applied.")
    pattern: str = Field(..., description="Regex, executable prefix or executable suffix.")

    @field_validator("label", "pattern")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Matcher label and pattern must not be empty")
        return value.strip()


class WrapperState(BaseModel):
    """Activity state pushed by the agent-side wrapper for one pid."""

    model_config = ConfigDict(frozen=True)

    state: AgentState
    last_output_time: float
    last_lines: tuple[str, ...] = ()
    awaiting_user: bool = False
    cmdline: str | None = None
    cwd: str | None = None
    start_time: float | None = None
    label: str | None = None
    received_at: float | None = Field(
        default=None,
        description="Set by the store when the state is pushed; drives expiry.",
    )

    @field_validator("last_lines", mode="before")
    @classmethod
    def _ensure_tuple(cls, value: Any):  # type: ignore[override]
        if value is None:
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(str(line) for line in value)
        raise TypeError("last_lines must be a sequence of strings")


@dataclass(frozen=True, slots=True)
class HeuristicState:
    state: AgentState
    cpu_pct_recent: float
    quiet_seconds: float


@dataclass(frozen=True, slots=True)
class AgentProcess:
    """One matched agent process as seen in a single scan cycle."""

    pid: int
    label: str
    cmdline: str
    exe: str
    start_time: float | None = None
    cpu_pct: float = 0.0
    rss_kb: int | None = None
    threads: int | None = None
    tty: str | None = None
    cwd: str | None = None
    repo_path: str | None = None
    heuristic_state: HeuristicState | None = None
    wrapper_state: WrapperState | None = None
    sandboxed: bool = False
    sandbox_type: str | None = None

    @property
    def state(self) -> AgentState:
        """The displayed state: wrapper state wins over the heuristic."""

        if self.wrapper_state is not None:
            return self.wrapper_state.state
        if self.heuristic_state is not None:
            return self.heuristic_state.state
        return AgentState.UNKNOWN

    @property
    def awaiting_user(self) -> bool:
        return self.wrapper_state.awaiting_user if self.wrapper_state is not None else False

    def to_dict(self) -> dict[str, Any]:
        wrapper = self.wrapper_state
        payload = asdict(self)
        payload["wrapper_state"] = wrapper.model_dump(mode="json") if wrapper is not None else None
        if self.heuristic_state is not None:
            payload["heuristic_state"]["state"] = self.heuristic_state.state.value
        payload["state"] = self.state.value
        payload["awaiting_user"] = self.awaiting_user
        return payload


DEFAULT_MATCHERS: tuple[AgentMatcher, ...] = tuple(
    AgentMatcher(label=label, type=MatcherKind.CMD_REGEX, pattern=rf"\b{label}\b")
    for label in ("claude", "codex", "cursor", "opencode", "gemini")
)


__all__ = [
    "AgentMatcher",
    "AgentProcess",
    "AgentState",
    "DEFAULT_MATCHERS",
    "HeuristicState",
    "MatcherKind",
    "WrapperState",
]
