"""Repository status records."""

from __future__ import annotations

import hashlib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True, slots=True)
class RepoSpecialState:
    conflict: bool = False
    rebase: bool = False
    merge: bool = False
    cherry_pick: bool = False
    revert: bool = False

    @property
    def any(self) -> bool:
        return self.conflict or self.rebase or self.merge or self.cherry_pick or self.revert


@dataclass(frozen=True, slots=True)
class RepoUpstream:
    ahead: int | None = None
    behind: int | None = None
    upstream_name: str | None = None


@dataclass(frozen=True, slots=True)
class RepoHealth:
    last_error: str | None = None
    timed_out: bool = False
    backoff_until: float = 0.0


@dataclass(frozen=True, slots=True)
class RepoStatus:
    """Point-in-time git status of one repository."""

    repo_id: str
    path: str
    name: str
    branch: str | None = None
    staged_count: int = 0
    unstaged_count: int = 0
    untracked_count: int = 0
    special_state: RepoSpecialState = field(default_factory=RepoSpecialState)
    upstream: RepoUpstream = field(default_factory=RepoUpstream)
    last_scan_time: float = 0.0
    last_change_time: float = 0.0
    health: RepoHealth = field(default_factory=RepoHealth)

    @property
    def dirty(self) -> bool:
        changed = self.staged_count + self.unstaged_count + self.untracked_count
        return changed > 0 or self.special_state.any

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["dirty"] = self.dirty
        return payload


def hash_path(path: str) -> str:
    """Return a stable repository id for an absolute path."""

    return hashlib.sha1(path.encode("utf-8")).hexdigest()


def init_repo_status(path: str) -> RepoStatus:
    """Create the initial record for a newly discovered repository."""

    return RepoStatus(repo_id=hash_path(path), path=path, name=Path(path).name)


__all__ = [
    "RepoHealth",
    "RepoSpecialState",
    "RepoStatus",
    "RepoUpstream",
    "hash_path",
    "init_repo_status",
]
