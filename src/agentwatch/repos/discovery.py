"""Repository discovery and git output parsing."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .models import RepoSpecialState, RepoUpstream

logger = logging.getLogger(__name__)

GIT_PORCELAIN_CONFLICT_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})

_STATE_MARKERS = {
    "MERGE_HEAD": "merge",
    "CHERRY_PICK_HEAD": "cherry_pick",
    "REVERT_HEAD": "revert",
}
_REBASE_MARKERS = ("rebase-apply", "rebase-merge")


class DiscoveryError(RuntimeError):
    """A directory could not be read during repository discovery."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


@dataclass(slots=True)
class DiscoveryResult:
    repos: list[str] = field(default_factory=list)
    errors: list[DiscoveryError] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class PorcelainCounts:
    staged: int = 0
    unstaged: int = 0
    untracked: int = 0
    conflict: bool = False


def discover_repos(roots: Iterable[str | Path], ignore_dirs: Iterable[str] = ()) -> DiscoveryResult:
    """Walk ``roots`` and return every repository found.

    A directory holding a ``.git`` entry is recorded and not descended into,
    so nested repositories are never reported. Hidden and ignored directory
    names are skipped; unreadable directories are reported as errors.
    """

    result = DiscoveryResult()
    ignore = set(ignore_dirs)
    seen: set[str] = set()

    for raw_root in roots:
        root = Path(raw_root).expanduser()
        if not root.is_dir():
            continue
        stack = [str(root.resolve())]
        while stack:
            current = stack.pop()
            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as exc:
                result.errors.append(DiscoveryError(current, exc.strerror or str(exc)))
                continue

            if any(entry.name == ".git" for entry in entries):
                if current not in seen:
                    seen.add(current)
                    result.repos.append(current)
                continue

            children: list[str] = []
            for entry in entries:
                if entry.name in ignore or entry.name.startswith("."):
                    continue
                try:
                    if entry.is_dir(follow_symlinks=False):
                        children.append(entry.path)
                except OSError:
                    continue
            stack.extend(sorted(children, reverse=True))

    # Overlapping roots can still reach a repository from below another one.
    ordered = sorted(result.repos)
    result.repos = [
        path
        for path in ordered
        if not any(path.startswith(other + os.sep) for other in ordered if other != path)
    ]
    return result


def resolve_git_dir(repo_path: str | Path) -> Path | None:
    """Return the git directory of ``repo_path``, following worktree pointers."""

    git_path = Path(repo_path) / ".git"
    try:
        if git_path.is_dir():
            return git_path
        if git_path.is_file():
            content = git_path.read_text(encoding="utf-8").strip()
            if not content.startswith("gitdir:"):
                return None
            raw = content[len("gitdir:"):].strip()
            if not raw:
                return None
            target = Path(raw)
            if not target.is_absolute():
                target = Path(os.path.normpath(Path(repo_path) / target))
            return target
    except OSError:
        return None
    return None


def find_repo_root(path: str | Path) -> str | None:
    """Return the nearest ancestor of ``path`` (inclusive) holding a ``.git`` entry."""

    current = Path(path)
    for candidate in (current, *current.parents):
        if (candidate / ".git").exists():
            return str(candidate)
    return None


def parse_porcelain_status(text: str) -> PorcelainCounts:
    """Count entries of ``git status --porcelain=v1`` output."""

    staged = unstaged = untracked = 0
    conflict = False
    for line in text.splitlines():
        if not line:
            continue
        if line.startswith("??"):
            untracked += 1
            continue
        if line.startswith("!!") or len(line) < 2:
            continue
        xy = line[:2]
        if xy in GIT_PORCELAIN_CONFLICT_CODES or "U" in xy:
            conflict = True
        if xy[0] != " ":
            staged += 1
        if xy[1] != " ":
            unstaged += 1
    return PorcelainCounts(staged=staged, unstaged=unstaged, untracked=untracked, conflict=conflict)


def detect_special_state(git_dir: Path | None, *, conflict: bool = False) -> RepoSpecialState:
    """Derive merge/rebase/cherry-pick/revert flags from marker files."""

    flags = {"conflict": conflict}
    if git_dir is None:
        return RepoSpecialState(**flags)
    for marker, attr in _STATE_MARKERS.items():
        flags[attr] = (git_dir / marker).exists()
    flags["rebase"] = any((git_dir / marker).exists() for marker in _REBASE_MARKERS)
    return RepoSpecialState(**flags)


def parse_upstream_counts(upstream_name: str, text: str) -> RepoUpstream:
    """Parse ``git rev-list --left-right --count @{upstream}...HEAD``."""

    parts = text.split()
    if len(parts) != 2:
        return RepoUpstream(upstream_name=upstream_name)
    try:
        behind, ahead = int(parts[0]), int(parts[1])
    except ValueError:
        return RepoUpstream(upstream_name=upstream_name)
    return RepoUpstream(ahead=ahead, behind=behind, upstream_name=upstream_name)


def last_change_time(repo_path: str | Path) -> float:
    """Return the newest mtime among the git index and the repository directory."""

    candidates: list[float] = []
    git_dir = resolve_git_dir(repo_path)
    if git_dir is not None:
        try:
            candidates.append((git_dir / "index").stat().st_mtime)
        except OSError:
            pass
    try:
        candidates.append(Path(repo_path).stat().st_mtime)
    except OSError:
        pass
    return max(candidates) if candidates else time.time()


__all__ = [
    "DiscoveryError",
    "DiscoveryResult",
    "GIT_PORCELAIN_CONFLICT_CODES",
    "PorcelainCounts",
    "detect_special_state",
    "discover_repos",
    "find_repo_root",
    "last_change_time",
    "parse_porcelain_status",
    "parse_upstream_counts",
    "resolve_git_dir",
]
