"""Repository discovery and status scanning."""

from .discovery import DiscoveryError, DiscoveryResult, discover_repos, find_repo_root, resolve_git_dir
from .models import RepoHealth, RepoSpecialState, RepoStatus, RepoUpstream, hash_path, init_repo_status
from .scanner import DEFAULT_IGNORE_DIRS, RepoScanner, next_backoff

__all__ = [
    "DEFAULT_IGNORE_DIRS",
    "DiscoveryError",
    "DiscoveryResult",
    "RepoHealth",
    "RepoScanner",
    "RepoSpecialState",
    "RepoStatus",
    "RepoUpstream",
    "discover_repos",
    "find_repo_root",
    "hash_path",
    "init_repo_status",
    "next_backoff",
    "resolve_git_dir",
]
