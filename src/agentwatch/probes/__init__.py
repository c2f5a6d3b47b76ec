"""Leaf probes for git and the OS process table."""

from .git import (
    FakeGitProbe,
    GitExecutionResult,
    GitNotFoundError,
    GitProbe,
    ProbeError,
    ProbeFailure,
    ProbeTimeout,
)
from .process import FakeProcessProbe, ProcessProbe, ProcessRow, SocketRow

__all__ = [
    "FakeGitProbe",
    "FakeProcessProbe",
    "GitExecutionResult",
    "GitNotFoundError",
    "GitProbe",
    "ProbeError",
    "ProbeFailure",
    "ProbeTimeout",
    "ProcessProbe",
    "ProcessRow",
    "SocketRow",
]
