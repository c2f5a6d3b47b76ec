"""Agent signature matching."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Sequence

from .models import AgentMatcher, MatcherKind


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def matches(matcher: AgentMatcher, cmdline: str, exe: str) -> bool:
    """Evaluate a single matcher against a process."""

    if matcher.type is MatcherKind.CMD_REGEX:
        return _compile(matcher.pattern).search(cmdline) is not None
    if matcher.type is MatcherKind.EXE_PREFIX:
        return exe.startswith(matcher.pattern)
    if matcher.type is MatcherKind.EXE_SUFFIX:
        return exe.endswith(matcher.pattern)
    return False


def match_process(matchers: Sequence[AgentMatcher], cmdline: str, exe: str) -> str | None:
    """Return the label of the first matcher accepting the process, if any."""

    for matcher in matchers:
        if matches(matcher, cmdline, exe):
            return matcher.label
    return None


__all__ = ["match_process", "matches"]
