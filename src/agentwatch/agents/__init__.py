"""Agent process matching, classification and scanning."""

from .heuristics import ActivityTracker, HeuristicThresholds, classify_activity
from .loader import MatcherLoadError, MatcherLoader, load_matchers
from .matching import match_process, matches
from .models import (
    DEFAULT_MATCHERS,
    AgentMatcher,
    AgentProcess,
    AgentState,
    HeuristicState,
    MatcherKind,
    WrapperState,
)
from .scanner import ProcessScanner, detect_sandbox

__all__ = [
    "ActivityTracker",
    "AgentMatcher",
    "AgentProcess",
    "AgentState",
    "DEFAULT_MATCHERS",
    "HeuristicState",
    "HeuristicThresholds",
    "MatcherKind",
    "MatcherLoadError",
    "MatcherLoader",
    "ProcessScanner",
    "WrapperState",
    "classify_activity",
    "detect_sandbox",
    "load_matchers",
    "match_process",
    "matches",
]
