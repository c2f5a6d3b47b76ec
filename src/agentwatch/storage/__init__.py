"""In-memory store and durable process logs."""

from .process_log import (
    LogFileInfo,
    LogSummary,
    MalformedLogLine,
    ProcessLifecycleEvent,
    ProcessLogger,
    ProcessSnapshot,
    WriteFailure,
)
from .store import DataStore

__all__ = [
    "DataStore",
    "LogFileInfo",
    "LogSummary",
    "MalformedLogLine",
    "ProcessLifecycleEvent",
    "ProcessLogger",
    "ProcessSnapshot",
    "WriteFailure",
]
