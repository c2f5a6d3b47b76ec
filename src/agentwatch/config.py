"""Configuration management for agentwatch."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
import os
from typing import Annotated, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .repos.scanner import DEFAULT_IGNORE_DIRS


class WatchSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    roots: Annotated[tuple[Path, ...], NoDecode] = Field(default=(), validation_alias="AGENTWATCH_ROOTS")
    ignore_dirs: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_IGNORE_DIRS, validation_alias="AGENTWATCH_IGNORE_DIRS"
    )
    repo_refresh_fast_seconds: float = Field(default=3.0, validation_alias="AGENTWATCH_REPO_REFRESH_FAST_SECONDS")
    repo_refresh_slow_seconds: float = Field(default=45.0, validation_alias="AGENTWATCH_REPO_REFRESH_SLOW_SECONDS")
    repo_discovery_seconds: float = Field(default=60.0, validation_alias="AGENTWATCH_REPO_DISCOVERY_SECONDS")
    repo_tick_seconds: float = Field(default=1.0, validation_alias="AGENTWATCH_REPO_TICK_SECONDS")
    git_timeout_fast_ms: int = Field(default=800, validation_alias="AGENTWATCH_GIT_TIMEOUT_FAST_MS")
    git_timeout_slow_ms: int = Field(default=2500, validation_alias="AGENTWATCH_GIT_TIMEOUT_SLOW_MS")
    git_concurrency: int = Field(default=12, validation_alias="AGENTWATCH_GIT_CONCURRENCY")
    git_path: str | None = Field(default=None, validation_alias="AGENTWATCH_GIT_PATH")
    repo_backoff_base_seconds: float = Field(default=2.0, validation_alias="AGENTWATCH_REPO_BACKOFF_BASE_SECONDS")
    repo_backoff_max_seconds: float = Field(default=120.0, validation_alias="AGENTWATCH_REPO_BACKOFF_MAX_SECONDS")
    include_untracked: bool = Field(default=True, validation_alias="AGENTWATCH_INCLUDE_UNTRACKED")
    show_clean: bool = Field(default=False, validation_alias="AGENTWATCH_SHOW_CLEAN")

    agent_refresh_seconds: float = Field(default=1.0, validation_alias="AGENTWATCH_AGENT_REFRESH_SECONDS")
    active_cpu_threshold: float = Field(default=1.0, validation_alias="AGENTWATCH_ACTIVE_CPU_THRESHOLD")
    stalled_seconds: float = Field(default=30.0, validation_alias="AGENTWATCH_STALLED_SECONDS")
    startup_grace_seconds: float = Field(default=5.0, validation_alias="AGENTWATCH_STARTUP_GRACE_SECONDS")
    min_elapsed_for_stalled_seconds: float = Field(
        default=10.0, validation_alias="AGENTWATCH_MIN_ELAPSED_FOR_STALLED_SECONDS"
    )
    cwd_resolution: Literal["auto", "off"] = Field(default="auto", validation_alias="AGENTWATCH_CWD_RESOLUTION")
    cwd_cache_seconds: float = Field(default=10.0, validation_alias="AGENTWATCH_CWD_CACHE_SECONDS")
    wrapper_ttl_seconds: float = Field(default=60.0, validation_alias="AGENTWATCH_WRAPPER_TTL_SECONDS")
    matcher_paths: Annotated[tuple[Path, ...], NoDecode] = Field(default=(), validation_alias="AGENTWATCH_MATCHER_PATHS")

    port_refresh_seconds: float = Field(default=2.0, validation_alias="AGENTWATCH_PORT_REFRESH_SECONDS")
    port_min: int = Field(default=1024, validation_alias="AGENTWATCH_PORT_MIN")
    port_max: int = Field(default=65535, validation_alias="AGENTWATCH_PORT_MAX")

    log_dir: Path = Field(default=Path("~/.agentwatch/processes"), validation_alias="AGENTWATCH_LOG_DIR")
    snapshot_interval: int = Field(default=10, validation_alias="AGENTWATCH_SNAPSHOT_INTERVAL")
    log_max_age_days: int = Field(default=30, validation_alias="AGENTWATCH_LOG_MAX_AGE_DAYS")
    log_max_files: int = Field(default=100, validation_alias="AGENTWATCH_LOG_MAX_FILES")

    log_level: str = Field(default="INFO", validation_alias="AGENTWATCH_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "AGENTWATCH_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("roots", "matcher_paths", mode="before")
    @classmethod
    def _parse_paths(cls, value):
        if value is None or value == "":
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts)
        raise TypeError("Path settings must be a list of paths or a path-separated string")

    @field_validator("ignore_dirs", mode="before")
    @classmethod
    def _parse_names(cls, value):
        if value is None:
            return DEFAULT_IGNORE_DIRS
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value

    @field_validator(
        "git_concurrency",
        "snapshot_interval",
        "log_max_files",
        "log_max_age_days",
        "git_timeout_fast_ms",
        "git_timeout_slow_ms",
    )
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be >= 1")
        return value

    @model_validator(mode="after")
    def _validate_ranges(self) -> "WatchSettings":
        if self.repo_refresh_fast_seconds > self.repo_refresh_slow_seconds:
            raise ValueError("repo_refresh_fast_seconds must not exceed repo_refresh_slow_seconds")
        if self.repo_backoff_base_seconds > self.repo_backoff_max_seconds:
            raise ValueError("repo_backoff_base_seconds must not exceed repo_backoff_max_seconds")
        if self.port_min > self.port_max:
            raise ValueError("port_min must not exceed port_max")
        return self


@lru_cache(maxsize=1)
def get_settings() -> WatchSettings:
    """Return cached settings instance."""

    settings = WatchSettings()
    settings.roots = tuple(path.expanduser().resolve() for path in settings.roots)
    settings.matcher_paths = tuple(path.expanduser().resolve() for path in settings.matcher_paths)
    settings.log_dir = settings.log_dir.expanduser().resolve()
    return settings


__all__ = ["WatchSettings", "get_settings"]
