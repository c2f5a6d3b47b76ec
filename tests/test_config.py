from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from agentwatch.config import WatchSettings, get_settings
from agentwatch.repos import DEFAULT_IGNORE_DIRS


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    for key in list(os.environ):
        if key.startswith("AGENTWATCH_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults() -> None:
    settings = WatchSettings()

    assert settings.roots == ()
    assert settings.ignore_dirs == DEFAULT_IGNORE_DIRS
    assert settings.repo_refresh_fast_seconds == 3.0
    assert settings.repo_refresh_slow_seconds == 45.0
    assert settings.git_timeout_fast_ms == 800
    assert settings.git_timeout_slow_ms == 2500
    assert settings.git_concurrency == 12
    assert settings.active_cpu_threshold == 1.0
    assert settings.stalled_seconds == 30.0
    assert settings.snapshot_interval == 10
    assert settings.log_max_age_days == 30
    assert settings.log_max_files == 100
    assert settings.show_clean is False
    assert settings.include_untracked is True
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    first = tmp_path / "code"
    second = tmp_path / "work"
    monkeypatch.setenv("AGENTWATCH_ROOTS", f"{first}{os.pathsep}{second}")
    monkeypatch.setenv("AGENTWATCH_IGNORE_DIRS", "node_modules, .venv ,target")
    monkeypatch.setenv("AGENTWATCH_GIT_CONCURRENCY", "4")
    monkeypatch.setenv("AGENTWATCH_SHOW_CLEAN", "true")
    monkeypatch.setenv("AGENTWATCH_LOG_LEVEL", "debug")
    monkeypatch.setenv("AGENTWATCH_CWD_RESOLUTION", "off")

    settings = WatchSettings()

    assert settings.roots == (first, second)
    assert settings.ignore_dirs == ("node_modules", ".venv", "target")
    assert settings.git_concurrency == 4
    assert settings.show_clean is True
    assert settings.log_level == "DEBUG"
    assert settings.cwd_resolution == "off"


def test_field_names_are_accepted() -> None:
    settings = WatchSettings(roots=["/tmp/a"], snapshot_interval=5)

    assert settings.roots == (Path("/tmp/a"),)
    assert settings.snapshot_interval == 5


def test_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AGENTWATCH_LOG_LEVEL", "chatty")

    with pytest.raises(ValidationError):
        WatchSettings()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("AGENTWATCH_GIT_CONCURRENCY", "0"),
        ("AGENTWATCH_SNAPSHOT_INTERVAL", "0"),
        ("AGENTWATCH_REPO_REFRESH_FAST_SECONDS", "100"),
        ("AGENTWATCH_PORT_MIN", "70000"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        WatchSettings()


def test_get_settings_resolves_paths(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("AGENTWATCH_ROOTS", "~/code")
    monkeypatch.setenv("AGENTWATCH_LOG_DIR", "~/logs")

    settings = get_settings()

    assert settings.roots == ((tmp_path / "code").resolve(),)
    assert settings.log_dir == (tmp_path / "logs").resolve()
    assert get_settings() is settings
