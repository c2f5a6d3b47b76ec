from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from agentwatch.probes import (
    FakeGitProbe,
    GitExecutionResult,
    GitNotFoundError,
    GitProbe,
    ProbeFailure,
    ProbeTimeout,
)
from agentwatch.probes.utils import git_environment


def write_script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    path.chmod(0o755)
    return path


def test_git_probe_runs_script_in_repo(tmp_path: Path) -> None:
    script = write_script(tmp_path / "git", 'echo "$@"')

    probe = GitProbe(script)
    output = asyncio.run(probe.run(["status", "--porcelain=v1"], cwd=tmp_path, timeout=2.0))

    assert output.strip() == f"-C {tmp_path} status --porcelain=v1"


def test_git_probe_nonzero_exit_raises_failure(tmp_path: Path) -> None:
    script = write_script(tmp_path / "git", "echo 'fatal: not a git repository' >&2\nexit 128")

    probe = GitProbe(script)
    with pytest.raises(ProbeFailure, match="not a git repository"):
        asyncio.run(probe.run(["status"], cwd=tmp_path, timeout=2.0))


def test_git_probe_timeout_kills_process(tmp_path: Path) -> None:
    script = write_script(tmp_path / "git", "exec sleep 5")

    probe = GitProbe(script)
    with pytest.raises(ProbeTimeout):
        asyncio.run(probe.run(["status"], cwd=tmp_path, timeout=0.2))


def test_git_probe_timeout_is_not_a_failure() -> None:
    assert not issubclass(ProbeTimeout, ProbeFailure)


def test_git_not_found(tmp_path: Path) -> None:
    with pytest.raises(GitNotFoundError):
        GitProbe(tmp_path / "missing")


def test_git_probe_rejects_zero_concurrency(tmp_path: Path) -> None:
    script = write_script(tmp_path / "git", "true")
    with pytest.raises(ValueError):
        GitProbe(script, max_concurrency=0)


def test_fake_git_probe_records_invocations() -> None:
    def handler(args, timeout):
        return GitExecutionResult(args=args, returncode=0, stdout="main\n", stderr="")

    probe = FakeGitProbe(handler)
    output = asyncio.run(probe.run(["rev-parse", "--abbrev-ref", "HEAD"], cwd="/repo", timeout=0.8))

    assert output == "main\n"
    assert probe.invocations == [("-C", "/repo", "rev-parse", "--abbrev-ref", "HEAD")]


def test_fake_git_probe_respects_concurrency_bound() -> None:
    active = 0
    peak = 0

    async def handler(args, timeout):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return GitExecutionResult(args=args, returncode=0, stdout="", stderr="")

    probe = FakeGitProbe(handler, max_concurrency=3)

    async def run_many() -> None:
        await asyncio.gather(*(probe.run(["status"], cwd=f"/repo/{i}", timeout=1.0) for i in range(10)))

    asyncio.run(run_many())

    assert peak == 3
    assert len(probe.invocations) == 10


def test_git_environment_strips_repository_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GIT_DIR", "/elsewhere/.git")
    monkeypatch.setenv("GIT_WORK_TREE", "/elsewhere")
    env = git_environment({"EXTRA": "1"})

    assert "GIT_DIR" not in env
    assert "GIT_WORK_TREE" not in env
    assert env["GIT_OPTIONAL_LOCKS"] == "0"
    assert env["GIT_TERMINAL_PROMPT"] == "0"
    assert env["EXTRA"] == "1"
