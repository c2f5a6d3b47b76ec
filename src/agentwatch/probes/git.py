"""Bounded async runner for git subcommands."""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from .utils import git_environment


class ProbeError(RuntimeError):
    """Base class for probe errors."""


class ProbeTimeout(ProbeError):
    """Raised when a subprocess exceeds its time budget and was killed."""


class ProbeFailure(ProbeError):
    """Raised on a nonzero exit status or output that cannot be used."""


class GitNotFoundError(ProbeFailure):
    """Raised when the git executable cannot be located."""


@dataclass(slots=True)
class GitExecutionResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class GitProbe:
    """Execute git commands asynchronously under a shared concurrency bound."""

    def __init__(self, executable: Path | None = None, *, max_concurrency: int = 12) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._executable_path = self._resolve_executable(executable)
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._max_concurrency = max_concurrency

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise GitNotFoundError(f"git executable not found at {candidate}")

        binary = shutil.which("git")
        if binary is None:
            raise GitNotFoundError("git executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    async def run(self, args: Sequence[str], *, cwd: str | Path, timeout: float) -> str:
        """Run ``git -C cwd *args`` and return stdout.

        Raises ``ProbeTimeout`` when the call exceeds ``timeout`` seconds and
        ``ProbeFailure`` on a nonzero exit status.
        """

        async with self._semaphore:
            result = await self._invoke(("-C", str(cwd), *args), timeout)
        if not result.ok:
            message = result.stderr.strip() or f"git exited with status {result.returncode}"
            raise ProbeFailure(message)
        return result.stdout

    async def _invoke(self, args: tuple[str, ...], timeout: float) -> GitExecutionResult:
        cmd = [str(self._executable_path), *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=git_environment(),
            )
        except OSError as exc:
            raise ProbeFailure(f"failed to launch git: {exc}") from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ProbeTimeout(f"git {' '.join(args[2:])} timed out after {timeout:.2f}s") from None

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return GitExecutionResult(args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr)


GitHandler = Callable[[tuple[str, ...], float], Awaitable[GitExecutionResult] | GitExecutionResult]


class FakeGitProbe(GitProbe):
    """Test double answering git calls from a handler instead of a subprocess."""

    def __init__(  # type: ignore[override]
        self,
        handler: GitHandler | None = None,
        *,
        max_concurrency: int = 12,
    ) -> None:
        self._handler = handler
        self._invocations: list[tuple[str, ...]] = []
        self._executable_path = Path("/tmp/fake-git")
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._max_concurrency = max_concurrency

    async def _invoke(self, args: tuple[str, ...], timeout: float) -> GitExecutionResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        if self._handler is None:
            return GitExecutionResult(args=tuple(args), returncode=0, stdout="", stderr="")
        result = self._handler(tuple(args), timeout)
        if asyncio.iscoroutine(result):
            result = await result
        return result  # type: ignore[return-value]

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


__all__ = [
    "FakeGitProbe",
    "GitExecutionResult",
    "GitNotFoundError",
    "GitProbe",
    "ProbeError",
    "ProbeFailure",
    "ProbeTimeout",
]
