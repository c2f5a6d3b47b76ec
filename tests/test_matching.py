from pathlib import Path
import textwrap

import pytest

from agentwatch.agents import (
    DEFAULT_MATCHERS,
    AgentMatcher,
    MatcherKind,
    MatcherLoadError,
    MatcherLoader,
    match_process,
    matches,
)


def test_default_matchers_use_word_boundaries() -> None:
    assert match_process(DEFAULT_MATCHERS, "node /usr/lib/claude/cli.js", "/usr/bin/node") == "claude"
    assert match_process(DEFAULT_MATCHERS, "codex exec --full-auto", "/usr/local/bin/codex") == "codex"
    assert match_process(DEFAULT_MATCHERS, "vim claudette.txt", "/usr/bin/vim") is None


def test_first_matching_matcher_wins() -> None:
    matchers = [
        AgentMatcher(label="first", type=MatcherKind.CMD_REGEX, pattern="agent"),
        AgentMatcher(label="second", type=MatcherKind.CMD_REGEX, pattern="agent"),
    ]
    assert match_process(matchers, "run agent", "/bin/agent") == "first"


def test_exe_prefix_and_suffix_matchers() -> None:
    prefix = AgentMatcher(label="local", type="exe_prefix", pattern="/opt/agents/")
    suffix = AgentMatcher(label="aider", type="exe_suffix", pattern="/aider")

    assert matches(prefix, "", "/opt/agents/bin/run")
    assert not matches(prefix, "/opt/agents/bin/run", "/usr/bin/run")
    assert matches(suffix, "", "/home/me/.local/bin/aider")
    assert not matches(suffix, "", "/home/me/.local/bin/aider-helper")


def test_matcher_rejects_blank_pattern() -> None:
    with pytest.raises(ValueError):
        AgentMatcher(label="x", type="cmd_regex", pattern="  ")


def write_matchers(path: Path, body: str) -> None:
    path.write_text(textwrap.dedent(body).strip() + "\n", encoding="utf-8")


def test_loader_returns_defaults_without_files(tmp_path: Path) -> None:
    assert MatcherLoader([tmp_path]).load_all() == list(DEFAULT_MATCHERS)
    assert MatcherLoader([tmp_path / "missing.yaml"]).load_all() == list(DEFAULT_MATCHERS)


def test_loader_reads_list_and_mapping_documents(tmp_path: Path) -> None:
    write_matchers(
        tmp_path / "a.yaml",
        """
        - label: claude
          type: cmd_regex
          pattern: '\\bclaude\\b'
        - label: aider
          type: exe_suffix
          pattern: /aider
        """,
    )
    override = tmp_path / "override"
    override.mkdir()
    write_matchers(
        override / "b.yml",
        """
        matchers:
          - label: claude
            type: exe_prefix
            pattern: /opt/claude
          - label: goose
            type: cmd_regex
            pattern: goose
        """,
    )

    matchers = MatcherLoader([tmp_path / "a.yaml", override]).load_all()

    assert [matcher.label for matcher in matchers] == ["claude", "aider", "goose"]
    assert matchers[0].type is MatcherKind.EXE_PREFIX


def test_loader_reports_validation_error(tmp_path: Path) -> None:
    write_matchers(
        tmp_path / "bad.yaml",
        """
        - label: broken
          type: not_a_kind
          pattern: x
        """,
    )

    with pytest.raises(MatcherLoadError, match="broken|entry 0"):
        MatcherLoader([tmp_path]).load_all()


def test_loader_rejects_scalar_document(tmp_path: Path) -> None:
    write_matchers(tmp_path / "scalar.yaml", "just a string")

    with pytest.raises(MatcherLoadError, match="must contain a list"):
        MatcherLoader([tmp_path]).load_all()
