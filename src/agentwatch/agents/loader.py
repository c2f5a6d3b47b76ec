"""Matcher loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import ValidationError

from .models import DEFAULT_MATCHERS, AgentMatcher


class MatcherLoadError(RuntimeError):
    """Raised when one or more matcher files cannot be parsed."""


class MatcherLoader:
    """Loads ordered agent matchers from YAML files on disk.

    Each file holds either a list of matchers or a mapping with a ``matchers``
    key. Search paths may be files or directories of ``*.yml``/``*.yaml``.
    """

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        """Return the normalized search paths."""

        return list(self._search_paths)

    def _files(self) -> list[Path]:
        files: list[Path] = []
        for base in self._search_paths:
            if base.is_file():
                files.append(base)
            else:
                files.extend(sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml")))
        return files

    def load_all(self) -> list[AgentMatcher]:
        """Load matchers from all configured search paths.

        Later files replace matchers of earlier files that carry the same
        label, keeping the position of the first occurrence. Without any
        matcher file the built-in defaults are returned.
        """

        files = self._files()
        if not files:
            return list(DEFAULT_MATCHERS)

        ordered: dict[str, AgentMatcher] = {}
        errors: list[str] = []

        for path in files:
            try:
                document = yaml.safe_load(path.read_text(encoding="utf-8"))
            except yaml.YAMLError as exc:  # pragma: no cover - library type
                errors.append(f"Failed to parse YAML in {path}: {exc}")
                continue

            if document is None:
                continue

            entries: Any = document.get("matchers") if isinstance(document, dict) else document
            if not isinstance(entries, list):
                errors.append(f"Matcher file {path} must contain a list of matchers")
                continue

            for index, entry in enumerate(entries):
                try:
                    matcher = AgentMatcher.model_validate(entry)
                except ValidationError as exc:
                    errors.append(f"Matcher validation error in {path} entry {index}: {exc}")
                    continue
                ordered[matcher.label] = matcher

        if errors:
            raise MatcherLoadError("; ".join(errors))

        return list(ordered.values()) or list(DEFAULT_MATCHERS)


def load_matchers(search_paths: Iterable[Path] | None = None) -> list[AgentMatcher]:
    """Convenience wrapper for loading matchers from the provided paths."""

    loader = MatcherLoader(search_paths)
    return loader.load_all()


__all__ = ["MatcherLoadError", "MatcherLoader", "load_matchers"]
