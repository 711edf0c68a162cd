"""Parsing of ``bender sources --flatten`` JSON output."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .runner import BenderOutputError


@dataclass
class ResolvedPackage:
    """The sources one package contributes."""

    package: str
    files: list[Path] = field(default_factory=list)
    include_dirs: list[Path] = field(default_factory=list)
    defines: dict[str, str] = field(default_factory=dict)


@dataclass
class ResolvedSources:
    """Every package's sources, in dependency order."""

    packages: list[ResolvedPackage] = field(default_factory=list)

    def all_files(self) -> list[Path]:
        """All source files of all packages, in order."""
        return [f for pkg in self.packages for f in pkg.files]

    def all_include_dirs(self) -> list[Path]:
        """Include directories of all packages, without duplicates."""
        return list(dict.fromkeys(d for pkg in self.packages for d in pkg.include_dirs))


def _fail(detail: str) -> BenderOutputError:
    return BenderOutputError(f"bender sources JSON: {detail}")


def _paths(entry: Mapping[str, Any], key: str) -> list[Path]:
    value = entry.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise _fail(f"`{key}` must be an array of strings")
    return [Path(v) for v in value]


def _package(entry: Any) -> ResolvedPackage:
    if not isinstance(entry, Mapping):
        raise _fail("expected an object per source group")
    name = entry.get("package")
    if not isinstance(name, str):
        raise _fail("missing field `package`")
    defines = entry.get("defines", {})
    if not isinstance(defines, Mapping) or not all(
        isinstance(v, str) for v in defines.values()
    ):
        raise _fail("`defines` must map names to strings")
    return ResolvedPackage(
        package=name,
        files=_paths(entry, "files"),
        include_dirs=_paths(entry, "include_dirs"),
        defines=dict(sorted(defines.items())),
    )


def parse_sources(text: str) -> ResolvedSources:
    """Parse the JSON array bender prints; unknown fields are ignored."""
    try:
        raw = json.loads(text.strip())
    except json.JSONDecodeError as exc:
        raise _fail(str(exc)) from exc
    if not isinstance(raw, list):
        raise _fail("expected an array of source groups")
    return ResolvedSources(packages=[_package(entry) for entry in raw])