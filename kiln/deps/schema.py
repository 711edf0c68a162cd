"""The ``[dependencies]`` schema and in-place editing of ``Kiln.toml``."""

from __future__ import annotations

from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

import tomlkit
from tomlkit.exceptions import TOMLKitError
from tomlkit.items import InlineTable

from .runner import BadDependency, BenderIoError

_NO_VARIANT = "data did not match any variant of untagged enum Dependency"
_MANIFEST = "<manifest>"


@dataclass(frozen=True)
class GitDependency:
    """A dependency fetched from a git repository."""

    git: str
    version: str | None = None
    rev: str | None = None
    branch: str | None = None


@dataclass(frozen=True)
class PathDependency:
    """A dependency living in a local directory."""

    path: Path


Dependency = Union[GitDependency, PathDependency]
DependencyTable = dict[str, Dependency]


def _as_git(value: Mapping[str, Any]) -> GitDependency | None:
    git = value.get("git")
    if not isinstance(git, str):
        return None
    extras: dict[str, str | None] = {}
    for key in ("version", "rev", "branch"):
        raw = value.get(key)
        if raw is not None and not isinstance(raw, str):
            return None
        extras[key] = None if raw is None else str(raw)
    return GitDependency(git=str(git), **extras)


def parse_dependency(name: str, value: Any) -> Dependency:
    """Interpret one ``[dependencies]`` entry as a git or path dependency.

    Keys beyond those of the matched shape are ignored.
    """
    if isinstance(value, Mapping):
        git = _as_git(value)
        if git is not None:
            return git
        path = value.get("path")
        if isinstance(path, str):
            return PathDependency(path=Path(str(path)))
    raise BadDependency(name, _NO_VARIANT)


def parse_dependencies(deps: Mapping[str, Any]) -> DependencyTable:
    """Interpret every entry of ``[dependencies]``, ordered by name."""
    return {
        str(name): parse_dependency(str(name), value)
        for name, value in sorted(deps.items())
    }


def edit_manifest(
    manifest_path: str | Path,
    edit: Callable[[MutableMapping[str, Any]], None],
) -> None:
    """Apply ``edit`` to the manifest's ``[dependencies]`` table, keeping its layout."""
    manifest_path = Path(manifest_path)
    try:
        text = manifest_path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise BenderIoError(manifest_path, exc) from exc
    try:
        doc = tomlkit.parse(text)
    except TOMLKitError as exc:
        raise BadDependency(_MANIFEST, str(exc)) from exc
    if "dependencies" not in doc:
        doc["dependencies"] = tomlkit.table()
    table = doc["dependencies"]
    if isinstance(table, InlineTable) or not isinstance(table, MutableMapping):
        raise BadDependency(_MANIFEST, "[dependencies] is not a table")
    edit(table)
    try:
        manifest_path.write_bytes(tomlkit.dumps(doc).encode("utf-8"))
    except OSError as exc:
        raise BenderIoError(manifest_path, exc) from exc


def insert_dependency(
    table: MutableMapping[str, Any], name: str, dep: Dependency
) -> None:
    """Set ``name`` in ``table`` to an inline table describing ``dep``."""
    entry = tomlkit.inline_table()
    if isinstance(dep, GitDependency):
        entry["git"] = dep.git
        for key in ("version", "rev", "branch"):
            value = getattr(dep, key)
            if value is not None:
                entry[key] = value
    else:
        entry["path"] = str(dep.path)
    table[name] = entry


def remove_dependency(table: MutableMapping[str, Any], name: str) -> None:
    """Drop ``name`` from ``table``; a missing name is not an error."""
    if name in table:
        del table[name]