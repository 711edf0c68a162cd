"""Locating the project manifest from a working directory."""

from __future__ import annotations

from pathlib import Path

MANIFEST_FILENAME = "Kiln.toml"


class ProjectError(Exception):
    """No manifest was found in a directory or any of its parents."""

    def __init__(self, start: str | Path) -> None:
        self.start = Path(start)
        super().__init__(
            f"no `{MANIFEST_FILENAME}` found in `{self.start}` or any parent directory"
        )


def find_manifest(start: str | Path) -> Path:
    """Walk upward from ``start`` and return the path of the first ``Kiln.toml``."""
    start = Path(start)
    for directory in (start, *start.parents):
        candidate = directory / MANIFEST_FILENAME
        if candidate.is_file():
            return candidate
    raise ProjectError(start)