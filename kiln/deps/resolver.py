"""Dependency resolution: drive ``bender`` from the manifest and keep ``Kiln.lock``."""

from __future__ import annotations

import glob
import shutil
from enum import Enum
from pathlib import Path

from ..manifest import Manifest
from ..options import ManifestError
from .runner import (
    BenderIoError,
    BenderManifestError,
    FrozenWithoutLockError,
    LockDriftError,
    run_bender,
    run_bender_capture,
)
from .schema import (
    Dependency,
    GitDependency,
    edit_manifest,
    insert_dependency,
    parse_dependencies,
    remove_dependency,
)
from .sources import ResolvedSources, parse_sources

LOCKFILE = "Kiln.lock"


class LockMode(Enum):
    """How strictly resolution must respect the existing lockfile.

    ``FREE`` updates ``Kiln.lock`` as needed; ``LOCKED`` fails (and restores
    the old lockfile) if it would change; ``FROZEN`` never runs an update
    and uses the existing lockfile as-is.
    """

    FREE = "free"
    LOCKED = "locked"
    FROZEN = "frozen"


def bender_dir(project_root: str | Path) -> Path:
    """Working directory kiln uses for bender inside the project."""
    return Path(project_root) / "target" / "kiln" / "bender"


def resolve_root_sources(manifest: Manifest, project_root: str | Path) -> list[Path]:
    """Files matched by the design's source globs, canonical and deduplicated."""
    root = Path(project_root)
    out: list[Path] = []
    seen: set[Path] = set()
    for raw in manifest.design.sources:
        pattern = raw if Path(raw).is_absolute() else str(root / raw)
        matches = sorted(glob.glob(pattern, recursive=True, include_hidden=True))
        for match in matches:
            entry = Path(match)
            if not entry.is_file():
                continue
            try:
                canon = entry.resolve(strict=True)
            except OSError:
                canon = entry
            if canon not in seen:
                seen.add(canon)
                out.append(canon)
    return out


def generate_bender_yml(manifest: Manifest, project_root: str | Path) -> str:
    """Render a ``Bender.yml`` listing the dependencies and the root sources."""
    root = Path(project_root)
    lines = ["package:", f"  name: {manifest.package.name}", ""]
    if manifest.dependencies:
        lines.append("dependencies:")
        for name, dep in parse_dependencies(manifest.dependencies).items():
            lines.append(f"  {name}:")
            if isinstance(dep, GitDependency):
                lines.append(f'    git: "{dep.git}"')
                if dep.version is not None:
                    lines.append(f'    version: "{dep.version}"')
                if dep.rev is not None:
                    lines.append(f'    rev: "{dep.rev}"')
                if dep.branch is not None:
                    lines.append(f'    branch: "{dep.branch}"')
            else:
                path = dep.path if dep.path.is_absolute() else root / dep.path
                lines.append(f'    path: "{path}"')
        lines.append("")
    root_sources = resolve_root_sources(manifest, root)
    if root_sources:
        lines.append("sources:")
        lines.extend(f'  - "{src}"' for src in root_sources)
    else:
        lines.append("sources: []")
    return "\n".join(lines) + "\n"


def _mkdir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise BenderIoError(path, exc) from exc


def _write(path: Path, text: str) -> None:
    try:
        path.write_bytes(text.encode("utf-8"))
    except OSError as exc:
        raise BenderIoError(path, exc) from exc


def _copy(src: Path, dst: Path) -> None:
    try:
        shutil.copyfile(src, dst)
    except OSError as exc:
        raise BenderIoError(dst, exc) from exc


def _read_optional(path: Path) -> str | None:
    try:
        return path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def _prepare(project_root: Path, manifest: Manifest) -> Path:
    directory = bender_dir(project_root)
    _mkdir(directory)
    _write(directory / "Bender.yml", generate_bender_yml(manifest, project_root))
    return directory


def update(project_root: str | Path, manifest: Manifest) -> None:
    """Write ``Bender.yml``, run ``bender update`` and copy the lock to ``Kiln.lock``."""
    root = Path(project_root)
    directory = _prepare(root, manifest)
    run_bender(directory, ["update"])
    bender_lock = directory / "Bender.lock"
    if bender_lock.is_file():
        _copy(bender_lock, root / LOCKFILE)


def update_with_mode(
    project_root: str | Path, manifest: Manifest, mode: LockMode = LockMode.FREE
) -> None:
    """Like :func:`update`, honouring ``mode``."""
    root = Path(project_root)
    kiln_lock = root / LOCKFILE
    if mode is LockMode.FREE:
        update(root, manifest)
    elif mode is LockMode.LOCKED:
        before = _read_optional(kiln_lock)
        update(root, manifest)
        after = _read_optional(kiln_lock)
        if before != after:
            if before is not None:
                try:
                    kiln_lock.write_bytes(before.encode("utf-8"))
                except OSError:
                    pass
            raise LockDriftError()
    else:
        if not kiln_lock.is_file() and manifest.dependencies:
            raise FrozenWithoutLockError(kiln_lock)
        # Put Bender.yml and Bender.lock in place so bender needs no network.
        directory = _prepare(root, manifest)
        if kiln_lock.is_file():
            _copy(kiln_lock, directory / "Bender.lock")


def resolve(
    project_root: str | Path, manifest: Manifest, mode: LockMode = LockMode.FREE
) -> ResolvedSources:
    """Bring dependencies up to date and return the per-package source lists."""
    update_with_mode(project_root, manifest, mode)
    output = run_bender_capture(bender_dir(project_root), ["sources", "--flatten"])
    return parse_sources(output.stdout)


def tree(
    project_root: str | Path, manifest: Manifest, mode: LockMode = LockMode.FREE
) -> str:
    """Bring dependencies up to date and return bender's package listing."""
    update_with_mode(project_root, manifest, mode)
    return run_bender_capture(bender_dir(project_root), ["packages"]).stdout


def _reload(manifest_path: Path) -> Manifest:
    try:
        return Manifest.load(manifest_path)
    except ManifestError as exc:
        raise BenderManifestError(exc) from exc


def add(
    project_root: str | Path,
    manifest_path: str | Path,
    name: str,
    dep: Dependency,
) -> None:
    """Add ``name`` to the manifest's dependencies, then re-resolve."""
    manifest_path = Path(manifest_path)
    edit_manifest(manifest_path, lambda table: insert_dependency(table, name, dep))
    update(project_root, _reload(manifest_path))


def remove(project_root: str | Path, manifest_path: str | Path, name: str) -> None:
    """Remove ``name`` from the manifest's dependencies, then re-resolve."""
    manifest_path = Path(manifest_path)
    edit_manifest(manifest_path, lambda table: remove_dependency(table, name))
    update(project_root, _reload(manifest_path))