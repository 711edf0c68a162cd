"""Invocation of the ``bender`` dependency tool and its error types."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..options import ManifestError

BENDER = "bender"


class BenderError(Exception):
    """Base class for dependency-resolution errors."""


class BenderNotFound(BenderError):
    def __init__(self) -> None:
        super().__init__(
            "could not find the `bender` binary on PATH.\n"
            "Install bender (e.g. `cargo install bender`) and ensure it is on your PATH."
        )


class BenderInvocationError(BenderError):
    def __init__(self, path: str | Path, cause: BaseException) -> None:
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"failed to invoke bender at {self.path}: {cause}")


class BenderCliError(BenderError):
    def __init__(self, code: int, stderr: str) -> None:
        self.code = code
        self.stderr = stderr
        super().__init__(f"bender exited with code {code}.\nstderr:\n{stderr}")


class BenderIoError(BenderError):
    def __init__(self, path: str | Path, cause: BaseException) -> None:
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"I/O error at {self.path}: {cause}")


class BadDependency(BenderError):
    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"invalid `[dependencies]` entry for `{name}`: {reason}")


class BenderOutputError(BenderError):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"could not parse bender output as JSON: {detail}")


class BenderManifestError(BenderError):
    """A manifest error met while resolving dependencies."""

    def __init__(self, error: ManifestError) -> None:
        self.error = error
        super().__init__(str(error))


class LockDriftError(BenderError):
    def __init__(self) -> None:
        super().__init__(
            "lockfile drift: `Kiln.lock` would change to match `Kiln.toml`. "
            "Run `kiln update` and commit the result, or drop `--locked` / `--frozen`."
        )


class FrozenWithoutLockError(BenderError):
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(
            "`--frozen` forbids dependency resolution; "
            f"existing `Kiln.lock` not found at {self.path}"
        )


@dataclass(frozen=True)
class RunOutput:
    """Captured output of a successful bender run."""

    stdout: str
    stderr: str


def locate_bender() -> Path:
    """Find the ``bender`` binary on PATH."""
    path_var = os.environ.get("PATH")
    if path_var is None:
        raise BenderNotFound()
    for directory in path_var.split(os.pathsep):
        candidate = Path(directory) / BENDER
        if candidate.is_file():
            return candidate
    raise BenderNotFound()


def _run(cwd: str | Path, args: Sequence[str]) -> RunOutput:
    binary = locate_bender()
    try:
        result = subprocess.run(
            [str(binary), *args],
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            check=False,
        )
    except OSError as exc:
        raise BenderInvocationError(binary, exc) from exc
    stdout = result.stdout.decode("utf-8", errors="replace")
    stderr = result.stderr.decode("utf-8", errors="replace")
    if result.returncode != 0:
        code = result.returncode if result.returncode > 0 else -1
        raise BenderCliError(code, stderr)
    return RunOutput(stdout=stdout, stderr=stderr)


def run_bender(cwd: str | Path, args: Sequence[str]) -> None:
    """Run ``bender`` in ``cwd``, discarding its output; raise on failure."""
    _run(cwd, args)


def run_bender_capture(cwd: str | Path, args: Sequence[str]) -> RunOutput:
    """Run ``bender`` in ``cwd`` and return its captured output."""
    return _run(cwd, args)