"""Formatting of SystemVerilog sources through ``verible-verilog-format``."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from itertools import zip_longest
from pathlib import Path

FORMATTER = "verible-verilog-format"


class FmtError(Exception):
    """Base class for formatting errors."""


class FormatterNotFound(FmtError):
    def __init__(self) -> None:
        super().__init__(
            f"could not find `{FORMATTER}` on PATH.\n"
            "Install verible (e.g. `brew install verible`, or download one of its "
            "prebuilt releases) and ensure the binary is on your PATH."
        )


class FormatterInvocationError(FmtError):
    def __init__(self, path: str | Path, cause: BaseException) -> None:
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"failed to invoke {FORMATTER} at {self.path}: {cause}")


class FormatterCliError(FmtError):
    def __init__(self, code: int, stderr: str) -> None:
        self.code = code
        self.stderr = stderr
        super().__init__(f"{FORMATTER} exited with code {code}.\nstderr:\n{stderr}")


class FormatterIoError(FmtError):
    def __init__(self, path: str | Path, cause: BaseException) -> None:
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"I/O error at {self.path}: {cause}")


@dataclass(frozen=True)
class CheckOutcome:
    """Result of checking one file: whether it is formatted, and the diff if not."""

    file: Path
    ok: bool
    diff: str


def locate_formatter() -> Path:
    """Find the formatter binary on PATH."""
    path_var = os.environ.get("PATH")
    if path_var is None:
        raise FormatterNotFound()
    for directory in path_var.split(os.pathsep):
        candidate = Path(directory) / FORMATTER
        if candidate.is_file():
            return candidate
    raise FormatterNotFound()


def _read(path: Path) -> str:
    try:
        return path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FormatterIoError(path, exc) from exc


def run_format(path: str | Path) -> str:
    """Run the formatter on ``path`` and return the formatted text."""
    binary = locate_formatter()
    try:
        result = subprocess.run(
            [str(binary), str(path)],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            check=False,
        )
    except OSError as exc:
        raise FormatterInvocationError(binary, exc) from exc
    if result.returncode != 0:
        code = result.returncode if result.returncode > 0 else -1
        raise FormatterCliError(code, result.stderr.decode("utf-8", errors="replace"))
    return result.stdout.decode("utf-8", errors="replace")


def format_in_place(path: str | Path) -> bool:
    """Format ``path`` in place; return True if its contents changed."""
    path = Path(path)
    formatted = run_format(path)
    if formatted == _read(path):
        return False
    try:
        path.write_bytes(formatted.encode("utf-8"))
    except OSError as exc:
        raise FormatterIoError(path, exc) from exc
    return True


def check(path: str | Path) -> CheckOutcome:
    """Check ``path`` without modifying it."""
    path = Path(path)
    original = _read(path)
    formatted = run_format(path)
    if formatted == original:
        return CheckOutcome(file=path, ok=True, diff="")
    return CheckOutcome(
        file=path, ok=False, diff=unified_diff(str(path), original, formatted)
    )


def _lines(text: str) -> list[str]:
    parts = text.split("\n")
    if parts[-1] == "":
        parts.pop()
    return [p[:-1] if p.endswith("\r") else p for p in parts]


def unified_diff(file: str, before: str, after: str) -> str:
    """A simple line-by-line diff: stable, though not identical to ``diff -u``."""
    out = [f"--- {file}", f"+++ {file} (formatted)"]
    for old, new in zip_longest(_lines(before), _lines(after)):
        if old is not None and new is not None:
            if old == new:
                out.append(f" {old}")
            else:
                out.extend((f"-{old}", f"+{new}"))
        elif old is not None:
            out.append(f"-{old}")
        elif new is not None:
            out.append(f"+{new}")
    return "\n".join(out) + "\n"