"""Error types, enumerations and small value types used by the manifest."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum
from pathlib import Path
from typing import Any

_IDENTIFIER_RULE = (
    "must start with a letter or `_` and contain only letters, digits, or `_`"
)


class ManifestError(Exception):
    """Base class for errors raised while loading or validating a manifest."""


class ManifestIoError(ManifestError):
    def __init__(self, path: str | Path, cause: BaseException) -> None:
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"failed to read manifest at {self.path}: {cause}")


class ManifestParseError(ManifestError):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"failed to parse manifest: {detail}")


class InvalidPackageName(ManifestError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"package name `{name}` is not a valid SystemVerilog identifier "
            f"({_IDENTIFIER_RULE})"
        )


class InvalidVersion(ManifestError):
    def __init__(self, value: str, reason: str) -> None:
        self.value = value
        self.reason = reason
        super().__init__(f"package version `{value}` is not valid semver: {reason}")


class MissingIncludeDir(ManifestError):
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(f"include directory `{self.path}` does not exist")


class UnknownLintRule(ManifestError):
    def __init__(self, name: str, suggestion: str | None = None) -> None:
        self.name = name
        self.suggestion = suggestion
        hint = f"; did you mean `{suggestion}`?" if suggestion else ""
        super().__init__(f"unknown lint rule `{name}`{hint}")


class UnknownFeature(ManifestError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"unknown feature `{name}` (not declared in `[features]`)")


class InvalidFeatureName(ManifestError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"feature name `{name}` is not a valid SystemVerilog identifier "
            f"({_IDENTIFIER_RULE})"
        )


class InvalidFirmwareName(ManifestError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"firmware name `{name}` is not a valid SystemVerilog identifier "
            f"({_IDENTIFIER_RULE})"
        )


class DuplicateFirmwareName(ManifestError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"duplicate firmware name `{name}`")


def _describe(value: Any) -> str:
    if isinstance(value, bool):
        return f"boolean `{str(value).lower()}`"
    if isinstance(value, int):
        return f"integer `{value}`"
    if isinstance(value, float):
        return f"floating point `{value}`"
    if isinstance(value, str):
        return f'string "{value}"'
    if isinstance(value, list):
        return "array"
    if isinstance(value, Mapping):
        return "table"
    return type(value).__name__


def _str_list(value: Any, field: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ManifestParseError(
            f"invalid type for `{field}`: {_describe(value)}, expected an array of strings"
        )
    return tuple(value)


class LintSeverity(StrEnum):
    """Severity override for a lint rule."""

    ERROR = "error"
    WARN = "warn"
    OFF = "off"
    DENY = "deny"


class SvLanguage(StrEnum):
    """SystemVerilog language standard."""

    SV2005 = "sv2005"
    SV2009 = "sv2009"
    SV2012 = "sv2012"
    SV2017 = "sv2017"
    SV2023 = "sv2023"

    def std_flag(self) -> str:
        """The value slang expects after ``--std``."""
        return {
            SvLanguage.SV2005: "1364-2005",
            SvLanguage.SV2009: "1800-2009",
            SvLanguage.SV2012: "1800-2012",
            SvLanguage.SV2017: "1800-2017",
            SvLanguage.SV2023: "1800-2023",
        }[self]


class XAssign(StrEnum):
    """X-assignment policy passed to verilator as ``--x-assign``."""

    ZERO = "0"
    ONE = "1"
    FAST = "fast"
    UNIQUE = "unique"

    def flag_value(self) -> str:
        return self.value


class TraceFormat(StrEnum):
    """Verilator trace format; written as ``false``, ``"vcd"`` or ``"fst"``."""

    OFF = "off"
    VCD = "vcd"
    FST = "fst"

    @classmethod
    def from_toml(cls, value: Any) -> TraceFormat:
        if isinstance(value, bool):
            if value:
                raise ManifestParseError('use "vcd" or "fst" instead of true')
            return cls.OFF
        if isinstance(value, str):
            if value in ("vcd", "fst"):
                return cls(value)
            raise ManifestParseError(
                f"unknown variant `{value}`, expected `vcd` or `fst`"
            )
        raise ManifestParseError(
            f'invalid type: {_describe(value)}, expected false, "vcd", or "fst"'
        )

    def to_toml(self) -> bool | str:
        return False if self is TraceFormat.OFF else self.value


class WaveFormat(StrEnum):
    FST = "fst"
    VCD = "vcd"


class HookPhase(StrEnum):
    """Lifecycle phases that may carry a ``[hooks]`` command."""

    PRE_CHECK = "pre-check"
    PRE_BUILD = "pre-build"
    PRE_TEST = "pre-test"
    POST_TEST = "post-test"


@dataclass(frozen=True)
class ExitCodeDetect:
    """A test passes when the simulator exits with status 0."""


@dataclass(frozen=True)
class PatternDetect:
    """A test passes when every required marker appears in stdout and no
    forbidden marker does; the exit status is ignored."""

    stdout_contains: tuple[str, ...] = ()
    stdout_must_not_contain: tuple[str, ...] = ()


Detect = ExitCodeDetect | PatternDetect

_PATTERN_FIELDS = ("stdout_contains", "stdout_must_not_contain")


def parse_detect(value: Any) -> ExitCodeDetect | PatternDetect:
    """Parse a ``detect`` value: ``"exit_code"`` or ``{ patterns = {...} }``."""
    if isinstance(value, str):
        if value == "exit_code":
            return ExitCodeDetect()
        raise ManifestParseError(
            f"unknown variant `{value}`, expected `exit_code` or `patterns`"
        )
    if not isinstance(value, Mapping):
        raise ManifestParseError(
            f"invalid type: {_describe(value)}, expected a detect rule"
        )
    if len(value) != 1:
        raise ManifestParseError(
            f"wrong number of keys in detect rule: expected 1, found {len(value)}"
        )
    ((variant, body),) = value.items()
    if variant != "patterns":
        raise ManifestParseError(
            f"unknown variant `{variant}`, expected `exit_code` or `patterns`"
        )
    if not isinstance(body, Mapping):
        raise ManifestParseError(
            f"invalid type: {_describe(body)}, expected a table for `patterns`"
        )
    for key in body:
        if key not in _PATTERN_FIELDS:
            raise ManifestParseError(
                f"unknown field `{key}`, expected `stdout_contains` or "
                "`stdout_must_not_contain`"
            )
    return PatternDetect(
        stdout_contains=_str_list(body.get("stdout_contains", []), "stdout_contains"),
        stdout_must_not_contain=_str_list(
            body.get("stdout_must_not_contain", []), "stdout_must_not_contain"
        ),
    )


def detect_to_toml(detect: ExitCodeDetect | PatternDetect) -> str | dict[str, Any]:
    """The TOML value that :func:`parse_detect` reads back to ``detect``."""
    match detect:
        case ExitCodeDetect():
            return "exit_code"
        case PatternDetect(stdout_contains=contains, stdout_must_not_contain=absent):
            return {
                "patterns": {
                    "stdout_contains": list(contains),
                    "stdout_must_not_contain": list(absent),
                }
            }
    raise TypeError(f"not a detect rule: {detect!r}")


_UNITS = (
    ("ms", timedelta(milliseconds=1)),
    ("s", timedelta(seconds=1)),
    ("m", timedelta(minutes=1)),
    ("h", timedelta(hours=1)),
)
_COUNT = re.compile(r"\+?[0-9]+")
_U64_MAX = 2**64 - 1


def parse_duration(text: str) -> timedelta:
    """Parse ``"500ms"``, ``"30s"``, ``"2m"`` or ``"1h"``; raise ValueError otherwise."""
    s = text.strip()
    for suffix, unit in _UNITS:
        if s.endswith(suffix):
            count_text = s[: -len(suffix)].strip()
            break
    else:
        raise ValueError(f"duration `{s}` must end in `ms`, `s`, `m`, or `h`")
    if not count_text:
        reason = "cannot parse integer from empty string"
    elif not _COUNT.fullmatch(count_text):
        reason = "invalid digit found in string"
    elif int(count_text) > _U64_MAX:
        reason = "number too large to fit in target type"
    else:
        reason = None
    if reason:
        raise ValueError(f"duration `{s}` has non-integer count: {reason}")
    try:
        return int(count_text) * unit
    except OverflowError as exc:
        raise ValueError(f"duration `{s}` is too large") from exc


@dataclass(frozen=True, order=True)
class DurationSpec:
    """A wall-clock duration written in TOML as a string such as ``"30s"``."""

    duration: timedelta

    @classmethod
    def parse(cls, text: Any) -> DurationSpec:
        if not isinstance(text, str):
            raise ManifestParseError(
                f"invalid type: {_describe(text)}, expected a duration string"
            )
        try:
            return cls(parse_duration(text))
        except ValueError as exc:
            raise ManifestParseError(str(exc)) from exc

    def to_toml(self) -> str:
        """Render in the largest unit that represents the duration exactly."""
        millis = self.duration // timedelta(milliseconds=1)
        secs = self.duration // timedelta(seconds=1)
        if millis % 1000:
            return f"{millis}ms"
        if secs % 60 or secs == 0:
            return f"{secs}s"
        if secs % 3600:
            return f"{secs // 60}m"
        return f"{secs // 3600}h"


_SV_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def is_valid_sv_identifier(text: str) -> bool:
    """True if ``text`` is a valid SystemVerilog simple identifier."""
    return _SV_IDENTIFIER.fullmatch(text) is not None