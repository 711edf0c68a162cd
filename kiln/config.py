"""Lint, tool and profile-override tables of the manifest."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .options import (
    LintSeverity,
    ManifestParseError,
    SvLanguage,
    TraceFormat,
    XAssign,
)

_U32_MAX = 2**32 - 1

_SLANG_FIELDS = ("path", "extra_args")
_VERIBLE_FIELDS = ("path", "extra_args")
_VERILATOR_FIELDS = (
    "path",
    "threads",
    "trace",
    "coverage",
    "timing",
    "x_assign",
    "bbox_unsup",
    "trace_structs",
    "trace_params",
    "trace_depth",
    "extra_args",
)
_DESIGN_OVERRIDE_FIELDS = (
    "top",
    "timescale",
    "language",
    "include_dirs",
    "defines",
    "libraries",
)
_TOOLS_OVERRIDE_FIELDS = ("slang", "verilator", "verible")
_PROFILE_FIELDS = ("design", "lint", "tool")
_LINT_TOOL_TABLES = ("slang", "verilator")


def _kind(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, Mapping):
        return "table"
    return type(value).__name__


def _invalid(where: str, value: Any, expected: str) -> ManifestParseError:
    return ManifestParseError(
        f"invalid type for `{where}`: {_kind(value)}, expected {expected}"
    )


def _table(
    data: Any, section: str, allowed: Iterable[str] | None = None
) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise _invalid(section, data, "a table")
    if allowed is not None:
        allowed = tuple(allowed)
        for key in data:
            if key not in allowed:
                expected = ", ".join(f"`{k}`" for k in allowed)
                raise ManifestParseError(
                    f"unknown field `{key}` in `{section}`, expected one of {expected}"
                )
    return data


def _string(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise _invalid(where, value, "a string")
    return str(value)


def _opt_str(data: Mapping[str, Any], key: str, section: str) -> str | None:
    value = data.get(key)
    return None if value is None else _string(value, f"{section}.{key}")


def _opt_path(data: Mapping[str, Any], key: str, section: str) -> Path | None:
    value = _opt_str(data, key, section)
    return None if value is None else Path(value)


def _string_list(value: Any, where: str) -> list[str]:
    if not isinstance(value, list):
        raise _invalid(where, value, "an array of strings")
    return [_string(item, where) for item in value]


def _strings(data: Mapping[str, Any], key: str, section: str) -> list[str]:
    return _string_list(data.get(key, []), f"{section}.{key}")


def _bool(data: Mapping[str, Any], key: str, section: str) -> bool:
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise _invalid(f"{section}.{key}", value, "a boolean")
    return bool(value)


def _opt_u32(data: Mapping[str, Any], key: str, section: str) -> int | None:
    if key not in data:
        return None
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise _invalid(f"{section}.{key}", value, "an unsigned 32-bit integer")
    if not 0 <= value <= _U32_MAX:
        raise ManifestParseError(
            f"invalid value for `{section}.{key}`: integer `{value}`, "
            "expected an unsigned 32-bit integer"
        )
    return int(value)


def _severity(value: Any, where: str) -> LintSeverity:
    if not isinstance(value, str):
        raise _invalid(where, value, "a lint severity")
    try:
        return LintSeverity(value)
    except ValueError:
        expected = ", ".join(f"`{s.value}`" for s in LintSeverity)
        raise ManifestParseError(
            f"unknown variant `{value}` for `{where}`, expected one of {expected}"
        ) from None


def _severity_map(value: Any, section: str) -> dict[str, LintSeverity]:
    t = _table(value, section)
    return {str(k): _severity(v, f"{section}.{k}") for k, v in sorted(t.items())}


def _language(value: str | None, where: str) -> SvLanguage | None:
    if value is None:
        return None
    try:
        return SvLanguage(value)
    except ValueError:
        expected = ", ".join(f"`{lang.value}`" for lang in SvLanguage)
        raise ManifestParseError(
            f"unknown variant `{value}` for `{where}`, expected one of {expected}"
        ) from None


def _without_none(values: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _path_str(path: Path | None) -> str | None:
    return None if path is None else str(path)


def _severities_to_toml(rules: Mapping[str, LintSeverity]) -> dict[str, str]:
    return {k: v.value for k, v in sorted(rules.items())}


@dataclass
class LintConfig:
    """The ``[lint]`` table: canonical rules plus tool-specific sub-tables."""

    rules: dict[str, LintSeverity] = field(default_factory=dict)
    slang: dict[str, LintSeverity] = field(default_factory=dict)
    verilator: dict[str, LintSeverity] = field(default_factory=dict)

    @classmethod
    def from_toml(cls, data: Any) -> LintConfig:
        t = _table(data, "lint")
        rules = {
            str(k): _severity(v, f"lint.{k}")
            for k, v in sorted(t.items())
            if k not in _LINT_TOOL_TABLES
        }
        return cls(
            rules=rules,
            slang=_severity_map(t.get("slang", {}), "lint.slang"),
            verilator=_severity_map(t.get("verilator", {}), "lint.verilator"),
        )

    def to_toml(self) -> dict[str, Any]:
        out: dict[str, Any] = _severities_to_toml(self.rules)
        out["slang"] = _severities_to_toml(self.slang)
        out["verilator"] = _severities_to_toml(self.verilator)
        return out


@dataclass
class ToolSlang:
    """The ``[tool.slang]`` table."""

    path: Path | None = None
    extra_args: list[str] = field(default_factory=list)

    @classmethod
    def from_toml(cls, data: Any) -> ToolSlang:
        section = "tool.slang"
        t = _table(data, section, _SLANG_FIELDS)
        return cls(
            path=_opt_path(t, "path", section),
            extra_args=_strings(t, "extra_args", section),
        )

    def to_toml(self) -> dict[str, Any]:
        return _without_none(
            {"path": _path_str(self.path), "extra_args": list(self.extra_args)}
        )


@dataclass
class ToolVerilator:
    """The ``[tool.verilator]`` table."""

    path: Path | None = None
    threads: int | None = None
    trace: TraceFormat = TraceFormat.OFF
    coverage: bool = False
    timing: bool = False
    x_assign: XAssign | None = None
    bbox_unsup: bool = False
    trace_structs: bool = False
    trace_params: bool = False
    trace_depth: int | None = None
    extra_args: list[str] = field(default_factory=list)

    @classmethod
    def from_toml(cls, data: Any) -> ToolVerilator:
        section = "tool.verilator"
        t = _table(data, section, _VERILATOR_FIELDS)
        x_assign = _opt_str(t, "x_assign", section)
        if x_assign is not None:
            try:
                x_assign = XAssign(x_assign)
            except ValueError:
                raise ManifestParseError(
                    f"unknown variant `{x_assign}` for `{section}.x_assign`, "
                    "expected one of `0`, `1`, `fast`, `unique`"
                ) from None
        return cls(
            path=_opt_path(t, "path", section),
            threads=_opt_u32(t, "threads", section),
            trace=TraceFormat.from_toml(t["trace"]) if "trace" in t else TraceFormat.OFF,
            coverage=_bool(t, "coverage", section),
            timing=_bool(t, "timing", section),
            x_assign=x_assign,
            bbox_unsup=_bool(t, "bbox_unsup", section),
            trace_structs=_bool(t, "trace_structs", section),
            trace_params=_bool(t, "trace_params", section),
            trace_depth=_opt_u32(t, "trace_depth", section),
            extra_args=_strings(t, "extra_args", section),
        )

    def to_toml(self) -> dict[str, Any]:
        return _without_none(
            {
                "path": _path_str(self.path),
                "threads": self.threads,
                "trace": self.trace.to_toml(),
                "coverage": self.coverage,
                "timing": self.timing,
                "x_assign": self.x_assign.value if self.x_assign else None,
                "bbox_unsup": self.bbox_unsup,
                "trace_structs": self.trace_structs,
                "trace_params": self.trace_params,
                "trace_depth": self.trace_depth,
                "extra_args": list(self.extra_args),
            }
        )


@dataclass
class ToolVerible:
    """The ``[tool.verible]`` table."""

    path: Path | None = None
    extra_args: list[str] = field(default_factory=list)

    @classmethod
    def from_toml(cls, data: Any) -> ToolVerible:
        section = "tool.verible"
        t = _table(data, section, _VERIBLE_FIELDS)
        return cls(
            path=_opt_path(t, "path", section),
            extra_args=_strings(t, "extra_args", section),
        )

    def to_toml(self) -> dict[str, Any]:
        return _without_none(
            {"path": _path_str(self.path), "extra_args": list(self.extra_args)}
        )


def _tool_fields(t: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "slang": ToolSlang.from_toml(t["slang"]) if "slang" in t else None,
        "verilator": (
            ToolVerilator.from_toml(t["verilator"]) if "verilator" in t else None
        ),
        "verible": ToolVerible.from_toml(t["verible"]) if "verible" in t else None,
    }


def _tools_to_toml(
    slang: ToolSlang | None,
    verilator: ToolVerilator | None,
    verible: ToolVerible | None,
) -> dict[str, Any]:
    return _without_none(
        {
            "slang": slang.to_toml() if slang else None,
            "verilator": verilator.to_toml() if verilator else None,
            "verible": verible.to_toml() if verible else None,
        }
    )


@dataclass
class Tools:
    """The ``[tool]`` table; tables for tools kiln does not drive are ignored."""

    slang: ToolSlang | None = None
    verilator: ToolVerilator | None = None
    verible: ToolVerible | None = None

    @classmethod
    def from_toml(cls, data: Any) -> Tools:
        return cls(**_tool_fields(_table(data, "tool")))

    def to_toml(self) -> dict[str, Any]:
        return _tools_to_toml(self.slang, self.verilator, self.verible)


@dataclass
class DesignOverride:
    """Design fields a profile may replace."""

    top: str | None = None
    timescale: str | None = None
    language: SvLanguage | None = None
    include_dirs: list[Path] | None = None
    defines: dict[str, str] | None = None
    libraries: list[str] | None = None

    @classmethod
    def from_toml(cls, data: Any) -> DesignOverride:
        section = "profile.design"
        t = _table(data, section, _DESIGN_OVERRIDE_FIELDS)
        include_dirs = None
        if "include_dirs" in t:
            include_dirs = [
                Path(p)
                for p in _string_list(t["include_dirs"], f"{section}.include_dirs")
            ]
        defines = None
        if "defines" in t:
            table = _table(t["defines"], f"{section}.defines")
            defines = {
                str(k): _string(v, f"{section}.defines.{k}")
                for k, v in sorted(table.items())
            }
        libraries = None
        if "libraries" in t:
            libraries = _string_list(t["libraries"], f"{section}.libraries")
        return cls(
            top=_opt_str(t, "top", section),
            timescale=_opt_str(t, "timescale", section),
            language=_language(
                _opt_str(t, "language", section), f"{section}.language"
            ),
            include_dirs=include_dirs,
            defines=defines,
            libraries=libraries,
        )

    def to_toml(self) -> dict[str, Any]:
        return _without_none(
            {
                "top": self.top,
                "timescale": self.timescale,
                "language": self.language.value if self.language else None,
                "include_dirs": (
                    None
                    if self.include_dirs is None
                    else [str(p) for p in self.include_dirs]
                ),
                "defines": (
                    None if self.defines is None else dict(sorted(self.defines.items()))
                ),
                "libraries": None if self.libraries is None else list(self.libraries),
            }
        )


@dataclass
class ToolsOverride:
    """Per-tool tables inside a profile."""

    slang: ToolSlang | None = None
    verilator: ToolVerilator | None = None
    verible: ToolVerible | None = None

    @classmethod
    def from_toml(cls, data: Any) -> ToolsOverride:
        t = _table(data, "profile.tool", _TOOLS_OVERRIDE_FIELDS)
        return cls(**_tool_fields(t))

    def to_toml(self) -> dict[str, Any]:
        return _tools_to_toml(self.slang, self.verilator, self.verible)


@dataclass
class ProfileOverride:
    """One ``[profile.<name>]`` overlay."""

    design: DesignOverride | None = None
    lint: LintConfig | None = None
    tool: ToolsOverride | None = None

    @classmethod
    def from_toml(cls, data: Any) -> ProfileOverride:
        t = _table(data, "profile", _PROFILE_FIELDS)
        return cls(
            design=DesignOverride.from_toml(t["design"]) if "design" in t else None,
            lint=LintConfig.from_toml(t["lint"]) if "lint" in t else None,
            tool=ToolsOverride.from_toml(t["tool"]) if "tool" in t else None,
        )

    def to_toml(self) -> dict[str, Any]:
        return _without_none(
            {
                "design": self.design.to_toml() if self.design else None,
                "lint": self.lint.to_toml() if self.lint else None,
                "tool": self.tool.to_toml() if self.tool else None,
            }
        )


@dataclass(frozen=True)
class ValidateOptions:
    """Switches for filesystem-dependent manifest validation."""

    check_include_dirs: bool = False