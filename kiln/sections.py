"""Typed tables of the manifest: package, design, features, tests and more."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .options import (
    DurationSpec,
    ExitCodeDetect,
    HookPhase,
    ManifestParseError,
    PatternDetect,
    SvLanguage,
    UnknownFeature,
    WaveFormat,
    detect_to_toml,
    parse_detect,
)

DEFAULT_SOURCES = ("src/**/*.sv", "src/**/*.svh", "src/**/*.v")

_PACKAGE_FIELDS = ("name", "version", "authors", "description", "license")
_DESIGN_FIELDS = (
    "top",
    "aux_tops",
    "sources",
    "timescale",
    "language",
    "include_dirs",
    "defines",
    "libraries",
    "test_sources",
)
_VENDOR_FIELDS = ("sim_models", "stubs", "blackbox_modules")
_FIRMWARE_FIELDS = ("name", "path", "build", "artifacts")
_HOOK_FIELDS = tuple(phase.value for phase in HookPhase)
_FEATURE_FIELDS = ("defines", "sources")
_TEST_CASE_FIELDS = (
    "name",
    "testbench",
    "args",
    "prebuild",
    "detect",
    "timeout",
    "tags",
    "working_dir",
)
_TEST_MATRIX_FIELDS = (
    "testbench",
    "inputs",
    "name_prefix",
    "args",
    "prebuild",
    "detect",
    "timeout",
    "tags",
    "working_dir",
)
_TEST_CONFIG_FIELDS = ("working_dir", "detect", "timeout", "cases", "matrix")
_WAVE_FIELDS = ("format", "enabled_by_default")


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


def _required(data: Mapping[str, Any], key: str, section: str) -> Any:
    if key not in data:
        raise ManifestParseError(f"missing field `{key}` in `{section}`")
    return data[key]


def _string(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise _invalid(where, value, "a string")
    return str(value)


def _req_str(data: Mapping[str, Any], key: str, section: str) -> str:
    return _string(_required(data, key, section), f"{section}.{key}")


def _opt_str(data: Mapping[str, Any], key: str, section: str) -> str | None:
    value = data.get(key)
    return None if value is None else _string(value, f"{section}.{key}")


def _strings(data: Mapping[str, Any], key: str, section: str) -> list[str]:
    value = data.get(key, [])
    if not isinstance(value, list):
        raise _invalid(f"{section}.{key}", value, "an array of strings")
    return [_string(item, f"{section}.{key}") for item in value]


def _bool(data: Mapping[str, Any], key: str, section: str) -> bool:
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise _invalid(f"{section}.{key}", value, "a boolean")
    return bool(value)


def _opt_path(data: Mapping[str, Any], key: str, section: str) -> Path | None:
    value = _opt_str(data, key, section)
    return None if value is None else Path(value)


def _paths(data: Mapping[str, Any], key: str, section: str) -> list[Path]:
    return [Path(p) for p in _strings(data, key, section)]


def _str_map(data: Mapping[str, Any], key: str, section: str) -> dict[str, str]:
    table = _table(data.get(key, {}), f"{section}.{key}")
    return {
        str(k): _string(v, f"{section}.{key}.{k}") for k, v in sorted(table.items())
    }


def _opt_detect(data: Mapping[str, Any]) -> ExitCodeDetect | PatternDetect | None:
    return parse_detect(data["detect"]) if "detect" in data else None


def _opt_timeout(data: Mapping[str, Any]) -> DurationSpec | None:
    return DurationSpec.parse(data["timeout"]) if "timeout" in data else None


def _tables(data: Mapping[str, Any], key: str, section: str) -> list[Any]:
    value = data.get(key, [])
    if not isinstance(value, list):
        raise _invalid(f"{section}.{key}", value, "an array of tables")
    return list(value)


def _without_none(values: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _path_str(path: Path | None) -> str | None:
    return None if path is None else str(path)


@dataclass
class Package:
    """The ``[package]`` table."""

    name: str
    version: str
    authors: list[str] = field(default_factory=list)
    description: str | None = None
    license: str | None = None

    @classmethod
    def from_toml(cls, data: Any) -> Package:
        t = _table(data, "package", _PACKAGE_FIELDS)
        return cls(
            name=_req_str(t, "name", "package"),
            version=_req_str(t, "version", "package"),
            authors=_strings(t, "authors", "package"),
            description=_opt_str(t, "description", "package"),
            license=_opt_str(t, "license", "package"),
        )

    def to_toml(self) -> dict[str, Any]:
        return _without_none(
            {
                "name": self.name,
                "version": self.version,
                "authors": list(self.authors),
                "description": self.description,
                "license": self.license,
            }
        )


@dataclass
class Design:
    """The ``[design]`` table."""

    top: str
    aux_tops: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=lambda: list(DEFAULT_SOURCES))
    timescale: str | None = None
    language: SvLanguage | None = None
    include_dirs: list[Path] = field(default_factory=list)
    defines: dict[str, str] = field(default_factory=dict)
    libraries: list[str] = field(default_factory=list)
    test_sources: list[str] = field(default_factory=list)

    @classmethod
    def from_toml(cls, data: Any) -> Design:
        t = _table(data, "design", _DESIGN_FIELDS)
        language = _opt_str(t, "language", "design")
        if language is not None:
            try:
                language = SvLanguage(language)
            except ValueError:
                expected = ", ".join(f"`{lang.value}`" for lang in SvLanguage)
                raise ManifestParseError(
                    f"unknown variant `{language}` for `design.language`, "
                    f"expected one of {expected}"
                ) from None
        return cls(
            top=_req_str(t, "top", "design"),
            aux_tops=_strings(t, "aux_tops", "design"),
            sources=(
                _strings(t, "sources", "design")
                if "sources" in t
                else list(DEFAULT_SOURCES)
            ),
            timescale=_opt_str(t, "timescale", "design"),
            language=language,
            include_dirs=_paths(t, "include_dirs", "design"),
            defines=_str_map(t, "defines", "design"),
            libraries=_strings(t, "libraries", "design"),
            test_sources=_strings(t, "test_sources", "design"),
        )

    def to_toml(self) -> dict[str, Any]:
        return _without_none(
            {
                "top": self.top,
                "aux_tops": list(self.aux_tops),
                "sources": list(self.sources),
                "timescale": self.timescale,
                "language": self.language.value if self.language else None,
                "include_dirs": [str(p) for p in self.include_dirs],
                "defines": dict(sorted(self.defines.items())),
                "libraries": list(self.libraries),
                "test_sources": list(self.test_sources),
            }
        )


@dataclass
class Vendor:
    """One ``[vendor.<name>]`` block of vendor library sources."""

    sim_models: list[str] = field(default_factory=list)
    stubs: list[str] = field(default_factory=list)
    blackbox_modules: list[str] = field(default_factory=list)

    @classmethod
    def from_toml(cls, data: Any) -> Vendor:
        t = _table(data, "vendor", _VENDOR_FIELDS)
        return cls(
            sim_models=_strings(t, "sim_models", "vendor"),
            stubs=_strings(t, "stubs", "vendor"),
            blackbox_modules=_strings(t, "blackbox_modules", "vendor"),
        )

    def to_toml(self) -> dict[str, Any]:
        return {
            "sim_models": list(self.sim_models),
            "stubs": list(self.stubs),
            "blackbox_modules": list(self.blackbox_modules),
        }


@dataclass
class Firmware:
    """One ``[[firmware]]`` entry built by an external build system."""

    name: str
    path: Path
    build: str
    artifacts: str | None = None

    @classmethod
    def from_toml(cls, data: Any) -> Firmware:
        t = _table(data, "firmware", _FIRMWARE_FIELDS)
        return cls(
            name=_req_str(t, "name", "firmware"),
            path=Path(_req_str(t, "path", "firmware")),
            build=_req_str(t, "build", "firmware"),
            artifacts=_opt_str(t, "artifacts", "firmware"),
        )

    def to_toml(self) -> dict[str, Any]:
        return _without_none(
            {
                "name": self.name,
                "path": str(self.path),
                "build": self.build,
                "artifacts": self.artifacts,
            }
        )


@dataclass
class Hooks:
    """The ``[hooks]`` table: one shell line per lifecycle phase."""

    pre_check: str | None = None
    pre_build: str | None = None
    pre_test: str | None = None
    post_test: str | None = None

    @classmethod
    def from_toml(cls, data: Any) -> Hooks:
        t = _table(data, "hooks", _HOOK_FIELDS)
        return cls(
            **{
                phase.value.replace("-", "_"): _opt_str(t, phase.value, "hooks")
                for phase in HookPhase
            }
        )

    def to_toml(self) -> dict[str, Any]:
        return _without_none(
            {
                phase.value: getattr(self, phase.value.replace("-", "_"))
                for phase in HookPhase
            }
        )

    def for_phase(self, phase: HookPhase) -> str | None:
        """The trimmed command for ``phase``; blank commands count as unset."""
        raw = getattr(self, HookPhase(phase).value.replace("-", "_"))
        if raw is None:
            return None
        command = raw.strip()
        return command or None


@dataclass
class Feature:
    """A named feature adding defines and sources when active."""

    defines: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)

    @classmethod
    def from_toml(cls, data: Any) -> Feature:
        t = _table(data, "feature", _FEATURE_FIELDS)
        return cls(
            defines=_strings(t, "defines", "feature"),
            sources=_strings(t, "sources", "feature"),
        )

    def to_toml(self) -> dict[str, Any]:
        return {"defines": list(self.defines), "sources": list(self.sources)}


@dataclass
class FeaturesConfig:
    """The ``[features]`` table: a ``default`` list plus one table per feature."""

    default: list[str] = field(default_factory=list)
    features: dict[str, Feature] = field(default_factory=dict)

    @classmethod
    def from_toml(cls, data: Any) -> FeaturesConfig:
        t = _table(data, "features")
        return cls(
            default=_strings(t, "default", "features"),
            features={
                str(name): Feature.from_toml(body)
                for name, body in sorted(t.items())
                if name != "default"
            },
        )

    def to_toml(self) -> dict[str, Any]:
        out: dict[str, Any] = {"default": list(self.default)}
        for name, feature in sorted(self.features.items()):
            out[name] = feature.to_toml()
        return out


@dataclass
class FeatureSelection:
    """The features active for one build."""

    active: list[str] = field(default_factory=list)

    @classmethod
    def resolve(
        cls,
        config: FeaturesConfig,
        explicit: Iterable[str] = (),
        all_features: bool = False,
        no_default: bool = False,
    ) -> FeatureSelection:
        """Select features the way the command-line flags ask for.

        Every defined feature with ``all_features``; nothing with
        ``no_default``; otherwise the configured defaults. Each entry of
        ``explicit`` may list several names separated by commas or spaces.
        Raises :class:`UnknownFeature` for a name that is not defined.
        """
        if all_features:
            active = sorted(config.features)
        elif no_default:
            active = []
        else:
            active = list(config.default)
        for entry in explicit:
            for name in filter(None, re.split(r"[, ]", entry)):
                if name not in config.features:
                    raise UnknownFeature(name)
                if name not in active:
                    active.append(name)
        for name in active:
            if name not in config.features:
                raise UnknownFeature(name)
        return cls(active)


@dataclass
class TestCase:
    """An explicit test that runs a testbench with its own arguments."""

    __test__ = False

    name: str
    testbench: str
    args: list[str] = field(default_factory=list)
    prebuild: str | None = None
    detect: ExitCodeDetect | PatternDetect | None = None
    timeout: DurationSpec | None = None
    tags: list[str] = field(default_factory=list)
    working_dir: Path | None = None

    @classmethod
    def from_toml(cls, data: Any) -> TestCase:
        section = "test.cases"
        t = _table(data, section, _TEST_CASE_FIELDS)
        return cls(
            name=_req_str(t, "name", section),
            testbench=_req_str(t, "testbench", section),
            args=_strings(t, "args", section),
            prebuild=_opt_str(t, "prebuild", section),
            detect=_opt_detect(t),
            timeout=_opt_timeout(t),
            tags=_strings(t, "tags", section),
            working_dir=_opt_path(t, "working_dir", section),
        )

    def to_toml(self) -> dict[str, Any]:
        return _without_none(
            {
                "name": self.name,
                "testbench": self.testbench,
                "args": list(self.args),
                "prebuild": self.prebuild,
                "detect": detect_to_toml(self.detect) if self.detect else None,
                "timeout": self.timeout.to_toml() if self.timeout else None,
                "tags": list(self.tags),
                "working_dir": _path_str(self.working_dir),
            }
        )


@dataclass
class TestMatrix:
    """A glob-driven family of tests, one per matched input file."""

    __test__ = False

    testbench: str
    inputs: str
    name_prefix: str = ""
    args: list[str] = field(default_factory=list)
    prebuild: str | None = None
    detect: ExitCodeDetect | PatternDetect | None = None
    timeout: DurationSpec | None = None
    tags: list[str] = field(default_factory=list)
    working_dir: Path | None = None

    @classmethod
    def from_toml(cls, data: Any) -> TestMatrix:
        section = "test.matrix"
        t = _table(data, section, _TEST_MATRIX_FIELDS)
        return cls(
            testbench=_req_str(t, "testbench", section),
            inputs=_req_str(t, "inputs", section),
            name_prefix=_opt_str(t, "name_prefix", section) or "",
            args=_strings(t, "args", section),
            prebuild=_opt_str(t, "prebuild", section),
            detect=_opt_detect(t),
            timeout=_opt_timeout(t),
            tags=_strings(t, "tags", section),
            working_dir=_opt_path(t, "working_dir", section),
        )

    def to_toml(self) -> dict[str, Any]:
        return _without_none(
            {
                "testbench": self.testbench,
                "inputs": self.inputs,
                "name_prefix": self.name_prefix,
                "args": list(self.args),
                "prebuild": self.prebuild,
                "detect": detect_to_toml(self.detect) if self.detect else None,
                "timeout": self.timeout.to_toml() if self.timeout else None,
                "tags": list(self.tags),
                "working_dir": _path_str(self.working_dir),
            }
        )


@dataclass
class TestConfig:
    """The ``[test]`` table."""

    __test__ = False

    working_dir: Path | None = None
    detect: ExitCodeDetect | PatternDetect | None = None
    timeout: DurationSpec | None = None
    cases: list[TestCase] = field(default_factory=list)
    matrix: list[TestMatrix] = field(default_factory=list)

    @classmethod
    def from_toml(cls, data: Any) -> TestConfig:
        t = _table(data, "test", _TEST_CONFIG_FIELDS)
        return cls(
            working_dir=_opt_path(t, "working_dir", "test"),
            detect=_opt_detect(t),
            timeout=_opt_timeout(t),
            cases=[TestCase.from_toml(c) for c in _tables(t, "cases", "test")],
            matrix=[TestMatrix.from_toml(m) for m in _tables(t, "matrix", "test")],
        )

    def to_toml(self) -> dict[str, Any]:
        return _without_none(
            {
                "working_dir": _path_str(self.working_dir),
                "detect": detect_to_toml(self.detect) if self.detect else None,
                "timeout": self.timeout.to_toml() if self.timeout else None,
                "cases": [c.to_toml() for c in self.cases],
                "matrix": [m.to_toml() for m in self.matrix],
            }
        )


@dataclass
class WaveConfig:
    """The ``[wave]`` table."""

    format: WaveFormat = WaveFormat.FST
    enabled_by_default: bool = False

    @classmethod
    def from_toml(cls, data: Any) -> WaveConfig:
        t = _table(data, "wave", _WAVE_FIELDS)
        fmt = WaveFormat.FST
        raw = _opt_str(t, "format", "wave")
        if raw is not None:
            try:
                fmt = WaveFormat(raw)
            except ValueError:
                raise ManifestParseError(
                    f"unknown variant `{raw}` for `wave.format`, expected `fst` or `vcd`"
                ) from None
        return cls(
            format=fmt,
            enabled_by_default=_bool(t, "enabled_by_default", "wave"),
        )

    def to_toml(self) -> dict[str, Any]:
        return {
            "format": self.format.value,
            "enabled_by_default": self.enabled_by_default,
        }