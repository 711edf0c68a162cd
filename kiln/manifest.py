"""The ``Kiln.toml`` manifest: loading, validation, serialisation and lint merging."""

from __future__ import annotations

import copy
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import semver
import tomlkit

from .config import LintConfig, ProfileOverride, Tools, ValidateOptions
from .options import (
    DuplicateFirmwareName,
    InvalidFeatureName,
    InvalidFirmwareName,
    InvalidPackageName,
    InvalidVersion,
    LintSeverity,
    ManifestIoError,
    ManifestParseError,
    MissingIncludeDir,
    UnknownFeature,
    is_valid_sv_identifier,
)
from .sections import (
    Design,
    FeatureSelection,
    FeaturesConfig,
    Firmware,
    Hooks,
    Package,
    TestConfig,
    Vendor,
    WaveConfig,
)

_MANIFEST_FIELDS = (
    "package",
    "design",
    "dependencies",
    "lint",
    "tool",
    "profile",
    "wave",
    "test",
    "features",
    "vendor",
    "firmware",
    "hooks",
)


def _table(data: Any, section: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ManifestParseError(f"invalid type for `{section}`, expected a table")
    return data


def _check_fields(data: Mapping[str, Any]) -> None:
    for key in data:
        if key not in _MANIFEST_FIELDS:
            expected = ", ".join(f"`{k}`" for k in _MANIFEST_FIELDS)
            raise ManifestParseError(
                f"unknown field `{key}`, expected one of {expected}"
            )
    for key in ("package", "design"):
        if key not in data:
            raise ManifestParseError(f"missing field `{key}`")


def _is_table(value: Any) -> bool:
    if isinstance(value, Mapping):
        return True
    return (
        isinstance(value, list)
        and bool(value)
        and all(isinstance(v, Mapping) for v in value)
    )


def _inline(value: Any) -> Any:
    if isinstance(value, Mapping):
        table = tomlkit.inline_table()
        table.update({k: _inline(v) for k, v in value.items()})
        return table
    if isinstance(value, list):
        return [_inline(v) for v in value]
    return value


def _ordered(value: Any) -> Any:
    """Arrange a plain TOML value so that tables follow the plain keys.

    Entries of arrays of tables keep their nested tables inline, so the
    rendered document never needs sub-table headers inside an array.
    """
    if isinstance(value, Mapping):
        simple = {k: _ordered(v) for k, v in value.items() if not _is_table(v)}
        tables = {k: _ordered(v) for k, v in value.items() if _is_table(v)}
        return simple | tables
    if isinstance(value, list):
        if _is_table(value):
            return [{k: _inline(v) for k, v in elem.items()} for elem in value]
        return [_inline(v) for v in value]
    return value


@dataclass
class Manifest:
    """A parsed ``Kiln.toml``."""

    package: Package
    design: Design
    dependencies: dict[str, Any] = field(default_factory=dict)
    lint: LintConfig = field(default_factory=LintConfig)
    tool: Tools = field(default_factory=Tools)
    profile: dict[str, ProfileOverride] = field(default_factory=dict)
    wave: WaveConfig = field(default_factory=WaveConfig)
    test: TestConfig = field(default_factory=TestConfig)
    features: FeaturesConfig = field(default_factory=FeaturesConfig)
    vendor: dict[str, Vendor] = field(default_factory=dict)
    firmware: list[Firmware] = field(default_factory=list)
    hooks: Hooks = field(default_factory=Hooks)

    @classmethod
    def from_toml(cls, data: Any) -> Manifest:
        """Build a manifest from already-decoded TOML data (structure only)."""
        t = _table(data, "manifest")
        _check_fields(t)
        firmware = t.get("firmware", [])
        if not isinstance(firmware, list):
            raise ManifestParseError(
                "invalid type for `firmware`, expected an array of tables"
            )
        return cls(
            package=Package.from_toml(t["package"]),
            design=Design.from_toml(t["design"]),
            dependencies=copy.deepcopy(
                dict(_table(t.get("dependencies", {}), "dependencies"))
            ),
            lint=LintConfig.from_toml(t["lint"]) if "lint" in t else LintConfig(),
            tool=Tools.from_toml(t["tool"]) if "tool" in t else Tools(),
            profile={
                str(name): ProfileOverride.from_toml(body)
                for name, body in sorted(_table(t.get("profile", {}), "profile").items())
            },
            wave=WaveConfig.from_toml(t["wave"]) if "wave" in t else WaveConfig(),
            test=TestConfig.from_toml(t["test"]) if "test" in t else TestConfig(),
            features=(
                FeaturesConfig.from_toml(t["features"])
                if "features" in t
                else FeaturesConfig()
            ),
            vendor={
                str(name): Vendor.from_toml(body)
                for name, body in sorted(_table(t.get("vendor", {}), "vendor").items())
            },
            firmware=[Firmware.from_toml(fw) for fw in firmware],
            hooks=Hooks.from_toml(t["hooks"]) if "hooks" in t else Hooks(),
        )

    @classmethod
    def parse(cls, text: str) -> Manifest:
        """Parse TOML text and run the validation that needs no filesystem."""
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ManifestParseError(str(exc)) from exc
        manifest = cls.from_toml(data)
        manifest.validate_static()
        return manifest

    @classmethod
    def load(cls, path: str | Path) -> Manifest:
        """Load and fully validate the manifest at ``path``."""
        path = Path(path)
        try:
            text = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ManifestIoError(path, exc) from exc
        manifest = cls.parse(text)
        manifest.validate(path.parent, ValidateOptions(check_include_dirs=True))
        return manifest

    def to_toml(self) -> dict[str, Any]:
        """Plain TOML data that :meth:`from_toml` reads back to an equal manifest."""
        return {
            "package": self.package.to_toml(),
            "design": self.design.to_toml(),
            "dependencies": copy.deepcopy(self.dependencies),
            "lint": self.lint.to_toml(),
            "tool": self.tool.to_toml(),
            "profile": {
                name: overlay.to_toml() for name, overlay in sorted(self.profile.items())
            },
            "wave": self.wave.to_toml(),
            "test": self.test.to_toml(),
            "features": self.features.to_toml(),
            "vendor": {name: v.to_toml() for name, v in sorted(self.vendor.items())},
            "firmware": [fw.to_toml() for fw in self.firmware],
            "hooks": self.hooks.to_toml(),
        }

    def dumps(self) -> str:
        """Render the manifest as TOML text."""
        return tomlkit.dumps(_ordered(self.to_toml()))

    def validate_static(self) -> None:
        """Validation that needs no filesystem context."""
        if not is_valid_sv_identifier(self.package.name):
            raise InvalidPackageName(self.package.name)
        try:
            semver.Version.parse(self.package.version)
        except (ValueError, TypeError) as exc:
            raise InvalidVersion(self.package.version, str(exc)) from exc
        for name in self.features.features:
            if not is_valid_sv_identifier(name):
                raise InvalidFeatureName(name)
        for name in self.features.default:
            if name not in self.features.features:
                raise UnknownFeature(name)
        seen: set[str] = set()
        for fw in self.firmware:
            if not is_valid_sv_identifier(fw.name):
                raise InvalidFirmwareName(fw.name)
            if fw.name in seen:
                raise DuplicateFirmwareName(fw.name)
            seen.add(fw.name)

    def validate(
        self, project_root: str | Path, options: ValidateOptions | None = None
    ) -> None:
        """Validation that depends on the project directory."""
        options = options or ValidateOptions()
        if options.check_include_dirs:
            root = Path(project_root)
            for directory in self.design.include_dirs:
                if not (root / directory).is_dir():
                    raise MissingIncludeDir(directory)

    def apply_features(self, design: Design, selection: FeatureSelection) -> None:
        """Merge the selected features' defines and sources into ``design`` in place.

        Later features win on conflicting define names.
        """
        for name in selection.active:
            feature = self.features.features.get(name)
            if feature is None:
                continue
            for entry in feature.defines:
                key, _, value = entry.partition("=")
                design.defines[key] = value
            for src in feature.sources:
                if src not in design.sources:
                    design.sources.append(src)

    def _resolved_lint(self, profile: str, tool: str) -> dict[str, LintSeverity]:
        out = dict(self.lint.rules)
        out.update(getattr(self.lint, tool))
        overlay = self.profile.get(profile)
        if overlay is not None and overlay.lint is not None:
            out.update(overlay.lint.rules)
            out.update(getattr(overlay.lint, tool))
        return dict(sorted(out.items()))

    def resolved_lint_for_slang(self, profile: str) -> dict[str, LintSeverity]:
        """Lint rules for slang under ``profile``; the profile wins on conflict."""
        return self._resolved_lint(profile, "slang")

    def resolved_lint_for_verilator(self, profile: str) -> dict[str, LintSeverity]:
        """Lint rules for verilator under ``profile``; the profile wins on conflict."""
        return self._resolved_lint(profile, "verilator")