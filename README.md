# kiln

Project tooling for SystemVerilog designs, driven by a `Kiln.toml` manifest.

## What is in the package

- `kiln.manifest` — the `Manifest` class. `Manifest.parse(text)` reads TOML
  text and runs the checks that need no filesystem (package name and feature
  and firmware names must be SystemVerilog identifiers, the version must be
  semver, default features must exist, firmware names must be unique).
  `Manifest.load(path)` also checks that every `include_dirs` entry exists
  next to the manifest. `Manifest.dumps()` renders the manifest back to TOML,
  `apply_features(design, selection)` merges feature defines and sources into
  a `Design`, and `resolved_lint_for_slang(profile)` /
  `resolved_lint_for_verilator(profile)` merge lint severities with a
  profile's overlay.
- `kiln.sections` — the `[package]`, `[design]`, `[vendor.*]`,
  `[[firmware]]`, `[hooks]`, `[features]`, `[test]` and `[wave]` tables as
  dataclasses, plus `FeatureSelection.resolve(config, explicit, all_features,
  no_default)` and `Hooks.for_phase(phase)`.
- `kiln.config` — the `[lint]`, `[tool.slang]`, `[tool.verilator]`,
  `[tool.verible]` and `[profile.*]` tables, and `ValidateOptions`.
- `kiln.options` — the manifest error classes (all derived from
  `ManifestError`), the enumerations `LintSeverity`, `SvLanguage`, `XAssign`,
  `TraceFormat`, `WaveFormat` and `HookPhase`, the pass/fail rules
  `ExitCodeDetect` and `PatternDetect`, `DurationSpec` / `parse_duration`
  (`"500ms"`, `"30s"`, `"2m"`, `"1h"`) and `is_valid_sv_identifier`.
- `kiln.profile` — `ResolvedConfig.resolve(manifest, profile_name)` applies a
  `[profile.<name>]` overlay to the base design, lint and tool settings.
- `kiln.project` — `find_manifest(start)` walks up from a directory to the
  first `Kiln.toml`, raising `ProjectError` if there is none.
- `kiln.lint_map` — the canonical lint rule table, `lookup(name)` and
  `suggest(unknown)` (Jaro-Winkler similarity of at least 0.6).
- `kiln.deps` — dependency handling through the `bender` tool:
  - `kiln.deps.resolver`: `update`, `update_with_mode`, `resolve`, `tree`,
    `add`, `remove`, `generate_bender_yml` and `LockMode` (`FREE`, `LOCKED`,
    `FROZEN`) for keeping `Kiln.lock` in step with `Kiln.toml`;
  - `kiln.deps.schema`: `GitDependency`, `PathDependency`,
    `parse_dependencies`, and `edit_manifest` / `insert_dependency` /
    `remove_dependency` for editing `[dependencies]` while keeping the file's
    layout;
  - `kiln.deps.sources`: `parse_sources` for `bender sources --flatten`
    output;
  - `kiln.deps.runner`: `run_bender`, `run_bender_capture` and the
    `BenderError` family.
- `kiln.fmt` — `format_in_place(path)` and `check(path)` through
  `verible-verilog-format`, with a simple line-by-line `unified_diff`.

## Installation

```
pip install .
```

`bender` and `verible-verilog-format` must be on `PATH` for the functions
that run them; the rest of the package needs neither.

## Example

```python
from kiln.manifest import Manifest
from kiln.profile import ResolvedConfig

manifest = Manifest.parse("""
[package]
name = "demo"
version = "0.1.0"

[design]
top = "demo_top"

[profile.test.tool.verilator]
trace = "fst"
""")

assert manifest.package.name == "demo"
resolved = ResolvedConfig.resolve(manifest, "test")
print(resolved.tool_verilator.trace)  # fst
```

## What the package does not do

- There is no command-line program; everything is called from Python.
- It does not run slang or verilator: there is no linting, elaboration,
  building, simulation or test running, only the configuration for them.
- It does not extract doc comments or generate a documentation site;
  `kiln.doc` holds no modules.

## Tests

```
pip install .[test]
pytest
```