import copy
from datetime import timedelta
from pathlib import Path

import pytest

from kiln.config import ValidateOptions
from kiln.manifest import Manifest
from kiln.options import (
    DuplicateFirmwareName,
    HookPhase,
    InvalidFeatureName,
    InvalidFirmwareName,
    InvalidPackageName,
    InvalidVersion,
    LintSeverity,
    ManifestParseError,
    MissingIncludeDir,
    PatternDetect,
    SvLanguage,
    TraceFormat,
    XAssign,
)
from kiln.sections import FeatureSelection

HEADER = """
[package]
name = "demo"
version = "0.1.0"

[design]
top = "t"
"""


def parse(text):
    return Manifest.parse(text)


def test_library_example():
    m = parse(
        """
        [package]
        name = "demo"
        version = "0.1.0"

        [design]
        top = "demo_top"
        """
    )
    assert m.package.name == "demo"
    assert m.design.top == "demo_top"


def test_valid_minimal_manifest():
    m = parse(HEADER)
    assert m.package.name == "demo"
    assert m.package.version == "0.1.0"
    assert m.package.authors == []
    assert m.dependencies == {}
    assert m.vendor == {}
    assert m.firmware == []
    assert m.tool.slang is None


def test_valid_full_manifest():
    m = parse(
        """
        [package]
        name = "widget_v2"
        version = "1.2.3"
        authors = ["Jane <jane@example.com>"]
        description = "A widget"
        license = "MIT OR Apache-2.0"

        [design]
        top = "widget_top"
        sources = ["rtl/**/*.sv"]
        include_dirs = ["rtl/include"]
        defines = { FOO = "1", BAR = "" }

        [dependencies]
        """
    )
    assert m.package.authors == ["Jane <jane@example.com>"]
    assert m.package.description == "A widget"
    assert m.package.license == "MIT OR Apache-2.0"
    assert m.design.sources == ["rtl/**/*.sv"]
    assert m.design.include_dirs == [Path("rtl/include")]
    assert m.design.defines == {"BAR": "", "FOO": "1"}


def test_valid_underscore_name():
    m = parse(
        """
        [package]
        name = "_internal"
        version = "0.0.1"

        [design]
        top = "t"
        """
    )
    assert m.package.name == "_internal"
    assert m.package.version == "0.0.1"


def test_invalid_bad_semver():
    with pytest.raises(InvalidVersion) as info:
        parse(
            """
            [package]
            name = "demo"
            version = "not-semver"

            [design]
            top = "t"
            """
        )
    assert str(info.value).startswith(
        "package version `not-semver` is not valid semver: "
    )


def test_invalid_bad_identifier():
    with pytest.raises(InvalidPackageName) as info:
        parse(
            """
            [package]
            name = "1bad"
            version = "0.1.0"

            [design]
            top = "t"
            """
        )
    assert str(info.value) == (
        "package name `1bad` is not a valid SystemVerilog identifier (must start "
        "with a letter or `_` and contain only letters, digits, or `_`)"
    )


def test_invalid_unknown_key():
    with pytest.raises(ManifestParseError) as info:
        parse(
            """
            [package]
            name = "demo"
            version = "0.1.0"
            color = "blue"

            [design]
            top = "t"
            """
        )
    msg = str(info.value)
    assert "color" in msg
    assert "unknown field" in msg or "not allowed" in msg


def test_invalid_missing_design():
    with pytest.raises(ManifestParseError) as info:
        parse(
            """
            [package]
            name = "demo"
            version = "0.1.0"
            """
        )
    msg = str(info.value)
    assert "design" in msg or "missing field" in msg


def test_invalid_toml_syntax():
    with pytest.raises(ManifestParseError):
        parse("[package\nname = ")


def test_defaults_sources_when_omitted():
    m = parse(HEADER)
    assert m.design.sources == ["src/**/*.sv", "src/**/*.svh", "src/**/*.v"]


def test_validate_rejects_missing_include_dir(tmp_path):
    path = tmp_path / "Kiln.toml"
    path.write_text(HEADER + 'include_dirs = ["does/not/exist"]\n')
    with pytest.raises(MissingIncludeDir) as info:
        Manifest.load(path)
    assert info.value.path == Path("does/not/exist")
    assert str(MissingIncludeDir(Path("does/not/exist"))) == (
        "include directory `does/not/exist` does not exist"
    )


def test_load_accepts_existing_include_dir(tmp_path):
    (tmp_path / "inc").mkdir()
    path = tmp_path / "Kiln.toml"
    path.write_text(HEADER + 'include_dirs = ["inc"]\n')
    m = Manifest.load(path)
    assert m.design.include_dirs == [Path("inc")]


def test_validate_skip_include_dirs_for_kiln_new(tmp_path):
    m = parse(HEADER + 'include_dirs = ["does/not/exist"]\n')
    assert m.validate(Path("."), ValidateOptions(check_include_dirs=False)) is None
    with pytest.raises(MissingIncludeDir):
        m.validate(tmp_path, ValidateOptions(check_include_dirs=True))


def test_design_timescale_and_language():
    m = parse(HEADER + 'timescale = "1ns/1ps"\nlanguage = "sv2017"\n')
    assert m.design.timescale == "1ns/1ps"
    assert m.design.language == SvLanguage.SV2017


def test_tool_slang_extra_args():
    m = parse(HEADER + '[tool.slang]\nextra_args = ["--allow-hierarchical-const"]\n')
    assert m.tool.slang.extra_args == ["--allow-hierarchical-const"]


def test_tool_verilator_options():
    m = parse(
        HEADER
        + """
        [tool.verilator]
        threads = 4
        trace = "fst"
        coverage = true
        extra_args = ["--x-assign", "0"]
        """
    )
    v = m.tool.verilator
    assert v.threads == 4
    assert v.trace == TraceFormat.FST
    assert v.coverage is True
    assert v.extra_args == ["--x-assign", "0"]


def test_trace_format_from_false():
    m = parse(HEADER + "[tool.verilator]\ntrace = false\n")
    assert m.tool.verilator.trace == TraceFormat.OFF


def test_trace_format_from_vcd():
    m = parse(HEADER + '[tool.verilator]\ntrace = "vcd"\n')
    assert m.tool.verilator.trace == TraceFormat.VCD


def test_lint_slang_and_verilator_subtables():
    m = parse(
        HEADER
        + """
        [lint]
        width-trunc = "error"

        [lint.slang]
        relax-enum-conversions = "off"

        [lint.verilator]
        GENUNNAMED = "warn"
        """
    )
    assert m.lint.rules.get("width-trunc") == LintSeverity.ERROR
    assert m.lint.slang.get("relax-enum-conversions") == LintSeverity.OFF
    assert m.lint.verilator.get("GENUNNAMED") == LintSeverity.WARN


def test_profile_tool_verilator_override():
    m = parse(
        HEADER
        + """
        [profile.test.tool.verilator]
        trace = "fst"
        coverage = true
        """
    )
    vt = m.profile["test"].tool.verilator
    assert vt.trace == TraceFormat.FST
    assert vt.coverage is True


@pytest.mark.parametrize(
    "text",
    [
        """
        [package]
        name = "demo"
        version = "0.1.0"
        unknown_key = "oops"

        [design]
        top = "t"
        """,
        HEADER + "slang_args = []\n",
        HEADER + "[tool.slang]\nweird = true\n",
        HEADER + "[tool.verilator]\nbad_field = 99\n",
    ],
    ids=["package", "design", "tool_slang", "tool_verilator"],
)
def test_deny_unknown_fields(text):
    with pytest.raises(ManifestParseError):
        parse(text)


def test_round_trip_parse_serialize_parse():
    src = """
        [package]
        name = "demo"
        version = "0.1.0"

        [design]
        top = "t"
        timescale = "1ns/1ps"
        language = "sv2017"

        [tool.verilator]
        threads = 2
        trace = "fst"
        coverage = false

        [lint]
        width-trunc = "error"

        [lint.slang]
        relax-enum-conversions = "off"
    """
    m1 = parse(src)
    m2 = parse(m1.dumps())
    assert m1 == m2


def test_round_trip_rich_manifest():
    src = """
        [package]
        name = "demo"
        version = "0.1.0"

        [design]
        top = "t"
        defines = { BASE = "1" }
        libraries = ["vendor/lib"]

        [dependencies]
        axi = { git = "https://example.com/axi.git", version = "0.39" }

        [features]
        default = ["sim"]

        [features.sim]
        defines = ["SIM"]

        [vendor.xilinx]
        sim_models = ["hardware/sim_models/BUFG.sv"]

        [[firmware]]
        name = "c_tests"
        path = "software/c_tests"
        build = "make all"

        [hooks]
        pre-build = "make -C ip/"

        [test]
        timeout = "2m"

        [[test.cases]]
        name = "fib"
        testbench = "c_tests_tb"
        args = ["+test_name=fib"]
        timeout = "30s"
        detect = { patterns = { stdout_contains = ["PASS"] } }

        [profile.release.tool.verilator]
        extra_args = ["-O3"]
    """
    m1 = parse(src)
    m2 = parse(m1.dumps())
    assert m1 == m2
    case = m2.test.cases[0]
    assert case.timeout.duration == timedelta(seconds=30)
    assert case.detect == PatternDetect(stdout_contains=("PASS",))
    assert m2.dependencies["axi"]["version"] == "0.39"


def test_tool_verilator_first_class_knobs():
    m = parse(
        HEADER
        + """
        [tool.verilator]
        timing = true
        x_assign = "unique"
        bbox_unsup = true
        trace = "fst"
        trace_structs = true
        trace_params = true
        trace_depth = 8
        """
    )
    v = m.tool.verilator
    assert v.timing is True
    assert v.x_assign == XAssign.UNIQUE
    assert v.bbox_unsup is True
    assert v.trace_structs is True
    assert v.trace_params is True
    assert v.trace_depth == 8


@pytest.mark.parametrize(
    "value, expected",
    [
        ('"0"', XAssign.ZERO),
        ('"1"', XAssign.ONE),
        ('"fast"', XAssign.FAST),
        ('"unique"', XAssign.UNIQUE),
    ],
)
def test_x_assign_accepts_zero_one_fast_unique(value, expected):
    m = parse(HEADER + f"[tool.verilator]\nx_assign = {value}\n")
    assert m.tool.verilator.x_assign == expected


def test_x_assign_rejects_unknown():
    with pytest.raises(ManifestParseError):
        parse(HEADER + '[tool.verilator]\nx_assign = "five"\n')


def test_design_aux_tops_round_trips():
    m = parse(
        """
        [package]
        name = "demo"
        version = "0.1.0"

        [design]
        top = "z1top"
        aux_tops = ["glbl", "BUFG_helper"]
        """
    )
    assert m.design.aux_tops == ["glbl", "BUFG_helper"]


def test_design_aux_tops_default_empty():
    assert parse(HEADER).design.aux_tops == []


def test_features_parse_and_resolve_default():
    m = parse(
        HEADER
        + """
        [features]
        default = ["sim"]

        [features.sim]
        defines = ["SIM"]

        [features.debug]
        defines = ["DEBUG=1"]
        sources = ["src/debug/**/*.sv"]
        """
    )
    assert m.features.default == ["sim"]
    assert len(m.features.features) == 2
    sel = FeatureSelection.resolve(m.features, [], False, False)
    assert sel.active == ["sim"]


def test_features_resolve_no_default():
    m = parse(
        HEADER
        + """
        [features]
        default = ["a"]

        [features.a]
        defines = ["A"]

        [features.b]
        defines = ["B"]
        """
    )
    assert FeatureSelection.resolve(m.features, [], False, True).active == []
    assert FeatureSelection.resolve(m.features, ["b"], False, True).active == ["b"]


def test_features_resolve_all():
    m = parse(
        HEADER
        + """
        [features]
        default = []

        [features.a]
        defines = ["A"]

        [features.b]
        defines = ["B"]
        """
    )
    sel = FeatureSelection.resolve(m.features, [], True, False)
    assert sorted(sel.active) == ["a", "b"]


def test_features_resolve_unknown_errors():
    from kiln.options import UnknownFeature

    m = parse(HEADER + "[features]\ndefault = []\n\n[features.a]\n")
    with pytest.raises(UnknownFeature):
        FeatureSelection.resolve(m.features, ["nope"], False, False)


def test_features_default_must_exist():
    from kiln.options import UnknownFeature

    with pytest.raises(UnknownFeature):
        parse(HEADER + '[features]\ndefault = ["ghost"]\n')


def test_features_apply_merges_defines_and_sources():
    m = parse(
        """
        [package]
        name = "p"
        version = "0.1.0"

        [design]
        top = "t"
        sources = ["src/**/*.sv"]
        defines = { BASE = "1" }

        [features]
        default = []

        [features.debug]
        defines = ["DEBUG", "VERBOSITY=2"]
        sources = ["src/debug/**/*.sv"]
        """
    )
    sel = FeatureSelection.resolve(m.features, ["debug"], False, False)
    design = copy.deepcopy(m.design)
    m.apply_features(design, sel)
    assert design.defines["BASE"] == "1"
    assert design.defines["DEBUG"] == ""
    assert design.defines["VERBOSITY"] == "2"
    assert "src/debug/**/*.sv" in design.sources
    assert m.design.sources == ["src/**/*.sv"]


def test_features_invalid_name_errors():
    with pytest.raises(InvalidFeatureName):
        parse(
            HEADER
            + """
            [features]
            default = []

            [features."1bad"]
            defines = []
            """
        )


def test_vendor_block_round_trips():
    m = parse(
        HEADER
        + """
        [vendor.xilinx]
        sim_models = ["hardware/sim_models/BUFG.sv", "hardware/sim_models/glbl.sv"]
        stubs = ["hardware/stubs/PLLE2_ADV.sv"]
        blackbox_modules = ["MMCME2_ADV", "PLLE2_ADV"]

        [vendor.altera]
        sim_models = []
        """
    )
    xilinx = m.vendor["xilinx"]
    assert len(xilinx.sim_models) == 2
    assert xilinx.stubs == ["hardware/stubs/PLLE2_ADV.sv"]
    assert xilinx.blackbox_modules == ["MMCME2_ADV", "PLLE2_ADV"]
    assert "altera" in m.vendor


def test_vendor_block_default_empty():
    assert parse(HEADER).vendor == {}


def test_firmware_round_trips():
    m = parse(
        HEADER
        + """
        [[firmware]]
        name = "isa_tests"
        path = "software/riscv-isa-tests"
        build = "make"
        artifacts = "*.hex"

        [[firmware]]
        name = "c_tests"
        path = "software/c_tests"
        build = "make all"
        """
    )
    assert len(m.firmware) == 2
    assert m.firmware[0].name == "isa_tests"
    assert m.firmware[0].artifacts == "*.hex"
    assert m.firmware[1].build == "make all"
    assert m.firmware[1].artifacts is None


def test_firmware_invalid_name_errors():
    with pytest.raises(InvalidFirmwareName):
        parse(HEADER + '[[firmware]]\nname = "1bad"\npath = "."\nbuild = "true"\n')


def test_firmware_duplicate_name_errors():
    with pytest.raises(DuplicateFirmwareName):
        parse(
            HEADER
            + """
            [[firmware]]
            name = "fw"
            path = "a"
            build = "true"
            [[firmware]]
            name = "fw"
            path = "b"
            build = "true"
            """
        )


def test_hooks_round_trip_and_empty_strings_treated_as_unset():
    m = parse(
        HEADER
        + """
        [hooks]
        pre-build = "make -C ip/"
        pre-test = "echo hi"
        post-test = ""
        """
    )
    assert m.hooks.for_phase(HookPhase.PRE_BUILD) == "make -C ip/"
    assert m.hooks.for_phase(HookPhase.PRE_TEST) == "echo hi"
    assert m.hooks.for_phase(HookPhase.POST_TEST) is None
    assert m.hooks.for_phase(HookPhase.PRE_CHECK) is None


def test_hooks_unknown_phase_rejected():
    with pytest.raises(ManifestParseError):
        parse(HEADER + '[hooks]\n"post-build" = "echo nope"\n')


def test_lint_config_round_trips_in_manifest():
    m = parse(
        """
        [package]
        name = "p"
        version = "0.1.0"

        [design]
        top = "t"

        [lint]
        width-trunc = "error"
        unused-net = "warn"
        implicit-net = "off"
        """
    )
    assert len(m.lint.rules) == 3
    assert m.lint.rules["width-trunc"] == LintSeverity.ERROR
    assert m.lint.rules["implicit-net"] == LintSeverity.OFF


def test_resolved_lint_profile_overlay_wins():
    m = parse(
        HEADER
        + """
        [lint]
        width-trunc = "warn"
        unused = "warn"

        [lint.slang]
        only-slang = "error"

        [lint.verilator]
        WIDTH = "off"

        [profile.ci.lint]
        unused = "error"

        [profile.ci.lint.verilator]
        WIDTH = "error"
        """
    )
    slang = m.resolved_lint_for_slang("ci")
    assert slang == {
        "only-slang": LintSeverity.ERROR,
        "unused": LintSeverity.ERROR,
        "width-trunc": LintSeverity.WARN,
    }
    verilator = m.resolved_lint_for_verilator("ci")
    assert verilator["WIDTH"] == LintSeverity.ERROR
    assert "only-slang" not in verilator
    assert m.resolved_lint_for_verilator("dev")["WIDTH"] == LintSeverity.OFF


def test_load_missing_file_raises_io_error(tmp_path):
    from kiln.options import ManifestIoError

    with pytest.raises(ManifestIoError) as info:
        Manifest.load(tmp_path / "Kiln.toml")
    assert info.value.path == tmp_path / "Kiln.toml"