"""Resolution of a named profile overlay onto the base manifest values."""

from __future__ import annotations

import copy
from dataclasses import dataclass

from .config import LintConfig, ToolSlang, ToolVerible, ToolVerilator
from .manifest import Manifest
from .options import TraceFormat
from .sections import Design


@dataclass
class ResolvedConfig:
    """The configuration in effect for one profile."""

    design: Design
    lint: LintConfig
    tool_slang: ToolSlang
    tool_verilator: ToolVerilator
    tool_verible: ToolVerible

    @classmethod
    def resolve(cls, manifest: Manifest, profile_name: str) -> ResolvedConfig:
        """Apply ``profile_name`` on top of the manifest's base values.

        List fields in tool overrides replace the base lists; maps merge with
        the overlay winning on key conflicts.
        """
        design = copy.deepcopy(manifest.design)
        lint = copy.deepcopy(manifest.lint)
        slang = copy.deepcopy(manifest.tool.slang) or ToolSlang()
        verilator = copy.deepcopy(manifest.tool.verilator) or ToolVerilator()
        verible = copy.deepcopy(manifest.tool.verible) or ToolVerible()

        overlay = manifest.profile.get(profile_name)
        if overlay is not None:
            tools = overlay.tool
            if tools is not None:
                if tools.slang is not None:
                    slang.extra_args = list(tools.slang.extra_args)
                    if tools.slang.path is not None:
                        slang.path = tools.slang.path
                if tools.verilator is not None:
                    v = tools.verilator
                    verilator.extra_args = list(v.extra_args)
                    if v.path is not None:
                        verilator.path = v.path
                    if v.threads is not None:
                        verilator.threads = v.threads
                    if v.trace is not TraceFormat.OFF:
                        verilator.trace = v.trace
                    verilator.coverage = verilator.coverage or v.coverage
                    verilator.timing = verilator.timing or v.timing
                    if v.x_assign is not None:
                        verilator.x_assign = v.x_assign
                    verilator.bbox_unsup = verilator.bbox_unsup or v.bbox_unsup
                    verilator.trace_structs = verilator.trace_structs or v.trace_structs
                    verilator.trace_params = verilator.trace_params or v.trace_params
                    if v.trace_depth is not None:
                        verilator.trace_depth = v.trace_depth
                if tools.verible is not None:
                    verible.extra_args = list(tools.verible.extra_args)
                    if tools.verible.path is not None:
                        verible.path = tools.verible.path
            if overlay.lint is not None:
                lint.rules.update(overlay.lint.rules)
                lint.slang.update(overlay.lint.slang)
                lint.verilator.update(overlay.lint.verilator)

        return cls(
            design=design,
            lint=lint,
            tool_slang=slang,
            tool_verilator=verilator,
            tool_verible=verible,
        )