import sys
from pathlib import Path

import pytest

from kiln.fmt import (
    CheckOutcome,
    FormatterCliError,
    FormatterIoError,
    FormatterNotFound,
    check,
    format_in_place,
    locate_formatter,
    run_format,
    unified_diff,
)

_FORMATTER_BODY = """\
import sys
with open(sys.argv[1], encoding="utf-8") as fh:
    text = "".join(line.rstrip() + "\\n" for line in fh)
sys.stdout.write(text)
"""

_FAILING_BODY = """\
import sys
sys.stderr.write("boom")
sys.exit(3)
"""


def _install_formatter(tmp_path: Path, body: str, monkeypatch) -> Path:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = tmp_path / "formatter.py"
    script.write_text(body, encoding="utf-8")
    wrapper = bin_dir / "verible-verilog-format"
    wrapper.write_text(
        f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n', encoding="utf-8"
    )
    wrapper.chmod(0o755)
    monkeypatch.setenv("PATH", str(bin_dir))
    return wrapper


def test_diff_empty_when_identical():
    d = unified_diff("a.sv", "module a; endmodule\n", "module a; endmodule\n")
    assert "--- a.sv" in d
    assert " module a; endmodule" in d
    assert "-module" not in d
    assert "+module" not in d


def test_diff_marks_changed_lines():
    d = unified_diff("a.sv", "x\ny\nz\n", "x\nY\nz\n")
    assert "-y" in d
    assert "+Y" in d
    assert " x" in d
    assert " z" in d


def test_diff_handles_added_lines():
    d = unified_diff("a.sv", "x\n", "x\ny\nz\n")
    assert "+y" in d
    assert "+z" in d


def test_diff_exact_layout():
    d = unified_diff("a.sv", "a\nb\n", "a\n")
    assert d == "--- a.sv\n+++ a.sv (formatted)\n a\n-b\n"


def test_missing_formatter_yields_clear_error(monkeypatch):
    monkeypatch.setenv("PATH", "/tmp/no/such/dir/i/swear")
    with pytest.raises(FormatterNotFound) as info:
        locate_formatter()
    msg = str(info.value)
    assert "verible-verilog-format" in msg
    assert "brew install verible" in msg or "releases" in msg


def test_locate_finds_binary(tmp_path, monkeypatch):
    wrapper = _install_formatter(tmp_path, _FORMATTER_BODY, monkeypatch)
    assert locate_formatter() == wrapper


def test_check_missing_file_is_io_error(tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", "/tmp/no/such/dir/i/swear")
    with pytest.raises(FormatterIoError):
        check(tmp_path / "missing.sv")


def test_check_reports_diff(tmp_path, monkeypatch):
    _install_formatter(tmp_path, _FORMATTER_BODY, monkeypatch)
    src = tmp_path / "a.sv"
    src.write_bytes(b"module a;  \nendmodule\n")
    outcome = check(src)
    assert outcome.ok is False
    assert outcome.file == src
    assert "+module a;\n" in outcome.diff
    assert " endmodule" in outcome.diff
    assert src.read_bytes() == b"module a;  \nendmodule\n"


def test_check_formatted_file_is_ok(tmp_path, monkeypatch):
    _install_formatter(tmp_path, _FORMATTER_BODY, monkeypatch)
    src = tmp_path / "a.sv"
    src.write_bytes(b"module a;\nendmodule\n")
    assert check(src) == CheckOutcome(file=src, ok=True, diff="")


def test_format_in_place_rewrites_once(tmp_path, monkeypatch):
    _install_formatter(tmp_path, _FORMATTER_BODY, monkeypatch)
    src = tmp_path / "a.sv"
    src.write_bytes(b"module a;   \nendmodule\n")
    assert format_in_place(src) is True
    assert src.read_bytes() == b"module a;\nendmodule\n"
    assert format_in_place(src) is False


def test_run_format_reports_failure(tmp_path, monkeypatch):
    _install_formatter(tmp_path, _FAILING_BODY, monkeypatch)
    src = tmp_path / "a.sv"
    src.write_text("module a;\n", encoding="utf-8")
    with pytest.raises(FormatterCliError) as info:
        run_format(src)
    assert info.value.code == 3
    assert "boom" in info.value.stderr