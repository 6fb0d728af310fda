"""Tests for source code frame rendering."""

import pytest

from tandemlog.common.models import StackFrame
from tandemlog.diagnostics.code_frame import build_code_frame


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "module.py"
    path.write_text("\n".join(f"line{n}" for n in range(1, 11)) + "\n")
    return path


class TestBuildCodeFrame:
    def test_window_with_caret(self, source):
        frame = build_code_frame(StackFrame(file=str(source), line=5, column=3))
        assert frame.splitlines() == [
            "  3 | line3",
            "  4 | line4",
            "> 5 | line5",
            "    |   ^",
            "  6 | line6",
            "  7 | line7",
        ]

    def test_clipped_at_start(self, source):
        lines = build_code_frame(StackFrame(file=str(source), line=1, column=1)).splitlines()
        assert lines[0] == "> 1 | line1"
        assert lines[1] == "    | ^"
        assert lines[-1] == "  3 | line3"

    def test_clipped_at_end_and_number_width(self, source):
        lines = build_code_frame(StackFrame(file=str(source), line=10, column=2)).splitlines()
        assert lines[0] == "   8 | line8"
        assert lines[-2] == "> 10 | line10"
        assert lines[-1] == "     |  ^"

    def test_line_out_of_range(self, source):
        assert build_code_frame(StackFrame(file=str(source), line=11, column=1)) is None

    def test_missing_file(self, tmp_path):
        assert build_code_frame(StackFrame(file=str(tmp_path / "gone.py"), line=1, column=1)) is None

    def test_directory_is_unreadable(self, tmp_path):
        assert build_code_frame(StackFrame(file=str(tmp_path), line=1, column=1)) is None
