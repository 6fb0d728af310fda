"""Tests for console line rendering and the minimum-level filter."""

from datetime import datetime, timezone

from tandemlog.common.enums import LogLevel
from tandemlog.common.models import LogRecord, StackFrame
from tandemlog.handlers.console_renderer import ConsoleRenderer


def _record(level=LogLevel.INFO, message="hello", metadata="", stacktrace=None):
    return LogRecord(
        level=level,
        message=message,
        metadata=metadata,
        stacktrace=stacktrace,
        timestamp=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )


class TestLevelFilter:
    def test_below_minimum_renders_nothing(self):
        renderer = ConsoleRenderer(LogLevel.WARN)
        assert renderer.render(_record(LogLevel.INFO)) is None
        assert renderer.render(_record(LogLevel.DEBUG)) is None

    def test_at_and_above_minimum(self):
        renderer = ConsoleRenderer(LogLevel.WARN)
        assert renderer.render(_record(LogLevel.WARN)) is not None
        assert renderer.render(_record(LogLevel.ERROR)) is not None

    def test_ordering(self):
        renderer = ConsoleRenderer(LogLevel.DEBUG)
        assert all(renderer.enabled_for(level) for level in LogLevel)
        assert not ConsoleRenderer(LogLevel.ERROR).enabled_for(LogLevel.WARN)


class TestLineFormat:
    def test_time_level_message(self):
        assert ConsoleRenderer().render(_record()) == "03:04:05 [info]: hello"

    def test_metadata_is_appended(self):
        text = ConsoleRenderer().render(_record(metadata='{"user": 1}'))
        assert text == '03:04:05 [info]: hello {"user": 1}'

    def test_location_hint(self):
        text = ConsoleRenderer().render(_record(), location=StackFrame(file="app/x.py", line=3, column=7))
        assert text.endswith("(at app/x.py:3:7)")


class TestErrorBlocks:
    def test_stack_block_is_capped(self):
        stack = "\n".join(["ValueError: boom"] + [f"    at f{n} (app/x.py:{n}:1)" for n in range(1, 15)])
        lines = ConsoleRenderer().render(_record(LogLevel.ERROR, stacktrace=stack)).splitlines()
        assert lines[1] == "  ValueError: boom"
        assert len(lines) == 1 + 10 + 1
        assert lines[-1] == "  ... 5 more"

    def test_cause_summary(self):
        text = ConsoleRenderer().render(
            _record(LogLevel.ERROR, stacktrace="A: a"), causes=["B: b", "C: c"]
        )
        assert text.splitlines()[-1] == "  caused by: B: b -> C: c"

    def test_no_cause_line_without_causes(self):
        assert "caused by" not in ConsoleRenderer().render(_record(LogLevel.ERROR, stacktrace="A: a"))

    def test_code_frame_only_in_verbose_mode(self):
        frame_text = "> 5 | line5"
        quiet = ConsoleRenderer(verbose=False).render(_record(LogLevel.ERROR), code_frame=frame_text)
        loud = ConsoleRenderer(verbose=True).render(_record(LogLevel.ERROR), code_frame=frame_text)
        assert frame_text not in quiet
        assert loud.endswith(frame_text)
