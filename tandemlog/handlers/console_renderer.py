from typing import Optional, Sequence
from tandemlog.common.enums import LogLevel
from tandemlog.common.models import LogRecord, StackFrame
from tandemlog.core.app_config import ConsoleConfig
from tandemlog.core.utils.time_utils import format_clock
from tandemlog.diagnostics.stack_analyzer import display_path


class ConsoleRenderer:
    """
    Turns a LogRecord into the text block printed on the console.
    Records below the minimum level render to None.
    """
    def __init__(self, min_level: LogLevel = LogLevel.INFO, verbose: bool = False):
        self.min_level = min_level
        self.verbose = verbose

    def enabled_for(self, level: LogLevel) -> bool:
        return level.severity >= self.min_level.severity

    def render(
        self,
        record: LogRecord,
        location: Optional[StackFrame] = None,
        causes: Sequence[str] = (),
        code_frame: Optional[str] = None,
    ) -> Optional[str]:
        if not self.enabled_for(record.level):
            return None

        head = f'{format_clock(record.timestamp)} [{record.level.value}]: {record.message}'
        if record.metadata:
            head += f' {record.metadata}'
        if location is not None:
            head += f' (at {display_path(location.file)}:{location.line}:{location.column})'

        blocks = [head]
        if record.stacktrace:
            blocks.append(self.render_stack(record.stacktrace))
        if causes:
            blocks.append('  caused by: ' + ConsoleConfig.CAUSE_SEPARATOR.join(causes))
        if self.verbose and code_frame:
            blocks.append(code_frame)
        return '\n'.join(blocks)

    @staticmethod
    def render_stack(stack: str, limit: int = ConsoleConfig.STACK_LINE_LIMIT) -> str:
        lines = [line.rstrip() for line in stack.splitlines() if line.strip()]
        shown = ['  ' + line.strip() for line in lines[:limit]]
        hidden = len(lines) - limit
        if hidden > 0:
            shown.append(f'  ... {hidden} more')
        return '\n'.join(shown)
