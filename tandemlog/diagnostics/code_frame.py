from pathlib import Path
from typing import Optional
from tandemlog.common.models import StackFrame
from tandemlog.core.app_config import ConsoleConfig


def build_code_frame(frame: StackFrame, context: int = ConsoleConfig.CODE_FRAME_CONTEXT) -> Optional[str]:
    """
    Render the source around a frame, with a caret under the column.

          11 |     total = sum(values)
        > 12 |     return total / count
             |            ^
          13 |

    Returns None when the file cannot be read or the line is outside it.
    Reads from disk, so callers only use it in verbose mode.
    """
    try:
        lines = Path(frame.file).read_text(encoding='utf-8', errors='replace').splitlines()
    except (OSError, ValueError):
        return None
    if frame.line > len(lines):
        return None

    start = max(1, frame.line - context)
    end = min(len(lines), frame.line + context)
    width = len(str(end))
    output = []
    for number in range(start, end + 1):
        marker = '>' if number == frame.line else ' '
        output.append(f'{marker} {number:>{width}} | {lines[number - 1]}')
        if number == frame.line and frame.column:
            output.append(f'  {"":>{width}} | {" " * (frame.column - 1)}^')
    return '\n'.join(output)
