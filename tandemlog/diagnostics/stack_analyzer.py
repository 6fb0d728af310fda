"""
Stack text parsing and synthesis.

Every stack handled here follows one grammar, one frame per line with the
most recent call first:

    ValueError: boom
        at handle (app/service.py:12:9)     <- parenthesized location
        at app/main.py:3:1                  <- bare location

Python tracebacks are converted into that grammar by format_stack(), so the
parser works the same on local exceptions and on stacks relayed from
elsewhere as plain text.
"""
import inspect
import linecache
import os
import re
import sysconfig
import traceback
from pathlib import Path
from typing import Iterable, List, Optional
from tandemlog.common.models import StackFrame
from tandemlog.core.app_config import ConsoleConfig
from tandemlog.core.utils.serialize import safe_str

PAREN_FRAME = re.compile(r'\((?P<file>[^()]+?):(?P<line>\d+):(?P<column>\d+)\)\s*$')
BARE_FRAME = re.compile(r'^\s*at (?P<file>[^\s()][^()]*?):(?P<line>\d+):(?P<column>\d+)\s*$')

LIBRARY_DIRS = ('site-packages', 'dist-packages')
PACKAGE_DIR = Path(__file__).resolve().parent.parent


def _stdlib_dirs() -> List[Path]:
    paths = sysconfig.get_paths()
    dirs = {Path(paths[key]).resolve() for key in ('stdlib', 'platstdlib') if key in paths}
    return sorted(dirs)

STDLIB_DIRS = _stdlib_dirs()


def display_path(path: str) -> str:
    """Absolute paths under the working directory become relative."""
    if not os.path.isabs(path):
        return path
    try:
        relative = os.path.relpath(path, os.getcwd())
    except ValueError:
        # different drive on Windows
        return path
    return path if relative.startswith('..') else relative

def _is_within(path: Path, parent: Path) -> bool:
    try:
        path.relative_to(parent)
    except ValueError:
        return False
    return True

def is_application_file(path: str) -> bool:
    """True for files that belong to the application rather than a library."""
    if not path or path.startswith('<'):
        return False
    parts = Path(path).parts
    if any(part in LIBRARY_DIRS for part in parts):
        return False
    resolved = Path(path).resolve()
    if _is_within(resolved, PACKAGE_DIR):
        return False
    return not any(_is_within(resolved, stdlib) for stdlib in STDLIB_DIRS)

def parse_frame_line(line: str) -> Optional[StackFrame]:
    """Parse one stack line in either accepted shape, ignoring the file filter."""
    match = PAREN_FRAME.search(line) or BARE_FRAME.match(line)
    if not match:
        return None
    line_no, column = int(match.group('line')), int(match.group('column'))
    if line_no < 1 or column < 1:
        return None
    return StackFrame(file=match.group('file').strip(), line=line_no, column=column)

def first_application_frame(stack: Optional[str]) -> Optional[StackFrame]:
    if not stack:
        return None
    for line in stack.splitlines():
        frame = parse_frame_line(line)
        if frame and is_application_file(frame.file):
            return frame
    return None

def has_application_frame(stack: Optional[str]) -> bool:
    return first_application_frame(stack) is not None

def _character_column(summary: traceback.FrameSummary) -> int:
    """1-based column of a frame. colno counts UTF-8 bytes of the source line."""
    colno = getattr(summary, 'colno', None)
    if colno is None:
        return 1
    # reads the file unless the lookup already cached it; verbose mode only
    source = linecache.getline(summary.filename, summary.lineno) if summary.lineno else ''
    if not source:
        return colno + 1
    prefix = source.encode('utf-8')[:colno].decode('utf-8', errors='replace')
    return len(prefix) + 1

def _frame_lines(frames: Iterable[traceback.FrameSummary], resolve_columns: bool) -> List[str]:
    lines = []
    for summary in frames:
        column = _character_column(summary) if resolve_columns else (getattr(summary, 'colno', None) or 0) + 1
        lines.append(f'    at {summary.name} ({display_path(summary.filename)}:{summary.lineno or 1}:{column})')
    return lines

def format_stack(error: BaseException, lookup_lines: bool = False) -> str:
    """
    Render an exception's own traceback in the stack grammar.

    Source files are only read with `lookup_lines`, which also turns byte
    columns into character columns.
    """
    message = safe_str(error)
    header = f'{type(error).__name__}: {message}' if message else type(error).__name__
    frames = traceback.TracebackException.from_exception(error, lookup_lines=lookup_lines).stack
    return '\n'.join([header] + _frame_lines(reversed(frames), resolve_columns=lookup_lines))

def capture_callsite(limit: int = ConsoleConfig.CALLSITE_FRAME_LIMIT) -> str:
    """
    Synthetic stack for the current call location.

    Used when an error carries no application frame: the place where it was
    logged is the next best thing to point at. Only application frames are
    kept, most recent first, at most `limit` of them.
    """
    walked = traceback.walk_stack(inspect.currentframe())
    application = ((frame, lineno) for frame, lineno in walked if is_application_file(frame.f_code.co_filename))
    frames = traceback.StackSummary.extract(application, limit=limit, lookup_lines=True)
    return '\n'.join(['Callsite'] + _frame_lines(frames, resolve_columns=True))
