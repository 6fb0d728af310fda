"""
Console sink built on loguru.
Each ConsoleSink owns a private loguru logger with a single handler, so the
application's own `loguru.logger` and its handlers are never touched and
several sinks can print side by side.
"""
import sys
from loguru._logger import Core as LoguruCore
from loguru._logger import Logger as LoguruLogger
from tandemlog.common.enums import LogLevel
from tandemlog.core.app_config import ConsoleConfig


def independent_logger() -> LoguruLogger:
    """
    A loguru logger with its own, empty handler set.

    Built the way loguru builds its shared `logger`. copy.deepcopy(logger)
    is not usable here: it fails while the shared logger still holds its
    stock sys.stderr handler.
    """
    return LoguruLogger(
        core=LoguruCore(),
        exception=None,
        depth=0,
        record=False,
        lazy=False,
        colors=False,
        raw=False,
        capture=True,
        patchers=[],
        extra={},
    )


class ConsoleSink:
    def __init__(self, stream=None, colorize=None):
        self._logger = independent_logger()
        self._handler_id = self._logger.add(
            stream if stream is not None else sys.stdout,
            format="<level>{message}</level>",
            level=0,
            colorize=colorize,
            backtrace=False,
            diagnose=False,
            catch=True,
        )

    def emit(self, level: LogLevel, text: str):
        self._logger.log(level.loguru_name, text)

    def notice(self, level: LogLevel, text: str):
        """Internal messages of the logger itself. Never persisted."""
        self.emit(level, f'{ConsoleConfig.NOTICE_PREFIX} {text}')

    def close(self):
        if self._handler_id is None:
            return
        try:
            self._logger.remove(self._handler_id)
        except ValueError:
            pass
        self._handler_id = None
