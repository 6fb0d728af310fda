"""
The logging facade.

Every call renders to the console right away and, unless the level is debug,
hands the record to the store without waiting for it. Nothing raised inside
this module reaches the caller.
"""
import functools
import sys
import time
from collections.abc import Mapping
from typing import Any, Optional, Sequence, Tuple
from tandemlog.common.enums import LogLevel
from tandemlog.common.models import LogRecord, StackFrame, StructuredFault, as_fault
from tandemlog.core.app_config import ConsoleConfig, LoggerConfig, resolve_level, resolve_verbose
from tandemlog.core.logger_config import ConsoleSink
from tandemlog.core.utils.serialize import coerce_text, safe_str
from tandemlog.db_ops.log_store import LogStore
from tandemlog.diagnostics.cause_chain import walk_causes
from tandemlog.diagnostics.code_frame import build_code_frame
from tandemlog.diagnostics.stack_analyzer import capture_callsite, first_application_frame
from tandemlog.handlers.console_renderer import ConsoleRenderer
from tandemlog.handlers.fault_hooks import FaultHooks, exit_process, install_fault_hooks, uninstall_fault_hooks


def never_raises(method):
    """Route any exception from a log call to the internal error path."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except Exception as e:
            self._internal_error(method.__name__, e)
    return wrapper


class Logger:
    def __init__(
        self,
        config: Optional[LoggerConfig] = None,
        console: Optional[ConsoleSink] = None,
        store: Optional[LogStore] = None,
    ):
        # problems found before the console exists are printed once it does
        config_problems = []
        self.config = config if config is not None else LoggerConfig.from_env(on_invalid=config_problems.append)
        self.level = resolve_level(self.config)
        self.verbose = resolve_verbose(self.config)
        self.console = console or ConsoleSink(self.config.stream, self.config.colorize)
        self.renderer = ConsoleRenderer(self.level, self.verbose)
        for problem in config_problems:
            self.console.notice(LogLevel.WARN, problem)

        self.store = store
        if self.store is None and self.config.store is not None:
            self.store = LogStore(self.config.store, notify=self.console.notice, verbose=self.verbose)
        if self.store is not None:
            self.store.initialize()

        self.framework = FrameworkLogger(self)
        self.fault_hooks: Optional[FaultHooks] = None
        if self.config.install_fault_hooks:
            self.fault_hooks = install_fault_hooks(self)

    # ========== Public API ==========

    @never_raises
    def info(self, message: Any, metadata: Optional[Mapping] = None):
        self._log(LogLevel.INFO, message, metadata)

    @never_raises
    def warn(self, message: Any, metadata: Optional[Mapping] = None):
        self._log(LogLevel.WARN, message, metadata)

    warning = warn

    @never_raises
    def debug(self, message: Any, metadata: Optional[Mapping] = None):
        # debug records are never persisted
        self._log(LogLevel.DEBUG, message, metadata, persist=False)

    @never_raises
    def error(self, message_or_error: Any, metadata: Optional[Mapping] = None):
        fault = as_fault(message_or_error, lookup_lines=self.verbose)
        if isinstance(fault, StructuredFault):
            self._log_fault(fault.message or fault.name, fault, metadata)
        else:
            self._log(LogLevel.ERROR, fault.text, metadata)

    @never_raises
    def error_enriched(self, context: Any, error: Any, metadata: Optional[Mapping] = None):
        """Log an error under a caller-supplied context: "<context>: <error message>"."""
        fault = as_fault(error, lookup_lines=self.verbose)
        if isinstance(fault, StructuredFault):
            self._log_fault(f'{coerce_text(context)}: {fault.message or fault.name}', fault, metadata)
        else:
            self._log(LogLevel.ERROR, f'{coerce_text(context)}: {fault.text}', metadata)

    def close(self):
        if self.fault_hooks is not None and self.fault_hooks.logger is self:
            uninstall_fault_hooks()
            self.fault_hooks = None
        if self.store is not None:
            self.store.close()
        self.console.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ========== Internals ==========

    def _log(self, level: LogLevel, message: Any, metadata: Optional[Mapping] = None, persist: bool = True):
        if not self.renderer.enabled_for(level):
            return
        self._emit(LogRecord.create(level, message, metadata), persist=persist)

    def _log_fault(self, message: str, fault: StructuredFault, metadata: Optional[Mapping]):
        if not self.renderer.enabled_for(LogLevel.ERROR):
            return
        stack = fault.stack
        location = first_application_frame(stack)
        if location is None and self.verbose:
            # no usable frame in the error: point at where it was logged
            stack = f'{stack}\n{capture_callsite()}'
            location = first_application_frame(stack)
        code_frame = build_code_frame(location) if self.verbose and location is not None else None
        causes = walk_causes(fault.origin if fault.origin is not None else fault)

        record = LogRecord.create(LogLevel.ERROR, message, metadata, stacktrace=stack)
        self._emit(record, location=location, causes=causes, code_frame=code_frame)

    def _emit(
        self,
        record: LogRecord,
        location: Optional[StackFrame] = None,
        causes: Sequence[str] = (),
        code_frame: Optional[str] = None,
        persist: bool = True,
    ):
        text = self.renderer.render(record, location, causes, code_frame)
        if text is not None:
            self.console.emit(record.level, text)
        if persist and record.level is not LogLevel.DEBUG and self.store is not None:
            self.store.write(record)

    def _internal_error(self, operation: str, error: Exception):
        message = f'{operation}() failed inside the logger: {safe_str(error)}'
        try:
            self.console.notice(LogLevel.ERROR, message)
        except Exception:
            sys.stderr.write(f'{ConsoleConfig.NOTICE_PREFIX} {message}\n')


class FrameworkLogger:
    """
    The same logger in the shape web frameworks expect from theirs
    (info/warn/error/debug/fatal/trace/child, printf-style arguments).

    info and debug only print; warn, error and fatal also persist.
    fatal terminates the process after the flush delay.
    """
    def __init__(self, logger: Logger, terminate=exit_process, flush_delay: float = ConsoleConfig.FLUSH_DELAY_SEC):
        self._logger = logger
        self._terminate = terminate
        self.flush_delay = flush_delay

    @staticmethod
    def _split(msg: Any, args: tuple) -> Tuple[str, Optional[Mapping]]:
        """Message text and metadata from framework-style arguments."""
        metadata = None
        if args and isinstance(args[0], Mapping):
            metadata, args = args[0], args[1:]
        text = coerce_text(msg)
        if args and isinstance(msg, str):
            try:
                text = msg % args
            except (TypeError, ValueError):
                text = ' '.join([text] + [coerce_text(arg) for arg in args])
        return text, metadata

    @never_raises
    def info(self, msg: Any, *args):
        text, metadata = self._split(msg, args)
        self._logger._log(LogLevel.INFO, text, metadata, persist=False)

    @never_raises
    def warn(self, msg: Any, *args):
        text, metadata = self._split(msg, args)
        self._logger._log(LogLevel.WARN, text, metadata)

    warning = warn

    @never_raises
    def debug(self, msg: Any, *args):
        text, metadata = self._split(msg, args)
        self._logger._log(LogLevel.DEBUG, text, metadata, persist=False)

    @never_raises
    def error(self, msg: Any, *args):
        text, metadata = self._split(msg, args)
        fault = as_fault(msg, lookup_lines=self._logger.verbose)
        if isinstance(fault, StructuredFault):
            self._logger._log_fault(fault.message or fault.name, fault, metadata)
        else:
            self._logger._log(LogLevel.ERROR, text, metadata)

    def fatal(self, msg: Any, *args):
        self.error(msg, *args)
        time.sleep(self.flush_delay)
        self._terminate(1)

    def trace(self, msg: Any, *args):
        pass

    def child(self, bindings: Any = None) -> 'FrameworkLogger':
        return self

    def _internal_error(self, operation: str, error: Exception):
        self._logger._internal_error(operation, error)


def create_logger(config: Optional[LoggerConfig] = None) -> Tuple[Logger, FrameworkLogger]:
    """Build a logger and return both of its surfaces."""
    logger = Logger(config)
    return logger, logger.framework
