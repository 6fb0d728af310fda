"""
Process-wide hooks for faults nobody caught.

Uncaught exceptions in the main thread are printed raw, routed through the
logger, and end the process after a short flush delay. Exceptions escaping
other threads and unobserved asyncio failures are reported the same way but
the process keeps running.
"""
import asyncio
import os
import sys
import threading
import time
import traceback
from typing import Callable, Optional
from tandemlog.core.app_config import ConsoleConfig

_installed: Optional['FaultHooks'] = None
_install_lock = threading.Lock()


def _raw_write(text: str):
    # plain stderr, independent of loguru and the renderer
    stream = sys.stderr or sys.__stderr__
    try:
        stream.write(text if text.endswith('\n') else text + '\n')
        stream.flush()
    except (OSError, ValueError, AttributeError):
        pass

def _flush_std_streams():
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (OSError, ValueError, AttributeError):
            pass

def hard_exit(code: int):
    """Exit right away, skipping atexit handlers. For threads other than main."""
    _flush_std_streams()
    os._exit(code)

def exit_process(code: int):
    """
    End the process from any thread. The main thread exits normally so
    atexit handlers still run; other threads cannot, so they use hard_exit.
    """
    if threading.current_thread() is threading.main_thread():
        _flush_std_streams()
        sys.exit(code)
    hard_exit(code)


class FaultHooks:
    def __init__(
        self,
        logger,
        terminate: Optional[Callable[[int], None]] = None,
        flush_delay: float = ConsoleConfig.FLUSH_DELAY_SEC,
    ):
        self.logger = logger
        self._terminate = terminate
        self.flush_delay = flush_delay
        self._previous_excepthook = None
        self._previous_threading_hook = None

    def install(self):
        self._previous_excepthook = sys.excepthook
        self._previous_threading_hook = threading.excepthook
        sys.excepthook = self.handle_exception
        threading.excepthook = self.handle_thread_exception
        try:
            self.attach_loop(asyncio.get_running_loop())
        except RuntimeError:
            pass  # no loop yet; attach_loop() can be called later

    def uninstall(self):
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
        if self._previous_threading_hook is not None:
            threading.excepthook = self._previous_threading_hook

    def attach_loop(self, loop: asyncio.AbstractEventLoop):
        loop.set_exception_handler(self.handle_async_exception)

    def _report(self, title: str, error: Optional[BaseException], message: str = ''):
        if error is not None:
            raw = ''.join(traceback.format_exception(type(error), error, error.__traceback__))
        else:
            raw = message
        _raw_write(f'{title}: {raw}')
        try:
            if error is not None:
                self.logger.error_enriched(title, error)
            else:
                self.logger.error(f'{title}: {message}')
        except Exception as e:
            _raw_write(f'{ConsoleConfig.NOTICE_PREFIX} could not log {title.lower()}: {e!r}')

    def handle_exception(self, exc_type, exc, tb):
        """
        sys.excepthook: report, then wait the flush delay.

        The interpreter exits with status 1 once the hook returns, running
        atexit handlers. `terminate`, when given, is called with 1 instead.
        """
        if issubclass(exc_type, KeyboardInterrupt):
            (self._previous_excepthook or sys.__excepthook__)(exc_type, exc, tb)
            return
        if exc is not None and exc.__traceback__ is None:
            exc = exc.with_traceback(tb)
        self._report('Uncaught exception', exc)
        time.sleep(self.flush_delay)
        if self._terminate is not None:
            self._terminate(1)

    def handle_thread_exception(self, args):
        """threading.excepthook: report and keep the process alive."""
        if args.exc_type is SystemExit:
            return
        name = args.thread.name if args.thread is not None else 'unknown'
        self._report(f'Uncaught exception in thread {name}', args.exc_value)

    def handle_async_exception(self, loop, context):
        """asyncio exception handler: report and keep running."""
        self._report('Unhandled async exception', context.get('exception'), context.get('message', ''))


def install_fault_hooks(logger, **kwargs) -> FaultHooks:
    """Register the hooks once per process; later calls return the first instance."""
    global _installed
    with _install_lock:
        if _installed is None:
            _installed = FaultHooks(logger, **kwargs)
            _installed.install()
        return _installed

def uninstall_fault_hooks():
    global _installed
    with _install_lock:
        if _installed is not None:
            _installed.uninstall()
            _installed = None
