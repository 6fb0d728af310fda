import asyncio
import threading
from concurrent.futures import Future
from typing import Coroutine, Optional


class StoreWorker:
    """
    Background "process" for the log store: a private asyncio loop running
    in a daemon thread. Callers on any thread or event loop hand it
    coroutines and get a concurrent Future back without waiting.
    """
    def __init__(self, name: str = 'tandemlog-store'):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        with self._lock:
            if self.running:
                return
            loop = asyncio.new_event_loop()
            ready = threading.Event()
            thread = threading.Thread(target=self._run, args=(loop, ready), name=self.name, daemon=True)
            thread.start()
            ready.wait()
            self._loop, self._thread = loop, thread

    @staticmethod
    def _run(loop: asyncio.AbstractEventLoop, ready: threading.Event):
        asyncio.set_event_loop(loop)
        loop.call_soon(ready.set)
        try:
            loop.run_forever()
        finally:
            loop.close()

    def submit(self, coro: Coroutine) -> Future:
        """Schedule a coroutine on the worker loop and return immediately."""
        self.start()
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def stop(self, timeout: Optional[float] = None):
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is None or thread is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout)
