"""Shared fixtures for the tandemlog test suite."""

import io
import time

import pytest

from tandemlog import Logger, LoggerConfig, StoreConfig
from tandemlog.core.app_config import EnvKeys


ENV_NAMES = [value for name, value in vars(EnvKeys).items() if not name.startswith("_")]


class FakeStore:
    """Stands in for LogStore: records writes instead of touching a database."""

    def __init__(self, fail_writes: bool = False):
        self.records = []
        self.initialize_calls = 0
        self.closed = False
        self.fail_writes = fail_writes

    def initialize(self):
        self.initialize_calls += 1

    def write(self, record):
        if self.fail_writes:
            raise RuntimeError("store exploded")
        self.records.append(record)

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of level/verbose resolution."""
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def make_logger(stream):
    """Factory for console-only or fake-store loggers, closed at teardown."""
    created = []

    def _make(store=None, **config):
        config.setdefault("stream", stream)
        config.setdefault("colorize", False)
        config.setdefault("install_fault_hooks", False)
        config.setdefault("level", "debug")
        config.setdefault("verbose", False)
        logger = Logger(LoggerConfig(**config), store=store)
        created.append(logger)
        return logger

    yield _make
    for logger in created:
        logger.close()


@pytest.fixture
def sqlite_config(tmp_path):
    return StoreConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'logs.db'}")


@pytest.fixture
def wait_until():
    def _wait(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait
