"""Tests for the schema, engine helpers and store error classification."""

import logging
import socket

import pytest
from sqlalchemy import exc
from sqlalchemy.ext.asyncio import create_async_engine

from tandemlog.common.enums import StoreErrorKind
from tandemlog.common.exceptions import InvalidIdentifierError
from tandemlog.core.db_core import (
    LogEntry,
    TransientPoolErrorFilter,
    classify_store_error,
    create_store_engine,
    is_memory_sqlite,
    quiet_transient_pool_errors,
    quote_database,
)
from tandemlog.core.app_config import StoreConfig


def _operational(message, orig=None):
    return exc.OperationalError("INSERT INTO logs ...", {}, orig or Exception(message))


class TestSchema:
    def test_columns(self):
        columns = {column.name for column in LogEntry.__table__.columns}
        assert columns == {"id", "level", "message", "metadata", "stacktrace", "timestamp"}

    def test_indexes_on_timestamp_and_level(self):
        indexed = {tuple(column.name for column in index.columns) for index in LogEntry.__table__.indexes}
        assert ("timestamp",) in indexed
        assert ("level",) in indexed

    def test_column_sizes(self):
        table = LogEntry.__table__
        assert table.c.level.type.length == 16
        assert table.c.message.type.length == 2048
        assert table.c["metadata"].type.length == 2048
        assert table.c.stacktrace.nullable


class TestQuoteDatabase:
    def test_valid_name(self):
        engine = create_async_engine("sqlite+aiosqlite://")
        assert quote_database(engine, "logs") == "logs"

    @pytest.mark.parametrize("name", ["logs`; DROP", "", None])
    def test_invalid_name(self, name):
        engine = create_async_engine("sqlite+aiosqlite://")
        with pytest.raises(InvalidIdentifierError):
            quote_database(engine, name)


class TestMemorySqlite:
    def test_detection(self, tmp_path):
        assert is_memory_sqlite(StoreConfig(url="sqlite+aiosqlite://").get_url())
        assert not is_memory_sqlite(StoreConfig(url=f"sqlite+aiosqlite:///{tmp_path}/x.db").get_url())


class TestClassifyStoreError:
    def test_refused_connection_is_unavailable(self):
        error = _operational("x", orig=ConnectionRefusedError(111, "Connection refused"))
        assert classify_store_error(error) is StoreErrorKind.UNAVAILABLE

    def test_dns_failure_is_unavailable(self):
        assert classify_store_error(socket.gaierror(-2, "Name or service not known")) is StoreErrorKind.UNAVAILABLE

    def test_pool_queue_timeout_is_unavailable(self):
        assert classify_store_error(exc.TimeoutError("QueuePool limit reached")) is StoreErrorKind.UNAVAILABLE

    def test_unavailable_by_message(self):
        error = _operational("(2003, \"Can't connect to MySQL server on 'db'\")")
        assert classify_store_error(error) is StoreErrorKind.UNAVAILABLE

    @pytest.mark.parametrize("message", [
        "Packets out of order. Got: 1 Expected: 0",
        "(2013, 'Lost connection to MySQL server during query')",
        "(2006, 'MySQL server has gone away')",
        "Connection closed due to inactivity",
    ])
    def test_transient_noise(self, message):
        assert classify_store_error(_operational(message)) is StoreErrorKind.TRANSIENT

    def test_everything_else(self):
        assert classify_store_error(_operational("no such table: logs")) is StoreErrorKind.OTHER
        assert classify_store_error(ValueError("bad")) is StoreErrorKind.OTHER


def _pool_record(error=None):
    exc_info = (type(error), error, None) if error is not None else None
    return logging.LogRecord(
        "sqlalchemy.pool.impl.QueuePool", logging.ERROR, __file__, 1,
        "Exception during reset or similar", None, exc_info,
    )


class TestPoolNoise:
    def test_transient_pool_errors_are_dropped(self):
        record = _pool_record(_operational("(2013, 'Lost connection to MySQL server during query')"))
        assert TransientPoolErrorFilter().filter(record) is False

    def test_other_pool_errors_pass(self):
        assert TransientPoolErrorFilter().filter(_pool_record(_operational("access denied"))) is True

    def test_records_without_exception_pass(self):
        assert TransientPoolErrorFilter().filter(_pool_record()) is True

    @pytest.mark.asyncio
    async def test_filter_attached_once_to_engine_pool_logger(self, tmp_path):
        engine = create_store_engine(StoreConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'p.db'}"))
        try:
            quiet_transient_pool_errors(engine)
            quiet_transient_pool_errors(engine)
            pool_logger = engine.sync_engine.pool.logger
            filters = [f for f in pool_logger.filters if isinstance(f, TransientPoolErrorFilter)]
            assert len(filters) == 1
        finally:
            await engine.dispose()
