import os
import threading
import traceback
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, List, Optional
import sqlalchemy
from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from tandemlog.common.enums import LogLevel, StoreErrorKind, StoreState
from tandemlog.common.exceptions import StoreSetupError
from tandemlog.common.models import LogRecord
from tandemlog.core.app_config import ConsoleConfig, StoreConfig, StoreDefaults
from tandemlog.core.db_core import (
    COLUMN_MIGRATIONS,
    LogEntry,
    classify_store_error,
    create_bootstrap_engine,
    create_store_engine,
    is_memory_sqlite,
    is_sqlite,
    quiet_transient_pool_errors,
    quote_database,
)
from tandemlog.core.store_worker import StoreWorker
from tandemlog.core.utils.serialize import safe_str

Notify = Callable[[LogLevel, str], None]


def _loguru_notify(level: LogLevel, message: str):
    logger.log(level.loguru_name, f'{ConsoleConfig.NOTICE_PREFIX} {message}')

def _column_names(sync_conn, table: str) -> List[str]:
    return [column['name'] for column in sqlalchemy.inspect(sync_conn).get_columns(table)]


class LogStore:
    """
    Lifecycle of the persistence sink.

    initialize() prepares the database in the background and flips the state
    to READY; write() is a no-op in every other state. Neither ever blocks
    on the database or raises into the caller: failures end up as console
    notices through `notify`.
    """
    def __init__(
        self,
        config: StoreConfig,
        notify: Optional[Notify] = None,
        verbose: bool = False,
        worker: Optional[StoreWorker] = None,
    ):
        self.config = config
        self.verbose = verbose
        self._notify = notify or _loguru_notify
        self._worker = worker or StoreWorker()
        self._lock = threading.Lock()
        self._state = StoreState.UNINITIALIZED
        self._setup_future: Optional[Future] = None
        self._engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker] = None
        self._outage_reported = False
        self.setup_attempts = 0

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is StoreState.READY

    # ========== Initialization ==========

    def initialize(self) -> Optional[Future]:
        """
        Start preparing the store unless that already happened or is underway.

        Returns the future of the (possibly earlier) setup run so callers can
        wait on it if they want to; the facade never does.
        """
        with self._lock:
            if self._state in (StoreState.INITIALIZING, StoreState.READY):
                return self._setup_future
            self._state = StoreState.INITIALIZING
            self.setup_attempts += 1
            setup = self._setup()
            try:
                self._setup_future = self._worker.submit(setup)
            except RuntimeError as e:
                setup.close()
                self._state = StoreState.FAILED
                self._setup_future = None
                self._notify(LogLevel.ERROR, f'could not start the store worker: {e}')
            return self._setup_future

    async def _setup(self) -> StoreState:
        engine = None
        try:
            url = self.config.get_url()
            if is_sqlite(url):
                self._prepare_sqlite_file(url)
            else:
                await self._create_database(url)

            engine = create_store_engine(self.config)
            if not self.verbose:
                quiet_transient_pool_errors(engine)
            await self._create_table(engine)
        except Exception as e:
            if engine is not None:
                await self._dispose_quietly(engine)
            self._state = StoreState.FAILED
            self._notify(LogLevel.ERROR, f'store setup failed, logging to console only: {safe_str(e)}')
            return self._state

        await self._migrate(engine)
        self._engine = engine
        self._session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        self._state = StoreState.READY
        if self.verbose:
            self._notify(LogLevel.DEBUG, f'store ready ({url.render_as_string(hide_password=True)})')
        return self._state

    @staticmethod
    def _prepare_sqlite_file(url: URL):
        if is_memory_sqlite(url):
            return
        directory = os.path.dirname(os.path.abspath(url.database))
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            raise StoreSetupError(f'could not create directory {directory!r}: {safe_str(e)}') from e

    @staticmethod
    async def _create_database(url: URL):
        bootstrap = create_bootstrap_engine(url)
        try:
            statement = f'CREATE DATABASE IF NOT EXISTS {quote_database(bootstrap, url.database)}'
            async with bootstrap.connect() as conn:
                await conn.execute(text(statement))
                await conn.commit()
        except StoreSetupError:
            raise
        except Exception as e:
            raise StoreSetupError(f'could not create database {url.database!r}: {safe_str(e)}') from e
        finally:
            await bootstrap.dispose()

    @staticmethod
    async def _create_table(engine: AsyncEngine):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(LogEntry.__table__.create, checkfirst=True)
        except Exception as e:
            raise StoreSetupError(f'could not create table {LogEntry.__tablename__!r}: {safe_str(e)}') from e

    async def _migrate(self, engine: AsyncEngine):
        """Add columns newer than the table. Failures never affect readiness."""
        preparer = engine.dialect.identifier_preparer
        table = LogEntry.__tablename__
        for column, ddl_type in COLUMN_MIGRATIONS:
            try:
                async with engine.begin() as conn:
                    existing = await conn.run_sync(_column_names, table)
                    if column in existing:
                        continue
                    await conn.execute(text(
                        f'ALTER TABLE {preparer.quote(table)} ADD COLUMN {preparer.quote(column)} {ddl_type}'
                    ))
                self._notify(LogLevel.INFO, f'added column {column!r} to table {table!r}')
            except Exception as e:
                self._notify(LogLevel.WARN, f'migration of column {column!r} failed: {safe_str(e)}')

    # ========== Writes ==========

    def write(self, record: LogRecord) -> Optional[Future]:
        """Fire-and-forget insert. Returns None when the store is not ready."""
        if self._state is not StoreState.READY:
            return None
        insert = self._insert(record)
        try:
            future = self._worker.submit(insert)
        except RuntimeError:
            insert.close()
            return None
        future.add_done_callback(self._on_write_done)
        return future

    async def _insert(self, record: LogRecord):
        async with self._session_maker() as session:
            session.add(LogEntry(
                level=record.level.value,
                message=record.message,
                meta=record.metadata,
                stacktrace=record.stacktrace,
                timestamp=record.timestamp.replace(tzinfo=None),
            ))
            await session.commit()

    def _on_write_done(self, future: Future):
        if future.cancelled():
            return
        error = future.exception()
        if error is None:
            self._outage_reported = False
            return
        self.report_write_failure(error)

    def report_write_failure(self, error: BaseException):
        kind = classify_store_error(error)
        if kind is StoreErrorKind.TRANSIENT:
            if self.verbose:
                self._notify(LogLevel.DEBUG, f'ignored transient store error: {safe_str(error)}')
        elif kind is StoreErrorKind.UNAVAILABLE:
            if not self._outage_reported:
                self._outage_reported = True
                self._notify(
                    LogLevel.WARN,
                    f'store unavailable ({type(error).__name__}), records are not persisted: {safe_str(error)}',
                )
        elif self.verbose:
            detail = ''.join(traceback.format_exception(type(error), error, error.__traceback__))
            self._notify(LogLevel.ERROR, f'failed to store log record:\n{detail}')
        else:
            self._notify(LogLevel.ERROR, f'failed to store log record: {safe_str(error)}')

    # ========== Reads ==========

    def recent(self, limit: int = 20, timeout: float = StoreDefaults.CLOSE_TIMEOUT_SEC) -> List[Dict[str, Any]]:
        """Latest persisted rows, newest first. Empty unless the store is ready."""
        if self._state is not StoreState.READY:
            return []
        return self._worker.submit(self._fetch_recent(limit)).result(timeout)

    async def _fetch_recent(self, limit: int) -> List[Dict[str, Any]]:
        async with self._session_maker() as session:
            stmt = (
                sqlalchemy.select(LogEntry)
                .order_by(sqlalchemy.desc(LogEntry.id))
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [entry.to_dict() for entry in result.scalars().all()]

    # ========== Shutdown ==========

    def close(self, timeout: float = StoreDefaults.CLOSE_TIMEOUT_SEC):
        """Dispose the engine and stop the worker. Safe in any state."""
        setup = self._setup_future
        if setup is not None and not setup.done():
            try:
                setup.result(timeout)
            except FutureTimeoutError:
                pass  # the worker is stopped below either way

        with self._lock:
            engine = self._engine
            self._engine = self._session_maker = None
            self._setup_future = None
            self._state = StoreState.UNINITIALIZED

        if engine is not None and self._worker.running:
            try:
                self._worker.submit(self._dispose_quietly(engine)).result(timeout)
            except FutureTimeoutError:
                self._notify(LogLevel.WARN, 'timed out while closing the store')
        self._worker.stop(timeout)

    async def _dispose_quietly(self, engine: AsyncEngine):
        try:
            await engine.dispose()
        except Exception as e:
            self._notify(LogLevel.WARN, f'could not dispose store engine: {safe_str(e)}')
