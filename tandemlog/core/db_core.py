"""
Schema, engine construction and error classification for the log store.
"""
import logging
import socket
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import DateTime, Integer, String, Text, event, exc
from sqlalchemy.engine import URL
from sqlalchemy.pool import NullPool
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from tandemlog.common.enums import StoreErrorKind
from tandemlog.common.exceptions import InvalidIdentifierError
from tandemlog.core.app_config import IDENTIFIER_PATTERN, StoreConfig, StoreDefaults
from tandemlog.core.utils.serialize import safe_str

# SQLAlchemy Base
class Base(DeclarativeBase):
    def to_dict(self) -> Dict[str, Any]:
        """Convert model instance to dictionary, keyed by column name."""
        return {prop.columns[0].name: getattr(self, prop.key) for prop in self.__mapper__.column_attrs}

class LogEntry(Base):
    """One persisted log record"""
    __tablename__ = StoreDefaults.TABLE

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    message: Mapped[str] = mapped_column(String(2048), nullable=False)
    # `metadata` is reserved on declarative classes, hence the attribute name
    meta: Mapped[str] = mapped_column('metadata', String(2048), nullable=False, default='')
    stacktrace: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

# Columns added after the first schema version: (name, DDL type).
# Tables created by older versions get them through ALTER TABLE.
COLUMN_MIGRATIONS: List[Tuple[str, str]] = [
    ('stacktrace', 'TEXT'),
]

# Pool chatter that says nothing useful about the application
TRANSIENT_MARKERS = (
    'packets out of order',
    'lost connection',
    'server has gone away',
    'connection reset by peer',
    'connection was killed',
    'inactivity',
)

UNAVAILABLE_MARKERS = (
    'connection refused',
    "can't connect",
    'name or service not known',
    'nodename nor servname',
    'temporary failure in name resolution',
    'timed out',
    'timeout',
)


def is_sqlite(url: URL) -> bool:
    return url.get_backend_name() == 'sqlite'

def is_memory_sqlite(url: URL) -> bool:
    return is_sqlite(url) and url.database in (None, '', ':memory:')

def quote_database(engine: AsyncEngine, name: str) -> str:
    if not IDENTIFIER_PATTERN.match(name or ''):
        raise InvalidIdentifierError(name)
    return engine.dialect.identifier_preparer.quote_identifier(name)

def create_bootstrap_engine(url: URL) -> AsyncEngine:
    """Engine without a selected database, used once to create it."""
    return create_async_engine(url.set(database=None), poolclass=NullPool)

def create_store_engine(config: StoreConfig) -> AsyncEngine:
    url = config.get_url()
    if is_memory_sqlite(url):
        return create_async_engine(url, echo=False)

    engine = create_async_engine(
        url,
        echo=False,
        pool_size=config.pool_size,
        max_overflow=0,
        pool_recycle=config.idle_timeout,
        pool_timeout=config.queue_timeout,
    )
    limit_connection_uses(engine, config.max_uses)
    return engine

def limit_connection_uses(engine: AsyncEngine, max_uses: int):
    """Recycle a pooled connection after it was checked out `max_uses` times."""
    @event.listens_for(engine.sync_engine, 'checkout')
    def _count_checkout(dbapi_connection, connection_record, connection_proxy):
        info = connection_record.info
        if info.get('counted_connection') is not dbapi_connection:
            info['counted_connection'] = dbapi_connection
            info['uses'] = 0
        info['uses'] += 1
        if info['uses'] > max_uses:
            # the pool discards this connection and retries with a new one
            raise exc.DisconnectionError(f'connection reached {max_uses} uses')

def _error_chain(error: BaseException):
    seen = set()
    node = error
    while node is not None and id(node) not in seen:
        seen.add(id(node))
        yield node
        node = getattr(node, 'orig', None) or node.__cause__ or node.__context__

def classify_store_error(error: BaseException) -> StoreErrorKind:
    """Sort a failed store operation into transient noise, an outage, or the rest."""
    for node in _error_chain(error):
        if isinstance(node, (ConnectionRefusedError, socket.gaierror, TimeoutError, exc.TimeoutError)):
            return StoreErrorKind.UNAVAILABLE
    text = ' '.join(safe_str(node) for node in _error_chain(error)).lower()
    if any(marker in text for marker in TRANSIENT_MARKERS):
        return StoreErrorKind.TRANSIENT
    if any(marker in text for marker in UNAVAILABLE_MARKERS):
        return StoreErrorKind.UNAVAILABLE
    return StoreErrorKind.OTHER

class TransientPoolErrorFilter(logging.Filter):
    """Drops pool log records whose exception is transient connection noise."""
    def filter(self, record: logging.LogRecord) -> bool:
        error = record.exc_info[1] if record.exc_info else None
        if error is None:
            return True
        return classify_store_error(error) is not StoreErrorKind.TRANSIENT

_pool_filter = TransientPoolErrorFilter()

def quiet_transient_pool_errors(engine: AsyncEngine):
    """
    The pool reports some connection failures itself through stdlib logging
    ("Exception during reset or similar"). Filter the transient ones out of
    this engine's pool logger.
    """
    pool_logger = engine.sync_engine.pool.logger
    # echo_pool wraps the stdlib logger
    pool_logger = getattr(pool_logger, 'logger', pool_logger)
    if _pool_filter not in pool_logger.filters:
        pool_logger.addFilter(_pool_filter)
