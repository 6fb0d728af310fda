"""
tandemlog - console + database logging that never gets in the way.

    from tandemlog import create_logger, LoggerConfig, StoreConfig

    logger, framework_logger = create_logger(LoggerConfig(
        store=StoreConfig(host='localhost', user='root', password='secret'),
    ))
    logger.info('service started', {'port': 8080})
    try:
        connect()
    except OSError as e:
        logger.error_enriched('database connection failed', e)

Each call prints a colored line and, except for debug, queues an insert into
the `logs` table on a background thread. Without a StoreConfig only the
console is used.
"""
from tandemlog.common.enums import LogLevel, StoreState
from tandemlog.common.models import LogRecord, StackFrame
from tandemlog.core.app_config import LoggerConfig, StoreConfig
from tandemlog.db_ops.log_store import LogStore
from tandemlog.logger import FrameworkLogger, Logger, create_logger

__all__ = [
    'create_logger',
    'Logger',
    'FrameworkLogger',
    'LoggerConfig',
    'StoreConfig',
    'LogStore',
    'LogLevel',
    'StoreState',
    'LogRecord',
    'StackFrame',
]
__version__ = '0.1.0'
