from enum import Enum


class LogLevel(Enum):
    DEBUG = 'debug'
    INFO = 'info'
    WARN = 'warn'
    ERROR = 'error'

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @property
    def loguru_name(self) -> str:
        '''Name of the matching built-in loguru level.'''
        return _LOGURU_NAMES[self]

    @classmethod
    def parse(cls, value) -> 'LogLevel':
        if isinstance(value, LogLevel):
            return value
        name = str(value).strip().lower()
        if name == 'warning':
            name = 'warn'
        return cls(name)


_SEVERITY = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}

_LOGURU_NAMES = {
    LogLevel.DEBUG: 'DEBUG',
    LogLevel.INFO: 'INFO',
    LogLevel.WARN: 'WARNING',
    LogLevel.ERROR: 'ERROR',
}


class StoreState(Enum):
    UNINITIALIZED = 'uninitialized'
    INITIALIZING = 'initializing'
    READY = 'ready'
    FAILED = 'failed'


class StoreErrorKind(Enum):
    TRANSIENT = 'transient'      # pool noise, never shown outside verbose mode
    UNAVAILABLE = 'unavailable'  # refused / DNS / timeout
    OTHER = 'other'
