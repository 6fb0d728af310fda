import os
import re
from typing import Any, Callable, Optional
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError
from tandemlog.common.enums import LogLevel

# Load environment variables from .env file
load_dotenv()

# Environment variable names read by the logger
class EnvKeys:
    LEVEL = 'TANDEMLOG_LEVEL'
    VERBOSE = 'TANDEMLOG_VERBOSE'
    APP_ENV = 'APP_ENV'
    DB_URL = 'TANDEMLOG_DB_URL'
    DB_HOST = 'TANDEMLOG_DB_HOST'
    DB_PORT = 'TANDEMLOG_DB_PORT'
    DB_USER = 'TANDEMLOG_DB_USER'
    DB_PASSWORD = 'TANDEMLOG_DB_PASSWORD'
    DB_NAME = 'TANDEMLOG_DB_NAME'

DEVELOPMENT_MODES = {'development', 'dev', 'local'}
TRUTHY = {'1', 'true', 'yes', 'on'}

# Bounds applied to every persisted record
class RecordLimits:
    MAX_TEXT_LENGTH = 2000

# Console output
class ConsoleConfig:
    STACK_LINE_LIMIT = 10
    CODE_FRAME_CONTEXT = 2
    CALLSITE_FRAME_LIMIT = 5
    CAUSE_SEPARATOR = ' -> '
    NOTICE_PREFIX = '[tandemlog]'
    # Delay before exiting on fatal paths so console output gets flushed
    FLUSH_DELAY_SEC = 0.1

# Store defaults
class StoreDefaults:
    DRIVER = 'mysql+aiomysql'
    PORT = 3306
    DATABASE = 'logs'
    TABLE = 'logs'
    POOL_SIZE = 3
    MAX_USES = 1000
    IDLE_TIMEOUT_SEC = 60
    QUEUE_TIMEOUT_SEC = 10
    CLOSE_TIMEOUT_SEC = 2.0

IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z0-9_]{1,64}$')


class StoreConfig(BaseModel):
    """Connection target and pool policy for the persistence sink."""
    model_config = ConfigDict(frozen=True)

    host: str = Field(default='localhost', description="Database host")
    port: int = Field(default=StoreDefaults.PORT, ge=1, le=65535)
    user: Optional[str] = Field(default=None)
    password: Optional[str] = Field(default=None, repr=False)
    database: str = Field(default=StoreDefaults.DATABASE, description="Target database, created if absent")
    driver: str = Field(default=StoreDefaults.DRIVER, description="SQLAlchemy async drivername")
    url: Optional[str] = Field(default=None, description="Full SQLAlchemy URL, overrides the parts above")
    pool_size: int = Field(default=StoreDefaults.POOL_SIZE, ge=1)
    max_uses: int = Field(default=StoreDefaults.MAX_USES, ge=1, description="Checkouts before a connection is recycled")
    idle_timeout: int = Field(default=StoreDefaults.IDLE_TIMEOUT_SEC, ge=1)
    queue_timeout: int = Field(default=StoreDefaults.QUEUE_TIMEOUT_SEC, ge=1)

    @field_validator('database')
    @classmethod
    def _check_database(cls, value: str) -> str:
        if not IDENTIFIER_PATTERN.match(value):
            raise ValueError(f'database name must match {IDENTIFIER_PATTERN.pattern}')
        return value

    @field_validator('url')
    @classmethod
    def _check_url(cls, value: Optional[str]) -> Optional[str]:
        if value:
            try:
                make_url(value)
            except ArgumentError as e:
                raise ValueError(str(e)) from e
        return value

    def get_url(self) -> URL:
        if self.url:
            url = make_url(self.url)
            if url.database is None and url.get_backend_name() != 'sqlite':
                url = url.set(database=self.database)
            return url
        return URL.create(
            self.driver,
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        )

    @classmethod
    def from_env(cls, on_invalid: Optional[Callable[[str], None]] = None) -> Optional['StoreConfig']:
        """
        Store settings from the environment, None when none are set.

        Invalid settings also give None: the logger then runs console-only
        and `on_invalid` receives the reason.
        """
        try:
            url = os.getenv(EnvKeys.DB_URL)
            if url:
                return cls(url=url)
            host = os.getenv(EnvKeys.DB_HOST)
            if not host:
                return None
            return cls(
                host=host,
                port=int(os.getenv(EnvKeys.DB_PORT) or StoreDefaults.PORT),
                user=os.getenv(EnvKeys.DB_USER),
                password=os.getenv(EnvKeys.DB_PASSWORD),
                database=os.getenv(EnvKeys.DB_NAME) or StoreDefaults.DATABASE,
            )
        # pydantic's ValidationError is a ValueError too
        except ValueError as e:
            reason = f'ignoring store settings from the environment, logging to console only: {e}'
            if on_invalid is not None:
                on_invalid(reason)
            return None


class LoggerConfig(BaseModel):
    """Per-facade settings. Read once when the Logger is built."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    store: Optional[StoreConfig] = Field(default=None, description="None disables persistence")
    level: Optional[LogLevel] = Field(default=None, description="Minimum level printed and stored")
    verbose: Optional[bool] = Field(default=None, description="Code frames and synthetic callsites")
    install_fault_hooks: bool = Field(default=True)
    stream: Optional[Any] = Field(default=None, description="Console stream, stdout when unset")
    colorize: Optional[bool] = Field(default=None)

    @field_validator('level', mode='before')
    @classmethod
    def _parse_level(cls, value):
        return None if value is None else LogLevel.parse(value)

    @classmethod
    def from_env(cls, on_invalid: Optional[Callable[[str], None]] = None, **overrides) -> 'LoggerConfig':
        if 'store' not in overrides:
            overrides['store'] = StoreConfig.from_env(on_invalid)
        return cls(**overrides)


def is_development() -> bool:
    return os.getenv(EnvKeys.APP_ENV, '').strip().lower() in DEVELOPMENT_MODES

def resolve_level(config: LoggerConfig) -> LogLevel:
    """Explicit config first, then the environment override, then the mode default."""
    if config.level is not None:
        return config.level
    env_level = os.getenv(EnvKeys.LEVEL)
    if env_level:
        try:
            return LogLevel.parse(env_level)
        except ValueError:
            pass  # unknown names fall through to the mode default
    return LogLevel.DEBUG if is_development() else LogLevel.INFO

def resolve_verbose(config: LoggerConfig) -> bool:
    if config.verbose is not None:
        return config.verbose
    return os.getenv(EnvKeys.VERBOSE, '').strip().lower() in TRUTHY
