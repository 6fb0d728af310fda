from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from tandemlog.common.enums import LogLevel
from tandemlog.core.app_config import RecordLimits
from tandemlog.core.utils.serialize import coerce_text, safe_dumps, safe_str, truncate
from tandemlog.core.utils.time_utils import utc_now


class LogRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: LogLevel = Field(description="Severity of the record")
    message: str = Field(description="Message text, at most MAX_TEXT_LENGTH characters")
    metadata: str = Field(default='', description="Serialized metadata, at most MAX_TEXT_LENGTH characters")
    stacktrace: Optional[str] = Field(default=None)
    timestamp: datetime = Field(default_factory=utc_now)

    @classmethod
    def create(
        cls,
        level: LogLevel,
        message: Any,
        metadata: Optional[Any] = None,
        stacktrace: Optional[str] = None,
    ) -> 'LogRecord':
        """Build a record from raw caller input, truncating oversized text."""
        limit = RecordLimits.MAX_TEXT_LENGTH
        empty = metadata is None or (isinstance(metadata, Mapping) and not metadata)
        meta_text = '' if empty else safe_dumps(metadata)
        return cls(
            level=level,
            message=truncate(coerce_text(message), limit),
            metadata=truncate(meta_text, limit),
            stacktrace=stacktrace,
        )


class StackFrame(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    line: int = Field(ge=1)
    column: int = Field(default=1, ge=1)

    def location(self) -> str:
        return f'{self.file}:{self.line}:{self.column}'


class StructuredFault(BaseModel):
    """An error value carrying a message, a stack and an optional cause."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    message: str
    stack: str
    cause: Optional[Any] = None
    origin: Optional[Any] = Field(default=None, description="The value the fault was built from")

    @property
    def title(self) -> str:
        return f'{self.name}: {self.message}' if self.message else self.name


class RawValue(BaseModel):
    """Anything passed as an error that is not error-shaped."""
    model_config = ConfigDict(frozen=True)

    text: str


Fault = Union[StructuredFault, RawValue]


def _member(value: Any, key: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(key)
    try:
        return getattr(value, key, None)
    except Exception:
        return None

def as_fault(value: Any, lookup_lines: bool = False) -> Fault:
    """Decide once whether a value is error-shaped."""
    # local import: the stack analyzer depends on this module
    from tandemlog.diagnostics.stack_analyzer import format_stack

    if isinstance(value, BaseException):
        return StructuredFault(
            name=type(value).__name__,
            message=safe_str(value),
            stack=format_stack(value, lookup_lines=lookup_lines),
            cause=value.__cause__ if value.__cause__ is not None
            else (None if value.__suppress_context__ else value.__context__),
            origin=value,
        )
    if not isinstance(value, (str, bytes)):
        message = _member(value, 'message')
        stack = _member(value, 'stack')
        if isinstance(message, str) and message and isinstance(stack, str) and stack:
            name = _member(value, 'name')
            return StructuredFault(
                name=name if isinstance(name, str) and name else type(value).__name__,
                message=message,
                stack=stack,
                cause=_member(value, 'cause'),
                origin=value,
            )
    return RawValue(text=coerce_text(value))
