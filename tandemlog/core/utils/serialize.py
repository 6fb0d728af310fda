"""
Serialization helpers that never raise.
Metadata handed to the logger can be anything: cyclic dicts, sockets,
objects with a broken __str__. Everything here degrades to a best-effort
string instead of failing the log call.
"""
import json
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

CIRCULAR = '[Circular]'


def safe_str(value: Any) -> str:
    """str() that falls back to a placeholder when __str__ itself fails."""
    try:
        return str(value)
    except Exception:
        return f'<unprintable {type(value).__name__}>'

def _fallback(value: Any):
    # json.dumps `default` hook; must not raise
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, BaseException):
        message = safe_str(value)
        return f'{type(value).__name__}: {message}' if message else type(value).__name__
    if isinstance(value, (set, frozenset)):
        return list(value)
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return safe_str(value)

def _decycle(value: Any, path: set) -> Any:
    """Copy containers, replacing back-references with a marker."""
    if isinstance(value, (Mapping, list, tuple, set, frozenset)):
        if id(value) in path:
            return CIRCULAR
        path.add(id(value))
        try:
            if isinstance(value, Mapping):
                return {safe_str(k) if not isinstance(k, str) else k: _decycle(v, path)
                        for k, v in value.items()}
            return [_decycle(item, path) for item in value]
        finally:
            path.discard(id(value))
    return value

def safe_dumps(value: Any) -> str:
    """
    JSON-serialize anything without raising.

    Cycles become "[Circular]", unknown objects their str(), and when even
    that fails the whole value is rendered with safe_str().
    """
    try:
        return json.dumps(value, default=_fallback, ensure_ascii=False)
    except (ValueError, TypeError, RecursionError):
        pass
    try:
        return json.dumps(_decycle(value, set()), default=_fallback, ensure_ascii=False)
    except (ValueError, TypeError, RecursionError):
        return safe_str(value)

def coerce_text(value: Any) -> str:
    """Readable text for a value that was passed where a message was expected."""
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, (Mapping, list, tuple)):
        return safe_dumps(value)
    return safe_str(value)

def truncate(text: str, limit: int) -> str:
    # str slicing counts code points, so a character is never split
    return text if len(text) <= limit else text[:limit]
