from collections.abc import Mapping
from typing import Any, List, Optional
from tandemlog.core.utils.serialize import coerce_text, safe_str


def next_cause(node: Any) -> Optional[Any]:
    """The value a node declares as its cause, if any."""
    if isinstance(node, BaseException):
        if node.__cause__ is not None:
            return node.__cause__
        return None if node.__suppress_context__ else node.__context__
    if isinstance(node, Mapping):
        return node.get('cause')
    if isinstance(node, (str, bytes, int, float, bool)):
        return None
    try:
        return getattr(node, 'cause', None)
    except Exception:
        return None

def describe(node: Any) -> str:
    """Title for one link of the chain: "Name: message" when possible."""
    if isinstance(node, BaseException):
        message = safe_str(node)
        return f'{type(node).__name__}: {message}' if message else type(node).__name__
    if isinstance(node, Mapping):
        name, message = node.get('name'), node.get('message')
    else:
        try:
            name, message = getattr(node, 'name', None), getattr(node, 'message', None)
        except Exception:
            name = message = None
    if isinstance(name, str) and isinstance(message, str):
        return f'{name}: {message}'
    return coerce_text(node)

def walk_causes(error: Any) -> List[str]:
    """
    Follow the cause references of an error and title each link.

    The error itself is not part of the result. Walking stops at the first
    missing cause or at a node that was already visited, so cyclic chains
    terminate with one title per distinct node.
    """
    titles = []
    seen = set()
    node = next_cause(error)
    seen.add(id(error))
    while node is not None and id(node) not in seen:
        seen.add(id(node))
        titles.append(describe(node))
        node = next_cause(node)
    return titles
