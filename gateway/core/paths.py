"""
Path accessor over nested params.

Paths use dots for mapping keys and brackets (or numeric segments) for list
indexes: ``voter``, ``json.follower``, ``required_posting_auths[0]``.
"""

import re
from typing import Any, List, Union

_SEGMENT = re.compile(r"([^.\[\]]+)|\[(\d+)\]")

_MISSING = object()

Segment = Union[str, int]


def parse_path(path: str) -> List[Segment]:
    """Split a path into mapping keys (str) and list indexes (int)."""
    if not path or not isinstance(path, str):
        raise ValueError(f"Invalid path: {path!r}")

    segments: List[Segment] = []
    position = 0
    for match in _SEGMENT.finditer(path):
        gap = path[position:match.start()]
        if gap not in ("", "."):
            raise ValueError(f"Invalid path: {path!r}")
        key, index = match.groups()
        if index is not None:
            segments.append(int(index))
        elif key.isdigit():
            segments.append(int(key))
        else:
            segments.append(key)
        position = match.end()

    if position != len(path) or not segments:
        raise ValueError(f"Invalid path: {path!r}")
    return segments


def root_field(path: str) -> str:
    """Top-level parameter name a path starts from."""
    return str(parse_path(path)[0])


def _step(value: Any, segment: Segment) -> Any:
    if isinstance(segment, int):
        if isinstance(value, (list, tuple)) and -len(value) <= segment < len(value):
            return value[segment]
        if isinstance(value, dict) and segment in value:
            return value[segment]
        return _MISSING
    if isinstance(value, dict) and segment in value:
        return value[segment]
    return _MISSING


def get_path(value: Any, path: str, default: Any = None) -> Any:
    current = value
    for segment in parse_path(path):
        current = _step(current, segment)
        if current is _MISSING:
            return default
    return current


def has_path(value: Any, path: str) -> bool:
    return get_path(value, path, _MISSING) is not _MISSING


def set_path(value: dict, path: str, new_value: Any) -> dict:
    """Set ``new_value`` at ``path`` in place, creating containers on the way.

    A missing container becomes a list when the next segment is an index and
    a dict otherwise. Returns ``value``.
    """
    segments = parse_path(path)
    current = value
    for segment, following in zip(segments, segments[1:]):
        child = _step(current, segment)
        if child is _MISSING or not isinstance(child, (dict, list)):
            child = [] if isinstance(following, int) else {}
            _assign(current, segment, child)
        current = child
    _assign(current, segments[-1], new_value)
    return value


def _assign(container: Any, segment: Segment, new_value: Any) -> None:
    if isinstance(container, list):
        if not isinstance(segment, int):
            raise TypeError(f"Cannot use key {segment!r} on a list")
        while len(container) <= segment:
            container.append(None)
        container[segment] = new_value
    elif isinstance(container, dict):
        container[segment] = new_value
    else:
        raise TypeError(f"Cannot set {segment!r} on {type(container).__name__}")
