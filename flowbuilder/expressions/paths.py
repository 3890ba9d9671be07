"""
Variable path grammar shared by templates, expressions and the variable store.

A path is an identifier followed by any number of ``.identifier``,
``[index]`` or ``["key"]`` accessors:

    http1.result.data[0].name
    vars.count
    node-17.result.headers["content-type"]

Identifiers may contain letters, digits, ``_``, ``$`` and ``-`` so that
editor-generated node ids can be referenced directly.
"""

import re
from collections.abc import Mapping
from typing import Any, List, Sequence, Union

from flowbuilder.expressions.errors import PathSyntaxError


Segment = Union[str, int]

_IDENTIFIER = re.compile(r'[A-Za-z0-9_$\-]+')
_ACCESSOR = re.compile(r'\[\s*(?:(\d+)|([\'"])(.*?)\2)\s*\]')


class _NotFound:
    """Marker returned when a path does not resolve."""

    def __repr__(self):
        return '<not found>'

    def __bool__(self):
        return False


NOT_FOUND = _NotFound()


def parse_path(path: str) -> List[Segment]:
    """
    Split a path string into segments.

    Args:
        path: Path such as ``http1.result.data[0]``

    Returns:
        List of string keys and integer indices

    Raises:
        PathSyntaxError: If the path is empty or malformed
    """
    text = path.strip() if isinstance(path, str) else ''
    if not text:
        raise PathSyntaxError("Empty variable path")

    segments: List[Segment] = []
    pos = 0

    while pos < len(text):
        if not segments:
            match = _IDENTIFIER.match(text, pos)
            if not match:
                raise PathSyntaxError(f"Path must start with an identifier: {path!r}")
            segments.append(match.group(0))
            pos = match.end()
            continue

        if text[pos] == '.':
            match = _IDENTIFIER.match(text, pos + 1)
            if not match:
                raise PathSyntaxError(f"Expected identifier after '.' in {path!r}")
            segments.append(match.group(0))
            pos = match.end()
            continue

        match = _ACCESSOR.match(text, pos)
        if not match:
            raise PathSyntaxError(f"Unexpected character {text[pos]!r} in path {path!r}")
        if match.group(1) is not None:
            segments.append(int(match.group(1)))
        else:
            segments.append(match.group(3))
        pos = match.end()

    return segments


def is_identifier(name: Any) -> bool:
    """True when ``name`` can be used as a single path segment without quoting."""
    return isinstance(name, str) and _IDENTIFIER.fullmatch(name) is not None


def format_path(segments: Sequence[Segment]) -> str:
    """Render segments back into path syntax."""
    parts = []
    for segment in segments:
        if isinstance(segment, int):
            parts.append(f'[{segment}]')
        elif _IDENTIFIER.fullmatch(segment):
            parts.append(f'.{segment}' if parts else segment)
        else:
            parts.append(f'["{segment}"]')
    return ''.join(parts)


def lookup_path(data: Any, segments: Sequence[Segment]) -> Any:
    """
    Walk ``data`` along ``segments``.

    ``length`` on a list or string that has no such key yields its length.

    Returns:
        The value found, or NOT_FOUND
    """
    current = data

    for segment in segments:
        if isinstance(current, Mapping):
            key = str(segment) if isinstance(segment, int) else segment
            if key in current:
                current = current[key]
                continue
            return NOT_FOUND

        if isinstance(current, (list, tuple)):
            if isinstance(segment, int) or segment.isdigit():
                index = int(segment)
                if 0 <= index < len(current):
                    current = current[index]
                    continue
                return NOT_FOUND
            if segment == 'length':
                current = len(current)
                continue
            return NOT_FOUND

        if isinstance(current, str) and segment == 'length':
            current = len(current)
            continue

        return NOT_FOUND

    return current
