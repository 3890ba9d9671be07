"""
Variable Store - per-run state that templates and expressions read from.

Keys are paths (``vars.count``, ``http1.result``); writes create nested
mappings. Reserved roots:

    vars.*            values written by SetVariable nodes
    system.*          date, time, timestamp, flow and execution ids
    loop.*            per-iteration overlay inside loop bodies
    <nodeId>.result   output of each executed node
"""

import copy
from collections.abc import Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, List, Optional, Sequence

from flowbuilder.expressions.paths import NOT_FOUND, Segment, format_path, lookup_path, parse_path


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(item) for item in value]
    return value


def _string_segments(key: str) -> List[str]:
    segments = parse_path(key)
    return [str(segment) for segment in segments]


def system_variables(flow_id: str, execution_id: str, now: datetime) -> Dict[str, Any]:
    """
    Build the ``system`` namespace seeded at run start.

    Args:
        flow_id: Id of the flow being executed
        execution_id: Id of this run
        now: Run start time

    Returns:
        Mapping for the ``system`` root
    """
    return {
        'date': {'current': now.date().isoformat()},
        'time': {'current': now.strftime('%H:%M:%S')},
        'timestamp': int(now.timestamp() * 1000),
        'flow': {'id': flow_id},
        'execution': {'id': execution_id},
    }


class VariableSnapshot(Mapping):
    """Read-only deep copy of a store. Mutation raises TypeError."""

    def __init__(self, data: Mapping):
        self._data = _freeze(data)

    def __getitem__(self, key):
        return self._data[key]

    def __iter__(self):
        return iter(self._data)

    def __len__(self):
        return len(self._data)

    def get_path(self, path: str) -> Any:
        return lookup_path(self._data, parse_path(path))

    def to_dict(self) -> Dict[str, Any]:
        return _thaw(self._data)


class VariableStore:
    """
    Ordered, mutable variable mapping for a single run.

    Usage:
        store = VariableStore()
        store.set('vars.count', 2)
        store.get('vars.count')       # 2
        store.get('vars.missing')     # NOT_FOUND
    """

    def __init__(self, initial: Optional[Mapping] = None):
        self._data: Dict[str, Any] = {}
        self._keys: Dict[str, None] = {}
        if initial:
            self.merge(initial)

    def get(self, path: str) -> Any:
        """
        Read a value by path.

        Returns:
            The value, or NOT_FOUND

        Raises:
            PathSyntaxError: If the path is malformed
        """
        return self.lookup(parse_path(path))

    def lookup(self, segments: Sequence[Segment]) -> Any:
        """Read a value by pre-parsed path segments."""
        return lookup_path(self._data, segments)

    def has(self, path: str) -> bool:
        return self.get(path) is not NOT_FOUND

    def set(self, key: str, value: Any):
        """Write a value; dotted keys create nested mappings. Last write wins."""
        self._set_segments(_string_segments(key), value)

    def _set_segments(self, segments: List[str], value: Any):
        target = self._data
        for segment in segments[:-1]:
            child = target.get(segment)
            if not isinstance(child, dict):
                child = {}
                target[segment] = child
            target = child
        target[segments[-1]] = copy.deepcopy(_thaw(value))
        self._keys[format_path(segments)] = None

    def merge(self, partial: Mapping):
        """
        Deep-merge a mapping into the store.

        Keys may be flat paths (``{"vars.a": 1}``) or nested mappings
        (``{"vars": {"a": 1}}``); nested mappings merge into existing ones.
        """
        for key, value in partial.items():
            segments = _string_segments(key)
            self._merge_into(segments, value)

    def _merge_into(self, segments: List[str], value: Any):
        existing = lookup_path(self._data, segments)
        if isinstance(value, Mapping) and isinstance(existing, dict) and value:
            for child_key, child_value in value.items():
                self._merge_into(segments + [str(child_key)], child_value)
        else:
            self._set_segments(segments, value)

    def keys(self) -> List[str]:
        """Written keys in write order."""
        return list(self._keys)

    def snapshot(self) -> VariableSnapshot:
        return VariableSnapshot(self._data)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def overlay(self, values: Mapping) -> 'OverlayStore':
        """Shadow the roots in ``values`` (e.g. ``loop``) for one iteration."""
        return OverlayStore(self, values)

    def seed_system(self, flow_id: str, execution_id: str, now: datetime):
        self.set('system', system_variables(flow_id, execution_id, now))


class OverlayStore:
    """
    Store view used inside loop bodies.

    Reads consult the overlay first, by root name: an overlay holding
    ``loop`` hides the whole ``loop`` root of the base store, so nested
    loops see only their own iteration variables. Writes go to the base
    store and outlive the overlay.
    """

    def __init__(self, base, values: Mapping):
        self.base = base
        self._overlay = VariableStore(values)

    def get(self, path: str) -> Any:
        return self.lookup(parse_path(path))

    def lookup(self, segments: Sequence[Segment]) -> Any:
        root = str(segments[0]) if segments else ''
        if root in self._overlay._data:
            return self._overlay.lookup(segments)
        return self.base.lookup(segments)

    def has(self, path: str) -> bool:
        return self.get(path) is not NOT_FOUND

    def set(self, key: str, value: Any):
        self.base.set(key, value)

    def merge(self, partial: Mapping):
        self.base.merge(partial)

    def keys(self) -> List[str]:
        return self.base.keys()

    def to_dict(self) -> Dict[str, Any]:
        data = self.base.to_dict()
        data.update(self._overlay.to_dict())
        return data

    def snapshot(self) -> VariableSnapshot:
        return VariableSnapshot(self.to_dict())

    def overlay(self, values: Mapping) -> 'OverlayStore':
        return OverlayStore(self, values)
