"""
Flow definition - typed nodes, edges and per-kind configuration.

Accepts both the editor document shape and the engine shape:

    {"id": "n1", "type": "httpRequest", "data": {"url": "...", "skipped": false}}
    {"id": "n1", "kind": "httpRequest", "config": {"url": "..."}, "skipped": false}

    {"id": "e1", "source": "n1", "target": "n2", "sourceHandle": "true"}
    {"id": "e1", "sourceNodeId": "n1", "targetNodeId": "n2", "sourceHandle": "true"}

Unknown fields are ignored. Parsing never raises; problems are collected as
ValidationIssues and reported together by the validator.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from flowbuilder.flow_engine.errors import ValidationIssue


class NodeKind(str, Enum):
    """Closed set of node kinds."""
    HTTP_REQUEST = 'httpRequest'
    IF_ELSE = 'ifElse'
    LOOP = 'loop'
    SET_VARIABLE = 'setVariable'
    LOG_MESSAGE = 'logMessage'
    DELAY = 'delay'
    STOP_JOB = 'stopJob'


KIND_ALIASES = {
    'log': NodeKind.LOG_MESSAGE,
    'http': NodeKind.HTTP_REQUEST,
    'condition': NodeKind.IF_ELSE,
}


class ConditionMode(str, Enum):
    COMPARISON = 'comparison'
    EXPRESSION = 'expression'
    EXISTS = 'exists'


class LoopType(str, Enum):
    FOR_EACH = 'forEach'
    WHILE = 'while'


class LogLevel(str, Enum):
    INFO = 'info'
    WARN = 'warn'
    ERROR = 'error'
    DEBUG = 'debug'


class DelayType(str, Enum):
    SECONDS = 'seconds'
    MINUTES = 'minutes'
    HOURS = 'hours'
    CRON = 'cron'


class StopType(str, Enum):
    SUCCESS = 'success'
    ERROR = 'error'
    CANCEL = 'cancel'


HTTP_METHODS = ('GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD', 'OPTIONS')
NEW_VARIABLE_KEY = '__new__'


@dataclass(frozen=True)
class HttpRequestConfig:
    url: str = ''
    method: str = 'GET'
    headers: Dict[str, Any] = field(default_factory=dict)
    query_params: Dict[str, Any] = field(default_factory=dict)
    body: Any = None
    parse_json: bool = True
    fail_on_error: bool = True
    connector: Optional[str] = None
    timeout: Optional[float] = None


@dataclass(frozen=True)
class IfElseConfig:
    mode: str = ConditionMode.COMPARISON.value
    left: Any = None
    operator: str = '=='
    right: Any = None
    expression: str = ''
    exists_path: str = ''


@dataclass(frozen=True)
class LoopConfig:
    loop_type: str = LoopType.FOR_EACH.value
    array_path: str = ''
    batch_size: Any = 0
    condition_expression: str = ''
    max_iterations: Any = None


@dataclass(frozen=True)
class SetVariableConfig:
    key: str = ''
    value: Any = None
    use_transform: bool = False
    transform_script: str = ''


@dataclass(frozen=True)
class LogMessageConfig:
    message: Any = ''
    level: str = LogLevel.INFO.value


@dataclass(frozen=True)
class DelayConfig:
    delay_type: str = DelayType.SECONDS.value
    unit: str = DelayType.SECONDS.value
    amount: Any = 0
    cron_expression: str = ''


@dataclass(frozen=True)
class StopJobConfig:
    stop_type: str = StopType.SUCCESS.value
    error_message: Any = ''


@dataclass(frozen=True)
class Node:
    """A typed step of the flow."""
    id: str
    kind: NodeKind
    config: Any
    skipped: bool = False
    continue_on_error: bool = False
    label: str = ''

    @property
    def display_name(self) -> str:
        return self.label or self.id


@dataclass(frozen=True)
class Edge:
    """Directed connection; ``source_handle`` selects the branch."""
    id: str
    source_node_id: str
    target_node_id: str
    source_handle: Optional[str] = None


@dataclass(frozen=True)
class Flow:
    """A parsed flow definition, immutable for the duration of a run."""
    id: str
    nodes: Tuple[Node, ...]
    edges: Tuple[Edge, ...]
    name: str = ''


def _first(data: Dict[str, Any], *keys, default=None):
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in ('false', '0', 'no', 'off', '')
    return bool(value)


def _pairs_to_dict(value: Any, field_name: str, node_id: str, issues: List[ValidationIssue]) -> Dict[str, Any]:
    """Headers and query params arrive as a dict or a list of {key, value}."""
    if value is None or value == '':
        return {}
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, list):
        result = {}
        for item in value:
            if isinstance(item, dict) and item.get('key'):
                result[str(item['key'])] = item.get('value', '')
            elif isinstance(item, dict) and not item.get('key') and not item.get('value'):
                continue
            else:
                issues.append(ValidationIssue(f"Invalid {field_name} entry: {item!r}", node_id=node_id, field=field_name))
        return result
    issues.append(ValidationIssue(f"{field_name} must be an object or a list of key/value pairs",
                                  node_id=node_id, field=field_name))
    return {}


def _parse_http_request(data, node_id, issues) -> HttpRequestConfig:
    timeout = data.get('timeout')
    method = str(_first(data, 'method', default='GET'))
    if '{{' not in method:
        method = method.upper()
    return HttpRequestConfig(
        url=_first(data, 'url', 'endpoint', default=''),
        method=method,
        headers=_pairs_to_dict(data.get('headers'), 'headers', node_id, issues),
        query_params=_pairs_to_dict(_first(data, 'queryParams', 'params'), 'queryParams', node_id, issues),
        body=data.get('body'),
        parse_json=_as_bool(data.get('parseJson'), True),
        fail_on_error=_as_bool(data.get('failOnError'), True),
        connector=_first(data, 'connector', 'connectorName') or None,
        timeout=timeout,
    )


def _parse_if_else(data, node_id, issues) -> IfElseConfig:
    comparison = data.get('comparison') or {}
    if not isinstance(comparison, dict):
        issues.append(ValidationIssue("comparison must be an object", node_id=node_id, field='comparison'))
        comparison = {}
    return IfElseConfig(
        mode=_first(data, 'type', 'conditionType', default=ConditionMode.COMPARISON.value),
        left=_first(comparison, 'left', default=data.get('left')),
        operator=_first(comparison, 'operator', default=data.get('operator', '==')),
        right=_first(comparison, 'right', default=data.get('right')),
        expression=_first(data, 'expression', 'condition', default=''),
        exists_path=_first(data, 'exists', 'existsPath', default=''),
    )


def _parse_loop(data, node_id, issues) -> LoopConfig:
    return LoopConfig(
        loop_type=_first(data, 'loopType', default=LoopType.FOR_EACH.value),
        array_path=_first(data, 'arrayPath', 'items', default=''),
        batch_size=_first(data, 'batchSize', default=0),
        condition_expression=_first(data, 'conditionExpression', 'condition', default=''),
        max_iterations=data.get('maxIterations'),
    )


def _parse_set_variable(data, node_id, issues) -> SetVariableConfig:
    key = _first(data, 'variableKey', 'key', default='')
    if key == NEW_VARIABLE_KEY:
        key = _first(data, 'newVariableKey', default='')
    if isinstance(key, str) and key.startswith('vars.'):
        key = key[len('vars.'):]
    return SetVariableConfig(
        key=key,
        value=_first(data, 'variableValue', 'value'),
        use_transform=_as_bool(data.get('useTransform'), False),
        transform_script=_first(data, 'transformScript', default=''),
    )


def _parse_log_message(data, node_id, issues) -> LogMessageConfig:
    return LogMessageConfig(
        message=_first(data, 'message', default=''),
        level=_first(data, 'logLevel', 'level', default=LogLevel.INFO.value),
    )


def _parse_delay(data, node_id, issues) -> DelayConfig:
    delay_type = _first(data, 'delayType', default=DelayType.SECONDS.value)
    unit = delay_type
    if delay_type == DelayType.SECONDS.value:
        unit = _first(data, 'delayUnit', default=DelayType.SECONDS.value)
    return DelayConfig(
        delay_type=delay_type,
        unit=unit,
        amount=_first(data, 'delayAmount', 'amount', default=0),
        cron_expression=_first(data, 'cronExpression', default=''),
    )


def _parse_stop_job(data, node_id, issues) -> StopJobConfig:
    return StopJobConfig(
        stop_type=_first(data, 'stopType', default=StopType.SUCCESS.value),
        error_message=_first(data, 'errorMessage', 'message', default=''),
    )


CONFIG_PARSERS = {
    NodeKind.HTTP_REQUEST: _parse_http_request,
    NodeKind.IF_ELSE: _parse_if_else,
    NodeKind.LOOP: _parse_loop,
    NodeKind.SET_VARIABLE: _parse_set_variable,
    NodeKind.LOG_MESSAGE: _parse_log_message,
    NodeKind.DELAY: _parse_delay,
    NodeKind.STOP_JOB: _parse_stop_job,
}


def parse_kind(value: Any) -> Optional[NodeKind]:
    if isinstance(value, NodeKind):
        return value
    if not isinstance(value, str):
        return None
    try:
        return NodeKind(value)
    except ValueError:
        return KIND_ALIASES.get(value)


def parse_node(raw: Any, issues: List[ValidationIssue]) -> Optional[Node]:
    """
    Build a Node from a document entry.

    Returns:
        The node, or None when it is too malformed to use
    """
    if not isinstance(raw, dict):
        issues.append(ValidationIssue(f"Node must be an object, got {type(raw).__name__}"))
        return None

    node_id = raw.get('id')
    if not isinstance(node_id, str) or not node_id:
        issues.append(ValidationIssue("Node is missing an id"))
        return None

    raw_kind = _first(raw, 'kind', 'type')
    kind = parse_kind(raw_kind)
    if kind is None:
        issues.append(ValidationIssue(f"Unknown node kind: {raw_kind!r}", node_id=node_id, field='kind'))
        return None

    data = raw.get('config', raw.get('data')) or {}
    if not isinstance(data, dict):
        issues.append(ValidationIssue("Node config must be an object", node_id=node_id, field='config'))
        return None
    data = copy.deepcopy(data)

    config = CONFIG_PARSERS[kind](data, node_id, issues)

    return Node(
        id=node_id,
        kind=kind,
        config=config,
        skipped=_as_bool(_first(raw, 'skipped', default=data.get('skipped')), False),
        continue_on_error=_as_bool(_first(raw, 'continueOnError', default=data.get('continueOnError')), False),
        label=str(_first(raw, 'label', default=data.get('label', '')) or ''),
    )


def parse_edge(raw: Any, index: int, issues: List[ValidationIssue]) -> Optional[Edge]:
    if not isinstance(raw, dict):
        issues.append(ValidationIssue(f"Edge must be an object, got {type(raw).__name__}"))
        return None

    edge_id = str(raw.get('id') or f"edge-{index}")
    source = _first(raw, 'sourceNodeId', 'source')
    target = _first(raw, 'targetNodeId', 'target')
    if not source or not target:
        issues.append(ValidationIssue("Edge must have a source and a target", edge_id=edge_id))
        return None

    handle = _first(raw, 'sourceHandle', 'label')
    return Edge(
        id=edge_id,
        source_node_id=str(source),
        target_node_id=str(target),
        source_handle=str(handle) if handle not in (None, '') else None,
    )


def parse_flow(document: Any, issues: List[ValidationIssue]) -> Flow:
    """
    Parse a flow document into an immutable Flow.

    Args:
        document: Mapping with ``nodes`` and ``edges``
        issues: Receives every problem found

    Returns:
        Flow built from the usable nodes and edges
    """
    if not isinstance(document, dict):
        issues.append(ValidationIssue("Flow document must be an object"))
        return Flow(id='', nodes=(), edges=())

    raw_nodes = document.get('nodes') or []
    raw_edges = document.get('edges') or []
    if not isinstance(raw_nodes, list):
        issues.append(ValidationIssue("nodes must be a list"))
        raw_nodes = []
    if not isinstance(raw_edges, list):
        issues.append(ValidationIssue("edges must be a list"))
        raw_edges = []

    nodes = [node for node in (parse_node(raw, issues) for raw in raw_nodes) if node]
    edges = [edge for edge in (parse_edge(raw, i, issues) for i, raw in enumerate(raw_edges)) if edge]

    return Flow(
        id=str(document.get('id') or ''),
        name=str(document.get('name') or ''),
        nodes=tuple(nodes),
        edges=tuple(edges),
    )
