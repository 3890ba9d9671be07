"""
Flow validation - everything that must hold before a run may start.

Checks:
- Document shape, unknown node kinds, duplicate node ids
- Dangling edges and cycles that do not close through a loop body
- Required and well-formed per-kind configuration (URLs, operators,
  expressions, cron schedules, variable keys, limits)

Duplicate edges per (node, handle) and loops without a body are reported as
warnings; the first defined edge wins at run time.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from croniter import croniter

from flowbuilder.expressions import PathSyntaxError, Sandbox, is_identifier, parse_path
from flowbuilder.expressions.errors import EvaluationError
from flowbuilder.expressions.values import to_number
from flowbuilder.flow_engine.branching import parse_operator
from flowbuilder.flow_engine.definition import (
    HTTP_METHODS,
    ConditionMode,
    DelayType,
    Flow,
    LogLevel,
    LoopType,
    Node,
    NodeKind,
    StopType,
    parse_flow,
)
from flowbuilder.flow_engine.errors import FlowValidationError, ValidationIssue
from flowbuilder.flow_engine.graph import BODY_HANDLE, FlowGraph
from flowbuilder.flow_engine.nodes.delay import UNIT_SECONDS
from flowbuilder.flow_engine.settings import EngineSettings

logger = logging.getLogger(__name__)


VARIABLE_KEY_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

# Roots of the variable store that node results must not shadow
RESERVED_NODE_IDS = ('vars', 'system', 'loop')


def _is_template(value: Any) -> bool:
    return isinstance(value, str) and '{{' in value


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass
class ValidationReport:
    """Result of validating a flow document."""
    flow: Flow
    graph: Optional[FlowGraph]
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self):
        if self.errors:
            raise FlowValidationError(self.errors, self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.valid,
            'errors': [issue.to_dict() for issue in self.errors],
            'warnings': [issue.to_dict() for issue in self.warnings],
        }


class FlowValidator:
    """
    Validates flow documents and single nodes.

    Usage:
        validator = FlowValidator(EngineSettings(), Sandbox())
        report = validator.validate(document)
        if not report.valid:
            print(report.to_dict()['errors'])
    """

    def __init__(self, settings: Optional[EngineSettings] = None, sandbox: Optional[Sandbox] = None):
        self.settings = settings or EngineSettings()
        self.sandbox = sandbox or Sandbox(
            max_steps=self.settings.expression_max_steps,
            timeout_ms=self.settings.expression_timeout_ms,
        )

        self._node_checks: Dict[NodeKind, Callable[[Node, List[ValidationIssue], List[ValidationIssue]], None]] = {
            NodeKind.HTTP_REQUEST: self._check_http_request,
            NodeKind.IF_ELSE: self._check_if_else,
            NodeKind.LOOP: self._check_loop,
            NodeKind.SET_VARIABLE: self._check_set_variable,
            NodeKind.LOG_MESSAGE: self._check_log_message,
            NodeKind.DELAY: self._check_delay,
            NodeKind.STOP_JOB: self._check_stop_job,
        }

    def validate(self, document: Any) -> ValidationReport:
        """
        Validate a flow document (or an already parsed Flow).

        Returns:
            ValidationReport with the parsed flow, its graph and all issues
        """
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []

        flow = document if isinstance(document, Flow) else parse_flow(document, errors)

        counts = Counter(node.id for node in flow.nodes)
        for node_id, count in counts.items():
            if count > 1:
                errors.append(ValidationIssue(f"Duplicate node id '{node_id}' ({count} nodes)", node_id=node_id))
            if node_id in RESERVED_NODE_IDS:
                errors.append(ValidationIssue(f"Node id '{node_id}' is reserved", node_id=node_id, field='id'))
            elif not is_identifier(node_id):
                errors.append(ValidationIssue(
                    f"Invalid node id '{node_id}': use letters, digits, '_', '$' or '-'", node_id=node_id, field='id',
                ))

        node_ids = set(counts)
        for edge in flow.edges:
            for end, target in (('source', edge.source_node_id), ('target', edge.target_node_id)):
                if target not in node_ids:
                    errors.append(ValidationIssue(
                        f"Edge {end} references unknown node '{target}'", edge_id=edge.id, field=end,
                    ))

        if not flow.nodes:
            warnings.append(ValidationIssue("Flow has no nodes"))

        graph = FlowGraph(flow)

        for node_id, handle, edges in graph.duplicate_handles():
            label = f"handle '{handle}'" if handle else "the default handle"
            warnings.append(ValidationIssue(
                f"{len(edges)} edges leave {label}; only '{edges[0].id}' will be followed",
                node_id=node_id,
            ))

        cycle = graph.find_cycle()
        if cycle:
            errors.append(ValidationIssue(
                f"Cycle outside a loop body: {' -> '.join(cycle)}", node_id=cycle[0],
            ))

        for node in graph.nodes.values():
            node_errors, node_warnings = self.validate_node(node)
            errors.extend(node_errors)
            warnings.extend(node_warnings)
            if node.kind == NodeKind.LOOP and graph.body_start(node.id) is None:
                warnings.append(ValidationIssue(f"Loop has no '{BODY_HANDLE}' edge", node_id=node.id))

        if errors:
            logger.debug(f"Flow {flow.id or '<unnamed>'} failed validation with {len(errors)} errors")

        return ValidationReport(flow=flow, graph=graph, errors=errors, warnings=warnings)

    def load(self, document: Any) -> Tuple[Flow, FlowGraph]:
        """
        Validate and return the frozen flow and its graph.

        Raises:
            FlowValidationError: If any error was found
        """
        report = self.validate(document)
        report.raise_for_errors()
        return report.flow, report.graph

    def validate_node(self, node: Node) -> Tuple[List[ValidationIssue], List[ValidationIssue]]:
        """Check one node's configuration. Returns (errors, warnings)."""
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []
        check = self._node_checks.get(node.kind)
        if check is not None:
            check(node, errors, warnings)
        return errors, warnings

    # ==================== Per-kind checks ====================

    def _check_http_request(self, node, errors, warnings):
        config = node.config
        if _is_blank(config.url) and not config.connector:
            errors.append(ValidationIssue("URL is required", node_id=node.id, field='url'))
        if not _is_template(config.method) and config.method not in HTTP_METHODS:
            errors.append(ValidationIssue(
                f"Unsupported HTTP method: {config.method}", node_id=node.id, field='method',
            ))
        if config.timeout not in (None, ''):
            self._check_number(node, 'timeout', config.timeout, errors, minimum=0, exclusive=True)

    def _check_if_else(self, node, errors, warnings):
        config = node.config
        modes = [mode.value for mode in ConditionMode]
        if config.mode not in modes:
            errors.append(ValidationIssue(
                f"Unknown condition type: {config.mode}", node_id=node.id, field='type',
            ))
            return

        if config.mode == ConditionMode.COMPARISON.value:
            if _is_blank(config.left):
                errors.append(ValidationIssue("Comparison needs a left operand", node_id=node.id, field='left'))
            if parse_operator(config.operator) is None:
                errors.append(ValidationIssue(
                    f"Unknown comparison operator: {config.operator}", node_id=node.id, field='operator',
                ))
        elif config.mode == ConditionMode.EXPRESSION.value:
            self._check_expression(node, 'expression', config.expression, errors)
        else:
            self._check_reference(node, 'exists', config.exists_path, errors)

    def _check_loop(self, node, errors, warnings):
        config = node.config
        if config.loop_type not in [loop_type.value for loop_type in LoopType]:
            errors.append(ValidationIssue(
                f"Unknown loop type: {config.loop_type}", node_id=node.id, field='loopType',
            ))
            return

        if config.loop_type == LoopType.FOR_EACH.value:
            if not _is_template(config.array_path):
                self._check_reference(node, 'arrayPath', config.array_path, errors)
            self._check_number(node, 'batchSize', config.batch_size or 0, errors, minimum=0, integer=True)
        else:
            self._check_expression(node, 'conditionExpression', config.condition_expression, errors)

        if config.max_iterations not in (None, ''):
            if self._check_number(node, 'maxIterations', config.max_iterations, errors,
                                  minimum=0, exclusive=True, integer=True):
                cap = self.settings.max_iterations_cap
                if to_number(config.max_iterations) > cap:
                    warnings.append(ValidationIssue(
                        f"maxIterations is capped at {cap}", node_id=node.id, field='maxIterations',
                    ))

    def _check_set_variable(self, node, errors, warnings):
        config = node.config
        if not isinstance(config.key, str) or not VARIABLE_KEY_PATTERN.match(config.key):
            errors.append(ValidationIssue(
                f"Invalid variable key: {config.key!r}", node_id=node.id, field='variableKey',
            ))
        if config.use_transform:
            self._check_expression(node, 'transformScript', config.transform_script, errors)

    def _check_log_message(self, node, errors, warnings):
        if node.config.level not in [level.value for level in LogLevel]:
            errors.append(ValidationIssue(
                f"Unknown log level: {node.config.level}", node_id=node.id, field='logLevel',
            ))

    def _check_delay(self, node, errors, warnings):
        config = node.config
        if config.delay_type not in [delay_type.value for delay_type in DelayType]:
            errors.append(ValidationIssue(
                f"Unknown delay type: {config.delay_type}", node_id=node.id, field='delayType',
            ))
            return

        if config.delay_type == DelayType.CRON.value:
            expression = config.cron_expression
            if _is_blank(expression):
                errors.append(ValidationIssue("Cron expression is required", node_id=node.id, field='cronExpression'))
            elif not _is_template(expression) and not croniter.is_valid(str(expression).strip()):
                errors.append(ValidationIssue(
                    f"Invalid cron expression: {expression}", node_id=node.id, field='cronExpression',
                ))
            return

        if config.unit not in (DelayType.SECONDS.value, DelayType.MINUTES.value, DelayType.HOURS.value):
            errors.append(ValidationIssue(f"Unknown delay unit: {config.unit}", node_id=node.id, field='delayUnit'))
            return

        if _is_template(config.amount):
            return
        if self._check_number(node, 'delayAmount', config.amount, errors, minimum=0):
            seconds = float(to_number(config.amount)) * UNIT_SECONDS[config.unit]
            if seconds > self.settings.max_delay_seconds:
                errors.append(ValidationIssue(
                    f"Delay of {seconds:g}s exceeds the maximum of {self.settings.max_delay_seconds:g}s",
                    node_id=node.id, field='delayAmount',
                ))

    def _check_stop_job(self, node, errors, warnings):
        if node.config.stop_type not in [stop_type.value for stop_type in StopType]:
            errors.append(ValidationIssue(
                f"Unknown stop type: {node.config.stop_type}", node_id=node.id, field='stopType',
            ))

    # ==================== Helpers ====================

    def _check_expression(self, node, field_name, source, errors):
        if _is_blank(source):
            errors.append(ValidationIssue(f"{field_name} is required", node_id=node.id, field=field_name))
            return
        problem = self.sandbox.check(str(source))
        if problem:
            errors.append(ValidationIssue(
                f"Invalid {field_name}: {problem}", node_id=node.id, field=field_name,
            ))

    def _check_reference(self, node, field_name, reference, errors):
        """A bare path or a single ``{{path}}`` placeholder."""
        if _is_blank(reference):
            errors.append(ValidationIssue(f"{field_name} is required", node_id=node.id, field=field_name))
            return
        path = str(reference).strip()
        if path.startswith('{{') and path.endswith('}}'):
            path = path[2:-2].strip()
        try:
            parse_path(path)
        except PathSyntaxError as e:
            errors.append(ValidationIssue(f"Invalid {field_name}: {e}", node_id=node.id, field=field_name))

    def _check_number(self, node, field_name, value, errors, minimum=None, exclusive=False, integer=False) -> bool:
        """Append an error unless ``value`` is a number in range. Returns True when valid."""
        try:
            number = to_number(value)
        except EvaluationError:
            errors.append(ValidationIssue(f"{field_name} must be a number", node_id=node.id, field=field_name))
            return False

        if integer and number != int(number):
            errors.append(ValidationIssue(f"{field_name} must be a whole number", node_id=node.id, field=field_name))
            return False
        if minimum is not None and (number <= minimum if exclusive else number < minimum):
            bound = f"greater than {minimum}" if exclusive else f"at least {minimum}"
            errors.append(ValidationIssue(f"{field_name} must be {bound}", node_id=node.id, field=field_name))
            return False
        return True
