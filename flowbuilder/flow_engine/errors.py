"""
Error types for flow validation and execution.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class FlowEngineError(Exception):
    """Base class for flow engine errors."""
    pass


@dataclass
class ValidationIssue:
    """A single problem found while validating a flow document."""
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
    field: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'message': self.message}
        if self.node_id:
            data['nodeId'] = self.node_id
        if self.edge_id:
            data['edgeId'] = self.edge_id
        if self.field:
            data['field'] = self.field
        return data

    def __str__(self):
        if self.node_id:
            return f"[{self.node_id}] {self.message}"
        if self.edge_id:
            return f"[edge {self.edge_id}] {self.message}"
        return self.message


class FlowValidationError(FlowEngineError):
    """The flow document is malformed; the run never starts."""

    def __init__(self, errors: List[ValidationIssue], warnings: List[ValidationIssue] = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        summary = '; '.join(str(issue) for issue in self.errors[:5])
        if len(self.errors) > 5:
            summary += f" (+{len(self.errors) - 5} more)"
        super().__init__(f"Invalid flow: {summary}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'errors': [issue.to_dict() for issue in self.errors],
            'warnings': [issue.to_dict() for issue in self.warnings],
        }


@dataclass(frozen=True)
class ResolutionError:
    """
    A template placeholder that could not be resolved.

    This is a value, not an exception: resolution never raises.

    Attributes:
        kind: ``missing_path``, ``invalid_path`` or ``nesting_too_deep``
        path: The placeholder body that failed
    """
    kind: str
    path: str
    message: str = ''

    def __str__(self):
        return self.message or f"{self.kind}: {self.path}"


class NodeExecutionError(FlowEngineError):
    """A node failed; the run fails unless the node continues on error."""

    def __init__(self, message: str, node_id: Optional[str] = None):
        self.node_id = node_id
        self.message = message
        super().__init__(message)


class NetworkError(FlowEngineError):
    """HTTP transport failure (connection, DNS, timeout)."""
    pass


class RunCancelledError(FlowEngineError):
    """The run was cancelled from outside."""
    pass


class TerminalSignal(FlowEngineError):
    """
    Stops traversal with a final status.

    Raised by the scheduler after a StopJob outcome or an unrecovered node
    failure; caught at the top of the run.
    """

    def __init__(self, status, reason: str = '', node_id: Optional[str] = None):
        self.status = status
        self.reason = reason
        self.node_id = node_id
        super().__init__(reason or str(status))
