"""
Outcome of a single node and result of a whole run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from flowbuilder.flow_engine.errors import NodeExecutionError
from flowbuilder.flow_engine.execution_log import LogEntry
from flowbuilder.flow_engine.variable_store import VariableSnapshot


class RunState(str, Enum):
    """Run lifecycle: pending -> running -> success | failed | cancelled"""
    PENDING = 'pending'
    RUNNING = 'running'
    SUCCESS = 'success'
    FAILED = 'failed'
    CANCELLED = 'cancelled'

    @property
    def is_final(self) -> bool:
        return self in (RunState.SUCCESS, RunState.FAILED, RunState.CANCELLED)


@dataclass(frozen=True)
class Terminal:
    """Request from a StopJob node to end the run."""
    status: RunState
    reason: str = ''


@dataclass
class Outcome:
    """
    What a node executor produced.

    Attributes:
        edge_selector: Handle to follow ("true", "false", "complete") or None
        writes: (key, value) pairs applied to the variable store in order
        log: Entries appended to the execution log
        terminal: Set when the run must stop
        error: Set when the node failed
    """
    edge_selector: Optional[str] = None
    writes: List[Tuple[str, Any]] = field(default_factory=list)
    log: List[LogEntry] = field(default_factory=list)
    terminal: Optional[Terminal] = None
    error: Optional[NodeExecutionError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.succeeded,
            'edgeSelector': self.edge_selector,
            'writes': {key: value for key, value in self.writes},
            'log': [entry.to_dict() for entry in self.log],
            'terminal': {
                'status': self.terminal.status.value,
                'reason': self.terminal.reason,
            } if self.terminal else None,
            'error': str(self.error) if self.error else None,
        }


@dataclass(frozen=True)
class ExecutionResult:
    """
    Immutable summary of a finished run.

    ``final_variables`` is a read-only snapshot; use ``to_dict()`` for a
    mutable copy.
    """
    execution_id: str
    flow_id: str
    status: RunState
    log: Tuple[LogEntry, ...]
    final_variables: VariableSnapshot
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'executionId': self.execution_id,
            'flowId': self.flow_id,
            'status': self.status.value,
            'log': [entry.to_dict() for entry in self.log],
            'finalVariables': self.final_variables.to_dict(),
            'startedAt': self.started_at.isoformat(),
            'finishedAt': self.finished_at.isoformat(),
            'durationMs': self.duration_ms,
            'error': self.error,
        }
