"""
Execution Log - ordered, append-only record of a run.

Entries are mirrored to the Python logger of this module so they show up in
the service logs as well as in the execution result.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Log entry severities"""
    INFO = 'info'
    SUCCESS = 'success'
    ERROR = 'error'
    HTTP = 'http'
    WARN = 'warn'
    DEBUG = 'debug'


PYTHON_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.HTTP: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.DEBUG: logging.DEBUG,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LogEntry:
    """One line of the execution log."""
    timestamp: datetime
    severity: Severity
    message: str
    node_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'severity': self.severity.value,
            'nodeId': self.node_id,
            'message': self.message,
        }


class ExecutionLog:
    """
    Append-only log sink for one run.

    Usage:
        log = ExecutionLog(execution_id)
        log.info('Flow execution started')
        log.http('GET https://api.example.com/items -> 200 (84 ms)', node_id='http1')
        log.error('Node http1 failed: HTTP 500', node_id='http1')
    """

    def __init__(self, execution_id: str = '', clock: Callable[[], datetime] = utc_now):
        self.execution_id = execution_id
        self.clock = clock
        self._entries: List[LogEntry] = []

    def entry(self, severity: Severity, message: str, node_id: Optional[str] = None) -> LogEntry:
        """Create an entry stamped with this log's clock without appending it."""
        return LogEntry(timestamp=self.clock(), severity=Severity(severity), message=message, node_id=node_id)

    def append(self, entry: LogEntry) -> LogEntry:
        self._entries.append(entry)
        prefix = f"[{self.execution_id}]" if self.execution_id else ''
        node = f"[{entry.node_id}]" if entry.node_id else ''
        logger.log(PYTHON_LEVELS[entry.severity], f"{prefix}{node} {entry.severity.value}: {entry.message}")
        return entry

    def extend(self, entries):
        for entry in entries:
            self.append(entry)

    def add(self, severity: Severity, message: str, node_id: Optional[str] = None) -> LogEntry:
        return self.append(self.entry(severity, message, node_id))

    def info(self, message: str, node_id: Optional[str] = None) -> LogEntry:
        return self.add(Severity.INFO, message, node_id)

    def success(self, message: str, node_id: Optional[str] = None) -> LogEntry:
        return self.add(Severity.SUCCESS, message, node_id)

    def warn(self, message: str, node_id: Optional[str] = None) -> LogEntry:
        return self.add(Severity.WARN, message, node_id)

    def error(self, message: str, node_id: Optional[str] = None) -> LogEntry:
        return self.add(Severity.ERROR, message, node_id)

    def http(self, message: str, node_id: Optional[str] = None) -> LogEntry:
        return self.add(Severity.HTTP, message, node_id)

    def debug(self, message: str, node_id: Optional[str] = None) -> LogEntry:
        return self.add(Severity.DEBUG, message, node_id)

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
