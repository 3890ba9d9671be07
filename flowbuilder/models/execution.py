"""
Execution Models - persisted flow runs and their execution logs.
"""
from datetime import datetime

from flowbuilder.database import db


class Execution(db.Model):
    """
    One finished flow run.

    The log is stored as ordered rows in ExecutionLogRecord so it can be
    filtered by severity and node.
    """
    __tablename__ = 'executions'

    id = db.Column(db.String(64), primary_key=True)
    flow_id = db.Column(db.String(255), nullable=False, default='', index=True)

    # success, failed, cancelled
    status = db.Column(db.String(20), nullable=False, index=True)
    error = db.Column(db.Text, nullable=True)

    started_at = db.Column(db.DateTime, nullable=False)
    finished_at = db.Column(db.DateTime, nullable=False)
    duration_ms = db.Column(db.Integer, nullable=False, default=0)

    final_variables = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    logs = db.relationship(
        'ExecutionLogRecord',
        backref='execution',
        lazy='dynamic',
        cascade='all, delete-orphan',
        order_by='ExecutionLogRecord.position',
    )

    __table_args__ = (
        db.Index('idx_executions_flow_status', 'flow_id', 'status'),
    )

    def to_dict(self, include_details=False):
        """Convert to dictionary"""
        data = {
            'id': self.id,
            'flow_id': self.flow_id,
            'status': self.status,
            'error': self.error,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration_ms': self.duration_ms,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_details:
            data['final_variables'] = self.final_variables
            data['log_count'] = self.logs.count()
        return data

    @classmethod
    def from_result(cls, result):
        """
        Build an Execution from an ExecutionResult.

        Args:
            result: flowbuilder.flow_engine.ExecutionResult

        Returns:
            New, unsaved Execution (log rows come from ExecutionLogRecord.from_result)
        """
        return cls(
            id=result.execution_id,
            flow_id=result.flow_id,
            status=result.status.value,
            error=result.error,
            started_at=result.started_at,
            finished_at=result.finished_at,
            duration_ms=result.duration_ms,
            final_variables=result.final_variables.to_dict(),
        )


class ExecutionLogRecord(db.Model):
    """One execution log entry, in observation order."""
    __tablename__ = 'execution_log_records'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    execution_id = db.Column(
        db.String(64),
        db.ForeignKey('executions.id', ondelete='CASCADE'),
        nullable=False,
    )
    position = db.Column(db.Integer, nullable=False)

    timestamp = db.Column(db.DateTime, nullable=False)
    # info, success, error, http, warn, debug
    severity = db.Column(db.String(10), nullable=False, index=True)
    node_id = db.Column(db.String(255), nullable=True, index=True)
    message = db.Column(db.Text, nullable=False)

    __table_args__ = (
        db.Index('idx_execution_log_records_exec_position', 'execution_id', 'position'),
    )

    def to_dict(self):
        return {
            'position': self.position,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'severity': self.severity,
            'node_id': self.node_id,
            'message': self.message,
        }

    @classmethod
    def from_result(cls, result):
        """Log rows for an ExecutionResult, positions in log order."""
        return [
            cls(
                execution_id=result.execution_id,
                position=position,
                timestamp=entry.timestamp,
                severity=entry.severity.value,
                node_id=entry.node_id,
                message=entry.message,
            )
            for position, entry in enumerate(result.log)
        ]
