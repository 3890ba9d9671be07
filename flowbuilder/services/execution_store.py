"""
Execution Store - persists finished runs with SQLAlchemy.
"""

import logging

from flowbuilder.database import db
from flowbuilder.models.execution import Execution, ExecutionLogRecord

logger = logging.getLogger(__name__)


class SqlAlchemyExecutionStore:
    """
    Persistence collaborator for FlowExecutor.

    Usage:
        executor = FlowExecutor(execution_store=SqlAlchemyExecutionStore())
    """

    def save(self, result):
        """
        Store an ExecutionResult and its ordered log.

        Args:
            result: flowbuilder.flow_engine.ExecutionResult
        """
        try:
            existing = db.session.get(Execution, result.execution_id)
            if existing is not None:
                db.session.delete(existing)
                db.session.flush()

            db.session.add(Execution.from_result(result))
            db.session.add_all(ExecutionLogRecord.from_result(result))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Saved execution {result.execution_id} ({result.status.value}, {len(result.log)} log entries)")
