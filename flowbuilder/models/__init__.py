from flowbuilder.models.connector import Connector
from flowbuilder.models.execution import Execution, ExecutionLogRecord

__all__ = [
    'Connector',
    'Execution',
    'ExecutionLogRecord',
]
