"""
Flow Service - wires the flow engine to the application

Provides a high-level API for the routes: validate, execute, test a node,
list available variables and cancel active runs.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from flask import current_app

from flowbuilder.flow_engine import EngineSettings, ExecutionResult, FlowExecutor, NodeTester, Outcome
from flowbuilder.flow_engine.validation import ValidationReport
from flowbuilder.flow_engine.variable_catalog import available_variables
from flowbuilder.services.connector_provider import DatabaseConnectorProvider
from flowbuilder.services.execution_store import SqlAlchemyExecutionStore
from flowbuilder.services.run_manager import RunManager
from flowbuilder.services.schedule_registry import ScheduleRegistry

logger = logging.getLogger(__name__)


class FlowService:
    """
    Application-level facade over FlowExecutor.

    Usage:
        service = get_flow_service()
        result = await service.execute(flow_document)
    """

    def __init__(self, executor: FlowExecutor, run_manager: Optional[RunManager] = None):
        self.executor = executor
        self.tester = NodeTester(executor)
        self.run_manager = run_manager or RunManager()

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'FlowService':
        executor = FlowExecutor(
            settings=EngineSettings.from_mapping(config),
            connectors=DatabaseConnectorProvider(),
            schedule_registry=ScheduleRegistry(),
            execution_store=SqlAlchemyExecutionStore(),
        )
        return cls(executor)

    def validate(self, document: Any) -> ValidationReport:
        return self.executor.validate(document)

    async def execute(
        self,
        document: Any,
        execution_id: Optional[str] = None,
        initial_variables: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionResult:
        """
        Run a flow to completion while it can be cancelled by id.

        Raises:
            FlowValidationError: If the flow is invalid
        """
        handle = self.executor.start(document, execution_id, initial_variables)
        self.run_manager.register(handle)
        logger.info(f"Started execution {handle.execution_id} for flow {handle.flow_id or '<unnamed>'}")
        try:
            return await handle.wait()
        finally:
            self.run_manager.remove(handle.execution_id)

    async def test_node(
        self,
        node: Mapping[str, Any],
        upstream_snapshot: Optional[Mapping[str, Any]] = None,
        flow_id: str = '',
    ) -> Outcome:
        return await self.tester.test_node(node, upstream_snapshot, flow_id)

    def variables_for(self, document: Any, node_id: str) -> List[Dict[str, Any]]:
        """
        Variables available to a node.

        Raises:
            FlowValidationError: If the flow is invalid
            KeyError: If the node does not exist
        """
        report = self.validate(document)
        report.raise_for_errors()
        return [variable.to_dict() for variable in available_variables(report.graph, node_id)]

    @property
    def schedules(self) -> Optional[ScheduleRegistry]:
        """Cron directives registered by Delay nodes, or None when scheduling is off."""
        return self.executor.schedule_registry

    def cancel(self, execution_id: str) -> bool:
        return self.run_manager.cancel(execution_id)


def get_flow_service() -> FlowService:
    """
    Get the FlowService of the current app, creating it on first use.

    Returns:
        FlowService instance
    """
    service = current_app.extensions.get('flow_service')
    if service is None:
        service = FlowService.from_config(current_app.config)
        current_app.extensions['flow_service'] = service
    return service
