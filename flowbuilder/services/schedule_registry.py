"""
Schedule Registry - cron directives handed over by Delay nodes

A Delay node in cron mode never suspends a run; it registers when the flow
should start again. An external scheduler polls ``due`` and starts new runs.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, List, Tuple

from croniter import croniter

from flowbuilder.flow_engine.nodes import ScheduleDirective

logger = logging.getLogger(__name__)


class ScheduleRegistry:
    """
    In-memory, thread-safe registry keyed by (flow_id, node_id).

    Registering the same node again replaces its schedule.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._directives: Dict[Tuple[str, str], ScheduleDirective] = {}

    def register(self, directive: ScheduleDirective):
        with self._lock:
            self._directives[(directive.flow_id, directive.node_id)] = directive
        logger.info(
            f"Registered schedule '{directive.cron_expression}' for flow {directive.flow_id} "
            f"(node {directive.node_id}), next run at {directive.next_run_at.isoformat()}"
        )

    def unregister(self, flow_id: str, node_id: str) -> bool:
        with self._lock:
            return self._directives.pop((flow_id, node_id), None) is not None

    def all(self) -> List[ScheduleDirective]:
        with self._lock:
            return sorted(self._directives.values(), key=lambda directive: directive.next_run_at)

    def for_flow(self, flow_id: str) -> List[ScheduleDirective]:
        return [directive for directive in self.all() if directive.flow_id == flow_id]

    def due(self, now: datetime) -> List[ScheduleDirective]:
        """
        Pop directives whose next run is at or before ``now``.

        Each popped directive is re-registered with its following fire time,
        so a schedule keeps firing until it is unregistered.
        """
        fired = []
        with self._lock:
            for key, directive in list(self._directives.items()):
                if directive.next_run_at > now:
                    continue
                fired.append(directive)
                next_run_at = croniter(directive.cron_expression, now).get_next(datetime)
                self._directives[key] = ScheduleDirective(
                    flow_id=directive.flow_id,
                    node_id=directive.node_id,
                    cron_expression=directive.cron_expression,
                    next_run_at=next_run_at,
                    execution_id=directive.execution_id,
                )
        return fired
