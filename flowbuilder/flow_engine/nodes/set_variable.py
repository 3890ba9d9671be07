"""
SetVariable node - writes ``vars.<key>``, optionally through a sandboxed
transform script with the source bound to ``value``.
"""

import json

from flowbuilder.expressions import ExpressionError
from flowbuilder.expressions.values import stringify
from flowbuilder.flow_engine.definition import NodeKind, SetVariableConfig
from flowbuilder.flow_engine.errors import NodeExecutionError
from flowbuilder.flow_engine.execution_log import Severity
from flowbuilder.flow_engine.nodes.base import ExecutionContext, NodeExecutor
from flowbuilder.flow_engine.results import Outcome


PREVIEW_LENGTH = 200


class SetVariableExecutor(NodeExecutor):
    kind = NodeKind.SET_VARIABLE

    async def execute(self, context: ExecutionContext) -> Outcome:
        config: SetVariableConfig = context.node.config
        value = context.resolve(config.value)

        if config.use_transform:
            try:
                evaluation = context.runtime.sandbox.transform(value, config.transform_script, context.store.lookup)
            except ExpressionError as e:
                raise NodeExecutionError(f"Transform failed: {e}")
            for path in evaluation.missing_paths:
                context.log(Severity.WARN, f"Transform referenced missing variable: {path}")
            value = evaluation.value

        preview = stringify(value) if not isinstance(value, str) else json.dumps(value)
        if len(preview) > PREVIEW_LENGTH:
            preview = preview[:PREVIEW_LENGTH] + '...'
        context.log(Severity.SUCCESS, f"Set vars.{config.key} = {preview}")

        return context.outcome(writes=[(f"vars.{config.key}", value)])
