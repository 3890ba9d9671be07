"""
HttpRequest node - calls an HTTP endpoint and stores the response.

Writes ``<nodeId>.result = {status, headers, data}``.
"""

import json
import logging
from typing import Any, Dict

from flowbuilder.expressions.values import stringify, to_number
from flowbuilder.flow_engine.definition import HttpRequestConfig, NodeKind
from flowbuilder.flow_engine.errors import NetworkError, NodeExecutionError
from flowbuilder.flow_engine.execution_log import Severity
from flowbuilder.flow_engine.nodes.base import ExecutionContext, NodeExecutor
from flowbuilder.flow_engine.results import Outcome

logger = logging.getLogger(__name__)


class HttpRequestExecutor(NodeExecutor):
    kind = NodeKind.HTTP_REQUEST

    async def execute(self, context: ExecutionContext) -> Outcome:
        node = context.node
        config: HttpRequestConfig = node.config

        method = stringify(context.resolve(config.method)).upper() or 'GET'
        url = stringify(context.resolve(config.url)).strip()
        headers = {str(key): stringify(value) for key, value in context.resolve(config.headers).items()}
        params = {str(key): stringify(value) for key, value in context.resolve(config.query_params).items()}
        body = self._build_body(context, config.body, method)

        if config.connector:
            connector = context.runtime.connectors.get(config.connector)
            if connector is None:
                raise NodeExecutionError(f"Connector not found: {config.connector}")
            url, headers = connector.apply(url, headers)

        if not url:
            raise NodeExecutionError("Request URL is empty")

        timeout = to_number(config.timeout) if config.timeout else None

        try:
            response = await context.runtime.http_client.send(
                method, url, headers=headers, body=body, params=params, timeout=timeout
            )
        except NetworkError as e:
            context.log(Severity.HTTP, f"{method} {url} -> network error")
            raise NodeExecutionError(str(e))

        context.log(Severity.HTTP, f"{method} {url} -> {response.status} ({response.elapsed_ms} ms)")

        data = self._parse_body(context, response.body, config.parse_json)
        result = {
            'status': response.status,
            'headers': response.headers,
            'data': data,
        }
        writes = [(self.result_key(node), result)]

        if response.status >= 400:
            message = f"HTTP {response.status} from {method} {url}"
            if config.fail_on_error:
                return context.outcome(writes=writes, error=NodeExecutionError(message, node.id))
            context.log(Severity.WARN, f"{message} (recorded, failOnError disabled)")

        return context.outcome(writes=writes)

    def _build_body(self, context: ExecutionContext, template: Any, method: str) -> Any:
        if template is None or template == '' or method in ('GET', 'HEAD'):
            return None

        body = context.resolve(template)
        if isinstance(body, str):
            text = body.strip()
            if text.startswith(('{', '[')):
                try:
                    return json.loads(text)
                except ValueError:
                    logger.debug("Request body looks like JSON but does not parse; sending as text")
        return body

    def _parse_body(self, context: ExecutionContext, text: str, parse_json: bool) -> Any:
        if not parse_json:
            return text
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError:
            context.log(Severity.WARN, "Response body is not valid JSON; stored as text")
            return text
