"""
Pytest fixtures for flow engine and API tests
"""

import json
from datetime import datetime, timezone

import httpx
import pytest

from flowbuilder.flow_engine import EngineSettings, FlowExecutor, HttpClient, VariableStore
from flowbuilder.flow_engine.definition import parse_node
from flowbuilder.flow_engine.nodes import ExecutionContext


FIXED_NOW = datetime(2024, 1, 15, 12, 30, 0, tzinfo=timezone.utc)


class MockApi:
    """
    Programmable HTTP backend for httpx.MockTransport.

    Usage:
        api.add('GET', '/items', json=[{}, {}])
        api.add('POST', '/orders', status=500, text='boom')
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, path, status=200, json=None, text=None, headers=None):
        self.routes[(method.upper(), path)] = (status, json, text, headers or {})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={'error': 'not found'})
        status, payload, text, headers = route
        if payload is not None:
            return httpx.Response(status, json=payload, headers=headers)
        return httpx.Response(status, text=text or '', headers=headers)

    def last_json(self):
        return json.loads(self.requests[-1].content)


class SleepRecorder:
    """Async sleep replacement that returns immediately."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class RecordingScheduleRegistry:
    def __init__(self):
        self.directives = []

    def register(self, directive):
        self.directives.append(directive)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def api():
    """Mock HTTP backend"""
    return MockApi()


@pytest.fixture
def http_client(api):
    client = httpx.AsyncClient(transport=httpx.MockTransport(api.handler), base_url='https://api.test')
    return HttpClient(client=client)


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def schedule_registry():
    return RecordingScheduleRegistry()


@pytest.fixture
def settings():
    return EngineSettings(default_max_iterations=100, max_iterations_cap=1000, max_delay_seconds=600)


@pytest.fixture
def executor(settings, http_client, sleeper, clock, schedule_registry):
    """FlowExecutor with mocked HTTP, sleep, clock and scheduler"""
    return FlowExecutor(
        settings=settings,
        http_client=http_client,
        schedule_registry=schedule_registry,
        clock=clock,
        sleep=sleeper,
    )


@pytest.fixture
def make_context(executor):
    """
    Build an ExecutionContext for a single node document.

    Usage:
        context = make_context({'id': 'n1', 'type': 'logMessage', 'data': {...}}, {'vars': {'a': 1}})
    """
    def _make(node_document, variables=None, run_body=None):
        issues = []
        node = parse_node(node_document, issues)
        assert not issues, issues
        store = VariableStore(variables or {})
        return ExecutionContext(
            node=node,
            store=store,
            runtime=executor.runtime('flow-1', 'exec-1'),
            run_body=run_body,
        )
    return _make
