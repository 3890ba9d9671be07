"""
Tests for the HTTP API
"""

import httpx
import pytest

from flowbuilder import create_app
from flowbuilder.config import TestingConfig
from flowbuilder.database import db
from flowbuilder.flow_engine import FlowExecutor, HttpClient
from flowbuilder.models.connector import Connector
from flowbuilder.services.connector_provider import DatabaseConnectorProvider
from flowbuilder.services.execution_store import SqlAlchemyExecutionStore
from flowbuilder.services.flow_service import FlowService
from flowbuilder.services.schedule_registry import ScheduleRegistry


@pytest.fixture
def app(api):
    app = create_app(TestingConfig)
    client = httpx.AsyncClient(transport=httpx.MockTransport(api.handler))
    app.extensions['flow_service'] = FlowService(FlowExecutor(
        http_client=HttpClient(client=client),
        connectors=DatabaseConnectorProvider(),
        schedule_registry=ScheduleRegistry(),
        execution_store=SqlAlchemyExecutionStore(),
    ))
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def sample_flow():
    return {
        'id': 'flow-1',
        'name': 'Sync items',
        'nodes': [
            {'id': 'http1', 'type': 'httpRequest', 'data': {'url': 'https://api.test/items'}},
            {'id': 'set1', 'type': 'setVariable', 'data': {
                'variableKey': 'count',
                'variableValue': '{{http1.result.data.length}}',
            }},
            {'id': 'log1', 'type': 'logMessage', 'data': {'message': 'Fetched {{vars.count}} items'}},
        ],
        'edges': [
            {'id': 'e1', 'source': 'http1', 'target': 'set1'},
            {'id': 'e2', 'source': 'set1', 'target': 'log1'},
        ],
    }


class TestHealth:
    def test_health(self, client):
        """Test the health endpoint reaches the database"""
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'healthy'


class TestFlowRoutes:
    """Test validate, execute, test-node and variables"""

    def test_validate(self, client):
        """Test a valid flow report"""
        response = client.post('/api/v1/flows/validate', json={'flow': sample_flow()})
        assert response.status_code == 200
        assert response.get_json()['valid'] is True

    def test_validate_reports_errors(self, client):
        """Test validation errors are returned, not raised"""
        flow = {'nodes': [{'id': 'h', 'type': 'httpRequest', 'data': {}}]}
        response = client.post('/api/v1/flows/validate', json={'flow': flow})
        body = response.get_json()
        assert response.status_code == 200
        assert body['valid'] is False
        assert body['errors'][0]['message'] == 'URL is required'

    def test_validate_requires_flow(self, client):
        """Test a missing flow"""
        response = client.post('/api/v1/flows/validate', json={})
        assert response.status_code == 400

    def test_execute(self, client, api):
        """Test a run returns its result"""
        api.add('GET', '/items', json=[{'id': 1}, {'id': 2}])

        response = client.post('/api/v1/flows/execute', json={'flow': sample_flow(), 'executionId': 'exec-1'})
        body = response.get_json()

        assert response.status_code == 201
        assert body['executionId'] == 'exec-1'
        assert body['status'] == 'success'
        assert body['finalVariables']['vars'] == {'count': 2}
        assert 'Fetched 2 items' in [entry['message'] for entry in body['log']]

    def test_execute_invalid_flow(self, client):
        """Test invalid flows are rejected with their issues"""
        flow = {'nodes': [{'id': 'h', 'type': 'httpRequest', 'data': {}}]}
        response = client.post('/api/v1/flows/execute', json={'flow': flow})
        assert response.status_code == 400
        assert response.get_json()['errors'][0]['nodeId'] == 'h'

    def test_execute_failed_run_is_still_created(self, client, api):
        """Test failed runs are results, not request errors"""
        api.add('GET', '/items', status=500, text='boom')

        response = client.post('/api/v1/flows/execute', json={'flow': sample_flow()})
        body = response.get_json()

        assert response.status_code == 201
        assert body['status'] == 'failed'
        assert body['error'].startswith('Node http1 failed')

    def test_test_node(self, client):
        """Test a single node against an upstream snapshot"""
        response = client.post('/api/v1/flows/test-node', json={
            'node': {'id': 'set1', 'type': 'setVariable', 'data': {
                'variableKey': 'total',
                'variableValue': '{{http1.result.data.total}}',
            }},
            'upstreamSnapshot': {'http1': {'result': {'data': {'total': 42}}}},
        })
        body = response.get_json()

        assert response.status_code == 200
        assert body['success'] is True
        assert body['writes'] == {'vars.total': 42}

    def test_test_node_invalid(self, client):
        """Test invalid node configs"""
        response = client.post('/api/v1/flows/test-node', json={
            'node': {'id': 'd', 'type': 'delay', 'data': {'delayType': 'cron'}},
        })
        assert response.status_code == 400
        assert response.get_json()['errors'][0]['message'] == 'Cron expression is required'

    def test_test_node_requires_node(self, client):
        """Test a missing node"""
        assert client.post('/api/v1/flows/test-node', json={}).status_code == 400

    def test_variables(self, client):
        """Test variables available to a node"""
        response = client.post('/api/v1/flows/variables', json={'flow': sample_flow(), 'nodeId': 'log1'})
        paths = [variable['path'] for variable in response.get_json()['variables']]

        assert response.status_code == 200
        assert 'http1.result.data' in paths
        assert 'vars.count' in paths

    def test_variables_unknown_node(self, client):
        """Test unknown node ids"""
        response = client.post('/api/v1/flows/variables', json={'flow': sample_flow(), 'nodeId': 'ghost'})
        assert response.status_code == 404

    def test_variables_requires_node_id(self, client):
        """Test a missing nodeId"""
        response = client.post('/api/v1/flows/variables', json={'flow': sample_flow()})
        assert response.status_code == 400


class TestExecutionRoutes:
    """Test browsing persisted executions"""

    @pytest.fixture
    def executed(self, client, api):
        api.add('GET', '/items', json=[{'id': 1}])
        response = client.post('/api/v1/flows/execute', json={'flow': sample_flow(), 'executionId': 'exec-1'})
        assert response.status_code == 201
        return response.get_json()

    def test_list(self, client, executed):
        """Test executions are listed with filters"""
        body = client.get('/api/v1/executions?flow_id=flow-1').get_json()
        assert body['total'] == 1
        assert body['executions'][0]['id'] == 'exec-1'
        assert body['executions'][0]['status'] == 'success'
        assert body['active'] == []

        assert client.get('/api/v1/executions?status=failed').get_json()['total'] == 0

    def test_list_invalid_status(self, client):
        """Test unknown status filters"""
        assert client.get('/api/v1/executions?status=done').status_code == 400

    def test_detail(self, client, executed):
        """Test details include final variables"""
        body = client.get('/api/v1/executions/exec-1').get_json()
        assert body['final_variables']['vars'] == {'count': 1}
        assert body['log_count'] == len(executed['log'])

    def test_detail_not_found(self, client):
        """Test unknown executions"""
        assert client.get('/api/v1/executions/missing').status_code == 404

    def test_logs_in_order(self, client, executed):
        """Test the persisted log keeps execution order"""
        body = client.get('/api/v1/executions/exec-1/logs').get_json()

        assert [log['message'] for log in body['logs']] == [entry['message'] for entry in executed['log']]
        assert [log['position'] for log in body['logs']] == list(range(body['count']))

    def test_logs_filters(self, client, executed):
        """Test severity and node filters"""
        http_logs = client.get('/api/v1/executions/exec-1/logs?severity=http').get_json()['logs']
        assert len(http_logs) == 1
        assert http_logs[0]['node_id'] == 'http1'

        node_logs = client.get('/api/v1/executions/exec-1/logs?node_id=log1').get_json()['logs']
        assert all(log['node_id'] == 'log1' for log in node_logs)

        assert client.get('/api/v1/executions/exec-1/logs?severity=loud').status_code == 400

    def test_cancel_finished_execution(self, client, executed):
        """Test finished executions cannot be cancelled"""
        response = client.post('/api/v1/executions/exec-1/cancel')
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Cannot cancel execution with status: success'

    def test_cancel_unknown_execution(self, client):
        """Test unknown executions"""
        assert client.post('/api/v1/executions/missing/cancel').status_code == 404


class TestConnectorRoutes:
    """Test connector CRUD"""

    def create(self, client, **overrides):
        payload = {
            'name': 'crm',
            'base_url': 'https://api.test/v1',
            'auth_type': 'bearer',
            'auth_config': {'token': 'secret-token'},
        }
        payload.update(overrides)
        return client.post('/api/v1/connectors', json=payload)

    def test_create_masks_secrets(self, client):
        """Test credentials never leave the API"""
        response = self.create(client)
        body = response.get_json()

        assert response.status_code == 201
        assert body['name'] == 'crm'
        assert body['auth_config'] == {'token': '********'}

    def test_create_validation(self, client):
        """Test invalid payloads"""
        assert client.post('/api/v1/connectors', json={}).status_code == 400
        assert self.create(client, auth_type='magic').status_code == 400
        assert self.create(client, headers=['Accept']).status_code == 400

    def test_duplicate_name(self, client):
        """Test connector names are unique"""
        self.create(client)
        assert self.create(client).status_code == 409

    def test_get_update_delete(self, client):
        """Test the connector lifecycle"""
        connector_id = self.create(client).get_json()['id']

        assert client.get(f'/api/v1/connectors/{connector_id}').status_code == 200

        response = client.put(f'/api/v1/connectors/{connector_id}', json={'base_url': 'https://api.test/v2'})
        assert response.status_code == 200
        assert response.get_json()['base_url'] == 'https://api.test/v2'

        listed = client.get('/api/v1/connectors').get_json()
        assert listed['count'] == 1

        assert client.delete(f'/api/v1/connectors/{connector_id}').status_code == 200
        assert client.get(f'/api/v1/connectors/{connector_id}').status_code == 404

    def test_missing_connector(self, client):
        """Test unknown ids"""
        assert client.put('/api/v1/connectors/missing', json={}).status_code == 404
        assert client.delete('/api/v1/connectors/missing').status_code == 404

    def test_http_node_uses_connector(self, client, api):
        """Test a node referencing a connector gets its base URL and auth"""
        self.create(client)
        api.add('GET', '/v1/contacts', json={'contacts': []})

        response = client.post('/api/v1/flows/test-node', json={
            'node': {'id': 'http1', 'type': 'httpRequest', 'data': {'connector': 'crm', 'url': '/contacts'}},
        })

        assert response.get_json()['success'] is True
        assert api.requests[-1].headers['authorization'] == 'Bearer secret-token'

    def test_credentials_stored_encrypted(self, app, client):
        """Test the stored auth config is ciphertext and decrypts for the engine"""
        connector_id = self.create(client).get_json()['id']

        with app.app_context():
            connector = db.session.get(Connector, connector_id)
            assert set(connector.auth_config.keys()) == {'_encrypted'}
            assert 'secret-token' not in str(connector.auth_config)
            assert connector.to_settings().auth_config == {'token': 'secret-token'}

    def test_update_reencrypts_credentials(self, app, client):
        """Test replacing the auth config on update"""
        connector_id = self.create(client).get_json()['id']

        response = client.put(f'/api/v1/connectors/{connector_id}', json={'auth_config': {'token': 'rotated'}})
        assert response.get_json()['auth_config'] == {'token': '********'}

        with app.app_context():
            connector = db.session.get(Connector, connector_id)
            assert 'rotated' not in str(connector.auth_config)
            assert connector.get_auth_config() == {'token': 'rotated'}


class TestScheduleRoutes:
    """Test cron directives handed over by Delay nodes"""

    @pytest.fixture
    def scheduled(self, client):
        flow = {
            'id': 'flow-cron',
            'name': 'Nightly sync',
            'nodes': [
                {'id': 'wait', 'type': 'delay', 'data': {'delayType': 'cron', 'cronExpression': '0 9 * * *'}},
            ],
            'edges': [],
        }
        response = client.post('/api/v1/flows/execute', json={'flow': flow})
        assert response.get_json()['status'] == 'success'
        return flow

    def test_list_schedules(self, client, scheduled):
        """Test a cron Delay shows up in the schedule list"""
        body = client.get('/api/v1/schedules').get_json()

        assert body['count'] == 1
        assert body['schedules'][0]['flowId'] == 'flow-cron'
        assert body['schedules'][0]['nodeId'] == 'wait'
        assert body['schedules'][0]['cronExpression'] == '0 9 * * *'

    def test_list_filters_by_flow(self, client, scheduled):
        """Test the flow_id filter"""
        assert client.get('/api/v1/schedules?flow_id=flow-cron').get_json()['count'] == 1
        assert client.get('/api/v1/schedules?flow_id=other').get_json()['count'] == 0

    def test_claim_due(self, client, scheduled):
        """Test due directives are returned once and advanced to the next fire time"""
        assert client.post('/api/v1/schedules/due', json={'now': '2000-01-01T00:00:00Z'}).get_json()['count'] == 0

        claimed = client.post('/api/v1/schedules/due', json={'now': '2999-01-01T00:00:00Z'}).get_json()
        assert claimed['count'] == 1
        assert claimed['schedules'][0]['nodeId'] == 'wait'

        listed = client.get('/api/v1/schedules').get_json()['schedules']
        assert listed[0]['nextRunAt'] == '2999-01-01T09:00:00+00:00'

    def test_claim_due_rejects_bad_timestamp(self, client):
        """Test invalid now values"""
        assert client.post('/api/v1/schedules/due', json={'now': 'tomorrow'}).status_code == 400

    def test_delete_schedule(self, client, scheduled):
        """Test removing a directive"""
        assert client.delete('/api/v1/schedules/flow-cron/wait').status_code == 200
        assert client.get('/api/v1/schedules').get_json()['count'] == 0
        assert client.delete('/api/v1/schedules/flow-cron/wait').status_code == 404
