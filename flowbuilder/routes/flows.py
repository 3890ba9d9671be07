"""
Flows API - Routes for validating and running flow documents

Flow documents are owned by the editor; these endpoints receive them inline.

Endpoints:
- POST /api/v1/flows/validate - Validate a flow
- POST /api/v1/flows/execute - Run a flow to completion
- POST /api/v1/flows/test-node - Run a single node against an upstream snapshot
- POST /api/v1/flows/variables - Variables available to a node
"""

from flask import Blueprint, request, jsonify
import logging

from flowbuilder.flow_engine import FlowValidationError
from flowbuilder.services.flow_service import get_flow_service

logger = logging.getLogger(__name__)

flows_bp = Blueprint('flows', __name__, url_prefix='/api/v1/flows')


def _flow_from_request(data):
    flow = data.get('flow')
    return flow if isinstance(flow, dict) else None


@flows_bp.route('/validate', methods=['POST'])
def validate_flow():
    """
    Validate a flow document.

    Body:
        {"flow": {"id": "...", "nodes": [...], "edges": [...]}}
    """
    data = request.get_json(silent=True) or {}
    flow = _flow_from_request(data)
    if flow is None:
        return jsonify({'error': 'flow is required'}), 400

    report = get_flow_service().validate(flow)
    return jsonify(report.to_dict()), 200


@flows_bp.route('/execute', methods=['POST'])
async def execute_flow():
    """
    Execute a flow and return its result.

    Body:
        {
            "flow": {...},
            "executionId": "optional id, usable with /executions/<id>/cancel",
            "variables": {"vars": {...}} (optional)
        }
    """
    data = request.get_json(silent=True) or {}
    flow = _flow_from_request(data)
    if flow is None:
        return jsonify({'error': 'flow is required'}), 400

    try:
        result = await get_flow_service().execute(
            flow,
            execution_id=data.get('executionId'),
            initial_variables=data.get('variables') or None,
        )
        return jsonify(result.to_dict()), 201

    except FlowValidationError as e:
        return jsonify({'error': str(e), **e.to_dict()}), 400
    except Exception as e:
        logger.exception(f"Error executing flow: {e}")
        return jsonify({'error': str(e)}), 500


@flows_bp.route('/test-node', methods=['POST'])
async def test_node():
    """
    Test a single node.

    Body:
        {
            "node": {"id": "http1", "type": "httpRequest", "data": {...}},
            "upstreamSnapshot": {"vars": {...}, "http0": {"result": {...}}},
            "flowId": "optional"
        }
    """
    data = request.get_json(silent=True) or {}
    node = data.get('node')
    if not isinstance(node, dict):
        return jsonify({'error': 'node is required'}), 400

    snapshot = data.get('upstreamSnapshot') or {}
    if not isinstance(snapshot, dict):
        return jsonify({'error': 'upstreamSnapshot must be an object'}), 400

    try:
        outcome = await get_flow_service().test_node(node, snapshot, flow_id=str(data.get('flowId') or ''))
        return jsonify(outcome.to_dict()), 200

    except FlowValidationError as e:
        return jsonify({'error': str(e), **e.to_dict()}), 400
    except Exception as e:
        logger.exception(f"Error testing node: {e}")
        return jsonify({'error': str(e)}), 500


@flows_bp.route('/variables', methods=['POST'])
def list_variables():
    """
    List the variables a node can reference.

    Body:
        {"flow": {...}, "nodeId": "set1"}
    """
    data = request.get_json(silent=True) or {}
    flow = _flow_from_request(data)
    node_id = data.get('nodeId')
    if flow is None or not node_id:
        return jsonify({'error': 'flow and nodeId are required'}), 400

    try:
        variables = get_flow_service().variables_for(flow, node_id)
        return jsonify({'variables': variables, 'count': len(variables)}), 200

    except FlowValidationError as e:
        return jsonify({'error': str(e), **e.to_dict()}), 400
    except KeyError:
        return jsonify({'error': f'Node not found: {node_id}'}), 404
