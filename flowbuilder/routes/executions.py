"""
Executions API - Routes for browsing and cancelling flow executions

Endpoints:
- GET /api/v1/executions - List executions
- GET /api/v1/executions/:id - Execution details with final variables
- GET /api/v1/executions/:id/logs - Ordered execution log
- POST /api/v1/executions/:id/cancel - Cancel an active execution
"""

from flask import Blueprint, request, jsonify
import logging

from flowbuilder.database import db
from flowbuilder.flow_engine import RunState, Severity
from flowbuilder.models.execution import Execution, ExecutionLogRecord
from flowbuilder.services.flow_service import get_flow_service

logger = logging.getLogger(__name__)

executions_bp = Blueprint('executions', __name__, url_prefix='/api/v1/executions')


@executions_bp.route('', methods=['GET'])
def list_executions():
    """
    List executions.

    Query params:
        flow_id: Filter by flow
        status: Filter by status (success, failed, cancelled)
        limit: Max results (default: 50)
        offset: Pagination offset
    """
    flow_id = request.args.get('flow_id')
    status = request.args.get('status')
    try:
        limit = min(int(request.args.get('limit', 50)), 500)
        offset = int(request.args.get('offset', 0))
    except ValueError:
        return jsonify({'error': 'limit and offset must be integers'}), 400

    if status and status not in [state.value for state in RunState]:
        return jsonify({'error': f'Invalid status: {status}'}), 400

    query = Execution.query

    if flow_id:
        query = query.filter_by(flow_id=flow_id)

    if status:
        query = query.filter_by(status=status)

    total = query.count()
    executions = query.order_by(Execution.created_at.desc()).limit(limit).offset(offset).all()

    return jsonify({
        'executions': [e.to_dict() for e in executions],
        'active': get_flow_service().run_manager.active_ids(),
        'total': total,
        'limit': limit,
        'offset': offset
    }), 200


@executions_bp.route('/<execution_id>', methods=['GET'])
def get_execution(execution_id):
    """Get execution details."""
    try:
        execution = db.session.get(Execution, execution_id)
        if not execution:
            return jsonify({'error': 'Execution not found'}), 404

        return jsonify(execution.to_dict(include_details=True)), 200

    except Exception as e:
        logger.error(f"Error getting execution: {e}")
        return jsonify({'error': str(e)}), 500


@executions_bp.route('/<execution_id>/logs', methods=['GET'])
def get_execution_logs(execution_id):
    """
    Get the execution log in execution order.

    Query params:
        severity: Filter by severity (info, success, error, http, warn, debug)
        node_id: Filter by node
        limit: Max results (default: 500)
    """
    try:
        execution = db.session.get(Execution, execution_id)
        if not execution:
            return jsonify({'error': 'Execution not found'}), 404

        severity = request.args.get('severity')
        node_id = request.args.get('node_id')
        limit = int(request.args.get('limit', 500))

        if severity and severity not in [s.value for s in Severity]:
            return jsonify({'error': f'Invalid severity: {severity}'}), 400

        query = ExecutionLogRecord.query.filter_by(execution_id=execution.id)

        if severity:
            query = query.filter_by(severity=severity)

        if node_id:
            query = query.filter_by(node_id=node_id)

        logs = query.order_by(ExecutionLogRecord.position.asc()).limit(limit).all()

        return jsonify({
            'logs': [log.to_dict() for log in logs],
            'count': len(logs)
        }), 200

    except ValueError:
        return jsonify({'error': 'limit must be an integer'}), 400
    except Exception as e:
        logger.error(f"Error getting execution logs: {e}")
        return jsonify({'error': str(e)}), 500


@executions_bp.route('/<execution_id>/cancel', methods=['POST'])
def cancel_execution(execution_id):
    """Cancel an active execution."""
    if get_flow_service().cancel(execution_id):
        logger.info(f"Cancellation requested for execution: {execution_id}")
        return jsonify({'id': execution_id, 'status': 'cancelling'}), 202

    execution = db.session.get(Execution, execution_id)
    if not execution:
        return jsonify({'error': 'Execution not found'}), 404

    return jsonify({'error': f'Cannot cancel execution with status: {execution.status}'}), 400
