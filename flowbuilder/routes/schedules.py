"""
Schedules API - Cron directives registered by Delay nodes

The engine never fires these itself. An external scheduler lists or claims
due directives here and starts the flow again through /flows/execute.

Endpoints:
- GET /api/v1/schedules - List directives (optionally for one flow)
- POST /api/v1/schedules/due - Claim due directives and advance them to their next fire time
- DELETE /api/v1/schedules/:flow_id/:node_id - Remove a directive
"""

from datetime import datetime, timezone

from flask import Blueprint, request, jsonify
import logging

from flowbuilder.services.flow_service import get_flow_service

logger = logging.getLogger(__name__)

schedules_bp = Blueprint('schedules', __name__, url_prefix='/api/v1/schedules')


def _registry():
    return get_flow_service().schedules


def _parse_now(value):
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@schedules_bp.route('', methods=['GET'])
def list_schedules():
    """
    List registered cron directives, soonest first.

    Query params:
        flow_id: Filter by flow
    """
    registry = _registry()
    if registry is None:
        return jsonify({'error': 'Scheduling is not configured'}), 404

    flow_id = request.args.get('flow_id')
    directives = registry.for_flow(flow_id) if flow_id else registry.all()

    return jsonify({
        'schedules': [d.to_dict() for d in directives],
        'count': len(directives)
    }), 200


@schedules_bp.route('/due', methods=['POST'])
def claim_due_schedules():
    """
    Claim directives due at ``now``.

    Claimed directives stay registered with their following fire time.

    Body:
        {"now": "2024-01-15T12:30:00Z"} (optional, defaults to the current time)
    """
    registry = _registry()
    if registry is None:
        return jsonify({'error': 'Scheduling is not configured'}), 404

    data = request.get_json(silent=True) or {}
    try:
        now = _parse_now(data.get('now'))
    except ValueError:
        return jsonify({'error': 'now must be an ISO 8601 timestamp'}), 400

    directives = registry.due(now)
    if directives:
        logger.info(f"Claimed {len(directives)} due schedule(s)")

    return jsonify({
        'schedules': [d.to_dict() for d in directives],
        'count': len(directives)
    }), 200


@schedules_bp.route('/<flow_id>/<node_id>', methods=['DELETE'])
def delete_schedule(flow_id, node_id):
    """Remove the directive a Delay node registered."""
    registry = _registry()
    if registry is None or not registry.unregister(flow_id, node_id):
        return jsonify({'error': 'Schedule not found'}), 404

    logger.info(f"Removed schedule for flow {flow_id} (node {node_id})")

    return jsonify({'success': True}), 200
