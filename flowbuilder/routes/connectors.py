"""
Connectors API - Routes for managing API connectors

Endpoints:
- GET /api/v1/connectors - List connectors
- POST /api/v1/connectors - Create connector
- GET /api/v1/connectors/:id - Get connector
- PUT /api/v1/connectors/:id - Update connector
- DELETE /api/v1/connectors/:id - Delete connector
"""

from flask import Blueprint, request, jsonify
import logging

from flowbuilder.database import db
from flowbuilder.models.connector import AUTH_TYPES, Connector

logger = logging.getLogger(__name__)

connectors_bp = Blueprint('connectors', __name__, url_prefix='/api/v1/connectors')


def _validate_payload(data, partial=False):
    """Return an error message, or None when the payload is acceptable."""
    if not partial and not data.get('name'):
        return 'name is required'
    if 'name' in data and not str(data['name']).strip():
        return 'name must not be empty'
    if 'auth_type' in data and data['auth_type'] not in AUTH_TYPES:
        return f"auth_type must be one of: {', '.join(AUTH_TYPES)}"
    for field in ('auth_config', 'headers'):
        if field in data and not isinstance(data[field], dict):
            return f'{field} must be an object'
    return None


@connectors_bp.route('', methods=['GET'])
def list_connectors():
    """List all connectors."""
    connectors = Connector.query.order_by(Connector.name.asc()).all()

    return jsonify({
        'connectors': [c.to_dict() for c in connectors],
        'count': len(connectors)
    }), 200


@connectors_bp.route('', methods=['POST'])
def create_connector():
    """
    Create a connector.

    Body:
        {
            "name": "crm",
            "base_url": "https://api.example.com/v1",
            "auth_type": "bearer",
            "auth_config": {"token": "..."},
            "headers": {"Accept": "application/json"}
        }
    """
    data = request.get_json(silent=True) or {}

    error = _validate_payload(data)
    if error:
        return jsonify({'error': error}), 400

    if Connector.query.filter_by(name=data['name']).first():
        return jsonify({'error': f"Connector already exists: {data['name']}"}), 409

    try:
        connector = Connector(
            name=data['name'].strip(),
            base_url=data.get('base_url', ''),
            auth_type=data.get('auth_type', 'none'),
            headers=data.get('headers') or {},
        )
        connector.set_auth_config(data.get('auth_config'))
        db.session.add(connector)
        db.session.commit()

        logger.info(f"Created connector: {connector.id} - {connector.name}")

        return jsonify(connector.to_dict()), 201

    except Exception as e:
        logger.error(f"Error creating connector: {e}")
        db.session.rollback()
        return jsonify({'error': str(e)}), 500


@connectors_bp.route('/<connector_id>', methods=['GET'])
def get_connector(connector_id):
    """Get a connector; credentials are masked."""
    connector = db.session.get(Connector, connector_id)
    if not connector:
        return jsonify({'error': 'Connector not found'}), 404

    return jsonify(connector.to_dict()), 200


@connectors_bp.route('/<connector_id>', methods=['PUT'])
def update_connector(connector_id):
    """Update a connector. Only the fields present in the body change."""
    data = request.get_json(silent=True) or {}

    connector = db.session.get(Connector, connector_id)
    if not connector:
        return jsonify({'error': 'Connector not found'}), 404

    error = _validate_payload(data, partial=True)
    if error:
        return jsonify({'error': error}), 400

    if 'name' in data and data['name'] != connector.name:
        if Connector.query.filter_by(name=data['name']).first():
            return jsonify({'error': f"Connector already exists: {data['name']}"}), 409

    try:
        for field in ('name', 'base_url', 'auth_type', 'headers'):
            if field in data:
                setattr(connector, field, data[field])
        if 'auth_config' in data:
            connector.set_auth_config(data['auth_config'])
        db.session.commit()

        logger.info(f"Updated connector: {connector.id}")

        return jsonify(connector.to_dict()), 200

    except Exception as e:
        logger.error(f"Error updating connector: {e}")
        db.session.rollback()
        return jsonify({'error': str(e)}), 500


@connectors_bp.route('/<connector_id>', methods=['DELETE'])
def delete_connector(connector_id):
    """Delete a connector."""
    connector = db.session.get(Connector, connector_id)
    if not connector:
        return jsonify({'error': 'Connector not found'}), 404

    try:
        db.session.delete(connector)
        db.session.commit()

        logger.info(f"Deleted connector: {connector_id}")

        return jsonify({'success': True}), 200

    except Exception as e:
        logger.error(f"Error deleting connector: {e}")
        db.session.rollback()
        return jsonify({'error': str(e)}), 500
