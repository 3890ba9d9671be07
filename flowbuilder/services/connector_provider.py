"""
Connector provider backed by the Connector model.
"""

from typing import Optional

from flowbuilder.flow_engine.http_client import ConnectorSettings
from flowbuilder.models.connector import Connector


class DatabaseConnectorProvider:
    """Looks up connectors by name for HttpRequest nodes."""

    def get(self, name: str) -> Optional[ConnectorSettings]:
        connector = Connector.query.filter_by(name=name).first()
        if connector is None:
            return None
        return connector.to_settings()
