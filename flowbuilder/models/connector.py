"""
Connector Model - named API connections used by HttpRequest nodes.

``auth_config`` holds credentials and is stored encrypted
(``{"_encrypted": "..."}``); use ``set_auth_config`` / ``get_auth_config``.
"""
import uuid
from datetime import datetime

from flowbuilder.database import db
from flowbuilder.flow_engine.http_client import ConnectorSettings
from flowbuilder.utils.credentials_encryption import decrypt_credentials, encrypt_credentials


AUTH_TYPES = ('none', 'basic', 'bearer', 'oauth2', 'apiKey')


class Connector(db.Model):
    __tablename__ = 'connectors'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(255), nullable=False, unique=True)
    base_url = db.Column(db.String(2048), nullable=False, default='')

    # none, basic, bearer, oauth2, apiKey
    auth_type = db.Column(db.String(20), nullable=False, default='none')
    auth_config = db.Column(db.JSON, nullable=False, default=dict)  # encrypted
    headers = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_auth_config(self, auth_config):
        """Encrypt and store credentials."""
        self.auth_config = encrypt_credentials(dict(auth_config or {}))

    def get_auth_config(self):
        """Decrypted credentials."""
        return decrypt_credentials(self.auth_config or {})

    def to_dict(self, include_secrets=False):
        """Convert to dictionary; credentials are masked unless requested."""
        auth_config = self.get_auth_config()
        if not include_secrets:
            auth_config = {key: '********' for key in auth_config}
        return {
            'id': self.id,
            'name': self.name,
            'base_url': self.base_url,
            'auth_type': self.auth_type,
            'auth_config': auth_config,
            'headers': self.headers or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_settings(self) -> ConnectorSettings:
        return ConnectorSettings(
            name=self.name,
            base_url=self.base_url or '',
            auth_type=self.auth_type or 'none',
            auth_config=self.get_auth_config(),
            headers=dict(self.headers or {}),
        )
