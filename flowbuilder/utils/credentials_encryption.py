"""
Credentials Encryption - Fernet encryption for connector credentials

Connector auth configs (passwords, tokens, API keys) are stored as
``{"_encrypted": "<base64>"}`` so they can live in a JSON column.
"""
import base64
import json
import logging
from hashlib import sha256
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from flowbuilder.config import Config

logger = logging.getLogger(__name__)


def derive_key(secret: str) -> bytes:
    """Derive a Fernet key (32 bytes, urlsafe base64) from an arbitrary secret."""
    return base64.urlsafe_b64encode(sha256(secret.encode('utf-8')).digest())


class CredentialsEncryption:
    """
    Encrypts and decrypts credential dictionaries.

    Usage:
        service = CredentialsEncryption(Fernet.generate_key().decode())
        stored = service.encrypt({'token': 'secret'})   # {'_encrypted': '...'}
        service.decrypt(stored)                          # {'token': 'secret'}
    """

    def __init__(self, encryption_key: Optional[str] = None, secret_key: Optional[str] = None):
        """
        Args:
            encryption_key: 64-char hex or urlsafe base64 key; other lengths go through PBKDF2
            secret_key: Used to derive a key when ``encryption_key`` is empty
        """
        key = (encryption_key or '').strip()
        if not key:
            if not secret_key:
                raise ValueError("An encryption key or a secret key is required")
            self.cipher = Fernet(derive_key(secret_key))
            return

        # Hex string (64 chars) or urlsafe base64
        if len(key) == 64:
            key_bytes = bytes.fromhex(key)
        else:
            key_bytes = base64.urlsafe_b64decode(key)

        if len(key_bytes) != 32:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=b'flowbuilder_salt',
                iterations=100000,
            )
            key_bytes = kdf.derive(key_bytes)

        self.cipher = Fernet(base64.urlsafe_b64encode(key_bytes))

    def encrypt(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Encrypt a credentials dict.

        Returns:
            ``{"_encrypted": "<base64 token>"}``
        """
        token = self.cipher.encrypt(json.dumps(data).encode('utf-8'))
        return {'_encrypted': base64.b64encode(token).decode('utf-8')}

    def decrypt(self, encrypted_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Decrypt a stored credentials dict.

        Values written before encryption was enabled are returned as-is.

        Raises:
            cryptography.fernet.InvalidToken: If the data was encrypted with another key
        """
        if not isinstance(encrypted_data, dict) or '_encrypted' not in encrypted_data:
            return encrypted_data or {}

        token = base64.b64decode(encrypted_data['_encrypted'])
        return json.loads(self.cipher.decrypt(token).decode('utf-8'))

    @staticmethod
    def generate_key() -> str:
        """New random key for CREDENTIALS_ENCRYPTION_KEY."""
        return Fernet.generate_key().decode('utf-8')


_encryption_service: Optional[CredentialsEncryption] = None


def get_encryption_service() -> CredentialsEncryption:
    """Get the process-wide encryption service built from Config."""
    global _encryption_service
    if _encryption_service is None:
        if not Config.CREDENTIALS_ENCRYPTION_KEY:
            logger.warning("CREDENTIALS_ENCRYPTION_KEY is not set; deriving the credentials key from SECRET_KEY")
        _encryption_service = CredentialsEncryption(Config.CREDENTIALS_ENCRYPTION_KEY, Config.SECRET_KEY)
    return _encryption_service


def encrypt_credentials(credentials: Dict[str, Any]) -> Dict[str, Any]:
    return get_encryption_service().encrypt(credentials)


def decrypt_credentials(encrypted_credentials: Dict[str, Any]) -> Dict[str, Any]:
    return get_encryption_service().decrypt(encrypted_credentials)
