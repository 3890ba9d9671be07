"""
Tests for connector credentials encryption
"""

import pytest
from cryptography.fernet import InvalidToken

from flowbuilder.utils.credentials_encryption import (
    CredentialsEncryption,
    decrypt_credentials,
    encrypt_credentials,
)


class TestEncryption:
    """Test encryption/decryption"""

    def test_encrypt_decrypt_roundtrip(self):
        """Test that data can be encrypted and decrypted"""
        data = {
            'username': 'api-user',
            'password': 's3cret',
        }

        encrypted = encrypt_credentials(data)
        decrypted = decrypt_credentials(encrypted)

        assert decrypted == data

    def test_encrypted_format(self):
        """Test the stored format hides the plaintext"""
        encrypted = encrypt_credentials({'token': 'secret-token'})

        assert set(encrypted.keys()) == {'_encrypted'}
        assert 'secret-token' not in encrypted['_encrypted']

    def test_preserves_types(self):
        """Test JSON types survive the round trip"""
        data = {'headerName': 'X-Key', 'retries': 3, 'ratio': 0.5, 'enabled': True, 'extra': None}

        assert decrypt_credentials(encrypt_credentials(data)) == data

    def test_empty_data(self):
        """Test encrypting empty data"""
        assert decrypt_credentials(encrypt_credentials({})) == {}

    def test_plaintext_passes_through(self):
        """Test values stored before encryption are returned unchanged"""
        assert decrypt_credentials({'token': 'legacy'}) == {'token': 'legacy'}
        assert decrypt_credentials(None) == {}


class TestKeys:
    """Test key handling"""

    def test_generated_key(self):
        """Test a generated key works"""
        service = CredentialsEncryption(CredentialsEncryption.generate_key())
        assert service.decrypt(service.encrypt({'a': 1})) == {'a': 1}

    def test_hex_key(self):
        """Test 64-char hex keys"""
        service = CredentialsEncryption('ab' * 32)
        assert service.decrypt(service.encrypt({'a': 1})) == {'a': 1}

    def test_secret_key_fallback(self):
        """Test a key is derived from the secret key when none is configured"""
        first = CredentialsEncryption('', secret_key='app-secret')
        second = CredentialsEncryption(None, secret_key='app-secret')

        assert second.decrypt(first.encrypt({'token': 'x'})) == {'token': 'x'}

    def test_missing_keys(self):
        """Test a key or secret is required"""
        with pytest.raises(ValueError):
            CredentialsEncryption('', secret_key='')

    def test_wrong_key(self):
        """Test data encrypted with another key does not decrypt"""
        encrypted = CredentialsEncryption(CredentialsEncryption.generate_key()).encrypt({'a': 1})

        with pytest.raises(InvalidToken):
            CredentialsEncryption(CredentialsEncryption.generate_key()).decrypt(encrypted)
