"""
Encryption service for calendar tokens at rest.

Access and refresh tokens are stored Fernet-encrypted in
calendar_credentials and only decrypted right before a provider call.
"""

import base64
from cryptography.fernet import Fernet, InvalidToken

from core.config import ENCRYPTION_KEY


class EncryptionService:
    """Service for encrypting and decrypting sensitive strings."""

    def __init__(self, key: str = ENCRYPTION_KEY):
        """Initialize with encryption key from environment.

        Expects a base64-encoded Fernet key (44 characters, 32 bytes when decoded).
        Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
        """
        if not key:
            raise ValueError("ENCRYPTION_KEY environment variable must be set")

        try:
            decoded_key = base64.urlsafe_b64decode(key)
            if len(decoded_key) != 32:
                raise ValueError(f"Fernet key must be 32 bytes when decoded, got {len(decoded_key)} bytes")
            self._fernet = Fernet(key.encode('utf-8'))
        except Exception as e:
            raise ValueError(f"Invalid Fernet key format. Expected base64-encoded 32-byte key: {e}")

    def encrypt_text(self, text: str) -> str:
        """Encrypt a plain text string.

        Returns:
            Base64-encoded encrypted string
        """
        try:
            encrypted = self._fernet.encrypt(text.encode('utf-8'))
            return encrypted.decode('utf-8')
        except Exception as e:
            raise ValueError(f"Failed to encrypt text: {e}")

    def decrypt_text(self, encrypted_text: str) -> str:
        """Decrypt an encrypted string back to plain text.

        Raises:
            ValueError: If the value was not produced with this key
        """
        try:
            decrypted = self._fernet.decrypt(encrypted_text.encode('utf-8'))
            return decrypted.decode('utf-8')
        except (InvalidToken, UnicodeDecodeError) as e:
            raise ValueError(f"Failed to decrypt text: {e}")


_encryption_service: EncryptionService | None = None


def get_encryption_service() -> EncryptionService:
    """Get the shared encryption service, initializing it on first use."""
    global _encryption_service
    if _encryption_service is None:
        _encryption_service = EncryptionService()
    return _encryption_service
