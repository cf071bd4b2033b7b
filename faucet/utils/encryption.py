"""Encryption utilities for custodial secrets and capability tokens."""

from __future__ import annotations

import base64
import logging

from cryptography.fernet import Fernet, InvalidToken

from ..config import settings

logger = logging.getLogger(__name__)


class EncryptionService:
    """Service for encrypting/decrypting sensitive data."""

    def __init__(self, key: str | bytes | None = None):
        """Initialize with encryption key.

        Args:
        ----
            key: Encryption key as string, bytes, or None.
                 If None, uses settings.ENCRYPTION_KEY or generates a new one.

        """
        if key is None:
            key = settings.ENCRYPTION_KEY
            if not key:
                key = Fernet.generate_key().decode()
                logger.warning(
                    "ENCRYPTION_KEY not set - generated an ephemeral key; "
                    "tokens and stored secrets will not survive a restart"
                )
        key_bytes: bytes = key.encode() if isinstance(key, str) else key
        self.fernet = Fernet(key_bytes)

    def encrypt(self, data: str) -> str:
        """Encrypt a string and return base64 encoded result."""
        if not data:
            raise ValueError("Cannot encrypt empty data")

        encrypted = self.fernet.encrypt(data.encode())
        return base64.urlsafe_b64encode(encrypted).decode()

    def decrypt(self, encrypted_data: str) -> str:
        """Decrypt base64 encoded data and return original string."""
        if not encrypted_data:
            raise ValueError("Cannot decrypt empty data")

        try:
            decoded = base64.urlsafe_b64decode(encrypted_data.encode())
            decrypted = self.fernet.decrypt(decoded)
            return decrypted.decode()
        except (InvalidToken, ValueError) as e:
            raise ValueError(f"Decryption failed: {str(e) or type(e).__name__}") from e

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet encryption key."""
        return Fernet.generate_key().decode()


# Global encryption service instance
encryption_service = EncryptionService()
