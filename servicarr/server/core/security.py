"""Secret encryption utilities using Fernet symmetric encryption.

Service API tokens, the SMTP password, the Telegram bot token and the
webhook HMAC secret are stored encrypted and decrypted on read.
"""

import os

from cryptography.fernet import Fernet


class SecretEncryption:
    """Handles encryption and decryption of secrets stored at rest."""

    def __init__(self, encryption_key: str | None = None) -> None:
        """Initialize encryption with key from environment or provided key.

        Args:
            encryption_key: Base64-encoded Fernet key. If None, reads from
                           ENCRYPTION_KEY environment variable.
        """
        if encryption_key is None:
            encryption_key = os.getenv("ENCRYPTION_KEY")
            if not encryption_key:
                raise ValueError("ENCRYPTION_KEY environment variable must be set or key provided")

        self._fernet = Fernet(encryption_key.encode())

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet encryption key.

        Returns:
            Base64-encoded encryption key as string.
        """
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret string.

        Args:
            plaintext: Secret value.

        Returns:
            Fernet token as string.
        """
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Decrypt a Fernet token back to the secret string."""
        return self._fernet.decrypt(token.encode()).decode()


_encryption: SecretEncryption | None = None


def get_encryption() -> SecretEncryption:
    """Get or create global encryption instance.

    Returns:
        Shared SecretEncryption instance.
    """
    global _encryption
    if _encryption is None:
        _encryption = SecretEncryption()
    return _encryption


def reset_encryption() -> None:
    """Drop the shared instance so the next call re-reads ENCRYPTION_KEY."""
    global _encryption
    _encryption = None


def encrypt_secret(plaintext: str | None) -> str | None:
    """Encrypt a secret, passing empty values through unchanged."""
    if not plaintext:
        return plaintext
    return get_encryption().encrypt(plaintext)


def decrypt_secret(token: str | None) -> str:
    """Decrypt a stored secret. Empty values decrypt to an empty string."""
    if not token:
        return ""
    return get_encryption().decrypt(token)
