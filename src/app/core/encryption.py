"""Credential encryption at rest using Fernet (AES-128-CBC + HMAC-SHA256).

Provides:
- CredentialCipher: encrypt/decrypt single values
- encrypt_connection_config() / decrypt_connection_config(): field-by-field
  encryption of the sensitive keys of a connection config mapping
- mask_credential(): display-safe rendering of a secret
- is_encrypted(): marker check for already-encrypted values
- scrub_credentials(): copy of a config with every sensitive key removed

Only the keys in SENSITIVE_FIELDS are encrypted; everything else in a
config (site ids, usernames, urls) stays readable for support tooling.
Nested mappings (the connection config's ``extras`` bucket) are walked
with the same rules.
"""

from __future__ import annotations

from typing import Any

import structlog
from cryptography.fernet import Fernet, InvalidToken

logger = structlog.get_logger(__name__)

ENCRYPTED_PREFIX = "enc:v1:"

SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {
        "api_token",
        "api_key",
        "api_secret",
        "access_token",
        "refresh_token",
        "application_password",
        "password",
        # camelCase spellings accepted by the connection config parser
        "apiToken",
        "apiKey",
        "apiSecret",
        "accessToken",
        "refreshToken",
        "applicationPassword",
    }
)


class CredentialEncryptionError(Exception):
    """Raised when a credential cannot be encrypted or decrypted."""


def is_encrypted(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(ENCRYPTED_PREFIX)


def scrub_credentials(config: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``config`` without any sensitive key, at any nesting depth."""
    return {
        key: scrub_credentials(value) if isinstance(value, dict) else value
        for key, value in config.items()
        if key not in SENSITIVE_FIELDS
    }


def mask_credential(value: str | None) -> str:
    """Render a secret as first 4 + stars + last 4 (all stars when short)."""
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"


class CredentialCipher:
    """Symmetric cipher for integration credentials.

    Args:
        key: urlsafe-base64 Fernet key (32 bytes before encoding).

    Raises:
        CredentialEncryptionError: If the key is missing or malformed.
    """

    def __init__(self, key: str | bytes) -> None:
        if not key:
            raise CredentialEncryptionError("INTEGRATION_ENCRYPTION_KEY is not configured")
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as exc:
            raise CredentialEncryptionError("INTEGRATION_ENCRYPTION_KEY is not a valid Fernet key") from exc

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: str) -> str:
        token = self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")
        return f"{ENCRYPTED_PREFIX}{token}"

    def decrypt(self, ciphertext: str) -> str:
        if not is_encrypted(ciphertext):
            raise CredentialEncryptionError("Value is not an encrypted credential")
        token = ciphertext[len(ENCRYPTED_PREFIX):]
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise CredentialEncryptionError(
                "Credential could not be decrypted (wrong key or corrupted value)"
            ) from exc

    def encrypt_connection_config(self, config: dict[str, Any]) -> dict[str, Any]:
        """Return a copy with every non-empty sensitive string encrypted.

        Values already carrying the encryption marker are left alone, so the
        operation is safe to apply twice.
        """
        encrypted = dict(config)
        for key, value in config.items():
            if isinstance(value, dict):
                encrypted[key] = self.encrypt_connection_config(value)
            elif key in SENSITIVE_FIELDS and isinstance(value, str) and value and not is_encrypted(value):
                encrypted[key] = self.encrypt(value)
        return encrypted

    def decrypt_connection_config(self, config: dict[str, Any]) -> dict[str, Any]:
        """Return a copy with every encrypted sensitive value decrypted."""
        decrypted = dict(config)
        for key, value in config.items():
            if isinstance(value, dict):
                decrypted[key] = self.decrypt_connection_config(value)
                continue
            if key not in SENSITIVE_FIELDS:
                continue
            if is_encrypted(value):
                decrypted[key] = self.decrypt(value)
            elif value:
                logger.warning("credentials.plaintext_sensitive_field", field=key)
        return decrypted
