"""Credential Vault: encryption at rest for stored third-party credentials."""

from credential_vault.security import (
    ConfigurationError,
    EncryptionError,
    EnvelopeCodec,
    decrypt,
    encrypt,
    is_encrypted,
    mask_secret,
)

__version__ = "1.0.0"

__all__ = [
    "ConfigurationError",
    "EncryptionError",
    "EnvelopeCodec",
    "decrypt",
    "encrypt",
    "is_encrypted",
    "mask_secret",
]
