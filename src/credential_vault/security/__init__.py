"""Security module for Credential Vault.

Provides the key provider, the AES-256-GCM envelope codec with legacy
plaintext passthrough, secret masking, and the legacy token upgrade job.
"""

from credential_vault.security.envelope import (
    Decrypted,
    EnvelopeCodec,
    PassedThroughAsLegacy,
    decrypt,
    encrypt,
    is_encrypted,
    is_well_formed_envelope,
)
from credential_vault.security.errors import (
    ConfigurationError,
    CredentialVaultError,
    EncryptionError,
)
from credential_vault.security.keys import KeyProvider
from credential_vault.security.masking import mask_secret

__all__ = [
    "ConfigurationError",
    "CredentialVaultError",
    "Decrypted",
    "EncryptionError",
    "EnvelopeCodec",
    "KeyProvider",
    "PassedThroughAsLegacy",
    "decrypt",
    "encrypt",
    "is_encrypted",
    "is_well_formed_envelope",
    "mask_secret",
]
