"""Encryption key resolution for stored credentials.

The key is taken from ``STORE_ENCRYPTION_KEY`` when set. Outside production a
key is derived by hashing ``APP_SECRET`` (or a development default) with
SHA-256, which is insecure and therefore logged. Production without an
explicit key is a fatal configuration error.
"""

from __future__ import annotations

import re
import threading
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives import hashes

from credential_vault.logging import get_logger
from credential_vault.security.errors import ConfigurationError

if TYPE_CHECKING:
    from credential_vault.config import Settings

log = get_logger("credential_vault.security.keys")

KEY_SIZE = 32  # 256-bit key
KEY_HEX_LENGTH = KEY_SIZE * 2

_HEX_KEY_RE = re.compile(rf"[0-9a-fA-F]{{{KEY_HEX_LENGTH}}}")

# Process-wide: the insecure-key warning is emitted once.
_dev_key_warning_lock = threading.Lock()
_dev_key_warned = False


def _warn_dev_key_once() -> None:
    global _dev_key_warned
    with _dev_key_warning_lock:
        if _dev_key_warned:
            return
        _dev_key_warned = True
    log.warning(
        "derived_development_key",
        reason="STORE_ENCRYPTION_KEY not set; key derived from APP_SECRET",
        action="set STORE_ENCRYPTION_KEY in production",
    )


def derive_key(secret: str) -> bytes:
    """Derive a 256-bit key from *secret* with a single SHA-256 pass."""
    digest = hashes.Hash(hashes.SHA256())
    digest.update(secret.encode("utf-8"))
    return digest.finalize()


def parse_key(key_hex: str) -> bytes:
    """Decode a 64-character hex key.

    Raises:
        ConfigurationError: If the value is not exactly 64 hex characters.
    """
    if len(key_hex) != KEY_HEX_LENGTH:
        raise ConfigurationError(
            f"STORE_ENCRYPTION_KEY must be exactly {KEY_HEX_LENGTH} hex characters "
            f"({KEY_SIZE} bytes). Got {len(key_hex)} chars."
        )
    if not _HEX_KEY_RE.fullmatch(key_hex):
        raise ConfigurationError("STORE_ENCRYPTION_KEY must contain only hex characters")
    return bytes.fromhex(key_hex)


class KeyProvider:
    """Resolves the store encryption key from injected settings.

    The key is resolved on first use and cached for the provider's lifetime.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._key: bytes | None = None
        self._lock = threading.Lock()

    def get_key(self) -> bytes:
        """Return the 32-byte key.

        Raises:
            ConfigurationError: If the explicit key is malformed, or no key is
                configured in production.
        """
        if self._key is None:
            with self._lock:
                if self._key is None:
                    self._key = self._resolve()
        return self._key

    def require_explicit_key(self) -> None:
        """Fail unless STORE_ENCRYPTION_KEY is set and well formed.

        Raises:
            ConfigurationError: If the key would be derived or is malformed.
        """
        explicit = self._settings.store_encryption_key
        if explicit is None or not explicit.get_secret_value():
            raise ConfigurationError(
                "STORE_ENCRYPTION_KEY must be set before upgrading stored tokens"
            )
        parse_key(explicit.get_secret_value())

    def _resolve(self) -> bytes:
        settings = self._settings
        explicit = settings.store_encryption_key
        if explicit is not None and explicit.get_secret_value():
            return parse_key(explicit.get_secret_value())

        if not settings.is_production:
            _warn_dev_key_once()
            return derive_key(settings.fallback_secret)

        log.critical("encryption_key_missing", environment=settings.environment)
        raise ConfigurationError(
            "FATAL: STORE_ENCRYPTION_KEY is required in production. "
            "Generate one with: credential-vault generate-key"
        )
