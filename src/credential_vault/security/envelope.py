"""AES-256-GCM envelopes for secrets stored in text columns.

An envelope is ``IV_HEX:TAG_HEX:CIPHERTEXT_HEX``: a fresh 16-byte IV, the
16-byte GCM authentication tag and the ciphertext, each hex-encoded. Any
stored value that is not a well-formed envelope, or that fails
authentication, is treated as legacy plaintext and read back unchanged.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from credential_vault.config import get_settings
from credential_vault.logging import get_logger
from credential_vault.security.errors import ConfigurationError, EncryptionError
from credential_vault.security.keys import KeyProvider

if TYPE_CHECKING:
    from credential_vault.config import Settings

log = get_logger("credential_vault.security.envelope")

IV_SIZE = 16  # 128-bit IV
TAG_SIZE = 16  # 128-bit authentication tag
SEPARATOR = ":"
FIELD_COUNT = 3

_HEX_RE = re.compile(r"[0-9a-fA-F]+")

# Reasons a stored value is returned as-is.
NOT_ENVELOPE = "not_envelope"
AUTHENTICATION_FAILED = "authentication_failed"
INVALID_UTF8 = "invalid_utf8"
KEY_UNAVAILABLE = "key_unavailable"


@dataclass(frozen=True)
class Decrypted:
    """A stored envelope that authenticated and decoded."""

    plaintext: str


@dataclass(frozen=True)
class PassedThroughAsLegacy:
    """A stored value returned unchanged because it could not be opened."""

    original: str
    reason: str


DecodeResult = Decrypted | PassedThroughAsLegacy


def is_well_formed_envelope(text: str | None) -> bool:
    """Structural check only; the tag is not verified.

    True when *text* has three colon-separated fields, the IV and tag fields
    have their exact hex lengths, and every field is hexadecimal.
    """
    if not text:
        return False
    parts = text.split(SEPARATOR)
    if len(parts) != FIELD_COUNT:
        return False
    iv_hex, tag_hex, ciphertext_hex = parts
    return (
        len(iv_hex) == IV_SIZE * 2
        and len(tag_hex) == TAG_SIZE * 2
        and all(_HEX_RE.fullmatch(part) for part in parts)
        and bool(ciphertext_hex)
    )


# Alias used by persistence and admin surfaces.
is_encrypted = is_well_formed_envelope


class EnvelopeCodec:
    """Seals and opens credential envelopes with a key from a KeyProvider.

    Instances hold no per-call state and are safe to share across threads.
    """

    def __init__(self, key_provider: KeyProvider) -> None:
        self._key_provider = key_provider

    @classmethod
    def from_settings(cls, settings: Settings) -> EnvelopeCodec:
        """Build a codec whose key is resolved from *settings*."""
        return cls(KeyProvider(settings))

    def require_explicit_key(self) -> None:
        """Fail unless the key comes from STORE_ENCRYPTION_KEY."""
        self._key_provider.require_explicit_key()

    def encrypt(self, plaintext: str | None) -> str | None:
        """Seal *plaintext* into a new envelope.

        Empty and ``None`` values are not encrypted; ``None`` is returned so
        callers store a null secret as null.

        Raises:
            ConfigurationError: If no usable key is configured.
            EncryptionError: If the cipher fails.
        """
        if not plaintext:
            return None

        key = self._key_provider.get_key()
        iv = os.urandom(IV_SIZE)
        try:
            sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
        except (ValueError, OverflowError, UnicodeEncodeError) as e:
            log.error("encryption_failed", error_type=type(e).__name__)
            raise EncryptionError("Failed to encrypt data") from e

        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return SEPARATOR.join((iv.hex(), tag.hex(), ciphertext.hex()))

    def decode(self, stored: str) -> DecodeResult:
        """Open *stored*, reporting whether it decrypted or passed through.

        Never raises: malformed or tampered input, and a missing or
        malformed key, all yield PassedThroughAsLegacy.
        """
        if not is_well_formed_envelope(stored):
            return PassedThroughAsLegacy(stored, NOT_ENVELOPE)

        iv_hex, tag_hex, ciphertext_hex = stored.split(SEPARATOR)
        if len(ciphertext_hex) % 2:
            return PassedThroughAsLegacy(stored, NOT_ENVELOPE)

        try:
            key = self._key_provider.get_key()
        except ConfigurationError as e:
            log.warning(
                "decryption_passthrough",
                reason="encryption key unavailable",
                error_type=type(e).__name__,
            )
            return PassedThroughAsLegacy(stored, KEY_UNAVAILABLE)

        aesgcm = AESGCM(key)
        try:
            raw = aesgcm.decrypt(
                bytes.fromhex(iv_hex),
                bytes.fromhex(ciphertext_hex) + bytes.fromhex(tag_hex),
                None,
            )
        except InvalidTag:
            log.warning(
                "decryption_passthrough",
                reason="authentication failed, may be unencrypted legacy data",
            )
            return PassedThroughAsLegacy(stored, AUTHENTICATION_FAILED)

        try:
            return Decrypted(raw.decode("utf-8"))
        except UnicodeDecodeError:
            log.warning("decryption_passthrough", reason="plaintext is not valid UTF-8")
            return PassedThroughAsLegacy(stored, INVALID_UTF8)

    def decrypt(self, stored: str | None) -> str | None:
        """Return the plaintext of *stored*, or *stored* itself if it is legacy data."""
        if not stored:
            return None
        result = self.decode(stored)
        if isinstance(result, Decrypted):
            return result.plaintext
        return result.original


@lru_cache
def get_codec() -> EnvelopeCodec:
    """Get the codec bound to the process settings."""
    return EnvelopeCodec.from_settings(get_settings())


def encrypt(plaintext: str | None) -> str | None:
    """Encrypt with the process-wide codec."""
    return get_codec().encrypt(plaintext)


def decrypt(stored: str | None) -> str | None:
    """Decrypt with the process-wide codec."""
    return get_codec().decrypt(stored)
