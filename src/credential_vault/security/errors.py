"""Exceptions raised by the credential vault."""


class CredentialVaultError(Exception):
    """Base class for credential vault errors."""


class ConfigurationError(CredentialVaultError):
    """Key material is unusable or missing where it is required.

    Fatal: callers must stop the operation or startup path that needs the key.
    """


class EncryptionError(CredentialVaultError):
    """The cipher failed while sealing a value.

    Callers must not fall back to storing the plaintext.
    """
