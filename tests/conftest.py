"""Pytest fixtures for Credential Vault tests."""

import pytest

from credential_vault.config import Settings

TEST_KEY_HEX = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"

_ENV_VARS = (
    "STORE_ENCRYPTION_KEY",
    "APP_SECRET",
    "ENVIRONMENT",
    "LOG_LEVEL",
    "LOG_TO_FILE",
    "POSTGRES_DSN",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch):
    """Isolate each test from host configuration and cached process state."""
    from credential_vault.config import get_settings
    from credential_vault.security import keys
    from credential_vault.security.envelope import get_codec

    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(keys, "_dev_key_warned", False)

    get_settings.cache_clear()
    get_codec.cache_clear()
    yield
    get_settings.cache_clear()
    get_codec.cache_clear()


def _create_test_settings(**kwargs) -> Settings:
    """Create Settings without loading a .env file."""
    return Settings(_env_file=None, **kwargs)


@pytest.fixture
def make_settings():
    """Factory for Settings that ignore any .env file."""
    return _create_test_settings


@pytest.fixture
def key_hex() -> str:
    """A fixed valid 64-hex-character key."""
    return TEST_KEY_HEX


@pytest.fixture
def settings(key_hex: str) -> Settings:
    """Production settings with an explicit key."""
    return _create_test_settings(store_encryption_key=key_hex, environment="production")


@pytest.fixture
def dev_settings() -> Settings:
    """Development settings with no explicit key."""
    return _create_test_settings(environment="development", app_secret="unit-test-app-secret")
