"""Unit tests for encryption key resolution."""

import hashlib
import threading

import pytest
from structlog.testing import capture_logs

from credential_vault.config import DEV_FALLBACK_SECRET
from credential_vault.security.errors import ConfigurationError
from credential_vault.security.keys import KEY_SIZE, KeyProvider, derive_key, parse_key


class TestParseKey:
    """Tests for explicit key decoding."""

    def test_valid_key(self, key_hex: str) -> None:
        key = parse_key(key_hex)
        assert key == bytes.fromhex(key_hex)
        assert len(key) == KEY_SIZE

    def test_uppercase_key(self, key_hex: str) -> None:
        assert parse_key(key_hex.upper()) == bytes.fromhex(key_hex)

    @pytest.mark.parametrize("length", [0, 32, 63, 65, 128])
    def test_wrong_length_rejected(self, length: int) -> None:
        with pytest.raises(ConfigurationError, match="exactly 64 hex characters"):
            parse_key("a" * length)

    def test_wrong_length_reports_length(self) -> None:
        with pytest.raises(ConfigurationError, match="Got 10 chars"):
            parse_key("0123456789")

    def test_non_hex_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="only hex characters"):
            parse_key("z" * 64)

    def test_embedded_whitespace_rejected(self, key_hex: str) -> None:
        spaced = key_hex[:31] + " " + key_hex[32:]
        with pytest.raises(ConfigurationError):
            parse_key(spaced)


class TestDeriveKey:
    """Tests for the development key derivation."""

    def test_matches_sha256(self) -> None:
        assert derive_key("some-secret") == hashlib.sha256(b"some-secret").digest()

    def test_is_32_bytes(self) -> None:
        assert len(derive_key("x")) == KEY_SIZE


class TestKeyProvider:
    """Tests for the key policy branches."""

    def test_explicit_key_in_production(self, settings, key_hex: str) -> None:
        assert KeyProvider(settings).get_key() == bytes.fromhex(key_hex)

    def test_explicit_key_in_development(self, make_settings, key_hex: str) -> None:
        s = make_settings(store_encryption_key=key_hex, environment="development")
        assert KeyProvider(s).get_key() == bytes.fromhex(key_hex)

    def test_malformed_explicit_key_fails_even_in_development(self, make_settings) -> None:
        s = make_settings(store_encryption_key="abc", environment="development")
        with pytest.raises(ConfigurationError):
            KeyProvider(s).get_key()

    def test_production_without_key_is_fatal(self, make_settings) -> None:
        s = make_settings(environment="production", app_secret="ignored-in-production")
        with pytest.raises(ConfigurationError, match="required in production"):
            KeyProvider(s).get_key()

    def test_production_detection_is_case_insensitive(self, make_settings) -> None:
        s = make_settings(environment="Production")
        with pytest.raises(ConfigurationError):
            KeyProvider(s).get_key()

    def test_production_with_empty_key_is_fatal(self, make_settings) -> None:
        s = make_settings(environment="production", store_encryption_key="")
        with pytest.raises(ConfigurationError):
            KeyProvider(s).get_key()

    def test_failure_is_not_cached(self, make_settings) -> None:
        provider = KeyProvider(make_settings(environment="production"))
        for _ in range(2):
            with pytest.raises(ConfigurationError):
                provider.get_key()

    def test_development_derives_from_app_secret(self, dev_settings) -> None:
        key = KeyProvider(dev_settings).get_key()
        assert key == hashlib.sha256(b"unit-test-app-secret").digest()

    def test_development_default_secret(self, make_settings) -> None:
        key = KeyProvider(make_settings(environment="development")).get_key()
        assert key == hashlib.sha256(DEV_FALLBACK_SECRET.encode()).digest()

    def test_non_production_modes_derive(self, make_settings) -> None:
        """Any mode other than production takes the derived-key branch."""
        key = KeyProvider(make_settings(environment="staging", app_secret="s")).get_key()
        assert key == hashlib.sha256(b"s").digest()

    def test_derived_key_repeatable(self, dev_settings) -> None:
        assert KeyProvider(dev_settings).get_key() == KeyProvider(dev_settings).get_key()

    def test_key_cached_per_provider(self, settings) -> None:
        provider = KeyProvider(settings)
        assert provider.get_key() is provider.get_key()

    def test_derived_key_warns(self, dev_settings) -> None:
        with capture_logs() as logs:
            KeyProvider(dev_settings).get_key()

        warnings = [e for e in logs if e["event"] == "derived_development_key"]
        assert len(warnings) == 1
        assert warnings[0]["log_level"] == "warning"

    def test_derived_key_warns_once_per_process(self, dev_settings) -> None:
        with capture_logs() as logs:
            for _ in range(3):
                KeyProvider(dev_settings).get_key()

        assert [e["event"] for e in logs].count("derived_development_key") == 1

    def test_concurrent_first_use_warns_once(self, dev_settings) -> None:
        barrier = threading.Barrier(8)
        keys: list[bytes] = []

        def resolve() -> None:
            barrier.wait()
            keys.append(KeyProvider(dev_settings).get_key())

        with capture_logs() as logs:
            threads = [threading.Thread(target=resolve) for _ in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert len(set(keys)) == 1
        assert [e["event"] for e in logs].count("derived_development_key") == 1

    def test_explicit_key_does_not_warn(self, settings) -> None:
        with capture_logs() as logs:
            KeyProvider(settings).get_key()
        assert logs == []

    def test_warning_does_not_leak_secret(self, dev_settings) -> None:
        with capture_logs() as logs:
            KeyProvider(dev_settings).get_key()
        assert "unit-test-app-secret" not in repr(logs)
