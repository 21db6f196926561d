"""
Unit tests for TrustSettings — defaults, env loading and range validation.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from cert_trust.config import ChainSettings, IssuanceSettings, TrustSettings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "CERT_TRUST_CHAIN__MAX_LENGTH",
        "CERT_TRUST_REVOCATION__FAIL_CLOSED",
        "CERT_TRUST_SIGNATURE__TIMEOUT_SECONDS",
        "CERT_TRUST_ISSUANCE__HASH_ALGORITHM",
        "CERT_TRUST_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_defaults(self) -> None:
        settings = TrustSettings()
        assert settings.chain.max_length == 16
        assert settings.revocation.fail_closed is False
        assert settings.signature.timeout_seconds is None
        assert settings.issuance.default_path_limit == 8
        assert settings.issuance.hash_algorithm == "sha256"
        assert settings.log_level == "INFO"


class TestEnvironment:
    def test_nested_values_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """
        GIVEN CERT_TRUST_* variables using the "__" nesting delimiter
        WHEN TrustSettings is loaded
        THEN the sub-settings pick them up.
        """
        monkeypatch.setenv("CERT_TRUST_CHAIN__MAX_LENGTH", "5")
        monkeypatch.setenv("CERT_TRUST_REVOCATION__FAIL_CLOSED", "true")
        monkeypatch.setenv("CERT_TRUST_SIGNATURE__TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("CERT_TRUST_LOG_LEVEL", " debug ")
        settings = TrustSettings()
        assert settings.chain.max_length == 5
        assert settings.revocation.fail_closed is True
        assert settings.signature.timeout_seconds == 2.5
        assert settings.log_level == "DEBUG"

    def test_out_of_range_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CERT_TRUST_CHAIN__MAX_LENGTH", "0")
        with pytest.raises(ValidationError):
            TrustSettings()

    def test_unknown_hash_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CERT_TRUST_ISSUANCE__HASH_ALGORITHM", "md5")
        with pytest.raises(ValidationError):
            TrustSettings()


class TestSubSettings:
    def test_chain_limit_upper_bound(self) -> None:
        with pytest.raises(ValidationError):
            ChainSettings(max_length=65)

    def test_serial_start_positive(self) -> None:
        with pytest.raises(ValidationError):
            IssuanceSettings(serial_start=0)
