"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables prefixed CERT_TRUST_
  - Fall back to a .env file
  - Validate types and ranges at startup

Only TrustSettings is a BaseSettings instance. Sub-settings are plain
BaseModel classes populated via env_nested_delimiter="__", so the env var
CERT_TRUST_CHAIN__MAX_LENGTH maps to chain.max_length,
CERT_TRUST_REVOCATION__FAIL_CLOSED to revocation.fail_closed, etc.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the .env file relative to the project root (two levels above this file).
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class ChainSettings(BaseModel):
    """Chain construction limits."""

    max_length: int = Field(
        default=16,
        ge=1,
        le=64,
        description="Maximum number of certificates in a built chain",
    )


class RevocationSettings(BaseModel):
    """
    Revocation policy.

    By default an unknown status (no CRL, stale CRL) does not change the
    outcome. fail_closed=True turns any unknown status into
    ErrorValidityUnknown.
    """

    fail_closed: bool = Field(default=False, description="Treat unknown revocation as failure")


class SignatureSettings(BaseModel):
    """Signature capability wrapping."""

    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Per-signature timeout; a timeout yields ErrorValidityUnknown",
    )


class IssuanceSettings(BaseModel):
    """Certificate Authority defaults."""

    default_path_limit: int = Field(default=8, ge=0, description="Path limit for new CAs")
    serial_start: int = Field(default=1, ge=1, description="First generated serial number")
    hash_algorithm: Literal["sha256", "sha384", "sha512"] = Field(default="sha256")


class TrustSettings(BaseSettings):
    """
    Root settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="CERT_TRUST_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    chain: ChainSettings = Field(default_factory=ChainSettings)
    revocation: RevocationSettings = Field(default_factory=RevocationSettings)
    signature: SignatureSettings = Field(default_factory=SignatureSettings)
    issuance: IssuanceSettings = Field(default_factory=IssuanceSettings)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.strip().upper()
