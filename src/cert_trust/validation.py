"""
Validation entry points — the composition of store, builder and validator.

  evaluate(end_entity, trusted, untrusted, usage)  → Result[ValidationReport]
  validate(end_entity, trusted, untrusted, usage)  → Validity
  validate_chain(chain, trusted, usage)            → ValidationReport

The flow is a railway, like every other fallible path in the package:

  assemble store → snapshot
    → ChainBuilder.build(end_entity)          Failure(build error) short-circuits
      → PathValidator.validate(chain)         always yields a ValidationReport

`evaluate` keeps structural build failures distinguishable from validity
outcomes. `validate` is the plain interface and folds them into
ErrorInvalidCA, the way an end user would be told.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime

import structlog

from cert_trust.adapters.crypto_verifier import (
    CryptographySignatureVerifier,
    TimeoutSignatureVerifier,
)
from cert_trust.chain_builder import ChainBuilder
from cert_trust.collection import CertificateCollection
from cert_trust.config import TrustSettings
from cert_trust.domain.enums import UsageMode, Validity
from cert_trust.domain.models import CertificateRecord, Chain, ValidationReport
from cert_trust.domain.ports import SignatureVerifier
from cert_trust.domain.result import Result
from cert_trust.path_validator import PathValidator
from cert_trust.store import CertificateStore

log = structlog.get_logger()

TrustSource = CertificateCollection | CertificateStore


def assemble_store(
    trusted: TrustSource | None,
    untrusted: TrustSource | None = None,
) -> CertificateStore:
    """
    One store for a validation.

    A store passed as `trusted` keeps its own partitions; anything passed as
    `untrusted` lands in the untrusted partition, whatever it was before.
    """
    if isinstance(trusted, CertificateStore) and untrusted is None:
        return trusted

    store = CertificateStore()
    match trusted:
        case CertificateStore():
            snapshot = trusted.snapshot()
            store.add_certificates(snapshot.trusted, trusted=True)
            store.add_certificates(snapshot.untrusted)
            for crl in snapshot.crls:
                store.add_crl(crl)
        case CertificateCollection():
            store.add_certificates(trusted.certificates, trusted=True)
            for crl in trusted.crls:
                store.add_crl(crl)

    match untrusted:
        case CertificateStore():
            snapshot = untrusted.snapshot()
            store.add_certificates(snapshot.certificates)
            for crl in snapshot.crls:
                store.add_crl(crl)
        case CertificateCollection():
            store.add_certificates(untrusted.certificates)
            for crl in untrusted.crls:
                store.add_crl(crl)
    return store


def _capability(
    verifier: SignatureVerifier | None,
    settings: TrustSettings,
) -> SignatureVerifier:
    base = verifier or CryptographySignatureVerifier()
    timeout = settings.signature.timeout_seconds
    return TimeoutSignatureVerifier(base, timeout) if timeout is not None else base


def _release(capability: SignatureVerifier) -> None:
    if isinstance(capability, TimeoutSignatureVerifier):
        capability.shutdown()


def evaluate(
    end_entity: CertificateRecord,
    trusted: TrustSource | None,
    untrusted: TrustSource | None = None,
    usage: UsageMode = UsageMode.ANY,
    *,
    hostname: str | None = None,
    at_time: datetime | None = None,
    verifier: SignatureVerifier | None = None,
    settings: TrustSettings | None = None,
) -> Result[ValidationReport]:
    """
    Build a chain for `end_entity` and validate it.

    Returns Success(ValidationReport) whenever a chain could be built (the
    report's validity may still be any error), or Failure with
    INCOMPLETE_CHAIN / CYCLIC_CHAIN / CHAIN_TOO_LONG.
    """
    settings = settings or TrustSettings()
    started = time.perf_counter()
    instant = at_time or datetime.now(UTC)
    snapshot = assemble_store(trusted, untrusted).snapshot()
    capability = _capability(verifier, settings)

    try:
        validator = PathValidator(capability, fail_closed=settings.revocation.fail_closed)
        result = (
            ChainBuilder(settings.chain.max_length)
            .build(end_entity, snapshot, instant)
            .map(lambda chain: validator.validate(chain, snapshot, usage, hostname, instant))
        )
    finally:
        _release(capability)

    log.info(
        "validation.complete",
        subject=str(end_entity.subject_info),
        usage=usage.value,
        outcome=result.either(lambda report: report.validity.value, lambda error: error.code.value),
        elapsed_ms=round((time.perf_counter() - started) * 1000, 3),
    )
    return result


def validate(
    end_entity: CertificateRecord,
    trusted: TrustSource | None,
    untrusted: TrustSource | None = None,
    usage: UsageMode = UsageMode.ANY,
    *,
    hostname: str | None = None,
    at_time: datetime | None = None,
    verifier: SignatureVerifier | None = None,
    settings: TrustSettings | None = None,
) -> Validity:
    """Exactly one Validity; chains that cannot be built report ErrorInvalidCA."""
    return evaluate(
        end_entity,
        trusted,
        untrusted,
        usage,
        hostname=hostname,
        at_time=at_time,
        verifier=verifier,
        settings=settings,
    ).either(
        lambda report: report.validity,
        lambda _: Validity.ERROR_INVALID_CA,
    )


def validate_chain(
    chain: Chain,
    trusted: TrustSource | None,
    usage: UsageMode = UsageMode.ANY,
    *,
    hostname: str | None = None,
    at_time: datetime | None = None,
    verifier: SignatureVerifier | None = None,
    settings: TrustSettings | None = None,
) -> ValidationReport:
    """Validate a chain the caller assembled (primary first), skipping the builder."""
    settings = settings or TrustSettings()
    snapshot = assemble_store(trusted).snapshot()
    capability = _capability(verifier, settings)
    try:
        report = PathValidator(
            capability, fail_closed=settings.revocation.fail_closed
        ).validate(chain, snapshot, usage, hostname, at_time)
    finally:
        _release(capability)

    log.info(
        "validation.complete",
        subject=str(chain.primary.subject_info),
        usage=usage.value,
        outcome=report.validity.value,
        length=len(chain),
    )
    return report
