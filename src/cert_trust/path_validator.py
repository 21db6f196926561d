"""
Path Validator — walks a built chain and picks exactly one Validity.

Checks run in a fixed order and the first failure wins, so callers always
receive the same single error for the same input:

  1. signatures        child signed by issuer; self-issued terminal self-verifies
                       → ErrorSignatureFailed (ErrorValidityUnknown if the
                         capability cannot judge)
  2. self-signed       self-issued terminal outside the trusted partition
                       → ErrorSelfSigned, even when some window has lapsed
  3. temporal          every window contains the instant
                       → ErrorExpired (primary) / ErrorExpiredCA (index > 0)
  4. trust anchor      terminal in the trusted partition → ErrorUntrusted
  5. CA / path length  CA flag (and keyCertSign) for index > 0 → ErrorInvalidCA
                       intermediates below each CA ≤ its limit
                       → ErrorPathLengthExceeded
  6. usage             purpose flag on the primary, optional hostname
                       → ErrorInvalidPurpose
  7. revocation        any revoked → ErrorRevoked; unknown is reported on
                       the report's side channel only (unless fail-closed)
  8. → ValidityGood
"""

from __future__ import annotations

from datetime import UTC, datetime
from itertools import pairwise

import structlog

from cert_trust.domain.enums import (
    USAGE_REQUIREMENTS,
    ConstraintType,
    RevocationStatus,
    UsageMode,
    Validity,
)
from cert_trust.domain.models import CertificateRecord, Chain, ValidationReport
from cert_trust.domain.ports import SignatureCheckUnavailable, SignatureVerifier
from cert_trust.hostname import matches_hostname
from cert_trust.revocation import RevocationChecker
from cert_trust.store import StoreSnapshot

log = structlog.get_logger()


class PathValidator:
    def __init__(
        self,
        verifier: SignatureVerifier,
        revocation_checker: RevocationChecker | None = None,
        fail_closed: bool = False,
    ) -> None:
        self._verifier = verifier
        self._revocation = revocation_checker or RevocationChecker(verifier)
        self._fail_closed = fail_closed

    def validate(
        self,
        chain: Chain,
        store: StoreSnapshot,
        usage: UsageMode = UsageMode.ANY,
        hostname: str | None = None,
        at_time: datetime | None = None,
    ) -> ValidationReport:
        instant = at_time or datetime.now(UTC)

        path_outcome = (
            self._check_signatures(chain)
            or self._check_self_signed(chain, store)
            or self._check_temporal(chain, instant)
            or self._check_anchor(chain, store)
            or self._check_ca_path(chain)
            or self._check_usage(chain.primary, usage, hostname)
        )
        if path_outcome is not None:
            log.info(
                "path.rejected",
                validity=path_outcome.value,
                primary=str(chain.primary.subject_info),
                length=len(chain),
            )
            return ValidationReport(validity=path_outcome, chain=chain, at_time=instant)

        revocation = self._revocation.check(chain, store, instant)
        return ValidationReport(
            validity=self._revocation_outcome(chain, revocation),
            chain=chain,
            at_time=instant,
            revocation=revocation,
        )

    # ─────────────────────── 1. Signatures ───────────────────────

    def _check_signatures(self, chain: Chain) -> Validity | None:
        links = list(pairwise(chain))
        if chain.terminal.is_self_issued:
            links.append((chain.terminal, chain.terminal))
        for child, issuer in links:
            outcome = self._verify(child, issuer)
            if outcome is not None:
                return outcome
        return None

    def _verify(self, child: CertificateRecord, issuer: CertificateRecord) -> Validity | None:
        try:
            verified = self._verifier.verify(
                issuer.subject_public_key,
                child.tbs_bytes,
                child.signature,
                child.signature_algorithm,
            )
        except SignatureCheckUnavailable as e:
            log.warning(
                "path.signature_unavailable",
                subject=str(child.subject_info),
                algorithm=child.signature_algorithm.name,
                error=str(e),
            )
            return Validity.ERROR_VALIDITY_UNKNOWN
        return None if verified else Validity.ERROR_SIGNATURE_FAILED

    # ─────────────────────── 2. Self-signed ───────────────────────

    @staticmethod
    def _check_self_signed(chain: Chain, store: StoreSnapshot) -> Validity | None:
        terminal = chain.terminal
        if terminal.is_self_issued and not store.is_trusted(terminal):
            return Validity.ERROR_SELF_SIGNED
        return None

    # ─────────────────────── 3. Temporal ───────────────────────

    @staticmethod
    def _check_temporal(chain: Chain, instant: datetime) -> Validity | None:
        for index, cert in enumerate(chain):
            if not cert.is_valid_at(instant):
                return Validity.ERROR_EXPIRED if index == 0 else Validity.ERROR_EXPIRED_CA
        return None

    # ─────────────────────── 4. Anchor ───────────────────────

    @staticmethod
    def _check_anchor(chain: Chain, store: StoreSnapshot) -> Validity | None:
        return None if store.is_trusted(chain.terminal) else Validity.ERROR_UNTRUSTED

    # ─────────────────────── 5. CA flag and path length ───────────────────────

    @staticmethod
    def _check_ca_path(chain: Chain) -> Validity | None:
        issuers = list(enumerate(chain))[1:]
        for _, cert in issuers:
            if not cert.is_ca:
                return Validity.ERROR_INVALID_CA
            if cert.basic_constraints and ConstraintType.KEY_CERT_SIGN not in cert.constraints:
                return Validity.ERROR_INVALID_CA
        # CA at index i has i - 1 intermediate CAs between itself and the primary.
        for index, cert in issuers:
            if cert.path_limit is not None and index - 1 > cert.path_limit:
                return Validity.ERROR_PATH_LENGTH_EXCEEDED
        return None

    # ─────────────────────── 6. Usage ───────────────────────

    @staticmethod
    def _check_usage(
        primary: CertificateRecord,
        usage: UsageMode,
        hostname: str | None,
    ) -> Validity | None:
        if usage is UsageMode.CRL_SIGNING:
            if ConstraintType.CRL_SIGN not in primary.constraints:
                return Validity.ERROR_INVALID_PURPOSE
        elif usage is not UsageMode.ANY:
            if USAGE_REQUIREMENTS[usage] not in primary.constraints:
                return Validity.ERROR_INVALID_PURPOSE
        if hostname is not None and not matches_hostname(primary, hostname):
            return Validity.ERROR_INVALID_PURPOSE
        return None

    # ─────────────────────── 7–8. Revocation ───────────────────────

    def _revocation_outcome(
        self,
        chain: Chain,
        revocation: dict[int, RevocationStatus],
    ) -> Validity:
        if RevocationStatus.REVOKED in revocation.values():
            return Validity.ERROR_REVOKED
        unknown = [index for index, status in revocation.items() if status is RevocationStatus.UNKNOWN]
        if unknown:
            log.info(
                "revocation.unknown",
                indices=unknown,
                subjects=[str(chain[index].subject_info) for index in unknown],
                fail_closed=self._fail_closed,
            )
            if self._fail_closed:
                return Validity.ERROR_VALIDITY_UNKNOWN
        return Validity.GOOD
