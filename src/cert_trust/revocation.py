"""
Revocation Checker — CRL-based status for every certificate in a chain.

For chain[i] the issuer is chain[i+1]. A CRL is usable for chain[i] when:
  - its issuer name (and key id, when both sides declare one) matches the issuer
  - the issuer may sign CRLs (no key-usage constraints, or crlSign present)
  - its signature verifies against the issuer's key
  - its thisUpdate is not after the validation instant

The latest usable CRL decides: stale (nextUpdate passed) → unknown,
serial listed → revoked, otherwise good. No usable CRL → unknown.

The terminal certificate is never checked: it is the trust anchor, and a
CRL cannot attest to the key that signs it.
"""

from __future__ import annotations

from datetime import UTC, datetime

import structlog

from cert_trust.domain.enums import ConstraintType, RevocationReason, RevocationStatus
from cert_trust.domain.models import CertificateRecord, Chain, CRLRecord
from cert_trust.domain.ports import SignatureCheckUnavailable, SignatureVerifier
from cert_trust.store import StoreSnapshot

log = structlog.get_logger()


class RevocationChecker:
    def __init__(self, verifier: SignatureVerifier) -> None:
        self._verifier = verifier

    def check(
        self,
        chain: Chain,
        store: StoreSnapshot,
        at_time: datetime | None = None,
    ) -> dict[int, RevocationStatus]:
        """Status per chain index, terminal excluded."""
        instant = at_time or datetime.now(UTC)
        return {
            index: self.status_of(chain[index], chain[index + 1], store, instant)
            for index in range(len(chain) - 1)
        }

    def status_of(
        self,
        cert: CertificateRecord,
        issuer: CertificateRecord,
        store: StoreSnapshot,
        instant: datetime,
    ) -> RevocationStatus:
        usable = [
            crl
            for crl in store.find_crls(cert.issuer_info, issuer.subject_key_id)
            if crl.this_update <= instant and self._issued_by(crl, issuer)
        ]
        if not usable:
            return RevocationStatus.UNKNOWN

        latest = max(usable, key=lambda crl: crl.this_update)
        if latest.is_stale(instant):
            log.info(
                "revocation.stale_crl",
                issuer=str(latest.issuer_info),
                number=latest.number,
                next_update=latest.next_update.isoformat() if latest.next_update else None,
            )
            return RevocationStatus.UNKNOWN

        entry = latest.entry_for(cert.serial_number)
        if entry is None or entry.reason is RevocationReason.REMOVE_FROM_CRL:
            return RevocationStatus.GOOD

        log.info(
            "revocation.revoked",
            subject=str(cert.subject_info),
            serial=hex(cert.serial_number),
            reason=entry.reason.value,
            crl_number=latest.number,
        )
        return RevocationStatus.REVOKED

    def _issued_by(self, crl: CRLRecord, issuer: CertificateRecord) -> bool:
        if issuer.basic_constraints and ConstraintType.CRL_SIGN not in issuer.constraints:
            return False
        try:
            return self._verifier.verify(
                issuer.subject_public_key,
                crl.tbs_bytes,
                crl.signature,
                crl.signature_algorithm,
            )
        except SignatureCheckUnavailable as e:
            log.warning(
                "revocation.crl_signature_unavailable",
                issuer=str(crl.issuer_info),
                algorithm=crl.signature_algorithm.name,
                error=str(e),
            )
            return False
