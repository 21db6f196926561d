"""
Chain Builder — links an end-entity certificate to a trust anchor.

Only linkage is established here (subject/issuer names and key identifiers).
Signatures, validity windows and constraints are the Path Validator's job.

    [leaf] ─issuer?─→ [intermediate] ─issuer?─→ [root]   stop: trusted or self-issued

Building stops at the first certificate that is either in the trusted
partition or self-issued (its issuer can only be itself). A self-issued but
untrusted terminal is left for the validator to report as ErrorSelfSigned.

Candidate preference when several issuers match:
  1. present in the trusted partition
  2. validity window contains the build instant
  3. most recently issued (latest not_before)
"""

from __future__ import annotations

from datetime import UTC, datetime

import structlog

from cert_trust.domain.models import CertificateRecord, Chain
from cert_trust.domain.result import ErrorCode, Result
from cert_trust.store import StoreSnapshot

log = structlog.get_logger()

DEFAULT_MAX_CHAIN_LENGTH = 16


class ChainBuilder:
    """Build a Chain from an end-entity certificate and a store snapshot."""

    def __init__(self, max_length: int = DEFAULT_MAX_CHAIN_LENGTH) -> None:
        if max_length < 1:
            raise ValueError(f"max_length must be at least 1, got {max_length}")
        self._max_length = max_length

    @property
    def max_length(self) -> int:
        return self._max_length

    def build(
        self,
        end_entity: CertificateRecord,
        store: StoreSnapshot,
        at_time: datetime | None = None,
    ) -> Result[Chain]:
        """
        Returns Result[Chain] on success.

        Failures (structural build family):
          INCOMPLETE_CHAIN  no issuer candidate for the current certificate
          CYCLIC_CHAIN      the preferred candidate is already in the chain
          CHAIN_TOO_LONG    the chain would exceed max_length
        """
        instant = at_time or datetime.now(UTC)
        chain = Chain.of(end_entity)

        while not self._is_anchor(chain.terminal, store):
            current = chain.terminal
            candidates = store.find_issuer_candidates(current.issuer_info, current.issuer_key_id)
            if not candidates:
                return self._fail(
                    chain,
                    ErrorCode.INCOMPLETE_CHAIN,
                    f"No issuer found for '{current.issuer_info}'",
                )

            issuer = self._prefer(candidates, store, instant)
            if issuer in chain:
                return self._fail(
                    chain,
                    ErrorCode.CYCLIC_CHAIN,
                    f"Issuer '{issuer.subject_info}' already appears in the chain",
                )
            if len(chain) >= self._max_length:
                return self._fail(
                    chain,
                    ErrorCode.CHAIN_TOO_LONG,
                    f"Chain exceeds {self._max_length} certificates",
                )
            chain = chain.extended(issuer)

        log.debug(
            "chain.built",
            length=len(chain),
            primary=str(end_entity.subject_info),
            terminal=str(chain.terminal.subject_info),
        )
        return Result.success(chain)

    @staticmethod
    def _is_anchor(record: CertificateRecord, store: StoreSnapshot) -> bool:
        return store.is_trusted(record) or record.is_self_issued

    @staticmethod
    def _prefer(
        candidates: tuple[CertificateRecord, ...],
        store: StoreSnapshot,
        instant: datetime,
    ) -> CertificateRecord:
        return max(
            candidates,
            key=lambda c: (store.is_trusted(c), c.is_valid_at(instant), c.not_before),
        )

    @staticmethod
    def _fail(chain: Chain, code: ErrorCode, message: str) -> Result[Chain]:
        log.info(
            "chain.build_failed",
            code=code.value,
            reason=message,
            depth=len(chain),
            primary=str(chain.primary.subject_info),
        )
        return Result.failure(code, message)
