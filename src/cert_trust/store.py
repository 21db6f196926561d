"""
Certificate Store — trusted and untrusted partitions indexed for issuer lookup.

Trust is a property of WHICH partition a certificate was registered in, never
of the certificate itself: an untrusted-set certificate is not trusted even
when it is byte-identical to nothing in the trusted set and self-signed.

Concurrency: the store is copy-on-write. Every mutation builds a fresh
immutable StoreSnapshot under a lock and swaps it in with a single reference
assignment. Readers take one snapshot per validation, so a validation never
observes a partially inserted certificate set and needs no lock.

Indexes:
  by_key_id   subjectKeyId → certificates      (authority-key-id lookups)
  by_name     subject-info digest → certificates
  crls_by_name  issuer-info digest → CRLs
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

import structlog

from cert_trust.collection import CertificateCollection
from cert_trust.domain.models import CertificateInfo, CertificateRecord, CRLRecord

log = structlog.get_logger()


def _appended(
    index: Mapping[bytes, tuple], key: bytes, item: object
) -> Mapping[bytes, tuple]:
    updated = dict(index)
    updated[key] = index.get(key, ()) + (item,)
    return MappingProxyType(updated)


@dataclass(frozen=True, slots=True)
class StoreSnapshot:
    """Immutable, consistent view of a CertificateStore. All lookups live here."""

    trusted: tuple[CertificateRecord, ...] = ()
    untrusted: tuple[CertificateRecord, ...] = ()
    crls: tuple[CRLRecord, ...] = ()
    by_key_id: Mapping[bytes, tuple[CertificateRecord, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    by_name: Mapping[bytes, tuple[CertificateRecord, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    crls_by_name: Mapping[bytes, tuple[CRLRecord, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    trusted_ids: frozenset[bytes] = frozenset()

    def is_trusted(self, record: CertificateRecord) -> bool:
        """Identity membership of the trusted partition (not subject-name comparison)."""
        return record.der in self.trusted_ids

    def contains(self, record: CertificateRecord) -> bool:
        return record in self.trusted or record in self.untrusted

    @property
    def certificates(self) -> tuple[CertificateRecord, ...]:
        return self.trusted + tuple(c for c in self.untrusted if c.der not in self.trusted_ids)

    def find_issuer_candidates(
        self,
        subject_info: CertificateInfo,
        authority_key_id: bytes | None = None,
    ) -> tuple[CertificateRecord, ...]:
        """
        Every stored certificate whose subject matches the requested issuer.

        With an authority key identifier, candidates must carry exactly that
        subject key identifier; this separates re-keyed CAs sharing a name.
        Trusted candidates come first, then insertion order.
        """
        if authority_key_id is not None:
            pool = self.by_key_id.get(authority_key_id, ())
        else:
            pool = self.by_name.get(subject_info.digest(), ())
        matches = [c for c in pool if c.subject_info == subject_info]
        return tuple(
            sorted(matches, key=lambda c: 0 if self.is_trusted(c) else 1)
        )

    def find_crls(
        self,
        issuer_info: CertificateInfo,
        issuer_key_id: bytes | None = None,
    ) -> tuple[CRLRecord, ...]:
        """
        CRLs issued under the given name.

        When both the caller and the CRL declare an issuer key id they must
        agree. Picking the most recent one is the caller's job.
        """
        pool = self.crls_by_name.get(issuer_info.digest(), ())
        return tuple(
            crl
            for crl in pool
            if crl.issuer_info == issuer_info
            and (
                issuer_key_id is None
                or crl.issuer_key_id is None
                or crl.issuer_key_id == issuer_key_id
            )
        )

    def __len__(self) -> int:
        return len(self.certificates)


class CertificateStore:
    """
    Mutable facade over StoreSnapshot with copy-on-write mutation.

    Validation code only ever sees `snapshot()`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = StoreSnapshot()

    @classmethod
    def from_collections(
        cls,
        trusted: CertificateCollection | None = None,
        untrusted: CertificateCollection | None = None,
    ) -> CertificateStore:
        """Assemble a store: certificates partitioned by argument, CRLs pooled."""
        store = cls()
        for collection, is_trusted in ((trusted, True), (untrusted, False)):
            if collection is None:
                continue
            store.add_certificates(collection.certificates, trusted=is_trusted)
            for crl in collection.crls:
                store.add_crl(crl)
        return store

    def snapshot(self) -> StoreSnapshot:
        return self._snapshot

    def add_certificate(self, record: CertificateRecord, trusted: bool = False) -> bool:
        """
        Insert into the trusted or untrusted partition.

        Returns False when the record is already in that partition
        (byte identity), in which case nothing changes.
        """
        with self._lock:
            current = self._snapshot
            partition = current.trusted if trusted else current.untrusted
            if record in partition:
                return False

            already_indexed = current.contains(record)
            by_key_id = current.by_key_id
            by_name = current.by_name
            if not already_indexed:
                if record.subject_key_id is not None:
                    by_key_id = _appended(by_key_id, record.subject_key_id, record)
                by_name = _appended(by_name, record.subject_info.digest(), record)

            if trusted:
                self._snapshot = StoreSnapshot(
                    trusted=current.trusted + (record,),
                    untrusted=current.untrusted,
                    crls=current.crls,
                    by_key_id=by_key_id,
                    by_name=by_name,
                    crls_by_name=current.crls_by_name,
                    trusted_ids=current.trusted_ids | {record.der},
                )
            else:
                self._snapshot = StoreSnapshot(
                    trusted=current.trusted,
                    untrusted=current.untrusted + (record,),
                    crls=current.crls,
                    by_key_id=by_key_id,
                    by_name=by_name,
                    crls_by_name=current.crls_by_name,
                    trusted_ids=current.trusted_ids,
                )

        log.debug(
            "store.certificate_added",
            subject=str(record.subject_info),
            trusted=trusted,
            fingerprint=record.fingerprint[:16],
        )
        return True

    def add_certificates(self, records: Iterable[CertificateRecord], trusted: bool = False) -> int:
        return sum(1 for record in records if self.add_certificate(record, trusted=trusted))

    def add_crl(self, crl: CRLRecord) -> bool:
        with self._lock:
            current = self._snapshot
            if crl in current.crls:
                return False
            self._snapshot = StoreSnapshot(
                trusted=current.trusted,
                untrusted=current.untrusted,
                crls=current.crls + (crl,),
                by_key_id=current.by_key_id,
                by_name=current.by_name,
                crls_by_name=_appended(current.crls_by_name, crl.issuer_info.digest(), crl),
                trusted_ids=current.trusted_ids,
            )
        log.debug("store.crl_added", issuer=str(crl.issuer_info), number=crl.number)
        return True

    # Read-through conveniences against the current snapshot.

    def is_trusted(self, record: CertificateRecord) -> bool:
        return self._snapshot.is_trusted(record)

    def find_issuer_candidates(
        self,
        subject_info: CertificateInfo,
        authority_key_id: bytes | None = None,
    ) -> tuple[CertificateRecord, ...]:
        return self._snapshot.find_issuer_candidates(subject_info, authority_key_id)

    def find_crls(
        self,
        issuer_info: CertificateInfo,
        issuer_key_id: bytes | None = None,
    ) -> tuple[CRLRecord, ...]:
        return self._snapshot.find_crls(issuer_info, issuer_key_id)

    def __len__(self) -> int:
        return len(self._snapshot)
