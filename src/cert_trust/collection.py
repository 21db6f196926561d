"""
CertificateCollection — an unpartitioned bag of certificates and CRLs.

Collections are what callers load from files and hand to `validate` as the
trusted and untrusted arguments; the engine turns them into a partitioned
CertificateStore. A collection carries no notion of trust itself.
"""

from __future__ import annotations

from collections.abc import Iterable

from cert_trust.domain.models import CertificateRecord, CRLRecord


class CertificateCollection:
    """Ordered, duplicate-free bag of CertificateRecord and CRLRecord values."""

    def __init__(
        self,
        certificates: Iterable[CertificateRecord] = (),
        crls: Iterable[CRLRecord] = (),
    ) -> None:
        self._certificates: list[CertificateRecord] = []
        self._crls: list[CRLRecord] = []
        for cert in certificates:
            self.add_certificate(cert)
        for crl in crls:
            self.add_crl(crl)

    def add_certificate(self, cert: CertificateRecord) -> None:
        if cert not in self._certificates:
            self._certificates.append(cert)

    def add_crl(self, crl: CRLRecord) -> None:
        if crl not in self._crls:
            self._crls.append(crl)

    @property
    def certificates(self) -> tuple[CertificateRecord, ...]:
        return tuple(self._certificates)

    @property
    def crls(self) -> tuple[CRLRecord, ...]:
        return tuple(self._crls)

    def append(self, other: CertificateCollection) -> None:
        for cert in other.certificates:
            self.add_certificate(cert)
        for crl in other.crls:
            self.add_crl(crl)

    def __add__(self, other: CertificateCollection) -> CertificateCollection:
        combined = CertificateCollection(self._certificates, self._crls)
        combined.append(other)
        return combined

    def __iadd__(self, other: CertificateCollection) -> CertificateCollection:
        self.append(other)
        return self

    def __len__(self) -> int:
        return len(self._certificates) + len(self._crls)

    def __repr__(self) -> str:
        return (
            f"CertificateCollection(certificates={len(self._certificates)}, "
            f"crls={len(self._crls)})"
        )
