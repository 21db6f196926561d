"""
Domain models — immutable records for certificates, CRLs, chains and requests.

These are pure value objects with no behavior beyond self-validation and
read-only conveniences. They represent already-decoded X.509 data: the
adapters in `cert_trust.adapters` produce them from DER/PEM, and the
Certificate Authority produces them when issuing.

All models are frozen dataclasses (immutable). Certificates and CRLs compare
by their encoded bytes, not field by field.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, fields, replace
from datetime import datetime

from cert_trust.domain.enums import (
    ConstraintType,
    InfoType,
    RequestFormat,
    RevocationReason,
    RevocationStatus,
    SignatureAlgorithm,
    Validity,
)
from cert_trust.domain.result import ErrorCode, Result

DEFAULT_CA_PATH_LIMIT = 8


@dataclass(frozen=True, slots=True, eq=False)
class CertificateInfo:
    """
    Ordered multimap of subject/issuer attributes (type → many strings).

    Insertion order is kept for display. Two maps are equal when every type
    carries the same values in the same order; the interleaving of different
    types does not matter.
    """

    entries: tuple[tuple[InfoType, str], ...] = ()

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[InfoType, str]]) -> CertificateInfo:
        return cls(tuple((info_type, str(value)) for info_type, value in pairs))

    @classmethod
    def from_mapping(cls, mapping: Mapping[InfoType, str | Iterable[str]]) -> CertificateInfo:
        """Build from {type: value} or {type: [values...]}."""
        pairs: list[tuple[InfoType, str]] = []
        for info_type, values in mapping.items():
            if isinstance(values, str):
                values = [values]
            pairs.extend((info_type, value) for value in values)
        return cls.from_pairs(pairs)

    def values(self, info_type: InfoType) -> tuple[str, ...]:
        return tuple(value for t, value in self.entries if t is info_type)

    def first(self, info_type: InfoType, default: str = "") -> str:
        for t, value in self.entries:
            if t is info_type:
                return value
        return default

    def items(self) -> tuple[tuple[InfoType, tuple[str, ...]], ...]:
        """(type, values) per type, in first-seen order."""
        return tuple((t, self.values(t)) for t in self.types())

    def types(self) -> tuple[InfoType, ...]:
        seen: dict[InfoType, None] = {}
        for t, _ in self.entries:
            seen.setdefault(t, None)
        return tuple(seen)

    def with_entry(self, info_type: InfoType, value: str) -> CertificateInfo:
        return CertificateInfo(self.entries + ((info_type, value),))

    def _grouped(self) -> tuple[tuple[str, tuple[str, ...]], ...]:
        return tuple(
            sorted((t.value, self.values(t)) for t in self.types())
        )

    def digest(self) -> bytes:
        """SHA-256 over a canonical encoding; used as an index key."""
        h = hashlib.sha256()
        for type_name, values in self._grouped():
            h.update(type_name.encode())
            for value in values:
                h.update(b"\x00")
                h.update(value.encode())
            h.update(b"\x01")
        return h.digest()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CertificateInfo):
            return NotImplemented
        return self._grouped() == other._grouped()

    def __hash__(self) -> int:
        return hash(self._grouped())

    def __iter__(self) -> Iterator[tuple[InfoType, str]]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def __str__(self) -> str:
        return ", ".join(f"{t.value}={value}" for t, value in self.entries)


@dataclass(frozen=True, slots=True, eq=False)
class CertificateRecord:
    """
    Decoded view of one X.509 certificate.

    `der` is the full encoded certificate and defines identity.
    `tbs_bytes` is the to-be-signed span the issuer's signature covers.
    `subject_public_key` is the SubjectPublicKeyInfo DER of the subject key.
    `path_limit` of None means unlimited.
    """

    der: bytes = field(repr=False)
    subject_info: CertificateInfo
    issuer_info: CertificateInfo
    not_before: datetime
    not_after: datetime
    serial_number: int
    subject_public_key: bytes = field(repr=False)
    signature_algorithm: SignatureAlgorithm
    signature: bytes = field(repr=False)
    tbs_bytes: bytes = field(repr=False)
    subject_key_id: bytes | None = None
    issuer_key_id: bytes | None = None
    constraints: frozenset[ConstraintType] = frozenset()
    policies: tuple[str, ...] = ()
    is_ca: bool = False
    path_limit: int | None = None

    def __post_init__(self) -> None:
        if self.path_limit is not None and self.path_limit < 0:
            raise ValueError(f"path_limit must be non-negative, got {self.path_limit}")

    @property
    def common_name(self) -> str:
        return self.subject_info.first(InfoType.COMMON_NAME)

    @property
    def fingerprint(self) -> str:
        return hashlib.sha256(self.der).hexdigest()

    @property
    def basic_constraints(self) -> frozenset[ConstraintType]:
        return frozenset(c for c in self.constraints if c.is_basic)

    @property
    def extended_constraints(self) -> frozenset[ConstraintType]:
        return frozenset(c for c in self.constraints if c.is_extended)

    @property
    def is_self_issued(self) -> bool:
        """Issuer equals subject (and key identifiers agree when both are present)."""
        if self.issuer_info != self.subject_info:
            return False
        if self.issuer_key_id is not None and self.subject_key_id is not None:
            return self.issuer_key_id == self.subject_key_id
        return True

    def is_issuer_of(self, child: CertificateRecord) -> bool:
        """Name linkage, narrowed by the child's authority key identifier if it has one."""
        if child.issuer_info != self.subject_info:
            return False
        if child.issuer_key_id is not None:
            return self.subject_key_id == child.issuer_key_id
        return True

    def is_valid_at(self, instant: datetime) -> bool:
        return self.not_before <= instant <= self.not_after

    def same_fields(self, other: CertificateRecord) -> bool:
        """Field-for-field comparison, as opposed to identity (==)."""
        return all(getattr(self, f.name) == getattr(other, f.name) for f in fields(self))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CertificateRecord):
            return NotImplemented
        return self.der == other.der

    def __hash__(self) -> int:
        return hash(self.der)


@dataclass(frozen=True, slots=True)
class CRLEntry:
    """One revoked serial number inside a CRL."""

    serial_number: int
    revocation_time: datetime
    reason: RevocationReason = RevocationReason.UNSPECIFIED


@dataclass(frozen=True, slots=True, eq=False)
class CRLRecord:
    """
    Decoded view of one certificate revocation list.

    `next_update` may be absent in the wild; when present it must not
    precede `this_update`. Entries are unique by serial number.
    """

    der: bytes = field(repr=False)
    issuer_info: CertificateInfo
    this_update: datetime
    signature_algorithm: SignatureAlgorithm
    signature: bytes = field(repr=False)
    tbs_bytes: bytes = field(repr=False)
    next_update: datetime | None = None
    number: int | None = None
    revoked: tuple[CRLEntry, ...] = ()
    issuer_key_id: bytes | None = None

    def __post_init__(self) -> None:
        if self.next_update is not None and self.next_update < self.this_update:
            raise ValueError("CRL next_update precedes this_update")
        serials = [entry.serial_number for entry in self.revoked]
        if len(serials) != len(set(serials)):
            raise ValueError("CRL revoked entries must be unique by serial number")

    def entry_for(self, serial_number: int) -> CRLEntry | None:
        for entry in self.revoked:
            if entry.serial_number == serial_number:
                return entry
        return None

    def is_stale(self, instant: datetime) -> bool:
        return self.next_update is not None and self.next_update < instant

    def same_fields(self, other: CRLRecord) -> bool:
        return all(getattr(self, f.name) == getattr(other, f.name) for f in fields(self))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CRLRecord):
            return NotImplemented
        return self.der == other.der

    def __hash__(self) -> int:
        return hash(self.der)


@dataclass(frozen=True, slots=True)
class Chain:
    """
    Ordered certificates: index 0 is the end-entity ("primary"), the last
    element is the terminal certificate closest to a root.

    Built transiently per validation; holds shared references to records
    owned by the store or the caller.
    """

    certificates: tuple[CertificateRecord, ...]

    def __post_init__(self) -> None:
        if not self.certificates:
            raise ValueError("A chain needs at least the primary certificate")

    @classmethod
    def of(cls, *certificates: CertificateRecord) -> Chain:
        return cls(tuple(certificates))

    @property
    def primary(self) -> CertificateRecord:
        return self.certificates[0]

    @property
    def terminal(self) -> CertificateRecord:
        return self.certificates[-1]

    def extended(self, record: CertificateRecord) -> Chain:
        return Chain(self.certificates + (record,))

    def __len__(self) -> int:
        return len(self.certificates)

    def __iter__(self) -> Iterator[CertificateRecord]:
        return iter(self.certificates)

    def __getitem__(self, index: int) -> CertificateRecord:
        return self.certificates[index]

    def __contains__(self, record: object) -> bool:
        return record in self.certificates


@dataclass(frozen=True, slots=True)
class CertificateOptions:
    """
    Input for requests (PKCS#10 / SPKAC) and direct creation.

    Field applicability per mode:
      challenge                          request (PKCS#10, SPKAC)
      info, constraints, policies, CA    PKCS#10 and create
      serial_number, not_before/after    create only
    SPKAC ignores everything but the challenge.
    """

    format: RequestFormat = RequestFormat.PKCS10
    challenge: str = ""
    info: CertificateInfo = field(default_factory=CertificateInfo)
    constraints: frozenset[ConstraintType] = frozenset()
    policies: tuple[str, ...] = ()
    is_ca: bool = False
    path_limit: int | None = None
    serial_number: int | None = None
    not_before: datetime | None = None
    not_after: datetime | None = None

    def as_ca(self, path_limit: int | None = DEFAULT_CA_PATH_LIMIT) -> CertificateOptions:
        return replace(self, is_ca=True, path_limit=path_limit)

    def with_validity(self, start: datetime, end: datetime) -> CertificateOptions:
        return replace(self, not_before=start, not_after=end)

    def applicable(self) -> CertificateOptions:
        """Drop the fields the current mode ignores."""
        match self.format:
            case RequestFormat.SPKAC:
                return CertificateOptions(format=RequestFormat.SPKAC, challenge=self.challenge)
            case RequestFormat.PKCS10:
                return replace(self, serial_number=None, not_before=None, not_after=None)
            case _:
                return replace(self, challenge="")

    def check(self) -> Result[CertificateOptions]:
        """Validate the fields the mode uses; returns the applicable options."""
        opts = self.applicable()
        if opts.format is RequestFormat.SPKAC:
            return Result.success(opts)
        if not opts.info:
            return Result.failure(ErrorCode.INVALID_OPTIONS, "Subject info is required")
        if opts.path_limit is not None and opts.path_limit < 0:
            return Result.failure(ErrorCode.INVALID_OPTIONS, "Path limit must be non-negative")
        exclusive = {ConstraintType.ENCIPHER_ONLY, ConstraintType.DECIPHER_ONLY}
        if opts.constraints & exclusive and ConstraintType.KEY_AGREEMENT not in opts.constraints:
            return Result.failure(
                ErrorCode.INVALID_OPTIONS,
                "encipherOnly/decipherOnly require keyAgreement",
            )
        if opts.format is RequestFormat.CREATE:
            if opts.not_after is None:
                return Result.failure(ErrorCode.INVALID_OPTIONS, "A validity end is required")
            if opts.not_before is not None and opts.not_after <= opts.not_before:
                return Result.failure(
                    ErrorCode.INVALID_OPTIONS, "Validity end must follow validity start"
                )
            if opts.serial_number is not None and opts.serial_number <= 0:
                return Result.failure(ErrorCode.INVALID_OPTIONS, "Serial number must be positive")
        return Result.success(opts)

    def is_valid(self) -> bool:
        return self.check().is_success()


@dataclass(frozen=True, slots=True)
class CertificateRequest:
    """
    Decoded certificate request.

    PKCS#10-only fields (subject info, constraints, policies, CA flag, path
    limit) are empty for SPKAC requests. `der` is empty when the format has
    no DER encoding here (SPKAC).
    """

    format: RequestFormat
    subject_public_key: bytes = field(repr=False)
    challenge: str = ""
    subject_info: CertificateInfo = field(default_factory=CertificateInfo)
    constraints: frozenset[ConstraintType] = frozenset()
    policies: tuple[str, ...] = ()
    is_ca: bool = False
    path_limit: int | None = None
    signature_algorithm: SignatureAlgorithm = SignatureAlgorithm.UNKNOWN
    signature: bytes = field(default=b"", repr=False)
    tbs_bytes: bytes = field(default=b"", repr=False)
    der: bytes = field(default=b"", repr=False)


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """
    Everything one validation produced.

    `validity` is the single outcome. `revocation` is the side channel:
    status per chain index (the trust anchor is never listed).
    """

    validity: Validity
    chain: Chain
    at_time: datetime
    revocation: Mapping[int, RevocationStatus] = field(default_factory=dict)

    @property
    def unknown_revocation(self) -> tuple[int, ...]:
        return tuple(
            index
            for index, status in sorted(self.revocation.items())
            if status is RevocationStatus.UNKNOWN
        )
