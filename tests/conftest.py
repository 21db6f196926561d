"""
Shared test fixtures and helpers for the cert-trust test suite.

Two kinds of certificates are used:

  - hand-made CertificateRecords signed by FakeVerifier's scheme
    (signature = SHA-256 over key || tbs). They are cheap, deterministic and
    let a test flip any single field, which the check-precedence tests need.
  - real X.509 certificates issued with EC keys through the
    CertificateAuthority. Their validity windows follow the wall clock.

Every hand-made validation runs at NOW so outcomes never depend on the clock.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest
import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes

from cert_trust.authority import CertificateAuthority, create_self_signed
from cert_trust.domain.enums import (
    ConstraintType,
    InfoType,
    RequestFormat,
    RevocationReason,
    SignatureAlgorithm,
)
from cert_trust.domain.models import (
    CertificateInfo,
    CertificateOptions,
    CertificateRecord,
    CRLEntry,
    CRLRecord,
)
from cert_trust.domain.ports import SignatureCheckUnavailable
from cert_trust.domain.result import ResultAssertions
from cert_trust.store import CertificateStore

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)
YEAR = timedelta(days=365)

CA_USAGE = frozenset({ConstraintType.KEY_CERT_SIGN, ConstraintType.CRL_SIGN})
SERVER_USAGE = frozenset({ConstraintType.DIGITAL_SIGNATURE, ConstraintType.SERVER_AUTH})


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Undo any structlog.configure() a test performed."""
    yield
    structlog.reset_defaults()


# ─────────────────────── Fake signature capability ───────────────────────


def key_of(name: str) -> bytes:
    return f"key:{name}".encode()


def fake_sign(key: bytes, message: bytes) -> bytes:
    return hashlib.sha256(key + message).digest()


class FakeVerifier:
    """
    Deterministic SignatureVerifier: a signature is valid when it equals
    SHA-256(public_key || message). SignatureAlgorithm.UNKNOWN cannot be
    judged and raises SignatureCheckUnavailable.
    """

    def __init__(self) -> None:
        self.calls = 0

    def verify(
        self,
        public_key: bytes,
        message: bytes,
        signature: bytes,
        algorithm: SignatureAlgorithm,
    ) -> bool:
        self.calls += 1
        if algorithm is SignatureAlgorithm.UNKNOWN:
            raise SignatureCheckUnavailable("unknown algorithm")
        return signature == fake_sign(public_key, message)


@pytest.fixture()
def verifier() -> FakeVerifier:
    return FakeVerifier()


# ─────────────────────── Hand-made records ───────────────────────


def info(common_name: str, **extra: str | list[str]) -> CertificateInfo:
    """CertificateInfo with a CN plus keyword entries: dns=..., org=..., ip=..."""
    names = {
        "dns": InfoType.DNS,
        "org": InfoType.ORGANIZATION,
        "ip": InfoType.IP_ADDRESS,
        "email": InfoType.EMAIL,
        "country": InfoType.COUNTRY,
    }
    mapping: dict[InfoType, str | list[str]] = {InfoType.COMMON_NAME: common_name}
    for key, value in extra.items():
        mapping[names[key]] = value
    return CertificateInfo.from_mapping(mapping)


def key_id(name: str) -> bytes:
    return hashlib.sha1(key_of(name)).digest()


def make_cert(
    subject: str,
    issuer: str | None = None,
    *,
    serial: int = 1,
    is_ca: bool = False,
    path_limit: int | None = None,
    constraints: frozenset[ConstraintType] = frozenset(),
    not_before: datetime | None = None,
    not_after: datetime | None = None,
    subject_info: CertificateInfo | None = None,
    signing_key: bytes | None = None,
    with_key_ids: bool = False,
    algorithm: SignatureAlgorithm = SignatureAlgorithm.ECDSA_SHA256,
) -> CertificateRecord:
    """
    A CertificateRecord for `subject`, signed with the key of `issuer`.

    `issuer=None` makes it self-issued and self-signed. The public key of
    a subject named X is key_of(X), so issuers are found by name.
    """
    issuer_name = issuer or subject
    subject_info = subject_info or info(subject)
    issuer_info = info(issuer_name)
    not_before = not_before or NOW - YEAR
    not_after = not_after or NOW + YEAR
    tbs = "|".join(
        [
            str(subject_info),
            str(issuer_info),
            str(serial),
            not_before.isoformat(),
            not_after.isoformat(),
            str(is_ca),
            str(path_limit),
            ",".join(sorted(c.value for c in constraints)),
        ]
    ).encode()
    signature = fake_sign(signing_key or key_of(issuer_name), tbs)
    return CertificateRecord(
        der=tbs + b"#" + signature,
        subject_info=subject_info,
        issuer_info=issuer_info,
        not_before=not_before,
        not_after=not_after,
        serial_number=serial,
        subject_public_key=key_of(subject),
        signature_algorithm=algorithm,
        signature=signature,
        tbs_bytes=tbs,
        subject_key_id=key_id(subject) if with_key_ids else None,
        issuer_key_id=key_id(issuer_name) if with_key_ids else None,
        constraints=constraints,
        is_ca=is_ca,
        path_limit=path_limit,
    )


def make_crl(
    issuer: str,
    revoked: tuple[int, ...] | tuple[CRLEntry, ...] = (),
    *,
    this_update: datetime | None = None,
    next_update: datetime | None = None,
    number: int = 1,
    signing_key: bytes | None = None,
) -> CRLRecord:
    """A CRL issued by `issuer`; `revoked` holds serials or ready CRLEntry values."""
    this_update = this_update or NOW - timedelta(days=1)
    next_update = next_update or NOW + timedelta(days=7)
    entries = tuple(
        entry
        if isinstance(entry, CRLEntry)
        else CRLEntry(entry, this_update, RevocationReason.KEY_COMPROMISE)
        for entry in revoked
    )
    tbs = "|".join(
        [
            str(info(issuer)),
            this_update.isoformat(),
            next_update.isoformat(),
            str(number),
            ",".join(f"{e.serial_number}:{e.reason.value}" for e in entries),
        ]
    ).encode()
    signature = fake_sign(signing_key or key_of(issuer), tbs)
    return CRLRecord(
        der=b"crl:" + tbs + b"#" + signature,
        issuer_info=info(issuer),
        this_update=this_update,
        next_update=next_update,
        number=number,
        revoked=entries,
        signature_algorithm=SignatureAlgorithm.ECDSA_SHA256,
        signature=signature,
        tbs_bytes=tbs,
    )


@dataclass(frozen=True)
class ThreeTier:
    """Root (trusted) → Intermediate (untrusted) → Leaf, all hand-made."""

    root: CertificateRecord
    intermediate: CertificateRecord
    leaf: CertificateRecord

    def store(self, *crls: CRLRecord) -> CertificateStore:
        store = CertificateStore()
        store.add_certificate(self.root, trusted=True)
        store.add_certificate(self.intermediate)
        for crl in crls:
            store.add_crl(crl)
        return store


def three_tier(
    *,
    root_path_limit: int | None = None,
    leaf_constraints: frozenset[ConstraintType] = SERVER_USAGE,
) -> ThreeTier:
    root = make_cert("Root", is_ca=True, path_limit=root_path_limit, constraints=CA_USAGE)
    intermediate = make_cert("Intermediate", "Root", serial=2, is_ca=True, constraints=CA_USAGE)
    leaf = make_cert(
        "Leaf",
        "Intermediate",
        serial=12345,
        constraints=leaf_constraints,
        subject_info=info("Leaf", dns=["www.example.com", "*.example.org"]),
    )
    return ThreeTier(root=root, intermediate=intermediate, leaf=leaf)


@pytest.fixture()
def pki() -> ThreeTier:
    return three_tier()


# ─────────────────────── Real certificates (PyCA cryptography) ───────────────────────


def ec_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


def spki_of(private_key: CertificateIssuerPrivateKeyTypes) -> bytes:
    return private_key.public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


def create_options(
    subject: CertificateInfo | str,
    *,
    constraints: frozenset[ConstraintType] = frozenset(),
    days: int = 365,
) -> CertificateOptions:
    """Create-mode options valid from yesterday (wall clock) for `days` days."""
    start = datetime.now(UTC).replace(microsecond=0) - timedelta(days=1)
    return CertificateOptions(
        format=RequestFormat.CREATE,
        info=subject if isinstance(subject, CertificateInfo) else info(subject),
        constraints=constraints,
        not_before=start,
        not_after=start + timedelta(days=days),
    )


def real_root(
    subject: CertificateInfo | str = "Test Root",
    key: CertificateIssuerPrivateKeyTypes | None = None,
) -> CertificateAuthority:
    """Self-signed CA with keyCertSign and cRLSign, wrapped as an authority."""
    key = key or ec_key()
    record = ResultAssertions.assert_success(
        create_self_signed(create_options(subject, constraints=CA_USAGE).as_ca(), key)
    )
    return CertificateAuthority(record, key)


def real_subordinate(
    parent: CertificateAuthority,
    subject: str,
    path_limit: int | None = 0,
) -> CertificateAuthority:
    key = ec_key()
    record = ResultAssertions.assert_success(
        parent.create_certificate(
            spki_of(key), create_options(subject, constraints=CA_USAGE).as_ca(path_limit)
        )
    )
    return CertificateAuthority(record, key)


@dataclass(frozen=True)
class RealPKI:
    """Test Root → Test Intermediate → www.example.com, issued with EC keys."""

    root: CertificateAuthority
    intermediate: CertificateAuthority
    leaf: CertificateRecord


def real_pki() -> RealPKI:
    root = real_root()
    intermediate = real_subordinate(root, "Test Intermediate")
    leaf = ResultAssertions.assert_success(
        intermediate.create_certificate(
            spki_of(ec_key()),
            create_options(
                info("www.example.com", dns=["www.example.com", "example.com"]),
                constraints=SERVER_USAGE,
                days=90,
            ),
        )
    )
    return RealPKI(root=root, intermediate=intermediate, leaf=leaf)
