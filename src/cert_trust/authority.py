"""
Certificate Authority — issue certificates and CRLs with a CA key.

Issuance side of the library, built on PyCA cryptography builders:

  CertificateAuthority.sign_request(request, not_valid_after)
  CertificateAuthority.create_certificate(public_key, options)
  CertificateAuthority.create_crl(next_update)
  CertificateAuthority.update_crl(crl, entries, next_update)
  create_self_signed(options, private_key)
  create_request(options, private_key)

The issuer name is copied byte-for-byte from the CA certificate's subject so
issued certificates link back to it. Serial numbers and CRL numbers come from
per-authority counters guarded by a lock; both only ever increase.

All operations return Result. Builder and signing exceptions are caught and
reported as ISSUANCE_ERROR.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import UTC, datetime

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ed448, ed25519
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    CertificateIssuerPublicKeyTypes,
)
from cryptography.x509.oid import AttributeOID

from cert_trust.adapters.x509_codec import (
    certificate_policies,
    extended_key_usage,
    general_names,
    key_usage,
    record_from_certificate,
    record_from_crl,
    record_from_csr,
    revocation_reason,
    x509_name,
)
from cert_trust.config import IssuanceSettings
from cert_trust.domain.enums import ConstraintType, RequestFormat, RevocationReason
from cert_trust.domain.models import (
    CertificateInfo,
    CertificateOptions,
    CertificateRecord,
    CertificateRequest,
    CRLEntry,
    CRLRecord,
)
from cert_trust.domain.result import ErrorCode, Result

log = structlog.get_logger()

_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}

_Extensions = list[tuple[x509.ExtensionType, bool]]


def _signing_hash(
    key: CertificateIssuerPrivateKeyTypes, hash_algorithm: str
) -> hashes.HashAlgorithm | None:
    # EdDSA signs the message directly; the builders require None here.
    if isinstance(key, ed25519.Ed25519PrivateKey | ed448.Ed448PrivateKey):
        return None
    return _HASHES[hash_algorithm]()


def _extensions(
    info: CertificateInfo,
    constraints: frozenset[ConstraintType],
    policies: tuple[str, ...],
    is_ca: bool,
    path_limit: int | None,
) -> _Extensions:
    """Extensions shared by certificates and PKCS#10 requests."""
    extensions: _Extensions = [
        (x509.BasicConstraints(ca=is_ca, path_length=path_limit if is_ca else None), True),
    ]
    alt_names = general_names(info)
    if alt_names:
        extensions.append((x509.SubjectAlternativeName(alt_names), False))
    usage = key_usage(constraints)
    if usage is not None:
        extensions.append((usage, True))
    extended = extended_key_usage(constraints)
    if extended is not None:
        extensions.append((extended, False))
    cert_policies = certificate_policies(policies)
    if cert_policies is not None:
        extensions.append((cert_policies, False))
    return extensions


def _now() -> datetime:
    return datetime.now(UTC)


def _require_create(options: CertificateOptions) -> Result[CertificateOptions]:
    if options.format is not RequestFormat.CREATE:
        return Result.failure(
            ErrorCode.INVALID_OPTIONS,
            f"Certificate creation needs create-mode options, got {options.format.value}",
        )
    return options.check()


class CertificateAuthority:
    """A CA certificate together with its private key."""

    def __init__(
        self,
        certificate: CertificateRecord,
        private_key: CertificateIssuerPrivateKeyTypes,
        settings: IssuanceSettings | None = None,
    ) -> None:
        if not certificate.is_ca:
            raise ValueError(f"Certificate {certificate.subject_info} is not a CA")
        self._certificate = certificate
        self._key = private_key
        self._settings = settings or IssuanceSettings()
        self._lock = threading.Lock()
        self._next_serial = self._settings.serial_start
        self._issued_serials: set[int] = set()
        self._last_crl_number = 0

        parsed = x509.load_der_x509_certificate(certificate.der)
        self._issuer_name = parsed.subject
        try:
            san = parsed.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
            self._issuer_alt_names: list[x509.GeneralName] = list(san)
        except x509.ExtensionNotFound:
            self._issuer_alt_names = []
        if certificate.subject_key_id is not None:
            self._authority_key_id = x509.AuthorityKeyIdentifier(
                key_identifier=certificate.subject_key_id,
                authority_cert_issuer=None,
                authority_cert_serial_number=None,
            )
        else:
            self._authority_key_id = x509.AuthorityKeyIdentifier.from_issuer_public_key(
                private_key.public_key()
            )

    @property
    def certificate(self) -> CertificateRecord:
        return self._certificate

    # ─────────────────────── Counters ───────────────────────

    def _take_crl_number(self) -> int:
        with self._lock:
            self._last_crl_number += 1
            return self._last_crl_number

    def _reserve_serial(self, requested: int | None) -> Result[int]:
        """Claim `requested`, or the next free generated serial when it is None."""
        with self._lock:
            if requested is None:
                while self._next_serial in self._issued_serials:
                    self._next_serial += 1
                serial = self._next_serial
            elif requested in self._issued_serials:
                return Result.failure(
                    ErrorCode.INVALID_OPTIONS,
                    f"Serial {requested:#x} was already issued by this CA",
                )
            else:
                serial = requested
            # Generated serials stay above every serial handed out so far.
            self._next_serial = max(self._next_serial, serial + 1)
            self._issued_serials.add(serial)
            return Result.success(serial)

    # ─────────────────────── Certificates ───────────────────────

    def sign_request(
        self,
        request: CertificateRequest,
        not_valid_after: datetime,
    ) -> Result[CertificateRecord]:
        """Issue a certificate for a PKCS#10 request, valid from now until `not_valid_after`."""
        if request.format is not RequestFormat.PKCS10:
            return Result.failure(
                ErrorCode.UNSUPPORTED_FORMAT,
                f"Cannot sign {request.format.value} requests",
            )
        if request.der:
            proof = Result.from_computation(
                lambda: x509.load_der_x509_csr(request.der).is_signature_valid,
                ErrorCode.PARSE_ERROR,
                "Cannot decode certificate request",
            ).ensure(bool, ErrorCode.ISSUANCE_ERROR, "Request signature does not verify")
            if proof.is_failure():
                return Result.failure_from(proof.error())

        path_limit = request.path_limit
        if request.is_ca and path_limit is None:
            path_limit = self._settings.default_path_limit
        options = CertificateOptions(
            format=RequestFormat.CREATE,
            info=request.subject_info,
            constraints=request.constraints,
            policies=request.policies,
            is_ca=request.is_ca,
            path_limit=path_limit,
            not_after=not_valid_after,
        )
        return self.create_certificate(request.subject_public_key, options)

    def create_certificate(
        self,
        public_key: bytes,
        options: CertificateOptions,
    ) -> Result[CertificateRecord]:
        """Issue a certificate for a SubjectPublicKeyInfo DER key."""
        return (
            _require_create(options)
            .flat_map(
                lambda opts: self._reserve_serial(opts.serial_number).flat_map(
                    lambda serial: Result.from_computation(
                        lambda: self._issue(public_key, opts, serial),
                        ErrorCode.ISSUANCE_ERROR,
                        "Cannot issue certificate",
                    )
                )
            )
            .peek(
                lambda record: log.info(
                    "authority.certificate_issued",
                    subject=str(record.subject_info),
                    serial=hex(record.serial_number),
                    is_ca=record.is_ca,
                    not_after=record.not_after.isoformat(),
                )
            )
        )

    def _issue(self, public_key: bytes, opts: CertificateOptions, serial: int) -> CertificateRecord:
        subject_key = serialization.load_der_public_key(public_key)

        builder = (
            x509.CertificateBuilder()
            .subject_name(x509_name(opts.info))
            .issuer_name(self._issuer_name)
            .public_key(subject_key)
            .serial_number(serial)
            .not_valid_before(opts.not_before or _now())
            .not_valid_after(opts.not_after)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(subject_key), critical=False)
            .add_extension(self._authority_key_id, critical=False)
        )
        if self._issuer_alt_names:
            builder = builder.add_extension(
                x509.IssuerAlternativeName(self._issuer_alt_names), critical=False
            )
        for extension, critical in _extensions(
            opts.info, opts.constraints, opts.policies, opts.is_ca, opts.path_limit
        ):
            builder = builder.add_extension(extension, critical=critical)

        cert = builder.sign(self._key, _signing_hash(self._key, self._settings.hash_algorithm))
        return record_from_certificate(cert)

    # ─────────────────────── CRLs ───────────────────────

    def create_crl(self, next_update: datetime) -> Result[CRLRecord]:
        """An empty CRL with the next CRL number."""
        return self._crl_result([], next_update)

    def update_crl(
        self,
        crl: CRLRecord,
        entries: Iterable[CRLEntry],
        next_update: datetime,
    ) -> Result[CRLRecord]:
        """
        Reissue `crl` with `entries` added.

        Entries are merged by serial number; a newly supplied entry replaces
        the prior one for the same serial (its reason and time win).
        """
        if crl.issuer_info != self._certificate.subject_info:
            return Result.failure(
                ErrorCode.ISSUANCE_ERROR,
                f"CRL issued by {crl.issuer_info} cannot be updated by {self._certificate.subject_info}",
            )
        merged = {entry.serial_number: entry for entry in crl.revoked}
        for entry in entries:
            merged[entry.serial_number] = entry
        return self._crl_result(list(merged.values()), next_update)

    def _crl_result(self, entries: list[CRLEntry], next_update: datetime) -> Result[CRLRecord]:
        return Result.from_computation(
            lambda: self._build_crl(entries, next_update),
            ErrorCode.ISSUANCE_ERROR,
            "Cannot issue CRL",
        ).peek(
            lambda record: log.info(
                "authority.crl_issued",
                issuer=str(record.issuer_info),
                number=record.number,
                entries=len(record.revoked),
                next_update=next_update.isoformat(),
            )
        )

    def _build_crl(self, entries: list[CRLEntry], next_update: datetime) -> CRLRecord:
        builder = (
            x509.CertificateRevocationListBuilder()
            .issuer_name(self._issuer_name)
            .last_update(_now())
            .next_update(next_update)
            .add_extension(x509.CRLNumber(self._take_crl_number()), critical=False)
            .add_extension(self._authority_key_id, critical=False)
        )
        if self._issuer_alt_names:
            builder = builder.add_extension(
                x509.IssuerAlternativeName(self._issuer_alt_names), critical=False
            )
        for entry in entries:
            revoked = (
                x509.RevokedCertificateBuilder()
                .serial_number(entry.serial_number)
                .revocation_date(entry.revocation_time)
            )
            # RFC 5280: the reason code extension is omitted for "unspecified".
            if entry.reason is not RevocationReason.UNSPECIFIED:
                revoked = revoked.add_extension(
                    x509.CRLReason(revocation_reason(entry.reason)), critical=False
                )
            builder = builder.add_revoked_certificate(revoked.build())

        crl = builder.sign(self._key, _signing_hash(self._key, self._settings.hash_algorithm))
        return record_from_crl(crl)


# ─────────────────────── Self-signed certificates and requests ───────────────────────


def create_self_signed(
    options: CertificateOptions,
    private_key: CertificateIssuerPrivateKeyTypes,
    settings: IssuanceSettings | None = None,
) -> Result[CertificateRecord]:
    """Self-signed certificate: issuer = subject, authority key id = own key id."""
    hash_algorithm = (settings or IssuanceSettings()).hash_algorithm
    return (
        _require_create(options)
        .flat_map(
            lambda opts: Result.from_computation(
                lambda: _self_signed(opts, private_key, hash_algorithm),
                ErrorCode.ISSUANCE_ERROR,
                "Cannot create self-signed certificate",
            )
        )
        .peek(
            lambda record: log.info(
                "authority.self_signed_created",
                subject=str(record.subject_info),
                serial=hex(record.serial_number),
                is_ca=record.is_ca,
            )
        )
    )


def _self_signed(
    opts: CertificateOptions,
    private_key: CertificateIssuerPrivateKeyTypes,
    hash_algorithm: str,
) -> CertificateRecord:
    public_key: CertificateIssuerPublicKeyTypes = private_key.public_key()
    name = x509_name(opts.info)
    ski = x509.SubjectKeyIdentifier.from_public_key(public_key)
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(public_key)
        .serial_number(opts.serial_number or x509.random_serial_number())
        .not_valid_before(opts.not_before or _now())
        .not_valid_after(opts.not_after)
        .add_extension(ski, critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski), critical=False
        )
    )
    alt_names = general_names(opts.info)
    if alt_names:
        builder = builder.add_extension(x509.IssuerAlternativeName(alt_names), critical=False)
    for extension, critical in _extensions(
        opts.info, opts.constraints, opts.policies, opts.is_ca, opts.path_limit
    ):
        builder = builder.add_extension(extension, critical=critical)
    cert = builder.sign(private_key, _signing_hash(private_key, hash_algorithm))
    return record_from_certificate(cert)


def create_request(
    options: CertificateOptions,
    private_key: CertificateIssuerPrivateKeyTypes,
    settings: IssuanceSettings | None = None,
) -> Result[CertificateRequest]:
    """Build and sign a PKCS#10 request. SPKAC creation is not supported."""
    if options.format is RequestFormat.SPKAC:
        return Result.failure(ErrorCode.UNSUPPORTED_FORMAT, "SPKAC requests cannot be created")
    if options.format is not RequestFormat.PKCS10:
        return Result.failure(
            ErrorCode.INVALID_OPTIONS,
            f"Requests need request-mode options, got {options.format.value}",
        )
    hash_algorithm = (settings or IssuanceSettings()).hash_algorithm
    return options.check().flat_map(
        lambda opts: Result.from_computation(
            lambda: _request(opts, private_key, hash_algorithm),
            ErrorCode.ISSUANCE_ERROR,
            "Cannot create certificate request",
        )
    )


def _request(
    opts: CertificateOptions,
    private_key: CertificateIssuerPrivateKeyTypes,
    hash_algorithm: str,
) -> CertificateRequest:
    builder = x509.CertificateSigningRequestBuilder().subject_name(x509_name(opts.info))
    for extension, critical in _extensions(
        opts.info, opts.constraints, opts.policies, opts.is_ca, opts.path_limit
    ):
        builder = builder.add_extension(extension, critical=critical)
    if opts.challenge:
        builder = builder.add_attribute(
            AttributeOID.CHALLENGE_PASSWORD, opts.challenge.encode("utf-8")
        )
    csr = builder.sign(private_key, _signing_hash(private_key, hash_algorithm))
    return record_from_csr(csr)
