"""
X.509 codec adapter — DER/PEM ⇄ domain records.

Uses PyCA cryptography for X.509 structures and asn1crypto for the otherName
payloads cryptography leaves as raw DER:

  decode_certificate / encode_certificate   CertificateRecord
  decode_crl / encode_crl                   CRLRecord
  decode_request / encode_request           CertificateRequest (PKCS#10)

Subject information is the subject DN merged with the SubjectAlternativeName
extension; issuer information is the issuer DN merged with the
IssuerAlternativeName extension. Email addresses are read from both the
emailAddress DN attribute and rfc822Name entries, and always written as
rfc822Name. XMPP addresses travel as id-on-xmppAddr otherName entries.

Every public function returns a Result; exceptions from cryptography are
caught here and nowhere else.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Callable, Iterable
from typing import TypeVar

import structlog
from asn1crypto import core
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import AttributeOID, ExtendedKeyUsageOID, NameOID

from cert_trust.domain.enums import (
    BASIC_CONSTRAINTS,
    ConstraintType,
    EncodingFormat,
    InfoType,
    RequestFormat,
    RevocationReason,
    SignatureAlgorithm,
)
from cert_trust.domain.models import (
    CertificateInfo,
    CertificateRecord,
    CertificateRequest,
    CRLEntry,
    CRLRecord,
)
from cert_trust.domain.result import ErrorCode, FailureDescription, Result

log = structlog.get_logger()

T = TypeVar("T")

XMPP_ADDR_OID = x509.ObjectIdentifier("1.3.6.1.5.5.7.8.5")

_NAME_OIDS: dict[InfoType, x509.ObjectIdentifier] = {
    InfoType.COMMON_NAME: NameOID.COMMON_NAME,
    InfoType.ORGANIZATION: NameOID.ORGANIZATION_NAME,
    InfoType.ORGANIZATIONAL_UNIT: NameOID.ORGANIZATIONAL_UNIT_NAME,
    InfoType.LOCALITY: NameOID.LOCALITY_NAME,
    InfoType.STATE: NameOID.STATE_OR_PROVINCE_NAME,
    InfoType.COUNTRY: NameOID.COUNTRY_NAME,
}
_NAME_TYPES = {oid: info_type for info_type, oid in _NAME_OIDS.items()}
_NAME_TYPES[NameOID.EMAIL_ADDRESS] = InfoType.EMAIL

_EKU_OIDS: dict[ConstraintType, x509.ObjectIdentifier] = {
    ConstraintType.SERVER_AUTH: ExtendedKeyUsageOID.SERVER_AUTH,
    ConstraintType.CLIENT_AUTH: ExtendedKeyUsageOID.CLIENT_AUTH,
    ConstraintType.CODE_SIGNING: ExtendedKeyUsageOID.CODE_SIGNING,
    ConstraintType.EMAIL_PROTECTION: ExtendedKeyUsageOID.EMAIL_PROTECTION,
    ConstraintType.IPSEC_END_SYSTEM: x509.ObjectIdentifier("1.3.6.1.5.5.7.3.5"),
    ConstraintType.IPSEC_TUNNEL: x509.ObjectIdentifier("1.3.6.1.5.5.7.3.6"),
    ConstraintType.IPSEC_USER: x509.ObjectIdentifier("1.3.6.1.5.5.7.3.7"),
    ConstraintType.TIME_STAMPING: ExtendedKeyUsageOID.TIME_STAMPING,
    ConstraintType.OCSP_SIGNING: ExtendedKeyUsageOID.OCSP_SIGNING,
}
_EKU_TYPES = {oid: constraint for constraint, oid in _EKU_OIDS.items()}

_ENCODINGS = {
    EncodingFormat.DER: serialization.Encoding.DER,
    EncodingFormat.PEM: serialization.Encoding.PEM,
}


# ─────────────────────── Small ASN.1 helpers ───────────────────────


def _der_utf8_string(value: str) -> bytes:
    """DER UTF8String, the payload of an xmppAddr otherName."""
    return core.UTF8String(value).dump()


def _parse_der_utf8_string(data: bytes) -> str | None:
    """Decoded xmppAddr payload, or None when it is not a valid UTF8String."""
    try:
        return core.UTF8String.load(data, strict=True).native
    except ValueError as exc:
        log.warning("codec.other_name_skipped", oid=XMPP_ADDR_OID.dotted_string, reason=str(exc))
        return None


# ─────────────────────── Decoding ───────────────────────


def _get_extension(
    extensions: x509.Extensions, ext_type: type[x509.ExtensionType]
) -> x509.ExtensionType | None:
    try:
        return extensions.get_extension_for_class(ext_type).value
    except x509.ExtensionNotFound:
        return None


def _name_entries(name: x509.Name) -> list[tuple[InfoType, str]]:
    entries: list[tuple[InfoType, str]] = []
    for attribute in name:
        info_type = _NAME_TYPES.get(attribute.oid)
        if info_type is not None and isinstance(attribute.value, str):
            entries.append((info_type, attribute.value))
    return entries


def _general_name_entries(names: Iterable[x509.GeneralName]) -> list[tuple[InfoType, str]]:
    entries: list[tuple[InfoType, str]] = []
    for name in names:
        match name:
            case x509.RFC822Name():
                entries.append((InfoType.EMAIL, name.value))
            case x509.DNSName():
                entries.append((InfoType.DNS, name.value))
            case x509.UniformResourceIdentifier():
                entries.append((InfoType.URI, name.value))
            case x509.IPAddress():
                entries.append((InfoType.IP_ADDRESS, str(name.value)))
            case x509.OtherName() if name.type_id == XMPP_ADDR_OID:
                address = _parse_der_utf8_string(name.value)
                if address is not None:
                    entries.append((InfoType.XMPP, address))
    return entries


def _info(name: x509.Name, alt_names: x509.ExtensionType | None) -> CertificateInfo:
    entries = _name_entries(name)
    if alt_names is not None:
        entries.extend(_general_name_entries(alt_names))
    return CertificateInfo.from_pairs(entries)


def _key_usage_constraints(usage: x509.KeyUsage) -> set[ConstraintType]:
    flags = {
        ConstraintType.DIGITAL_SIGNATURE: usage.digital_signature,
        ConstraintType.NON_REPUDIATION: usage.content_commitment,
        ConstraintType.KEY_ENCIPHERMENT: usage.key_encipherment,
        ConstraintType.DATA_ENCIPHERMENT: usage.data_encipherment,
        ConstraintType.KEY_AGREEMENT: usage.key_agreement,
        ConstraintType.KEY_CERT_SIGN: usage.key_cert_sign,
        ConstraintType.CRL_SIGN: usage.crl_sign,
    }
    # encipher_only / decipher_only are undefined without keyAgreement.
    if usage.key_agreement:
        flags[ConstraintType.ENCIPHER_ONLY] = usage.encipher_only
        flags[ConstraintType.DECIPHER_ONLY] = usage.decipher_only
    return {constraint for constraint, present in flags.items() if present}


def _constraints(extensions: x509.Extensions) -> frozenset[ConstraintType]:
    found: set[ConstraintType] = set()
    usage = _get_extension(extensions, x509.KeyUsage)
    if usage is not None:
        found |= _key_usage_constraints(usage)
    extended = _get_extension(extensions, x509.ExtendedKeyUsage)
    if extended is not None:
        found |= {_EKU_TYPES[oid] for oid in extended if oid in _EKU_TYPES}
    return frozenset(found)


def _policies(extensions: x509.Extensions) -> tuple[str, ...]:
    policies = _get_extension(extensions, x509.CertificatePolicies)
    if policies is None:
        return ()
    return tuple(policy.policy_identifier.dotted_string for policy in policies)


def _ca_flags(extensions: x509.Extensions) -> tuple[bool, int | None]:
    basic = _get_extension(extensions, x509.BasicConstraints)
    if basic is None or not basic.ca:
        return False, None
    return True, basic.path_length


def _authority_key_id(extensions: x509.Extensions) -> bytes | None:
    aki = _get_extension(extensions, x509.AuthorityKeyIdentifier)
    return aki.key_identifier if aki is not None else None


def _subject_key_id(extensions: x509.Extensions) -> bytes | None:
    ski = _get_extension(extensions, x509.SubjectKeyIdentifier)
    return ski.digest if ski is not None else None


def _spki(source: x509.Certificate | x509.CertificateSigningRequest) -> bytes:
    return source.public_key().public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def record_from_certificate(cert: x509.Certificate) -> CertificateRecord:
    """Map a parsed cryptography certificate onto a CertificateRecord."""
    extensions = cert.extensions
    is_ca, path_limit = _ca_flags(extensions)
    return CertificateRecord(
        der=cert.public_bytes(serialization.Encoding.DER),
        subject_info=_info(cert.subject, _get_extension(extensions, x509.SubjectAlternativeName)),
        issuer_info=_info(cert.issuer, _get_extension(extensions, x509.IssuerAlternativeName)),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        serial_number=cert.serial_number,
        subject_public_key=_spki(cert),
        signature_algorithm=SignatureAlgorithm.from_oid(cert.signature_algorithm_oid.dotted_string),
        signature=cert.signature,
        tbs_bytes=cert.tbs_certificate_bytes,
        subject_key_id=_subject_key_id(extensions),
        issuer_key_id=_authority_key_id(extensions),
        constraints=_constraints(extensions),
        policies=_policies(extensions),
        is_ca=is_ca,
        path_limit=path_limit,
    )


def _crl_entry(revoked: x509.RevokedCertificate) -> CRLEntry:
    reason = _get_extension(revoked.extensions, x509.CRLReason)
    return CRLEntry(
        serial_number=revoked.serial_number,
        revocation_time=revoked.revocation_date_utc,
        reason=RevocationReason(reason.reason.value) if reason is not None else RevocationReason.UNSPECIFIED,
    )


def record_from_crl(crl: x509.CertificateRevocationList) -> CRLRecord:
    """Map a parsed cryptography CRL onto a CRLRecord."""
    extensions = crl.extensions
    number = _get_extension(extensions, x509.CRLNumber)
    return CRLRecord(
        der=crl.public_bytes(serialization.Encoding.DER),
        issuer_info=_info(crl.issuer, _get_extension(extensions, x509.IssuerAlternativeName)),
        this_update=crl.last_update_utc,
        next_update=crl.next_update_utc,
        number=number.crl_number if number is not None else None,
        revoked=tuple(_crl_entry(revoked) for revoked in crl),
        issuer_key_id=_authority_key_id(extensions),
        signature_algorithm=SignatureAlgorithm.from_oid(crl.signature_algorithm_oid.dotted_string),
        signature=crl.signature,
        tbs_bytes=crl.tbs_certlist_bytes,
    )


def _challenge(csr: x509.CertificateSigningRequest) -> str:
    try:
        attribute = csr.attributes.get_attribute_for_oid(AttributeOID.CHALLENGE_PASSWORD)
    except x509.AttributeNotFound:
        return ""
    return attribute.value.decode("utf-8")


def record_from_csr(csr: x509.CertificateSigningRequest) -> CertificateRequest:
    """Map a parsed PKCS#10 request onto a CertificateRequest."""
    extensions = csr.extensions
    is_ca, path_limit = _ca_flags(extensions)
    return CertificateRequest(
        format=RequestFormat.PKCS10,
        subject_public_key=_spki(csr),
        challenge=_challenge(csr),
        subject_info=_info(csr.subject, _get_extension(extensions, x509.SubjectAlternativeName)),
        constraints=_constraints(extensions),
        policies=_policies(extensions),
        is_ca=is_ca,
        path_limit=path_limit,
        signature_algorithm=SignatureAlgorithm.from_oid(csr.signature_algorithm_oid.dotted_string),
        signature=csr.signature,
        tbs_bytes=csr.tbs_certrequest_bytes,
        der=csr.public_bytes(serialization.Encoding.DER),
    )


# ─────────────────────── Encoding helpers (shared with issuance) ───────────────────────


def x509_name(info: CertificateInfo) -> x509.Name:
    """DN attributes of `info`; alternative-name types are left out."""
    return x509.Name(
        [
            x509.NameAttribute(_NAME_OIDS[info_type], value)
            for info_type, value in info
            if info_type in _NAME_OIDS
        ]
    )


def general_names(info: CertificateInfo) -> list[x509.GeneralName]:
    """Alternative-name entries of `info` (Email, DNS, URI, IP, XMPP)."""
    names: list[x509.GeneralName] = []
    for info_type, value in info:
        match info_type:
            case InfoType.EMAIL:
                names.append(x509.RFC822Name(value))
            case InfoType.DNS:
                names.append(x509.DNSName(value))
            case InfoType.URI:
                names.append(x509.UniformResourceIdentifier(value))
            case InfoType.IP_ADDRESS:
                names.append(x509.IPAddress(ipaddress.ip_address(value)))
            case InfoType.XMPP:
                names.append(x509.OtherName(XMPP_ADDR_OID, _der_utf8_string(value)))
    return names


def key_usage(constraints: Iterable[ConstraintType]) -> x509.KeyUsage | None:
    """KeyUsage for the basic constraints, or None when there are none."""
    present = set(constraints)
    if not present & BASIC_CONSTRAINTS:
        return None
    agreement = ConstraintType.KEY_AGREEMENT in present
    return x509.KeyUsage(
        digital_signature=ConstraintType.DIGITAL_SIGNATURE in present,
        content_commitment=ConstraintType.NON_REPUDIATION in present,
        key_encipherment=ConstraintType.KEY_ENCIPHERMENT in present,
        data_encipherment=ConstraintType.DATA_ENCIPHERMENT in present,
        key_agreement=agreement,
        key_cert_sign=ConstraintType.KEY_CERT_SIGN in present,
        crl_sign=ConstraintType.CRL_SIGN in present,
        encipher_only=agreement and ConstraintType.ENCIPHER_ONLY in present,
        decipher_only=agreement and ConstraintType.DECIPHER_ONLY in present,
    )


def extended_key_usage(constraints: Iterable[ConstraintType]) -> x509.ExtendedKeyUsage | None:
    oids = [_EKU_OIDS[c] for c in ConstraintType if c in set(constraints) and c in _EKU_OIDS]
    return x509.ExtendedKeyUsage(oids) if oids else None


def certificate_policies(policies: Iterable[str]) -> x509.CertificatePolicies | None:
    entries = [x509.PolicyInformation(x509.ObjectIdentifier(oid), None) for oid in policies]
    return x509.CertificatePolicies(entries) if entries else None


def revocation_reason(reason: RevocationReason) -> x509.ReasonFlags:
    return x509.ReasonFlags(reason.value)


# ─────────────────────── Public API ───────────────────────


def _load(
    data: bytes,
    fmt: EncodingFormat,
    der_loader: Callable[[bytes], T],
    pem_loader: Callable[[bytes], T],
) -> T:
    return der_loader(data) if fmt is EncodingFormat.DER else pem_loader(data)


def _log_failure(kind: str) -> Callable[[FailureDescription], None]:
    return lambda error: log.warning("codec.failed", kind=kind, code=error.code.value, error=error.message)


def decode_certificate(
    data: bytes, fmt: EncodingFormat = EncodingFormat.DER
) -> Result[CertificateRecord]:
    return Result.from_computation(
        lambda: record_from_certificate(
            _load(data, fmt, x509.load_der_x509_certificate, x509.load_pem_x509_certificate)
        ),
        ErrorCode.PARSE_ERROR,
        "Cannot decode certificate",
    ).peek_failure(_log_failure("certificate"))


def encode_certificate(
    record: CertificateRecord, fmt: EncodingFormat = EncodingFormat.DER
) -> Result[bytes]:
    return Result.from_computation(
        lambda: x509.load_der_x509_certificate(record.der).public_bytes(_ENCODINGS[fmt]),
        ErrorCode.ENCODE_ERROR,
        "Cannot encode certificate",
    ).peek_failure(_log_failure("certificate"))


def decode_crl(data: bytes, fmt: EncodingFormat = EncodingFormat.DER) -> Result[CRLRecord]:
    return Result.from_computation(
        lambda: record_from_crl(_load(data, fmt, x509.load_der_x509_crl, x509.load_pem_x509_crl)),
        ErrorCode.PARSE_ERROR,
        "Cannot decode CRL",
    ).peek_failure(_log_failure("crl"))


def encode_crl(record: CRLRecord, fmt: EncodingFormat = EncodingFormat.DER) -> Result[bytes]:
    return Result.from_computation(
        lambda: x509.load_der_x509_crl(record.der).public_bytes(_ENCODINGS[fmt]),
        ErrorCode.ENCODE_ERROR,
        "Cannot encode CRL",
    ).peek_failure(_log_failure("crl"))


def decode_request(
    data: bytes, fmt: EncodingFormat = EncodingFormat.DER
) -> Result[CertificateRequest]:
    return Result.from_computation(
        lambda: record_from_csr(_load(data, fmt, x509.load_der_x509_csr, x509.load_pem_x509_csr)),
        ErrorCode.PARSE_ERROR,
        "Cannot decode certificate request",
    ).peek_failure(_log_failure("request"))


def encode_request(
    request: CertificateRequest, fmt: EncodingFormat = EncodingFormat.DER
) -> Result[bytes]:
    if request.format is not RequestFormat.PKCS10:
        return Result.failure(
            ErrorCode.UNSUPPORTED_FORMAT,
            f"Cannot encode {request.format.value} requests",
        )
    return Result.from_computation(
        lambda: x509.load_der_x509_csr(request.der).public_bytes(_ENCODINGS[fmt]),
        ErrorCode.ENCODE_ERROR,
        "Cannot encode certificate request",
    ).peek_failure(_log_failure("request"))
