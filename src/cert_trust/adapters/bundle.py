"""
Bundle adapter — import/export CertificateCollection files.

  PEM flat text   any mix of CERTIFICATE and X509 CRL blocks; other block
                  types (keys, requests) are skipped
  PKCS#7          degenerate SignedData carrying certificates only, DER or PEM
                  on input, DER on output

File and decoding errors come back as Failure(IO_ERROR / PARSE_ERROR).
"""

from __future__ import annotations

import re
from pathlib import Path

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs7

from cert_trust.adapters.x509_codec import (
    decode_certificate,
    decode_crl,
    encode_certificate,
    encode_crl,
    record_from_certificate,
)
from cert_trust.collection import CertificateCollection
from cert_trust.domain.enums import EncodingFormat
from cert_trust.domain.result import ErrorCode, Result

log = structlog.get_logger()

_PEM_BLOCK = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----\r?\n.*?-----END \1-----",
    re.DOTALL,
)


def _read(path: Path) -> Result[bytes]:
    return Result.from_computation(path.read_bytes, ErrorCode.IO_ERROR, f"Cannot read {path}")


def _write(path: Path, data: bytes) -> Result[Path]:
    def write() -> Path:
        path.write_bytes(data)
        return path

    return Result.from_computation(write, ErrorCode.IO_ERROR, f"Cannot write {path}")


# ─────────────────────── PEM flat text ───────────────────────


def parse_pem_bundle(data: bytes) -> Result[CertificateCollection]:
    """Decode every CERTIFICATE and X509 CRL block in `data`, in file order."""
    collection = CertificateCollection()
    for match in _PEM_BLOCK.finditer(data):
        label, block = match.group(1), match.group(0)
        if label == b"CERTIFICATE":
            decoded = decode_certificate(block, EncodingFormat.PEM).peek(collection.add_certificate)
        elif label == b"X509 CRL":
            decoded = decode_crl(block, EncodingFormat.PEM).peek(collection.add_crl)
        else:
            log.debug("bundle.block_skipped", label=label.decode("ascii"))
            continue
        if decoded.is_failure():
            return Result.failure_from(decoded.error())
    return Result.success(collection)


def load_pem_bundle(path: Path | str) -> Result[CertificateCollection]:
    path = Path(path)
    return (
        _read(path)
        .flat_map(parse_pem_bundle)
        .peek(
            lambda collection: log.info(
                "bundle.loaded",
                path=str(path),
                format="pem",
                certificates=len(collection.certificates),
                crls=len(collection.crls),
            )
        )
    )


def dump_pem_bundle(collection: CertificateCollection) -> Result[bytes]:
    encoded = [encode_certificate(cert, EncodingFormat.PEM) for cert in collection.certificates]
    encoded += [encode_crl(crl, EncodingFormat.PEM) for crl in collection.crls]
    return Result.all_of(encoded).map(b"".join)


def save_pem_bundle(collection: CertificateCollection, path: Path | str) -> Result[Path]:
    path = Path(path)
    return dump_pem_bundle(collection).flat_map(lambda data: _write(path, data))


# ─────────────────────── PKCS#7 ───────────────────────


def _load_pkcs7_certificates(data: bytes) -> list[x509.Certificate]:
    if data.lstrip().startswith(b"-----BEGIN"):
        return pkcs7.load_pem_pkcs7_certificates(data)
    return pkcs7.load_der_pkcs7_certificates(data)


def parse_pkcs7(data: bytes) -> Result[CertificateCollection]:
    return Result.from_computation(
        lambda: CertificateCollection(
            record_from_certificate(cert) for cert in _load_pkcs7_certificates(data)
        ),
        ErrorCode.PARSE_ERROR,
        "Cannot decode PKCS#7 bundle",
    )


def load_pkcs7(path: Path | str) -> Result[CertificateCollection]:
    path = Path(path)
    return (
        _read(path)
        .flat_map(parse_pkcs7)
        .peek(
            lambda collection: log.info(
                "bundle.loaded",
                path=str(path),
                format="pkcs7",
                certificates=len(collection.certificates),
            )
        )
    )


def dump_pkcs7(collection: CertificateCollection) -> Result[bytes]:
    if collection.crls:
        log.warning("bundle.crls_dropped", count=len(collection.crls), format="pkcs7")
    return Result.from_computation(
        lambda: pkcs7.serialize_certificates(
            [x509.load_der_x509_certificate(cert.der) for cert in collection.certificates],
            serialization.Encoding.DER,
        ),
        ErrorCode.ENCODE_ERROR,
        "Cannot encode PKCS#7 bundle",
    )


def save_pkcs7(collection: CertificateCollection, path: Path | str) -> Result[Path]:
    path = Path(path)
    return dump_pkcs7(collection).flat_map(lambda data: _write(path, data))
