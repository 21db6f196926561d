"""
Application entry point — the `cert-trust` command line.

Composition root: loads settings, configures logging, reads certificate
files through the codec and bundle adapters, and runs one validation.

    cert-trust leaf.pem --trusted roots.pem --untrusted chain.pem \\
        --crl ca.crl --usage tls-server --hostname www.example.com

Exit codes:
  0  ValidityGood
  1  any other validity, or a chain that cannot be built
  2  configuration or input error
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

import structlog
from pydantic import ValidationError

from cert_trust import __version__
from cert_trust.adapters.bundle import load_pkcs7, parse_pem_bundle
from cert_trust.adapters.x509_codec import decode_certificate, decode_crl
from cert_trust.collection import CertificateCollection
from cert_trust.config import TrustSettings
from cert_trust.domain.enums import EncodingFormat, UsageMode, Validity
from cert_trust.domain.models import CertificateRecord, ValidationReport
from cert_trust.domain.result import ErrorCode, Failure, FailureDescription, Result, Success
from cert_trust.validation import evaluate

EXIT_GOOD = 0
EXIT_INVALID = 1
EXIT_USAGE = 2

_PKCS7_SUFFIXES = {".p7b", ".p7c", ".p7s"}


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for human-readable console output on stderr.

    stdout carries only the validation result, so it stays scriptable.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cert-trust",
        description="Validate an X.509 certificate against trusted and untrusted sets.",
    )
    parser.add_argument("certificate", type=Path, help="end-entity certificate (PEM or DER)")
    parser.add_argument(
        "--trusted",
        type=Path,
        nargs="+",
        required=True,
        metavar="FILE",
        help="trust anchors: PEM bundles, DER certificates or PKCS#7 files",
    )
    parser.add_argument(
        "--untrusted",
        type=Path,
        nargs="+",
        default=[],
        metavar="FILE",
        help="intermediate certificates available for chain building",
    )
    parser.add_argument(
        "--crl",
        type=Path,
        nargs="+",
        default=[],
        metavar="FILE",
        help="certificate revocation lists (PEM or DER)",
    )
    parser.add_argument(
        "--usage",
        choices=[mode.value for mode in UsageMode],
        default=UsageMode.ANY.value,
        help="intended usage to check the end-entity certificate for",
    )
    parser.add_argument("--hostname", help="host name or IP address the certificate must cover")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


# ─────────────────────── Input loading ───────────────────────


def _is_pem(data: bytes) -> bool:
    return b"-----BEGIN" in data


def _read(path: Path) -> Result[bytes]:
    return Result.from_computation(path.read_bytes, ErrorCode.IO_ERROR, f"Cannot read {path}")


def _load_end_entity(path: Path) -> Result[CertificateRecord]:
    return _read(path).flat_map(
        lambda data: decode_certificate(
            data, EncodingFormat.PEM if _is_pem(data) else EncodingFormat.DER
        )
    )


def _load_certificates(path: Path) -> Result[CertificateCollection]:
    if path.suffix.lower() in _PKCS7_SUFFIXES:
        return load_pkcs7(path)
    return _read(path).flat_map(
        lambda data: parse_pem_bundle(data)
        if _is_pem(data)
        else decode_certificate(data).map(lambda cert: CertificateCollection([cert]))
    )


def _load_crls(path: Path) -> Result[CertificateCollection]:
    return _read(path).flat_map(
        lambda data: parse_pem_bundle(data)
        if _is_pem(data)
        else decode_crl(data).map(lambda crl: CertificateCollection(crls=[crl]))
    )


def _merged(results: list[Result[CertificateCollection]]) -> Result[CertificateCollection]:
    return Result.all_of(results).map(lambda parts: sum(parts, CertificateCollection()))


# ─────────────────────── Output ───────────────────────


def _print_report(report: ValidationReport) -> None:
    print(report.validity.value)  # noqa: T201
    for index, cert in enumerate(report.chain):
        status = report.revocation.get(index)
        label = status.value if status is not None else "anchor"
        print(f"  [{index}] {cert.subject_info}  revocation={label}")  # noqa: T201


def _print_build_failure(error: FailureDescription) -> None:
    print(f"{Validity.ERROR_INVALID_CA.value} ({error.code.value}: {error.message})")  # noqa: T201


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, validate, print the outcome and return the exit code."""
    args = build_parser().parse_args(argv)

    try:
        settings = TrustSettings()
    except ValidationError as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        return EXIT_USAGE

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    end_entity = _load_end_entity(args.certificate)
    trusted = _merged([_load_certificates(path) for path in args.trusted])
    untrusted = _merged(
        [_load_certificates(path) for path in args.untrusted]
        + [_load_crls(path) for path in args.crl]
    )
    for loaded in (end_entity, trusted, untrusted):
        if loaded.is_failure():
            error = loaded.error()
            log.error("cli.input_error", code=error.code.value, error=error.message)
            print(f"FATAL: {error.message}", file=sys.stderr)  # noqa: T201
            return EXIT_USAGE

    result = evaluate(
        end_entity.value(),
        trusted.value(),
        untrusted.value(),
        UsageMode(args.usage),
        hostname=args.hostname,
        settings=settings,
    )
    match result:
        case Success(report):
            _print_report(report)
            return EXIT_GOOD if report.validity.is_good else EXIT_INVALID
        case Failure(error):
            _print_build_failure(error)
            return EXIT_INVALID
    return EXIT_INVALID  # pragma: no cover


if __name__ == "__main__":
    sys.exit(main())
