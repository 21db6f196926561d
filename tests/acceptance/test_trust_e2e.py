"""
End-to-end acceptance tests for trust evaluation.

Exercises the full path: CertificateAuthority issuance with real EC keys →
codec → store → chain builder → path validator with the PyCA signature
capability → CRL revocation. Nothing is faked; validations run against the
wall clock unless a scenario moves the instant.

Each test follows Given/When/Then BDD structure in its docstring.
"""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime, timedelta

import pytest

from cert_trust.adapters.x509_codec import decode_certificate
from cert_trust.authority import CertificateAuthority, create_self_signed
from cert_trust.collection import CertificateCollection
from cert_trust.config import RevocationSettings, TrustSettings
from cert_trust.domain.enums import RevocationReason, RevocationStatus, UsageMode, Validity
from cert_trust.domain.models import CertificateRecord, CRLEntry, CRLRecord
from cert_trust.domain.result import ErrorCode, ResultAssertions
from cert_trust.validation import evaluate, validate
from tests.conftest import (
    CA_USAGE,
    SERVER_USAGE,
    RealPKI,
    create_options,
    ec_key,
    info,
    real_pki,
    real_subordinate,
    spki_of,
)

pytestmark = pytest.mark.acceptance

FAIL_CLOSED = TrustSettings(revocation=RevocationSettings(fail_closed=True))


def _next_week() -> datetime:
    return datetime.now(UTC) + timedelta(days=7)


def _crl(authority: CertificateAuthority, *revoked: CertificateRecord) -> CRLRecord:
    empty = ResultAssertions.assert_success(authority.create_crl(_next_week()))
    entries = [
        CRLEntry(cert.serial_number, datetime.now(UTC) - timedelta(minutes=5), RevocationReason.KEY_COMPROMISE)
        for cert in revoked
    ]
    return ResultAssertions.assert_success(authority.update_crl(empty, entries, _next_week()))


@pytest.fixture(scope="module")
def pki() -> RealPKI:
    return real_pki()


def _sources(pki: RealPKI, *crls: CRLRecord) -> tuple[CertificateCollection, CertificateCollection]:
    trusted = CertificateCollection([pki.root.certificate])
    untrusted = CertificateCollection([pki.intermediate.certificate], crls)
    return trusted, untrusted


class TestTrustedChains:
    def test_fully_checked_chain_is_good(self, pki: RealPKI) -> None:
        """
        GIVEN Root (trusted), Intermediate and a TLS server Leaf with current
              CRLs from both CAs
        WHEN the Leaf is validated fail-closed for tls-server and its host
        THEN the outcome is ValidityGood and every non-anchor is GOOD.
        """
        trusted, untrusted = _sources(pki, _crl(pki.root), _crl(pki.intermediate))
        report = ResultAssertions.assert_success(
            evaluate(
                pki.leaf, trusted, untrusted, UsageMode.TLS_SERVER,
                hostname="www.example.com", settings=FAIL_CLOSED,
            )
        )
        assert report.validity is Validity.GOOD
        assert [cert.common_name for cert in report.chain] == [
            "www.example.com",
            "Test Intermediate",
            "Test Root",
        ]
        assert report.revocation == {0: RevocationStatus.GOOD, 1: RevocationStatus.GOOD}

    def test_chain_survives_a_der_round_trip(self, pki: RealPKI) -> None:
        """
        GIVEN the Leaf re-decoded from its DER bytes
        WHEN it is validated
        THEN the decoded record is the same certificate and validates the same.
        """
        leaf = ResultAssertions.assert_success(decode_certificate(pki.leaf.der))
        assert leaf == pki.leaf
        assert validate(leaf, *_sources(pki)) is Validity.GOOD

    def test_missing_crls_are_tolerated_by_default(self, pki: RealPKI) -> None:
        assert validate(pki.leaf, *_sources(pki)) is Validity.GOOD

    def test_missing_crls_fail_when_closed(self, pki: RealPKI) -> None:
        assert validate(pki.leaf, *_sources(pki), settings=FAIL_CLOSED) is Validity.ERROR_VALIDITY_UNKNOWN


class TestRejectedChains:
    def test_revoked_leaf(self, pki: RealPKI) -> None:
        """
        GIVEN the Intermediate's CRL lists the Leaf's serial
        WHEN the Leaf is validated
        THEN the outcome is ErrorRevoked.
        """
        trusted, untrusted = _sources(pki, _crl(pki.intermediate, pki.leaf))
        assert validate(pki.leaf, trusted, untrusted) is Validity.ERROR_REVOKED

    def test_revoked_intermediate(self, pki: RealPKI) -> None:
        trusted, untrusted = _sources(
            pki, _crl(pki.root, pki.intermediate.certificate), _crl(pki.intermediate)
        )
        report = ResultAssertions.assert_success(evaluate(pki.leaf, trusted, untrusted))
        assert report.validity is Validity.ERROR_REVOKED
        assert report.revocation[1] is RevocationStatus.REVOKED

    def test_untrusted_root_is_self_signed(self, pki: RealPKI) -> None:
        """
        GIVEN the Root supplied only as an untrusted certificate
        WHEN the Leaf is validated
        THEN the outcome is ErrorSelfSigned.
        """
        untrusted = CertificateCollection([pki.intermediate.certificate, pki.root.certificate])
        assert validate(pki.leaf, CertificateCollection(), untrusted) is Validity.ERROR_SELF_SIGNED

    def test_tampered_leaf_fails_signature(self, pki: RealPKI) -> None:
        """
        GIVEN a Leaf whose signed bytes were altered after issuance
        WHEN it is validated
        THEN the outcome is ErrorSignatureFailed, ahead of every other check.
        """
        tbs = pki.leaf.tbs_bytes
        tampered = dataclasses.replace(pki.leaf, tbs_bytes=tbs[:-1] + bytes([tbs[-1] ^ 0x01]))
        assert validate(tampered, *_sources(pki)) is Validity.ERROR_SIGNATURE_FAILED

    def test_expired_leaf(self, pki: RealPKI) -> None:
        later = pki.leaf.not_after + timedelta(days=1)
        assert validate(pki.leaf, *_sources(pki), at_time=later) is Validity.ERROR_EXPIRED

    def test_wrong_purpose(self, pki: RealPKI) -> None:
        assert validate(pki.leaf, *_sources(pki), UsageMode.CODE_SIGNING) is Validity.ERROR_INVALID_PURPOSE

    def test_missing_intermediate_is_invalid_ca(self, pki: RealPKI) -> None:
        trusted = CertificateCollection([pki.root.certificate])
        result = evaluate(pki.leaf, trusted)
        ResultAssertions.assert_failure(result, ErrorCode.INCOMPLETE_CHAIN)
        assert validate(pki.leaf, trusted) is Validity.ERROR_INVALID_CA

    def test_path_length_exceeded(self) -> None:
        """
        GIVEN a Root with pathLenConstraint 0 that issued an intermediate CA
        WHEN a leaf under that intermediate is validated
        THEN the outcome is ErrorPathLengthExceeded.
        """
        key = ec_key()
        root_cert = ResultAssertions.assert_success(
            create_self_signed(create_options("Tight Root", constraints=CA_USAGE).as_ca(0), key)
        )
        root = CertificateAuthority(root_cert, key)
        intermediate = real_subordinate(root, "Tight Intermediate", path_limit=None)
        leaf = ResultAssertions.assert_success(
            intermediate.create_certificate(
                spki_of(ec_key()),
                create_options(info("host.example.com"), constraints=SERVER_USAGE),
            )
        )
        outcome = validate(
            leaf,
            CertificateCollection([root_cert]),
            CertificateCollection([intermediate.certificate]),
        )
        assert outcome is Validity.ERROR_PATH_LENGTH_EXCEEDED
