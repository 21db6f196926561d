"""
Unit tests for hostname matching against subject information.
"""

from __future__ import annotations

import pytest

from cert_trust.hostname import matches_hostname
from tests.conftest import info, make_cert


@pytest.mark.parametrize(
    ("patterns", "host", "expected"),
    [
        (["www.example.com"], "www.example.com", True),
        (["www.example.com"], "WWW.Example.COM.", True),
        (["www.example.com"], "example.com", False),
        (["*.example.com"], "api.example.com", True),
        (["*.example.com"], "a.b.example.com", False),
        (["*.example.com"], "example.com", False),
        (["*.com"], "example.com", False),
        (["api.*.com"], "api.example.com", False),
        (["xn--bcher-kva.example"], "bücher.example", True),
    ],
)
def test_dns_patterns(patterns: list[str], host: str, expected: bool) -> None:
    cert = make_cert("svc", "CA", subject_info=info("svc", dns=patterns))
    assert matches_hostname(cert, host) is expected


class TestCommonNameFallback:
    def test_common_name_used_without_dns_entries(self) -> None:
        cert = make_cert("www.example.com", "CA")
        assert matches_hostname(cert, "www.example.com")

    def test_common_name_ignored_when_dns_entries_exist(self) -> None:
        cert = make_cert(
            "www.example.com", "CA", subject_info=info("www.example.com", dns="api.example.com")
        )
        assert not matches_hostname(cert, "www.example.com")
        assert matches_hostname(cert, "api.example.com")


class TestIPAddresses:
    def test_ipv4_exact(self) -> None:
        cert = make_cert("svc", "CA", subject_info=info("svc", ip="192.0.2.10"))
        assert matches_hostname(cert, "192.0.2.10")
        assert not matches_hostname(cert, "192.0.2.11")

    def test_ipv6_normalized(self) -> None:
        cert = make_cert("svc", "CA", subject_info=info("svc", ip="2001:db8::1"))
        assert matches_hostname(cert, "[2001:0db8:0:0::1]")

    def test_ip_never_matches_dns_entries(self) -> None:
        cert = make_cert("192.0.2.10", "CA", subject_info=info("192.0.2.10", dns="192.0.2.10"))
        assert not matches_hostname(cert, "192.0.2.10")

    def test_empty_host(self) -> None:
        assert not matches_hostname(make_cert("svc", "CA"), "  ")


class TestMalformedHosts:
    @pytest.mark.parametrize(
        ("patterns", "host"),
        [
            (["*.example.com"], "-api.example.com"),
            (["a..b.example.com"], "a..b.example.com"),
            (["bad host.example.com"], "bad host.example.com"),
        ],
    )
    def test_malformed_host_matches_nothing(self, patterns: list[str], host: str) -> None:
        """
        GIVEN a certificate whose DNS entries would match the raw host text
        WHEN the host is not a well-formed domain name
        THEN it is rejected before any pattern is compared.
        """
        cert = make_cert("svc", "CA", subject_info=info("svc", dns=patterns))
        assert not matches_hostname(cert, host)
