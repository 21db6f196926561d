"""
Hostname matching against a certificate's subject information.

DNS entries take precedence; the CommonName is consulted only when the
certificate carries no DNS entries at all. A wildcard is honoured only as
the whole left-most label ("*.example.com") and never matches across dots
or a bare suffix ("*.com").

Requested hosts are converted with IDNA 2008 (UTS #46 mapping) and must pass
`validators.domain`; a malformed host matches nothing.
"""

from __future__ import annotations

import ipaddress

import idna
import validators

from cert_trust.domain.enums import InfoType
from cert_trust.domain.models import CertificateRecord


def _normalize(name: str) -> str | None:
    name = name.strip().rstrip(".").lower()
    if not name:
        return None
    if name.isascii():
        return name
    try:
        return ".".join(
            label if label == "*" else idna.encode(label, uts46=True).decode("ascii")
            for label in name.split(".")
        )
    except idna.IDNAError:
        return None


def _parse_ip(value: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        return ipaddress.ip_address(value.strip().strip("[]"))
    except ValueError:
        return None


def _dns_matches(pattern: str, host: str) -> bool:
    if not pattern.startswith("*."):
        return pattern == host
    suffix = pattern[2:]
    if "." not in suffix or "*" in suffix:
        return False
    label, _, rest = host.partition(".")
    return bool(label) and rest == suffix


def matches_hostname(record: CertificateRecord, host: str) -> bool:
    """True when `host` (DNS name or IP literal) is covered by the certificate."""
    ip = _parse_ip(host)
    if ip is not None:
        return any(_parse_ip(value) == ip for value in record.subject_info.values(InfoType.IP_ADDRESS))

    wanted = _normalize(host)
    if wanted is None or validators.domain(wanted) is not True:
        return False

    patterns = record.subject_info.values(InfoType.DNS)
    if not patterns:
        patterns = record.subject_info.values(InfoType.COMMON_NAME)

    for pattern in patterns:
        normalized = _normalize(pattern)
        if normalized is not None and _dns_matches(normalized, wanted):
            return True
    return False
