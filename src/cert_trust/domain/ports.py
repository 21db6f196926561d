"""
Ports — Protocol-based interfaces for the capabilities the core consumes.

The trust engine never touches key material or encodings itself. It is
handed a signature capability that satisfies SignatureVerifier structurally
(no inheritance needed), so tests can inject deterministic fakes and
deployments can wrap a hardware or remote signer.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from cert_trust.domain.enums import SignatureAlgorithm


class SignatureCheckUnavailable(Exception):
    """
    The capability could not render a judgment.

    Raised for unsupported algorithms or key types and for timeouts. It is
    distinct from a signature that simply does not verify (which is False).
    """


@runtime_checkable
class SignatureVerifier(Protocol):
    """
    Port: verify one signature.

    Arguments are the signer's SubjectPublicKeyInfo DER, the signed bytes,
    the signature and the declared algorithm. Must be synchronous and free
    of side effects. Returns True/False, or raises SignatureCheckUnavailable.
    """

    def verify(
        self,
        public_key: bytes,
        message: bytes,
        signature: bytes,
        algorithm: SignatureAlgorithm,
    ) -> bool: ...
