"""
Signature capability adapters — implement the SignatureVerifier port.

  CryptographySignatureVerifier  PyCA cryptography: RSA PKCS#1 v1.5, ECDSA, Ed25519, Ed448
  TimeoutSignatureVerifier       bounds any inner verifier (hardware, remote signer)

A signature that does not verify, or whose declared algorithm does not fit
the key type, is False. Keys or algorithms that cannot be evaluated at all
raise SignatureCheckUnavailable, which the validator maps to
ErrorValidityUnknown.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

import structlog
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, padding, rsa
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes

from cert_trust.domain.enums import SignatureAlgorithm
from cert_trust.domain.ports import SignatureCheckUnavailable, SignatureVerifier

log = structlog.get_logger()

_RSA_HASHES: dict[SignatureAlgorithm, type[hashes.HashAlgorithm]] = {
    SignatureAlgorithm.RSA_SHA1: hashes.SHA1,
    SignatureAlgorithm.RSA_SHA256: hashes.SHA256,
    SignatureAlgorithm.RSA_SHA384: hashes.SHA384,
    SignatureAlgorithm.RSA_SHA512: hashes.SHA512,
}

_ECDSA_HASHES: dict[SignatureAlgorithm, type[hashes.HashAlgorithm]] = {
    SignatureAlgorithm.ECDSA_SHA1: hashes.SHA1,
    SignatureAlgorithm.ECDSA_SHA256: hashes.SHA256,
    SignatureAlgorithm.ECDSA_SHA384: hashes.SHA384,
    SignatureAlgorithm.ECDSA_SHA512: hashes.SHA512,
}


class CryptographySignatureVerifier:
    """Verify signatures over SubjectPublicKeyInfo DER keys with PyCA cryptography."""

    def verify(
        self,
        public_key: bytes,
        message: bytes,
        signature: bytes,
        algorithm: SignatureAlgorithm,
    ) -> bool:
        key = self._load_key(public_key)
        try:
            if algorithm in _RSA_HASHES:
                if not isinstance(key, rsa.RSAPublicKey):
                    return False
                key.verify(signature, message, padding.PKCS1v15(), _RSA_HASHES[algorithm]())
            elif algorithm in _ECDSA_HASHES:
                if not isinstance(key, ec.EllipticCurvePublicKey):
                    return False
                key.verify(signature, message, ec.ECDSA(_ECDSA_HASHES[algorithm]()))
            elif algorithm is SignatureAlgorithm.ED25519:
                if not isinstance(key, ed25519.Ed25519PublicKey):
                    return False
                key.verify(signature, message)
            elif algorithm is SignatureAlgorithm.ED448:
                if not isinstance(key, ed448.Ed448PublicKey):
                    return False
                key.verify(signature, message)
            else:
                raise SignatureCheckUnavailable(f"Unsupported signature algorithm: {algorithm.name}")
        except InvalidSignature:
            return False
        return True

    @staticmethod
    def _load_key(public_key: bytes) -> PublicKeyTypes:
        try:
            return serialization.load_der_public_key(public_key)
        except (ValueError, UnsupportedAlgorithm) as e:
            raise SignatureCheckUnavailable(f"Cannot load public key: {e}") from e


class TimeoutSignatureVerifier:
    """
    Run an inner verifier on a worker thread and give up after `timeout` seconds.

    The abandoned call keeps running in the background; its result is ignored.
    """

    def __init__(
        self,
        inner: SignatureVerifier,
        timeout: float,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self._inner = inner
        self._timeout = timeout
        self._executor = executor or ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="cert-trust-verify"
        )

    def verify(
        self,
        public_key: bytes,
        message: bytes,
        signature: bytes,
        algorithm: SignatureAlgorithm,
    ) -> bool:
        future = self._executor.submit(
            self._inner.verify, public_key, message, signature, algorithm
        )
        try:
            return future.result(timeout=self._timeout)
        except FutureTimeout as e:
            log.warning(
                "signature.timeout",
                algorithm=algorithm.name,
                timeout_seconds=self._timeout,
            )
            raise SignatureCheckUnavailable(
                f"Signature check timed out after {self._timeout}s"
            ) from e

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
