"""
Enumerations shared by the records, the validator and the issuance side.

Values are chosen so they can be logged and configured as plain strings.
"""

from __future__ import annotations

from enum import Enum, unique


@unique
class InfoType(Enum):
    """Attribute types of a subject or issuer information map."""

    COMMON_NAME = "CN"
    EMAIL = "Email"
    ORGANIZATION = "O"
    ORGANIZATIONAL_UNIT = "OU"
    LOCALITY = "L"
    STATE = "ST"
    COUNTRY = "C"
    URI = "URI"
    DNS = "DNS"
    IP_ADDRESS = "IP"
    XMPP = "XMPP"


@unique
class ConstraintType(Enum):
    """Basic (key usage) and extended (purpose) certificate constraints."""

    # basic
    DIGITAL_SIGNATURE = "digitalSignature"
    NON_REPUDIATION = "nonRepudiation"
    KEY_ENCIPHERMENT = "keyEncipherment"
    DATA_ENCIPHERMENT = "dataEncipherment"
    KEY_AGREEMENT = "keyAgreement"
    KEY_CERT_SIGN = "keyCertSign"
    CRL_SIGN = "crlSign"
    ENCIPHER_ONLY = "encipherOnly"
    DECIPHER_ONLY = "decipherOnly"

    # extended
    SERVER_AUTH = "serverAuth"
    CLIENT_AUTH = "clientAuth"
    CODE_SIGNING = "codeSigning"
    EMAIL_PROTECTION = "emailProtection"
    IPSEC_END_SYSTEM = "ipsecEndSystem"
    IPSEC_TUNNEL = "ipsecTunnel"
    IPSEC_USER = "ipsecUser"
    TIME_STAMPING = "timeStamping"
    OCSP_SIGNING = "ocspSigning"

    @property
    def is_basic(self) -> bool:
        return self in BASIC_CONSTRAINTS

    @property
    def is_extended(self) -> bool:
        return not self.is_basic


BASIC_CONSTRAINTS = frozenset(
    {
        ConstraintType.DIGITAL_SIGNATURE,
        ConstraintType.NON_REPUDIATION,
        ConstraintType.KEY_ENCIPHERMENT,
        ConstraintType.DATA_ENCIPHERMENT,
        ConstraintType.KEY_AGREEMENT,
        ConstraintType.KEY_CERT_SIGN,
        ConstraintType.CRL_SIGN,
        ConstraintType.ENCIPHER_ONLY,
        ConstraintType.DECIPHER_ONLY,
    }
)


@unique
class UsageMode(Enum):
    """Intended usage a certificate is validated for."""

    ANY = "any"
    TLS_SERVER = "tls-server"
    TLS_CLIENT = "tls-client"
    CODE_SIGNING = "code-signing"
    EMAIL_PROTECTION = "email"
    TIME_STAMPING = "time-stamping"
    CRL_SIGNING = "crl-signing"


# Extended constraint each usage requires on the end-entity. CRL_SIGNING is
# a basic constraint and is handled separately.
USAGE_REQUIREMENTS: dict[UsageMode, ConstraintType] = {
    UsageMode.TLS_SERVER: ConstraintType.SERVER_AUTH,
    UsageMode.TLS_CLIENT: ConstraintType.CLIENT_AUTH,
    UsageMode.CODE_SIGNING: ConstraintType.CODE_SIGNING,
    UsageMode.EMAIL_PROTECTION: ConstraintType.EMAIL_PROTECTION,
    UsageMode.TIME_STAMPING: ConstraintType.TIME_STAMPING,
}


@unique
class Validity(Enum):
    """
    Outcome of validating a certificate.

    Exactly one value per validation. Declaration order of the Error*
    members below the good value follows the check precedence.
    """

    GOOD = "ValidityGood"
    ERROR_SIGNATURE_FAILED = "ErrorSignatureFailed"
    ERROR_EXPIRED = "ErrorExpired"
    ERROR_EXPIRED_CA = "ErrorExpiredCA"
    ERROR_SELF_SIGNED = "ErrorSelfSigned"
    ERROR_UNTRUSTED = "ErrorUntrusted"
    ERROR_INVALID_CA = "ErrorInvalidCA"
    ERROR_PATH_LENGTH_EXCEEDED = "ErrorPathLengthExceeded"
    ERROR_INVALID_PURPOSE = "ErrorInvalidPurpose"
    ERROR_REVOKED = "ErrorRevoked"
    ERROR_VALIDITY_UNKNOWN = "ErrorValidityUnknown"

    @property
    def is_good(self) -> bool:
        return self is Validity.GOOD


@unique
class RevocationReason(Enum):
    """CRL entry reason codes."""

    UNSPECIFIED = "unspecified"
    KEY_COMPROMISE = "keyCompromise"
    CA_COMPROMISE = "cACompromise"
    AFFILIATION_CHANGED = "affiliationChanged"
    SUPERSEDED = "superseded"
    CESSATION_OF_OPERATION = "cessationOfOperation"
    CERTIFICATE_HOLD = "certificateHold"
    REMOVE_FROM_CRL = "removeFromCRL"
    PRIVILEGE_WITHDRAWN = "privilegeWithdrawn"
    AA_COMPROMISE = "aACompromise"


@unique
class RevocationStatus(Enum):
    GOOD = "good"
    REVOKED = "revoked"
    UNKNOWN = "unknown"


@unique
class RequestFormat(Enum):
    """Certificate request formats, plus direct creation by an authority."""

    PKCS10 = "pkcs10"
    SPKAC = "spkac"
    CREATE = "create"


@unique
class SignatureAlgorithm(Enum):
    """Signature algorithms, keyed by their dotted OID."""

    RSA_SHA1 = "1.2.840.113549.1.1.5"
    RSA_SHA256 = "1.2.840.113549.1.1.11"
    RSA_SHA384 = "1.2.840.113549.1.1.12"
    RSA_SHA512 = "1.2.840.113549.1.1.13"
    ECDSA_SHA1 = "1.2.840.10045.4.1"
    ECDSA_SHA256 = "1.2.840.10045.4.3.2"
    ECDSA_SHA384 = "1.2.840.10045.4.3.3"
    ECDSA_SHA512 = "1.2.840.10045.4.3.4"
    ED25519 = "1.3.101.112"
    ED448 = "1.3.101.113"
    UNKNOWN = "unknown"

    @classmethod
    def from_oid(cls, dotted: str) -> SignatureAlgorithm:
        try:
            return cls(dotted)
        except ValueError:
            return cls.UNKNOWN


@unique
class EncodingFormat(Enum):
    """Serialized forms accepted by the codec."""

    DER = "der"
    PEM = "pem"
