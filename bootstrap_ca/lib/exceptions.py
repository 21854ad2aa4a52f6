"""Exception hierarchy for the bootstrap certificate authority.

Callers can tell transport failures apart from protocol violations and, most
importantly, from authentication failures, which may indicate an active
interception attempt and deserve a different alert.
"""


class CertificateAuthorityError(Exception):
    """Base exception for all bootstrap CA errors."""


class TransportError(CertificateAuthorityError):
    """Connection, TLS or HTTP failure, including a non-success status code."""


class ProtocolError(CertificateAuthorityError):
    """Peer violated the request/response format or presented an unexpected identity."""


class SecurityError(CertificateAuthorityError):
    """Authentication or signature verification failed."""


class HmacMismatchError(SecurityError):
    """Token HMAC did not match, possible interception."""


class CSRSignatureError(SecurityError):
    """Certificate signing request self-signature is invalid."""


class SigningError(CertificateAuthorityError):
    """Underlying cryptographic failure while issuing a certificate."""


class ServerStateError(CertificateAuthorityError, RuntimeError):
    """Server started twice or shut down while not running."""


__all__ = [
    "CertificateAuthorityError",
    "TransportError",
    "ProtocolError",
    "SecurityError",
    "HmacMismatchError",
    "CSRSignatureError",
    "SigningError",
    "ServerStateError",
]
