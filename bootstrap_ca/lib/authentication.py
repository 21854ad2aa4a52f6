"""Token HMAC helpers shared by the remote client and the request handler.

Both directions of the exchange prove possession of the shared token by
sending HMAC-SHA256(token, key identifier of a public key): the client over
its CSR public key, the server over the CA public key. The public keys are
visible to anyone watching the handshake; only the token is secret, so the
HMAC authenticates the peer but provides no confidentiality.
"""

import hashlib
import hmac

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import CertificatePublicKeyTypes


def key_identifier(public_key: CertificatePublicKeyTypes) -> bytes:
    """Return the RFC 5280 subject key identifier (SHA-1 of the key bits)."""
    return x509.SubjectKeyIdentifier.from_public_key(public_key).digest


def calculate_hmac(token: str, public_key: CertificatePublicKeyTypes) -> bytes:
    """Compute HMAC-SHA256 keyed with the token over the key identifier."""
    return hmac.new(token.encode("utf-8"), key_identifier(public_key), hashlib.sha256).digest()


def hmac_matches(expected: bytes, actual: bytes) -> bool:
    """Constant-time comparison of two HMAC values."""
    return hmac.compare_digest(expected, actual)
