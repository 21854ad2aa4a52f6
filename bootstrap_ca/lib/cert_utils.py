"""Certificate utility functions for key generation, serialization and parsing."""

import uuid

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import NameOID

from .config import DEFAULT_KEY_SIZE


def generate_private_key(key_size: int = DEFAULT_KEY_SIZE) -> RSAPrivateKey:
    """Generate RSA private key with specified size."""
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
    )


def serialize_private_key(key: RSAPrivateKey, password: str | None = None) -> bytes:
    """Serialize private key to PKCS8 PEM, encrypted when a password is given."""
    encryption: serialization.KeySerializationEncryption = serialization.NoEncryption()
    if password:
        encryption = serialization.BestAvailableEncryption(password.encode("utf-8"))
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )


def deserialize_private_key(pem_data: bytes, password: str | None = None) -> RSAPrivateKey:
    """Deserialize private key from PEM bytes."""
    key = serialization.load_pem_private_key(
        pem_data, password=password.encode("utf-8") if password else None
    )
    if not isinstance(key, RSAPrivateKey):
        raise ValueError("expected RSA private key")
    return key


def serialize_certificate(cert: x509.Certificate) -> bytes:
    """Serialize certificate to PEM format."""
    return cert.public_bytes(serialization.Encoding.PEM)


def deserialize_certificate(pem_data: bytes) -> x509.Certificate:
    """Deserialize certificate from PEM bytes."""
    return x509.load_pem_x509_certificate(pem_data)


def serialize_certificate_chain(chain: list[x509.Certificate]) -> bytes:
    """Concatenate a chain (leaf first) into a single PEM bundle."""
    return b"".join(serialize_certificate(cert) for cert in chain)


def deserialize_certificate_chain(pem_data: bytes) -> list[x509.Certificate]:
    """Load every certificate from a PEM bundle, preserving order."""
    chain = x509.load_pem_x509_certificates(pem_data)
    if not chain:
        raise ValueError("no certificates found in PEM data")
    return chain


def serialize_csr(csr: x509.CertificateSigningRequest) -> bytes:
    """Serialize CSR to PEM format."""
    return csr.public_bytes(serialization.Encoding.PEM)


def deserialize_csr(pem_data: bytes) -> x509.CertificateSigningRequest:
    """Deserialize CSR from PEM bytes."""
    return x509.load_pem_x509_csr(pem_data)


def generate_serial_number() -> int:
    """Generate certificate serial number from UUID4.

    UUID v4 gives ~122 bits of entropy, comfortably above the 64 bit
    CA/Browser Forum minimum, so independently issued certificates never
    share a serial.
    """
    return uuid.uuid4().int


def _split_rdns(dn: str) -> list[str]:
    """Split a DN on unescaped commas, trimming unescaped whitespace around each RDN."""
    rdns: list[str] = []
    current: list[str] = []
    protected = 0
    escaped = False

    def finish() -> None:
        # Trailing whitespace is dropped unless it was escaped
        end = len(current)
        while end > protected and current[end - 1].isspace():
            end -= 1
        rdns.append("".join(current[:end]).lstrip())

    for char in dn:
        if escaped:
            current.append(char)
            protected = len(current)
            escaped = False
        elif char == "\\":
            current.append(char)
            escaped = True
        elif char == ",":
            finish()
            current, protected = [], 0
        else:
            current.append(char)
    finish()
    return rdns


def parse_dn(dn: str) -> x509.Name:
    """Parse a distinguished name such as 'CN=host1, OU=NIFI'.

    Accepts RFC 4514 strings as well as the common form with whitespace after
    the RDN separators. Escaped commas stay part of their attribute value.

    Raises:
        ValueError: If the string is not a valid distinguished name
    """
    normalized = ",".join(_split_rdns(dn.strip()))
    try:
        return x509.Name.from_rfc4514_string(normalized)
    except ValueError as e:
        raise ValueError(f"invalid distinguished name {dn!r}: {e}") from e


def get_common_name(cert: x509.Certificate) -> str:
    """Return the first subject CN of a certificate.

    Raises:
        ValueError: If the certificate subject has no CN
    """
    attributes = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        raise ValueError("certificate subject has no common name")
    cn = attributes[0].value
    if isinstance(cn, bytes):
        cn = cn.decode("utf-8")
    return cn


def generate_certification_request(
    dn: str,
    private_key: RSAPrivateKey,
    hash_algorithm: hashes.HashAlgorithm | None = None,
) -> x509.CertificateSigningRequest:
    """Build a CSR for dn, self-signed with private_key."""
    return (
        x509.CertificateSigningRequestBuilder()
        .subject_name(parse_dn(dn))
        .sign(private_key, hash_algorithm or hashes.SHA256())
    )


def validate_csr_signature(csr: x509.CertificateSigningRequest) -> bool:
    """Verify CSR self-signature to prove private key possession.

    Args:
        csr: Certificate signing request

    Returns:
        True if signature is valid, False otherwise
    """
    try:
        return csr.is_signature_valid
    except Exception:
        return False


def validate_certificate_chain(chain: list[x509.Certificate]) -> bool:
    """Verify each certificate in a leaf-first chain was issued by the next.

    A single self-signed certificate at the end is checked against itself.

    Returns True if chain is valid, False otherwise.
    """
    if not chain:
        return False
    try:
        for cert, issuer in zip(chain, chain[1:]):
            cert.verify_directly_issued_by(issuer)
        last = chain[-1]
        if last.issuer == last.subject:
            last.verify_directly_issued_by(last)
        return True
    except Exception:
        return False
