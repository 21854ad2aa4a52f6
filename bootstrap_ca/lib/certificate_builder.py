"""Certificate builder for the CA certificate and issued host certificates."""

from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.asymmetric.types import CertificatePublicKeyTypes
from cryptography.x509.oid import ExtendedKeyUsageOID

from .cert_utils import generate_serial_number

_CLIENT_AND_SERVER_AUTH = x509.ExtendedKeyUsage(
    [ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH]
)


class CertificateBuilder:
    """Builds X.509 certificates for the bootstrap CA and the hosts it signs."""

    @staticmethod
    def build_self_signed_ca(
        subject: x509.Name,
        private_key: RSAPrivateKey,
        validity_days: int,
        hash_algorithm: hashes.HashAlgorithm | None = None,
    ) -> x509.Certificate:
        """Build the self-signed CA certificate.

        The CA certificate doubles as the TLS server certificate of the remote
        CA, so it carries server and client auth extended key usage alongside
        the CA key usages.

        Args:
            subject: Distinguished name for certificate subject and issuer
            private_key: RSA private key for signing
            validity_days: Certificate validity period in days
            hash_algorithm: Signature hash, SHA256 when omitted

        Returns:
            Self-signed X.509 certificate with CA extensions
        """
        public_key = private_key.public_key()
        not_before = datetime.now(timezone.utc)
        not_after = not_before + timedelta(days=validity_days)

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(public_key)
            .serial_number(generate_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=True,
                    key_encipherment=True,
                    data_encipherment=True,
                    key_agreement=True,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.BasicConstraints(ca=True, path_length=None),
                critical=False,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(public_key),
                critical=False,
            )
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(public_key),
                critical=False,
            )
            .add_extension(_CLIENT_AND_SERVER_AUTH, critical=False)
        )

        return builder.sign(private_key, hash_algorithm or hashes.SHA256())

    @staticmethod
    def build_issued_certificate(
        subject: x509.Name,
        public_key: CertificatePublicKeyTypes,
        issuer_cert: x509.Certificate,
        issuer_key: RSAPrivateKey,
        validity_days: int,
        hash_algorithm: hashes.HashAlgorithm | None = None,
    ) -> x509.Certificate:
        """Build an end-entity certificate for a host, signed by the CA.

        Args:
            subject: Subject DN taken from the host's CSR
            public_key: Public key taken from the host's CSR
            issuer_cert: CA certificate (issuer)
            issuer_key: CA private key for signing
            validity_days: Certificate validity period in days
            hash_algorithm: Signature hash, SHA256 when omitted

        Returns:
            X.509 end-entity certificate valid for client and server auth
        """
        not_before = datetime.now(timezone.utc)
        not_after = not_before + timedelta(days=validity_days)

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer_cert.subject)
            .public_key(public_key)
            .serial_number(generate_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(public_key),
                critical=False,
            )
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
                critical=False,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=True,
                    key_encipherment=True,
                    data_encipherment=True,
                    key_agreement=True,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.BasicConstraints(ca=False, path_length=None),
                critical=False,
            )
            .add_extension(_CLIENT_AND_SERVER_AUTH, critical=False)
        )

        return builder.sign(issuer_key, hash_algorithm or hashes.SHA256())
