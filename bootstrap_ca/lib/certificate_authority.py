"""Certificate authority interface and the in-process signer."""

from abc import ABC, abstractmethod

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .cert_utils import validate_csr_signature
from .certificate_builder import CertificateBuilder
from .exceptions import CSRSignatureError, SigningError
from .logging_config import LOGGER


class CertificateAuthority(ABC):
    """Anything that turns a CSR into a signed certificate chain."""

    @abstractmethod
    def sign(self, csr: x509.CertificateSigningRequest) -> list[x509.Certificate]:
        """Sign a certificate signing request.

        Returns:
            Certificate chain ordered leaf first, at least the signed leaf
            followed by the CA certificate

        Raises:
            SecurityError: If the request or the issuer cannot be authenticated
            SigningError: On underlying cryptographic failure
        """


class LocalCertificateAuthority(CertificateAuthority):
    """Signs requests in-process with the CA key.

    Holds only immutable CA material, so one instance may serve concurrent
    requests.
    """

    def __init__(
        self,
        ca_chain: list[x509.Certificate],
        ca_key: RSAPrivateKey,
        hash_algorithm: hashes.HashAlgorithm,
        days: int,
    ) -> None:
        if not ca_chain:
            raise ValueError("CA certificate chain must not be empty")
        self.ca_chain = list(ca_chain)
        self.ca_key = ca_key
        self.hash_algorithm = hash_algorithm
        self.days = days

    @property
    def ca_certificate(self) -> x509.Certificate:
        return self.ca_chain[0]

    def sign(self, csr: x509.CertificateSigningRequest) -> list[x509.Certificate]:
        if not validate_csr_signature(csr):
            raise CSRSignatureError("CSR signature validation failed")

        try:
            leaf = CertificateBuilder.build_issued_certificate(
                subject=csr.subject,
                public_key=csr.public_key(),
                issuer_cert=self.ca_certificate,
                issuer_key=self.ca_key,
                validity_days=self.days,
                hash_algorithm=self.hash_algorithm,
            )
        except (ValueError, TypeError) as e:
            raise SigningError(f"unable to sign certificate for {csr.subject.rfc4514_string()}") from e

        LOGGER.info(
            "Issued certificate for %s (serial %X)", leaf.subject.rfc4514_string(), leaf.serial_number
        )
        return [leaf, *self.ca_chain]
