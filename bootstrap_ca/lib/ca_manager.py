"""CA manager: loads or generates CA material and persists issued chains."""

from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .cert_utils import (
    deserialize_certificate_chain,
    deserialize_private_key,
    generate_private_key,
    parse_dn,
    serialize_certificate,
    serialize_certificate_chain,
    serialize_private_key,
)
from .certificate_authority import LocalCertificateAuthority
from .certificate_builder import CertificateBuilder
from .config import ServerConfig
from .logging_config import LOGGER
from .models import IssuedCertificate, ServerKeyStore

CA_KEY_FILENAME = "ca.key"
CA_CERT_FILENAME = "ca.pem"


@dataclass
class IssuedCertificateFiles:
    """Paths written for an issued certificate."""

    key_path: Path
    cert_path: Path
    chain_path: Path


class CertificateAuthorityManager:
    """Owns the CA key pair and certificate chain for a server.

    On first use the CA key and a self-signed CA certificate are generated
    from the configured DN and written to the CA directory; later runs reuse
    them.
    """

    def __init__(self, config: ServerConfig, ca_dir: Path | None = None) -> None:
        """Initialize CA manager, generating CA material if missing.

        Args:
            config: Server configuration with DN, key store password and
                certificate generation settings
            ca_dir: Directory holding the CA files, config.ca_dir when omitted
        """
        self.config = config
        self.ca_dir = ca_dir if ca_dir is not None else Path(config.ca_dir)
        self.key_path = self.ca_dir / CA_KEY_FILENAME
        self.cert_path = self.ca_dir / CA_CERT_FILENAME
        self.ca_key, self.ca_chain = self._load_or_generate()

    @property
    def ca_certificate(self) -> x509.Certificate:
        return self.ca_chain[0]

    def _load_or_generate(self) -> tuple[RSAPrivateKey, list[x509.Certificate]]:
        password = self.config.key_store_password

        if self.key_path.exists() and self.cert_path.exists():
            key = deserialize_private_key(self.key_path.read_bytes(), password)
            chain = deserialize_certificate_chain(self.cert_path.read_bytes())
            LOGGER.info("Using existing CA certificate with dn %s", chain[0].subject.rfc4514_string())
            return key, chain

        if self.key_path.exists() or self.cert_path.exists():
            raise FileNotFoundError(
                f"incomplete CA material in {self.ca_dir}: need both {CA_KEY_FILENAME} and {CA_CERT_FILENAME}"
            )

        generation = self.config.generation
        LOGGER.info("Generating new CA certificate with dn %s", self.config.dn)
        key = generate_private_key(generation.key_size)
        cert = CertificateBuilder.build_self_signed_ca(
            subject=parse_dn(self.config.dn),
            private_key=key,
            validity_days=generation.days,
            hash_algorithm=generation.hash_algorithm(),
        )

        self.ca_dir.mkdir(parents=True, exist_ok=True)
        self.key_path.write_bytes(serialize_private_key(key, password))
        self.key_path.chmod(0o600)
        self.cert_path.write_bytes(serialize_certificate(cert))
        return key, [cert]

    def local_certificate_authority(self) -> LocalCertificateAuthority:
        generation = self.config.generation
        return LocalCertificateAuthority(
            ca_chain=self.ca_chain,
            ca_key=self.ca_key,
            hash_algorithm=generation.hash_algorithm(),
            days=generation.days,
        )

    def server_key_store(self) -> ServerKeyStore:
        """TLS identity for the server: the CA key and CA chain themselves."""
        return ServerKeyStore(
            private_key_pem=self.key_path.read_bytes(),
            certificate_chain_pem=serialize_certificate_chain(self.ca_chain),
        )


def write_issued_certificate(
    issued: IssuedCertificate,
    output_dir: Path,
    key_password: str | None = None,
) -> IssuedCertificateFiles:
    """Write an issued key, its leaf certificate and the full chain as PEM.

    Generates:
        {output_dir}/host.key    - private key (encrypted when a password is given)
        {output_dir}/host.pem    - leaf certificate
        {output_dir}/chain.pem   - leaf followed by the CA chain

    Args:
        issued: Key and certificate chain returned by the remote client
        output_dir: Directory to write into, created if missing
        key_password: Optional password protecting the private key

    Returns:
        IssuedCertificateFiles with the written paths
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    key_path = output_dir / "host.key"
    cert_path = output_dir / "host.pem"
    chain_path = output_dir / "chain.pem"

    key_path.write_bytes(serialize_private_key(issued.private_key, key_password))
    key_path.chmod(0o600)
    cert_path.write_bytes(serialize_certificate(issued.certificate))
    chain_path.write_bytes(serialize_certificate_chain(issued.certificate_chain))

    return IssuedCertificateFiles(key_path=key_path, cert_path=cert_path, chain_path=chain_path)
