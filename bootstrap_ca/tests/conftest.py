"""Test fixtures for bootstrap_ca tests."""

from collections.abc import Callable, Generator

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from bootstrap_ca.lib.authentication import calculate_hmac
from bootstrap_ca.lib.cert_utils import (
    generate_certification_request,
    generate_private_key,
    parse_dn,
    serialize_certificate,
    serialize_csr,
    serialize_private_key,
)
from bootstrap_ca.lib.certificate_authority import LocalCertificateAuthority
from bootstrap_ca.lib.certificate_builder import CertificateBuilder
from bootstrap_ca.lib.config import CertificateGenerationConfig
from bootstrap_ca.lib.models import AuthenticatedRequest, ServerKeyStore
from bootstrap_ca.lib.request_handler import CertificateAuthorityRequestHandler
from bootstrap_ca.lib.server import RemoteCertificateAuthorityServer

CA_HOSTNAME = "localhost"
CA_DN = "CN=localhost, OU=NIFI"


@pytest.fixture
def token() -> str:
    """Return the shared token used by CA and clients."""
    return "shared-secret"


@pytest.fixture
def generation() -> CertificateGenerationConfig:
    """Return certificate generation settings with small keys for speed."""
    return CertificateGenerationConfig(key_size=2048, days=30)


@pytest.fixture
def ca_key() -> RSAPrivateKey:
    """Generate RSA private key for the CA."""
    return generate_private_key(key_size=2048)


@pytest.fixture
def ca_cert(ca_key: RSAPrivateKey) -> x509.Certificate:
    """Generate self-signed CA certificate whose CN is the CA hostname."""
    return CertificateBuilder.build_self_signed_ca(
        subject=parse_dn(CA_DN),
        private_key=ca_key,
        validity_days=30,
    )


@pytest.fixture
def local_ca(ca_cert: x509.Certificate, ca_key: RSAPrivateKey) -> LocalCertificateAuthority:
    """Return in-process CA signing with the test CA key."""
    return LocalCertificateAuthority(
        ca_chain=[ca_cert],
        ca_key=ca_key,
        hash_algorithm=hashes.SHA256(),
        days=30,
    )


@pytest.fixture
def host_key() -> RSAPrivateKey:
    """Generate RSA private key for a requesting host."""
    return generate_private_key(key_size=2048)


@pytest.fixture
def host_csr(host_key: RSAPrivateKey) -> x509.CertificateSigningRequest:
    """Generate CSR for CN=host1."""
    return generate_certification_request("CN=host1", host_key)


@pytest.fixture
def request_handler(
    local_ca: LocalCertificateAuthority,
    ca_cert: x509.Certificate,
    token: str,
) -> CertificateAuthorityRequestHandler:
    """Return request handler delegating to the local CA."""
    return CertificateAuthorityRequestHandler(local_ca, ca_cert.public_key(), token)


@pytest.fixture
def key_store(ca_key: RSAPrivateKey, ca_cert: x509.Certificate) -> ServerKeyStore:
    """Return TLS key store presenting the CA certificate."""
    return ServerKeyStore(
        private_key_pem=serialize_private_key(ca_key),
        certificate_chain_pem=serialize_certificate(ca_cert),
    )


@pytest.fixture
def running_server(
    key_store: ServerKeyStore,
    local_ca: LocalCertificateAuthority,
    ca_cert: x509.Certificate,
    token: str,
) -> Generator[RemoteCertificateAuthorityServer, None, None]:
    """Start a CA server on an ephemeral localhost port, shut down afterwards."""
    server = RemoteCertificateAuthorityServer(port=0, key_store=key_store, host="127.0.0.1")
    server.start(local_ca, ca_cert.public_key(), token)
    yield server
    server.shutdown()


@pytest.fixture
def build_request_body() -> Callable[[str, x509.CertificateSigningRequest], bytes]:
    """Return a function serializing a request for a CSR, authenticated with a token."""

    def _build(token: str, csr: x509.CertificateSigningRequest) -> bytes:
        return AuthenticatedRequest(
            hmac=calculate_hmac(token, csr.public_key()),
            csr=serialize_csr(csr).decode("ascii"),
        ).to_json()

    return _build
