"""Trust-capture TLS connections used by the remote CA client.

The client has no trust anchor for the CA yet, so the TLS layer here accepts
any server certificate. This is a property of the bootstrap protocol and not
a recommendation for TLS in general: every connection records the chain the
server presented, rejects a leaf whose CN is not the expected CA hostname,
and the client then authenticates the captured CA public key through the
token HMAC carried in the response. A connection whose HMAC check has not
passed must not be trusted.
"""

import http.client
import ssl
import threading

from cryptography import x509

from .cert_utils import get_common_name
from .exceptions import ProtocolError
from .logging_config import LOGGER


def create_trust_deferring_context() -> ssl.SSLContext:
    """Return a client TLS context that accepts any server certificate."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    # Identity is checked by the caller against the token HMAC instead.
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def peer_certificate_chain(sock: ssl.SSLSocket) -> list[x509.Certificate]:
    """Extract the certificate chain presented by the TLS peer, leaf first.

    Uses the full unverified chain where the interpreter exposes it and falls
    back to the leaf certificate otherwise.

    Raises:
        ProtocolError: If the socket is not TLS, the chain is empty, or a
            certificate cannot be parsed as X.509
    """
    if not isinstance(sock, ssl.SSLSocket):
        raise ProtocolError("Expected tls socket")

    get_unverified_chain = getattr(sock, "get_unverified_chain", None)
    der_chain = list(get_unverified_chain() or []) if get_unverified_chain else []
    if not der_chain:
        leaf = sock.getpeercert(binary_form=True)
        if leaf:
            der_chain = [leaf]

    if not der_chain:
        raise ProtocolError("Expected at least one certificate in peer certificate chain")

    try:
        return [x509.load_der_x509_certificate(der) for der in der_chain]
    except (TypeError, ValueError) as e:
        raise ProtocolError("Expected certificate chain in X509 format") from e


def verify_peer_identity(chain: list[x509.Certificate], expected_hostname: str) -> None:
    """Check that the leaf CN equals the expected CA hostname, exactly.

    Raises:
        ProtocolError: On a missing CN or any mismatch
    """
    try:
        cn = get_common_name(chain[0])
    except (IndexError, ValueError) as e:
        raise ProtocolError("unexpected identity: peer certificate has no common name") from e
    if cn != expected_hostname:
        raise ProtocolError(f"unexpected identity: expected cn of {expected_hostname} but got {cn}")


class TrustCaptureConnection(http.client.HTTPSConnection):
    """HTTPS connection that captures and sanity-checks the server chain.

    Each successful handshake appends the presented chain to this
    connection's captured_chains, so the capture belongs to the request that
    owns the connection and never leaks into another request.
    """

    def __init__(
        self,
        host: str,
        port: int,
        expected_hostname: str | None = None,
        timeout: float | None = 30.0,
        context: ssl.SSLContext | None = None,
    ) -> None:
        super().__init__(host, port, timeout=timeout, context=context or create_trust_deferring_context())
        self.expected_hostname = expected_hostname or host
        self._lock = threading.Lock()
        self._captured_chains: list[list[x509.Certificate]] = []

    @property
    def captured_chains(self) -> list[list[x509.Certificate]]:
        with self._lock:
            return [list(chain) for chain in self._captured_chains]

    def connect(self) -> None:
        super().connect()
        try:
            chain = peer_certificate_chain(self.sock)
            verify_peer_identity(chain, self.expected_hostname)
        except ProtocolError:
            self.close()
            raise

        LOGGER.debug(
            "Captured %d certificate(s) from %s:%s", len(chain), self.host, self.port
        )
        with self._lock:
            self._captured_chains.append(chain)
