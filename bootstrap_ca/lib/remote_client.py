"""Client side of the bootstrap CA protocol.

Flow for one issuance:
1. Generate a key pair and CSR for the requested DN
2. Send the CSR with HMAC(token, CSR public key) over a trust-capture connection
3. Check the response HMAC against HMAC(token, captured CA public key)
4. Verify the captured CA chain and that the returned leaf was signed by it
5. Return the leaf followed by the captured CA chain
"""

import http.client
from collections.abc import Callable

from cryptography import x509

from .authentication import calculate_hmac, hmac_matches
from .cert_utils import (
    deserialize_certificate,
    generate_certification_request,
    generate_private_key,
    serialize_csr,
    validate_certificate_chain,
)
from .certificate_authority import CertificateAuthority
from .config import MAX_BODY_SIZE, CertificateGenerationConfig
from .connector import TrustCaptureConnection
from .exceptions import (
    CertificateAuthorityError,
    HmacMismatchError,
    ProtocolError,
    SecurityError,
    TransportError,
)
from .logging_config import LOGGER
from .models import (
    AuthenticatedRequest,
    AuthenticatedResponse,
    IssuanceState,
    IssuanceTracker,
    IssuedCertificate,
)

RECEIVED_RESPONSE_CODE = "Received response code"
EXPECTED_ONE_CERTIFICATE_CHAIN = "Expected one certificate chain"
RESPONSE_MISSING_AUTHENTICATION = "response missing authentication"
RESPONSE_MISSING_CERTIFICATE = "response missing certificate"
POSSIBLE_INTERCEPTION = "Unexpected hmac received, possible interception"
UNVERIFIABLE_CA_CHAIN = "Certificate authority chain does not verify"
LEAF_NOT_SIGNED_BY_CA = "Issued certificate was not signed by the certificate authority"

ConnectionFactory = Callable[[str, int, float | None], TrustCaptureConnection]


def _default_connection_factory(host: str, port: int, timeout: float | None) -> TrustCaptureConnection:
    return TrustCaptureConnection(host, port, expected_hostname=host, timeout=timeout)


class RemoteCertificateAuthorityClient(CertificateAuthority):
    """Obtains certificates from a remote CA that shares the token.

    Every call opens its own connection, so the captured CA chain is scoped
    to that call. Failures are terminal for the call; nothing is retried.
    """

    def __init__(
        self,
        ca_hostname: str,
        port: int,
        token: str,
        timeout: float | None = 30.0,
        generation: CertificateGenerationConfig | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self.ca_hostname = ca_hostname
        self.port = port
        self._token = token
        self.timeout = timeout
        self.generation = generation or CertificateGenerationConfig()
        self._connection_factory = connection_factory or _default_connection_factory

    def request_certificate(self, dn: str) -> IssuedCertificate:
        """Generate a fresh key pair for dn and have the remote CA sign it."""
        tracker = IssuanceTracker(dn)
        try:
            private_key = generate_private_key(self.generation.key_size)
            csr = generate_certification_request(dn, private_key, self.generation.hash_algorithm())
        except Exception:
            self._advance(tracker, IssuanceState.REJECTED)
            raise
        self._advance(tracker, IssuanceState.KEY_GENERATED)

        return IssuedCertificate(private_key=private_key, certificate_chain=self._sign(csr, tracker))

    def sign(self, csr: x509.CertificateSigningRequest) -> list[x509.Certificate]:
        tracker = IssuanceTracker(csr.subject.rfc4514_string(), state=IssuanceState.KEY_GENERATED)
        return self._sign(csr, tracker)

    def _sign(self, csr: x509.CertificateSigningRequest, tracker: IssuanceTracker) -> list[x509.Certificate]:
        try:
            chain = self._issue(csr, tracker)
        except Exception:
            self._advance(tracker, IssuanceState.REJECTED)
            raise

        self._advance(tracker, IssuanceState.VALIDATED)
        LOGGER.info("Got certificate with dn %s", chain[0].subject.rfc4514_string())
        return chain

    def _issue(self, csr: x509.CertificateSigningRequest, tracker: IssuanceTracker) -> list[x509.Certificate]:
        request = AuthenticatedRequest(
            hmac=calculate_hmac(self._token, csr.public_key()),
            csr=serialize_csr(csr).decode("ascii"),
        )

        LOGGER.info("Requesting certificate with dn %s from %s:%s", tracker.dn, self.ca_hostname, self.port)
        status, body, captured_chains = self._exchange(request.to_json(), tracker)
        return self._validate_response(status, body, captured_chains)

    @staticmethod
    def _advance(tracker: IssuanceTracker, state: IssuanceState) -> None:
        tracker.advance(state)
        log = LOGGER.warning if state is IssuanceState.REJECTED else LOGGER.debug
        log("Issuance for %s: %s", tracker.dn, state.value)

    def _exchange(
        self, payload: bytes, tracker: IssuanceTracker
    ) -> tuple[int, bytes, list[list[x509.Certificate]]]:
        """POST payload over a fresh trust-capture connection.

        Returns:
            Tuple of (status code, body truncated to MAX_BODY_SIZE, captured chains)
        """
        connection = self._connection_factory(self.ca_hostname, self.port, self.timeout)
        try:
            connection.request(
                "POST",
                "/",
                body=payload,
                headers={"Content-Type": "application/json"},
            )
            self._advance(tracker, IssuanceState.REQUEST_SENT)
            response = connection.getresponse()
            body = response.read(MAX_BODY_SIZE)
            self._advance(tracker, IssuanceState.RESPONSE_RECEIVED)
            return response.status, body, connection.captured_chains
        except CertificateAuthorityError:
            raise
        except (OSError, http.client.HTTPException) as e:
            raise TransportError(
                f"Unable to reach certificate authority at {self.ca_hostname}:{self.port}: {e}"
            ) from e
        finally:
            connection.close()

    def _validate_response(
        self,
        status: int,
        body: bytes,
        captured_chains: list[list[x509.Certificate]],
    ) -> list[x509.Certificate]:
        if status != http.client.OK:
            raise TransportError(
                f"{RECEIVED_RESPONSE_CODE} {status} with payload {body.decode('utf-8', 'replace')}"
            )

        if len(captured_chains) != 1:
            raise ProtocolError(EXPECTED_ONE_CERTIFICATE_CHAIN)

        response = AuthenticatedResponse.from_json(body)
        if not response.has_hmac():
            raise ProtocolError(RESPONSE_MISSING_AUTHENTICATION)
        if not response.has_certificate():
            raise ProtocolError(RESPONSE_MISSING_CERTIFICATE)

        ca_chain = captured_chains[0]
        ca_certificate = ca_chain[0]
        expected_hmac = calculate_hmac(self._token, ca_certificate.public_key())
        if not hmac_matches(expected_hmac, response.hmac or b""):
            raise HmacMismatchError(POSSIBLE_INTERCEPTION)

        try:
            leaf = deserialize_certificate(response.certificate.encode("utf-8"))
        except ValueError as e:
            raise ProtocolError("Expected PEM encoded certificate in response") from e

        if not validate_certificate_chain(ca_chain):
            raise SecurityError(UNVERIFIABLE_CA_CHAIN)
        chain = [leaf, *ca_chain]
        if not validate_certificate_chain(chain):
            raise SecurityError(LEAF_NOT_SIGNED_BY_CA)

        return chain
