"""Server side request handling for the bootstrap CA protocol."""

import json

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric.types import CertificatePublicKeyTypes

from .authentication import calculate_hmac, hmac_matches
from .cert_utils import deserialize_csr, serialize_certificate
from .certificate_authority import CertificateAuthority
from .config import MAX_BODY_SIZE
from .exceptions import ProtocolError, SecurityError
from .logging_config import LOGGER
from .models import AuthenticatedRequest, AuthenticatedResponse, HandlerResponse

HMAC_FIELD_MUST_BE_SET = "hmac field must be set"
CSR_FIELD_MUST_BE_SET = "csr field must be set"
FORBIDDEN = "forbidden"
MALFORMED_REQUEST = "malformed request"
REQUEST_TOO_LARGE = "request body too large"
SERVER_ERROR = "server error"


def json_response(status_code: int, response: AuthenticatedResponse) -> HandlerResponse:
    """Build JSON HTTP response.

    Args:
        status_code: HTTP status code
        response: Response model to serialize as body

    Returns:
        Handler response
    """
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(response.to_dict()),
    }


def error_response(status_code: int, error: str) -> HandlerResponse:
    return json_response(status_code, AuthenticatedResponse.failure(error))


class CertificateAuthorityRequestHandler:
    """Validates authenticated requests and delegates signing.

    Holds only the delegate, the token and the precomputed response HMAC, so
    a single instance serves concurrent requests without shared per-request
    state.
    """

    def __init__(
        self,
        delegate: CertificateAuthority,
        ca_public_key: CertificatePublicKeyTypes,
        token: str,
    ) -> None:
        self.delegate = delegate
        self._token = token
        self._response_hmac = calculate_hmac(token, ca_public_key)

    def handle(self, body: bytes, remote_address: str = "-") -> HandlerResponse:
        """Answer one request body with a JSON response.

        Flow:
        1. Reject oversized or malformed bodies (400)
        2. Require hmac then csr fields (400)
        3. Check HMAC(token, CSR public key) in constant time (403 on mismatch)
        4. Sign through the delegate and return the leaf with the CA HMAC (200)
        Any unexpected failure becomes an opaque 500.
        """
        try:
            response = self._handle(body)
        except Exception:
            LOGGER.exception("Unexpected failure handling request from %s", remote_address)
            response = error_response(500, SERVER_ERROR)
        LOGGER.info("Returning code %d to %s", response["statusCode"], remote_address)
        return response

    def _handle(self, body: bytes) -> HandlerResponse:
        if len(body) > MAX_BODY_SIZE:
            return error_response(400, REQUEST_TOO_LARGE)

        try:
            request = AuthenticatedRequest.from_json(body)
        except ProtocolError as e:
            LOGGER.warning("Rejecting malformed request: %s", e)
            return error_response(400, MALFORMED_REQUEST)

        if not request.has_hmac():
            return error_response(400, HMAC_FIELD_MUST_BE_SET)
        if not request.has_csr():
            return error_response(400, CSR_FIELD_MUST_BE_SET)

        try:
            csr = deserialize_csr(request.csr.encode("utf-8"))
            csr_public_key = csr.public_key()
        except (ValueError, UnsupportedAlgorithm) as e:
            LOGGER.warning("Rejecting unparsable CSR: %s", e)
            return error_response(400, MALFORMED_REQUEST)

        expected_hmac = calculate_hmac(self._token, csr_public_key)
        if not hmac_matches(expected_hmac, request.hmac or b""):
            return error_response(403, FORBIDDEN)

        dn = csr.subject.rfc4514_string()
        LOGGER.info("Received CSR with DN %s", dn)

        try:
            chain = self.delegate.sign(csr)
        except SecurityError as e:
            LOGGER.warning("Refusing to sign CSR with DN %s: %s", dn, e)
            return error_response(403, FORBIDDEN)
        except Exception:
            LOGGER.exception("Unexpected failure signing CSR with DN %s", dn)
            return error_response(500, SERVER_ERROR)

        return json_response(
            200,
            AuthenticatedResponse(
                hmac=self._response_hmac,
                certificate=serialize_certificate(chain[0]).decode("ascii"),
            ),
        )
