"""Wire and result models for the bootstrap CA protocol."""

import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NotRequired, TypedDict

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .exceptions import ProtocolError


def _encode_bytes(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _decode_bytes(value: Any, field_name: str) -> bytes | None:
    """Decode an optional base64 field, rejecting anything that is not a string."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ProtocolError(f"{field_name} must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProtocolError(f"{field_name} is not valid base64") from e


def _optional_str(value: Any, field_name: str) -> str | None:
    if value is None or isinstance(value, str):
        return value
    raise ProtocolError(f"{field_name} must be a string")


def _load_object(data: bytes | str) -> dict[str, Any]:
    try:
        payload = json.loads(data)
    except (UnicodeDecodeError, ValueError) as e:
        raise ProtocolError("payload is not valid JSON") from e
    except RecursionError as e:
        raise ProtocolError("payload is nested too deeply") from e
    if not isinstance(payload, dict):
        raise ProtocolError("payload must be a JSON object")
    return payload


@dataclass(frozen=True)
class AuthenticatedRequest:
    """Client request: HMAC of the CSR public key plus the PEM encoded CSR."""

    hmac: bytes | None = None
    csr: str | None = None

    def has_hmac(self) -> bool:
        return bool(self.hmac)

    def has_csr(self) -> bool:
        return bool(self.csr)

    def to_json(self) -> bytes:
        payload: dict[str, str] = {}
        if self.hmac is not None:
            payload["hmac"] = _encode_bytes(self.hmac)
        if self.csr is not None:
            payload["csr"] = self.csr
        return json.dumps(payload).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> "AuthenticatedRequest":
        """Parse a request body.

        Raises:
            ProtocolError: If the body is not a JSON object of the expected shape
        """
        payload = _load_object(data)
        return cls(
            hmac=_decode_bytes(payload.get("hmac"), "hmac"),
            csr=_optional_str(payload.get("csr"), "csr"),
        )


@dataclass(frozen=True)
class AuthenticatedResponse:
    """Server response: HMAC of the CA public key plus the signed leaf, or an error."""

    hmac: bytes | None = None
    certificate: str | None = None
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> "AuthenticatedResponse":
        return cls(error=error)

    def has_hmac(self) -> bool:
        return bool(self.hmac)

    def has_certificate(self) -> bool:
        return bool(self.certificate)

    def to_dict(self) -> dict[str, str]:
        payload: dict[str, str] = {}
        if self.hmac is not None:
            payload["hmac"] = _encode_bytes(self.hmac)
        if self.certificate is not None:
            payload["certificate"] = self.certificate
        if self.error is not None:
            payload["error"] = self.error
        return payload

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> "AuthenticatedResponse":
        """Parse a response body.

        Raises:
            ProtocolError: If the body is not a JSON object of the expected shape
        """
        payload = _load_object(data)
        return cls(
            hmac=_decode_bytes(payload.get("hmac"), "hmac"),
            certificate=_optional_str(payload.get("certificate"), "certificate"),
            error=_optional_str(payload.get("error"), "error"),
        )


class HandlerResponse(TypedDict):
    """HTTP response produced by the request handler."""

    statusCode: int
    headers: NotRequired[dict[str, str]]
    body: NotRequired[str]


class IssuanceState(Enum):
    """Progress of a single remote issuance."""

    INIT = "init"
    KEY_GENERATED = "key_generated"
    REQUEST_SENT = "request_sent"
    RESPONSE_RECEIVED = "response_received"
    VALIDATED = "validated"
    REJECTED = "rejected"


# Any non-terminal state may fail into REJECTED
ISSUANCE_TRANSITIONS: dict[IssuanceState, frozenset[IssuanceState]] = {
    IssuanceState.INIT: frozenset({IssuanceState.KEY_GENERATED, IssuanceState.REJECTED}),
    IssuanceState.KEY_GENERATED: frozenset({IssuanceState.REQUEST_SENT, IssuanceState.REJECTED}),
    IssuanceState.REQUEST_SENT: frozenset({IssuanceState.RESPONSE_RECEIVED, IssuanceState.REJECTED}),
    IssuanceState.RESPONSE_RECEIVED: frozenset({IssuanceState.VALIDATED, IssuanceState.REJECTED}),
    IssuanceState.VALIDATED: frozenset(),
    IssuanceState.REJECTED: frozenset(),
}


@dataclass
class IssuanceTracker:
    """State of one remote issuance.

    Each call to the client owns its own tracker, so concurrent issuances never
    share state. history records every state entered, starting with the
    initial one.
    """

    dn: str
    state: IssuanceState = IssuanceState.INIT
    history: list[IssuanceState] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(self.state)

    @property
    def finished(self) -> bool:
        return not ISSUANCE_TRANSITIONS[self.state]

    def advance(self, state: IssuanceState) -> None:
        """Move to state.

        Raises:
            ValueError: If state is not reachable from the current state
        """
        if state not in ISSUANCE_TRANSITIONS[self.state]:
            raise ValueError(f"illegal issuance transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


@dataclass
class IssuedCertificate:
    """Result of a remote issuance: the host key and its chain, leaf first."""

    private_key: RSAPrivateKey
    certificate_chain: list[x509.Certificate]

    @property
    def certificate(self) -> x509.Certificate:
        return self.certificate_chain[0]


@dataclass(frozen=True)
class ServerKeyStore:
    """TLS identity presented by the remote CA server.

    private_key_pem may be encrypted; the server is given the password
    separately. certificate_chain_pem holds the chain, leaf first.
    """

    private_key_pem: bytes
    certificate_chain_pem: bytes
