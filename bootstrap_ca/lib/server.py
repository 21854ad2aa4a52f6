"""TLS terminating HTTP server for the bootstrap CA."""

import ssl
import tempfile
import threading
from enum import Enum
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric.types import CertificatePublicKeyTypes

from .certificate_authority import CertificateAuthority
from .config import MAX_BODY_SIZE
from .exceptions import ServerStateError
from .logging_config import LOGGER
from .models import HandlerResponse, ServerKeyStore
from .request_handler import CertificateAuthorityRequestHandler


class ServerState(Enum):
    """Lifecycle of the remote CA server."""

    STOPPED = "stopped"
    RUNNING = "running"


class _HTTPRequestHandler(BaseHTTPRequestHandler):
    """Moves bodies between HTTP and the CA request handler."""

    server: "_CertificateAuthorityHTTPServer"
    protocol_version = "HTTP/1.1"

    def do_POST(self) -> None:
        try:
            length = int(self.headers.get("Content-Length", "0"))
        except ValueError:
            length = 0

        # Read at most one byte past the limit so oversized bodies are
        # rejected without being buffered.
        body = self.rfile.read(max(0, min(length, MAX_BODY_SIZE + 1)))
        if length > MAX_BODY_SIZE:
            self.close_connection = True

        response = self.server.ca_handler.handle(body, remote_address=self.client_address[0])
        self._write_response(response)

    def _write_response(self, response: HandlerResponse) -> None:
        encoded = response.get("body", "").encode("utf-8")
        self.send_response(response["statusCode"])
        for name, value in response.get("headers", {}).items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def log_message(self, format: str, *args) -> None:
        LOGGER.debug("%s - " + format, self.address_string(), *args)


class _CertificateAuthorityHTTPServer(ThreadingHTTPServer):
    """Threading HTTP server that runs the TLS handshake on the worker thread."""

    daemon_threads = True

    def __init__(
        self,
        server_address: tuple[str, int],
        ssl_context: ssl.SSLContext,
        ca_handler: CertificateAuthorityRequestHandler,
    ) -> None:
        self.ssl_context = ssl_context
        self.ca_handler = ca_handler
        super().__init__(server_address, _HTTPRequestHandler)

    def finish_request(self, request, client_address) -> None:
        with self.ssl_context.wrap_socket(request, server_side=True) as tls_request:
            super().finish_request(tls_request, client_address)

    def handle_error(self, request, client_address) -> None:
        LOGGER.warning("Connection from %s failed", client_address[0], exc_info=True)


class RemoteCertificateAuthorityServer:
    """Serves the bootstrap CA protocol over HTTPS.

    Bound at construction to a port and the TLS key store. start and shutdown
    move between the STOPPED and RUNNING states; starting a running server or
    shutting down a stopped one raises ServerStateError.
    """

    def __init__(
        self,
        port: int,
        key_store: ServerKeyStore,
        key_store_password: str | None = None,
        host: str = "",
    ) -> None:
        self.host = host
        self._port = port
        self._key_store = key_store
        self._key_store_password = key_store_password
        self._lock = threading.Lock()
        self._state = ServerState.STOPPED
        self._httpd: _CertificateAuthorityHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def port(self) -> int:
        """Bound port while running (resolves port 0), configured port otherwise."""
        httpd = self._httpd
        if httpd is not None:
            return httpd.server_address[1]
        return self._port

    def start(
        self,
        delegate: CertificateAuthority,
        ca_public_key: CertificatePublicKeyTypes,
        token: str,
    ) -> None:
        """Start serving in a background thread.

        Raises:
            ServerStateError: If the server is already running
        """
        with self._lock:
            if self._state is ServerState.RUNNING:
                raise ServerStateError("Server already started")

            handler = CertificateAuthorityRequestHandler(delegate, ca_public_key, token)
            httpd = _CertificateAuthorityHTTPServer(
                (self.host, self._port), self._create_ssl_context(), handler
            )
            thread = threading.Thread(
                target=httpd.serve_forever, name="bootstrap-ca-server", daemon=True
            )
            thread.start()

            self._httpd = httpd
            self._thread = thread
            self._state = ServerState.RUNNING

        LOGGER.info("Certificate authority listening on port %d", self.port)

    def shutdown(self) -> None:
        """Stop serving and wait for the server thread.

        Raises:
            ServerStateError: If the server is not running
        """
        with self._lock:
            httpd, thread = self._httpd, self._thread
            if self._state is ServerState.STOPPED or httpd is None or thread is None:
                raise ServerStateError("Server already shutdown")

            httpd.shutdown()
            httpd.server_close()
            thread.join()

            self._httpd = None
            self._thread = None
            self._state = ServerState.STOPPED

        LOGGER.info("Certificate authority stopped")

    def _create_ssl_context(self) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.minimum_version = ssl.TLSVersion.TLSv1_2

        # ssl.SSLContext.load_cert_chain requires file paths.
        with tempfile.TemporaryDirectory(prefix="bootstrap-ca-") as tmp_dir:
            cert_path = Path(tmp_dir) / "server-chain.pem"
            key_path = Path(tmp_dir) / "server.key"
            cert_path.write_bytes(self._key_store.certificate_chain_pem)
            key_path.write_bytes(self._key_store.private_key_pem)
            context.load_cert_chain(
                str(cert_path), str(key_path), password=self._key_store_password
            )
        return context
