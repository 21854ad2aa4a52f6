#!/usr/bin/env python3
"""Request a host certificate from a remote bootstrap certificate authority."""

import argparse
import sys
from pathlib import Path

from bootstrap_ca.lib.ca_manager import write_issued_certificate
from bootstrap_ca.lib.config import DEFAULT_HOSTNAME, DEFAULT_PORT, ClientConfig
from bootstrap_ca.lib.exceptions import CertificateAuthorityError, SecurityError
from bootstrap_ca.lib.logging_config import LOGGER
from bootstrap_ca.lib.remote_client import RemoteCertificateAuthorityClient


def main(argv: list[str] | None = None) -> int:
    """Generate a key pair, have the CA sign it, and write the results.

    Returns:
        Exit code (0 for success, 1 for failure, 2 for authentication failure)
    """
    parser = argparse.ArgumentParser(description="Request a certificate from a bootstrap CA")
    parser.add_argument("--token", required=True, help="Shared token, must match the one given to the CA")
    parser.add_argument("--ca-hostname", default=DEFAULT_HOSTNAME, help="Hostname of the CA (expected CN of its certificate)")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"CA port (default: {DEFAULT_PORT})")
    parser.add_argument("--dn", help="DN to request (default: CN=localhost, OU=NIFI)")
    parser.add_argument("--timeout", type=float, default=30.0, help="Network timeout in seconds")
    parser.add_argument("--output-dir", type=Path, default=Path("."), help="Directory for key and certificates")
    parser.add_argument("--key-password", help="Password protecting the written private key")
    args = parser.parse_args(argv)

    config = ClientConfig(
        token=args.token,
        ca_hostname=args.ca_hostname,
        port=args.port,
        dn=args.dn or "",
        timeout=args.timeout,
        output_dir=str(args.output_dir),
    )
    client = RemoteCertificateAuthorityClient(
        ca_hostname=config.ca_hostname,
        port=config.port,
        token=config.token,
        timeout=config.timeout,
        generation=config.generation,
    )

    try:
        issued = client.request_certificate(config.dn)
        files = write_issued_certificate(issued, Path(config.output_dir), args.key_password)
    except SecurityError as e:
        LOGGER.error("Certificate authority failed authentication: %s", e)
        return 2
    except (CertificateAuthorityError, OSError, ValueError) as e:
        LOGGER.error("Certificate request failed: %s", e)
        return 1

    LOGGER.info("Certificate issued:")
    LOGGER.info("  Key: %s", files.key_path)
    LOGGER.info("  Cert: %s", files.cert_path)
    LOGGER.info("  Chain: %s", files.chain_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
