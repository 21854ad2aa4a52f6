#!/usr/bin/env python3
"""Run the bootstrap certificate authority server."""

import argparse
import sys
import threading
from pathlib import Path

from bootstrap_ca.lib.ca_manager import CertificateAuthorityManager
from bootstrap_ca.lib.config import DEFAULT_HOSTNAME, DEFAULT_PORT, CertificateGenerationConfig, ServerConfig
from bootstrap_ca.lib.logging_config import LOGGER
from bootstrap_ca.lib.server import RemoteCertificateAuthorityServer


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Build server configuration from a JSON file or from arguments."""
    if args.use_config_json:
        return ServerConfig.from_json_file(args.config_json)

    generation = CertificateGenerationConfig(days=args.days, key_size=args.key_size)
    return ServerConfig(
        token=args.token or "",
        hostname=args.hostname,
        port=args.port,
        dn=args.dn or "",
        ca_dir=str(args.ca_dir),
        key_store_password=args.key_store_password,
        generation=generation,
    )


def main(argv: list[str] | None = None) -> int:
    """Start the CA server and serve until interrupted.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    defaults = CertificateGenerationConfig()
    parser = argparse.ArgumentParser(
        description="Acts as a certificate authority that hosts sharing the token can get certificates from"
    )
    parser.add_argument("--token", help="Shared token, must match the one given to clients")
    parser.add_argument("--hostname", default=DEFAULT_HOSTNAME, help="CA hostname, used as CN of the CA certificate")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Port to listen on (default: {DEFAULT_PORT})")
    parser.add_argument("--dn", help="DN of the CA certificate (default: CN=<hostname>, OU=NIFI)")
    parser.add_argument("--ca-dir", type=Path, default=Path("bootstrap-ca"), help="Directory holding CA key and certificate")
    parser.add_argument("--key-store-password", help="Password protecting the CA private key")
    parser.add_argument("--days", type=int, default=defaults.days, help="Validity of issued certificates in days")
    parser.add_argument("--key-size", type=int, default=defaults.key_size, help="RSA key size for a new CA key")
    parser.add_argument("--config-json", type=Path, default=Path("config.json"), help="Configuration file path")
    parser.add_argument(
        "--use-config-json",
        action="store_true",
        help="Read all configuration from --config-json instead of writing it there",
    )
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
        config.validate()
        if not args.use_config_json:
            config.to_json_file(args.config_json)

        manager = CertificateAuthorityManager(config)
        server = RemoteCertificateAuthorityServer(
            port=config.port,
            key_store=manager.server_key_store(),
            key_store_password=config.key_store_password,
        )
        server.start(
            manager.local_certificate_authority(),
            manager.ca_certificate.public_key(),
            config.token,
        )
    except Exception as e:
        LOGGER.error("Unable to start certificate authority: %s", e)
        return 1

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        LOGGER.info("Interrupted, shutting down")
    finally:
        server.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
