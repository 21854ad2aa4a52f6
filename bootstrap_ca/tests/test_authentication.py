"""Tests for token HMAC authentication."""

import hashlib
import hmac

from cryptography import x509

from bootstrap_ca.lib.authentication import calculate_hmac, hmac_matches, key_identifier
from bootstrap_ca.lib.cert_utils import generate_private_key


class TestKeyIdentifier:
    def test_matches_subject_key_identifier(self, ca_cert):
        """Identifier equals the SKI extension of a certificate for the same key."""
        ski = ca_cert.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value
        assert key_identifier(ca_cert.public_key()) == ski.digest

    def test_sha1_length(self, host_key):
        assert len(key_identifier(host_key.public_key())) == 20


class TestCalculateHmac:
    """Tests for HMAC-SHA256 over public key identifiers."""

    def test_hmac_sha256_of_key_identifier(self, token, host_key):
        """Token bytes are the key and the key identifier is the message."""
        public_key = host_key.public_key()
        expected = hmac.new(
            token.encode("utf-8"), key_identifier(public_key), hashlib.sha256
        ).digest()
        assert calculate_hmac(token, public_key) == expected
        assert len(expected) == 32

    def test_deterministic(self, token, host_key):
        public_key = host_key.public_key()
        assert calculate_hmac(token, public_key) == calculate_hmac(token, public_key)

    def test_depends_on_token(self, token, host_key):
        public_key = host_key.public_key()
        assert calculate_hmac(token, public_key) != calculate_hmac("other-token", public_key)

    def test_depends_on_key(self, token, host_key):
        other_key = generate_private_key()
        assert calculate_hmac(token, host_key.public_key()) != calculate_hmac(
            token, other_key.public_key()
        )


class TestHmacMatches:
    def test_equal(self):
        assert hmac_matches(b"\x01" * 32, b"\x01" * 32) is True

    def test_different(self):
        assert hmac_matches(b"\x01" * 32, b"\x02" * 32) is False

    def test_different_length(self):
        assert hmac_matches(b"\x01" * 32, b"\x01" * 31) is False
