"""Bootstrap CA configuration dataclasses."""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path

from cryptography.hazmat.primitives import hashes

DEFAULT_HOSTNAME = "localhost"
DEFAULT_PORT = 8443
DEFAULT_DAYS = 3 * 365
DEFAULT_KEY_SIZE = 2048
DEFAULT_SIGNING_ALGORITHM = "SHA256"
DEFAULT_DN_PREFIX = "CN="
DEFAULT_DN_SUFFIX = ", OU=NIFI"

# Upper bound for request and response bodies on both sides of the exchange
MAX_BODY_SIZE = 1024 * 1024

_HASH_ALGORITHMS: dict[str, type[hashes.HashAlgorithm]] = {
    "SHA256": hashes.SHA256,
    "SHA384": hashes.SHA384,
    "SHA512": hashes.SHA512,
}


@dataclass
class CertificateGenerationConfig:
    """Key, signature and validity settings shared by CA and clients."""

    key_size: int = DEFAULT_KEY_SIZE
    signing_algorithm: str = DEFAULT_SIGNING_ALGORITHM
    days: int = DEFAULT_DAYS
    dn_prefix: str = DEFAULT_DN_PREFIX
    dn_suffix: str = DEFAULT_DN_SUFFIX

    def calc_default_dn(self, hostname: str) -> str:
        """Build the default DN for a hostname, e.g. 'CN=host1, OU=NIFI'."""
        return f"{self.dn_prefix}{hostname}{self.dn_suffix}"

    def hash_algorithm(self) -> hashes.HashAlgorithm:
        """Resolve signing_algorithm to a cryptography hash instance.

        Accepts 'SHA256' as well as the JCA style 'SHA256WITHRSA'.

        Raises:
            ValueError: If the algorithm is not supported
        """
        name = self.signing_algorithm.upper().replace("WITHRSA", "").replace("-", "")
        try:
            return _HASH_ALGORITHMS[name]()
        except KeyError:
            raise ValueError(f"unsupported signing algorithm: {self.signing_algorithm}") from None


@dataclass
class ServerConfig:
    """Configuration for the remote CA server."""

    token: str = ""
    hostname: str = DEFAULT_HOSTNAME
    port: int = DEFAULT_PORT
    dn: str = ""
    ca_dir: str = "bootstrap-ca"
    key_store_password: str | None = None
    generation: CertificateGenerationConfig = field(default_factory=CertificateGenerationConfig)

    def __post_init__(self) -> None:
        if isinstance(self.generation, dict):
            self.generation = CertificateGenerationConfig(**self.generation)
        if not self.dn:
            self.dn = self.generation.calc_default_dn(self.hostname)

    def validate(self) -> None:
        """Raise ValueError if the configuration cannot run a server."""
        if not self.token:
            raise ValueError("token must not be empty")
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port out of range: {self.port}")

    @classmethod
    def from_json_file(cls, path: Path) -> "ServerConfig":
        """Load configuration from a JSON file; missing keys take defaults."""
        data = json.loads(path.read_text())
        if not isinstance(data, dict):
            raise ValueError(f"expected JSON object in {path}")
        return cls(**data)

    def to_json_file(self, path: Path) -> Path:
        """Write configuration as JSON, returning the path written."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(self), indent=2))
        return path


@dataclass
class ClientConfig:
    """Configuration for a host requesting a certificate from a remote CA."""

    token: str
    ca_hostname: str = DEFAULT_HOSTNAME
    port: int = DEFAULT_PORT
    dn: str = ""
    timeout: float = 30.0
    output_dir: str = "."
    generation: CertificateGenerationConfig = field(default_factory=CertificateGenerationConfig)

    def __post_init__(self) -> None:
        if not self.dn:
            self.dn = self.generation.calc_default_dn(DEFAULT_HOSTNAME)
