"""Host identity trust models."""

import base64
import binascii
import hashlib
from dataclasses import dataclass
from enum import Enum


class TrustStatus(str, Enum):
    """Outcome of checking a presented host key against the trust store."""

    TRUSTED = "trusted"
    UNKNOWN = "unknown"
    MISMATCH = "mismatch"


def fingerprint(key: str) -> str:
    """Compute the OpenSSH SHA256 fingerprint of a base64 public key blob.

    Args:
        key: Base64-encoded public key (second field of a known_hosts line)

    Returns:
        Fingerprint like ``SHA256:abc...`` (unpadded base64)

    Raises:
        ValueError: If the key is not valid base64
    """
    try:
        blob = base64.b64decode(key, validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid public key data: {e}") from e
    digest = base64.b64encode(hashlib.sha256(blob).digest()).decode("ascii")
    return "SHA256:" + digest.rstrip("=")


@dataclass(frozen=True)
class TrustRecord:
    """One accepted host identity (one known_hosts line)."""

    hosts: tuple[str, ...]
    key_type: str
    key: str

    @property
    def fingerprint(self) -> str:
        """SHA256 fingerprint of the key."""
        return fingerprint(self.key)

    def to_line(self) -> str:
        """Render as a known_hosts line (without trailing newline)."""
        return f"{','.join(self.hosts)} {self.key_type} {self.key}"


@dataclass(frozen=True)
class HostKeyProbe:
    """Key presented by a host, classified against the trust store."""

    status: TrustStatus
    address: str
    key_type: str
    key: str

    @property
    def fingerprint(self) -> str:
        """SHA256 fingerprint of the presented key."""
        return fingerprint(self.key)
