"""Host configuration models."""

from dataclasses import dataclass
from enum import Enum


class AuthMode(str, Enum):
    """SSH authentication method for a host."""

    KEY = "key"
    PASSWORD = "password"


@dataclass(frozen=True)
class HostConfig:
    """One fleet member as loaded from the host registry."""

    name: str
    host: str = ""
    port: int = 22
    user: str = "root"
    auth: AuthMode = AuthMode.KEY
    key_file: str | None = None
    password: str | None = None
    local: bool = False
    bin_path: str = "homebutler"

    @property
    def use_key_auth(self) -> bool:
        """Key-based auth unless password auth was explicitly selected."""
        return self.auth != AuthMode.PASSWORD

    @property
    def address(self) -> str:
        """Dial address in host:port form."""
        if ":" in self.host and not self.host.startswith("["):
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    @property
    def known_hosts_address(self) -> str:
        """Address as written in known_hosts files."""
        return normalize_address(self.host, self.port)


def normalize_address(host: str, port: int = 22) -> str:
    """Normalize a host/port pair the way OpenSSH writes known_hosts entries.

    Args:
        host: Hostname or IP address (IPv6 may be bracketed)
        port: SSH port

    Returns:
        ``host`` for the default port, ``[host]:port`` otherwise
    """
    host = host.strip().strip("[]")
    if port == 22:
        return host
    return f"[{host}]:{port}"
