"""Application configuration.

Delegates to specialized components:
- HostRegistryParser: Reads the YAML host registry
- TrustStore: Manages known_hosts
- Settings: Environment variables
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from homebutler.config.host_keys import TrustStore
from homebutler.config.parser import (
    ConfigError,
    HostRegistryParser,
    Registry,
    resolve_config_path,
)
from homebutler.config.settings import Settings
from homebutler.models import AlertThresholds, HostConfig

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """Application configuration.

    Aggregates settings from the host registry, known_hosts, and environment.
    """

    settings: Settings
    parser: HostRegistryParser
    trust_store: TrustStore
    _registry: Registry | None = field(default=None, init=False, repr=False)

    @classmethod
    def from_env(cls, config_path: str | None = None) -> "Config":
        """Create config from environment.

        Args:
            config_path: Explicit registry path (e.g. from --config)

        Returns:
            Configured instance with all components initialized
        """
        settings = Settings.from_env()
        parser = HostRegistryParser(resolve_config_path(config_path or settings.config_path))
        trust_store = TrustStore(settings.known_hosts)
        return cls(settings=settings, parser=parser, trust_store=trust_store)

    @classmethod
    def from_file(
        cls,
        config_path: Path | str,
        known_hosts_path: Path | str | None = None,
        settings: Settings | None = None,
    ) -> "Config":
        """Create config from an explicit registry file."""
        return cls(
            settings=settings or Settings(),
            parser=HostRegistryParser(config_path),
            trust_store=TrustStore(known_hosts_path),
        )

    @property
    def registry(self) -> Registry:
        """Parsed registry, loaded once."""
        if self._registry is None:
            self._registry = self.parser.parse()
        return self._registry

    def get_hosts(self) -> list[HostConfig]:
        """Configured hosts in registry order."""
        return list(self.registry.hosts.values())

    def get_host(self, name: str) -> HostConfig | None:
        """Get host by name.

        Args:
            name: Host name to look up

        Returns:
            HostConfig if found, None otherwise
        """
        return self.registry.hosts.get(name)

    def require_host(self, name: str) -> HostConfig:
        """Get host by name or fail with the list of available names.

        Raises:
            ConfigError: If no host has this name
        """
        host = self.get_host(name)
        if host is None:
            available = ", ".join(self.registry.hosts) or "(none)"
            raise ConfigError(
                f"server {name!r} not found in config. Available servers: {available}"
            )
        return host

    @property
    def alerts(self) -> AlertThresholds:
        """Alert thresholds: registry values win over environment."""
        if self.registry.alerts is not None:
            return self.registry.alerts
        return AlertThresholds(
            cpu=self.settings.alert_cpu,
            memory=self.settings.alert_memory,
            disk=self.settings.alert_disk,
        )

    # Delegate to settings for convenience
    @property
    def dial_timeout(self) -> float:
        """SSH dial timeout in seconds."""
        return self.settings.dial_timeout

    @property
    def fetch_timeout(self) -> float:
        """Per-host dashboard fetch deadline in seconds."""
        return self.settings.fetch_timeout

    @property
    def transport(self) -> str:
        """MCP transport type (http or stdio)."""
        return self.settings.transport

    @property
    def http_host(self) -> str:
        """HTTP server bind address."""
        return self.settings.http_host

    @property
    def http_port(self) -> int:
        """HTTP server port."""
        return self.settings.http_port

    @property
    def known_hosts_path(self) -> Path:
        """Path to the trust store file."""
        return self.trust_store.path


__all__ = ["Config", "ConfigError"]
