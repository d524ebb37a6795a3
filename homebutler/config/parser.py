"""Host registry parser.

Reads the YAML host registry (``servers:`` list plus optional ``alerts:``
thresholds) and produces immutable HostConfig records in file order.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from homebutler.models import AlertThresholds, AuthMode, HostConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "homebutler" / "config.yaml"
LOCAL_CONFIG_NAME = "homebutler.yaml"


class ConfigError(Exception):
    """Host registry is unreadable, malformed, or references an unknown host."""


def resolve_config_path(explicit: str | None = None) -> Path | None:
    """Find the registry file.

    Priority: explicit path, $HOMEBUTLER_CONFIG,
    ~/.config/homebutler/config.yaml, ./homebutler.yaml.

    Returns:
        Path to use, or None when no file exists (defaults apply)
    """
    if explicit:
        return Path(os.path.expanduser(explicit))
    env = os.getenv("HOMEBUTLER_CONFIG")
    if env:
        return Path(os.path.expanduser(env))
    if DEFAULT_CONFIG_PATH.exists():
        return DEFAULT_CONFIG_PATH
    local = Path(LOCAL_CONFIG_NAME)
    if local.exists():
        return local
    return None


@dataclass
class Registry:
    """Parsed host registry."""

    hosts: dict[str, HostConfig] = field(default_factory=dict)
    alerts: AlertThresholds | None = None


class HostRegistryParser:
    """Parser for the YAML host registry."""

    def __init__(self, config_path: Path | str | None = None):
        """Initialize parser.

        Args:
            config_path: Registry file; None means no file (empty registry)
        """
        self.config_path = Path(config_path) if config_path else None

    def parse(self) -> Registry:
        """Parse the registry file.

        Returns:
            Registry with hosts in file order

        Raises:
            ConfigError: If the file is unreadable or any entry is invalid
        """
        if self.config_path is None:
            logger.debug("No host registry file, using defaults")
            return Registry()

        try:
            content = self.config_path.read_text()
        except FileNotFoundError:
            logger.warning("Host registry not found: %s", self.config_path)
            return Registry()
        except OSError as e:
            raise ConfigError(f"failed to read config {self.config_path}: {e}") from e

        try:
            document = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to parse config {self.config_path}: {e}") from e

        if not isinstance(document, dict):
            raise ConfigError(f"config {self.config_path} must be a mapping")

        hosts: dict[str, HostConfig] = {}
        for index, entry in enumerate(document.get("servers") or []):
            host = self._parse_host(index, entry)
            if host.name in hosts:
                raise ConfigError(f"duplicate server name {host.name!r}")
            hosts[host.name] = host

        registry = Registry(hosts=hosts, alerts=self._parse_alerts(document.get("alerts")))
        logger.info("Parsed %d server(s) from %s", len(hosts), self.config_path)
        return registry

    def _parse_host(self, index: int, entry: Any) -> HostConfig:
        """Build one HostConfig, validating required fields."""
        if not isinstance(entry, dict):
            raise ConfigError(f"servers[{index}] must be a mapping")

        name = str(entry.get("name") or "").strip()
        if not name:
            raise ConfigError(f"servers[{index}] is missing 'name'")

        local = bool(entry.get("local", False))
        address = str(entry.get("host") or "").strip()
        if not address and not local:
            raise ConfigError(f"server {name!r} is missing 'host'")

        try:
            port = int(entry.get("port") or 22)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"server {name!r} has invalid port: {entry.get('port')!r}") from e
        if not 0 < port < 65536:
            raise ConfigError(f"server {name!r} has invalid port: {port}")

        try:
            auth = AuthMode(str(entry.get("auth") or AuthMode.KEY.value).lower())
        except ValueError as e:
            raise ConfigError(
                f"server {name!r} has invalid auth {entry.get('auth')!r} (use 'key' or 'password')"
            ) from e

        return HostConfig(
            name=name,
            host=address,
            port=port,
            user=str(entry.get("user") or "root"),
            auth=auth,
            key_file=entry.get("key") or None,
            password=entry.get("password") or None,
            local=local,
            bin_path=str(entry.get("bin") or "homebutler"),
        )

    @staticmethod
    def _parse_alerts(section: Any) -> AlertThresholds | None:
        if not section:
            return None
        if not isinstance(section, dict):
            raise ConfigError("'alerts' must be a mapping")
        defaults = AlertThresholds()
        try:
            return AlertThresholds(
                cpu=float(section.get("cpu", defaults.cpu)),
                memory=float(section.get("memory", defaults.memory)),
                disk=float(section.get("disk", defaults.disk)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid alert threshold: {e}") from e
