"""Dependency injection container for homebutler.

Wires configuration, trust store, connection manager and executors once,
and hands the same instances to the CLI, dashboard, tools and routes.
"""

from dataclasses import dataclass

from homebutler.config import Config, TrustStore
from homebutler.services.connection import ConnectionManager
from homebutler.services.executors import CommandExecutor
from homebutler.services.local import LocalDispatch


@dataclass
class Dependencies:
    """Container for homebutler dependencies.

    Example:
        deps = Dependencies.create()
        results = await run_all(deps.config.get_hosts(), ["status"], deps.executor)
    """

    config: Config
    trust_store: TrustStore
    connections: ConnectionManager
    local: LocalDispatch
    executor: CommandExecutor

    @classmethod
    def create(cls, config_path: str | None = None) -> "Dependencies":
        """Create dependencies from the environment.

        Args:
            config_path: Explicit host registry path

        Returns:
            Initialized Dependencies instance
        """
        return cls.from_config(Config.from_env(config_path))

    @classmethod
    def from_config(cls, config: Config) -> "Dependencies":
        """Create dependencies with custom configuration.

        Args:
            config: Custom Config instance

        Returns:
            Dependencies wired from config
        """
        connections = ConnectionManager(
            config.trust_store,
            dial_timeout=config.dial_timeout,
            auto_trust=config.settings.auto_trust,
        )
        local = LocalDispatch(config.alerts)
        return cls(
            config=config,
            trust_store=config.trust_store,
            connections=connections,
            local=local,
            executor=CommandExecutor(connections, local),
        )
