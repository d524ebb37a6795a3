"""Application settings from environment variables.

Centralized environment variable parsing and validation.
"""

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Application settings from environment.

    Handles parsing, validation, and defaults for all env vars.
    """

    # Host registry
    config_path: str | None = field(default=None)

    # Trust
    known_hosts: str | None = field(default=None)
    auto_trust: bool = field(default=True)

    # Timeouts (seconds)
    dial_timeout: float = field(default=10.0)
    fetch_timeout: float = field(default=10.0)
    docker_timeout: float = field(default=2.0)

    # Dashboard
    refresh_interval: float = field(default=2.0)
    history_size: int = field(default=60)

    # Alert thresholds (percent)
    alert_cpu: float = field(default=90.0)
    alert_memory: float = field(default=85.0)
    alert_disk: float = field(default=90.0)

    # Transport
    transport: str = field(default="http")
    http_host: str = field(default="127.0.0.1")
    http_port: int = field(default=8080)

    # Logging
    log_level: str = field(default="INFO")
    log_payloads: bool = field(default=False)
    slow_threshold_ms: int = field(default=1000)
    include_traceback: bool = field(default=False)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from HOMEBUTLER_* environment variables.

        Returns:
            Settings instance with values from environment
        """
        return cls(
            config_path=os.getenv("HOMEBUTLER_CONFIG") or None,
            known_hosts=os.getenv("HOMEBUTLER_KNOWN_HOSTS") or None,
            auto_trust=cls._get_bool("HOMEBUTLER_AUTO_TRUST", True),
            dial_timeout=cls._get_float("HOMEBUTLER_DIAL_TIMEOUT", 10.0),
            fetch_timeout=cls._get_float("HOMEBUTLER_FETCH_TIMEOUT", 10.0),
            docker_timeout=cls._get_float("HOMEBUTLER_DOCKER_TIMEOUT", 2.0),
            refresh_interval=cls._get_float("HOMEBUTLER_REFRESH_INTERVAL", 2.0),
            history_size=cls._get_int("HOMEBUTLER_HISTORY_SIZE", 60),
            alert_cpu=cls._get_float("HOMEBUTLER_ALERT_CPU", 90.0),
            alert_memory=cls._get_float("HOMEBUTLER_ALERT_MEMORY", 85.0),
            alert_disk=cls._get_float("HOMEBUTLER_ALERT_DISK", 90.0),
            transport=cls._get_transport(),
            http_host=os.getenv("HOMEBUTLER_HTTP_HOST", "127.0.0.1"),
            http_port=cls._get_int("HOMEBUTLER_HTTP_PORT", 8080),
            log_level=os.getenv("HOMEBUTLER_LOG_LEVEL", "INFO").upper(),
            log_payloads=cls._get_bool("HOMEBUTLER_LOG_PAYLOADS", False),
            slow_threshold_ms=cls._get_int("HOMEBUTLER_SLOW_THRESHOLD_MS", 1000),
            include_traceback=cls._get_bool("HOMEBUTLER_INCLUDE_TRACEBACK", False),
        )

    @staticmethod
    def _get_int(key: str, default: int) -> int:
        """Get integer from environment.

        Args:
            key: Environment variable key
            default: Default value if not set or invalid

        Returns:
            Integer value from environment or default
        """
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid int for %s: %s, using default %d", key, value, default)
            return default

    @staticmethod
    def _get_float(key: str, default: float) -> float:
        """Get positive float from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            parsed = float(value)
        except ValueError:
            logger.warning("Invalid number for %s: %s, using default %g", key, value, default)
            return default
        if parsed <= 0:
            logger.warning("Non-positive value for %s: %s, using default %g", key, value, default)
            return default
        return parsed

    @staticmethod
    def _get_bool(key: str, default: bool) -> bool:
        """Get boolean from environment.

        Args:
            key: Environment variable key
            default: Default value if not set

        Returns:
            Boolean value from environment or default
        """
        value = os.getenv(key)
        if value is None:
            return default
        return value.lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _get_transport() -> str:
        """Get MCP transport ("http" or "stdio")."""
        transport = os.getenv("HOMEBUTLER_TRANSPORT", "").lower()
        if transport in ("http", "stdio"):
            return transport
        return "http"
