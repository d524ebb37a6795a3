"""Configuration module for homebutler.

Provides focused classes for different configuration concerns:
- Config: Main configuration class (aggregates all components)
- HostRegistryParser: Parses the YAML host registry
- TrustStore: Manages accepted SSH host keys
- Settings: Environment variable configuration
"""

from homebutler.config.host_keys import TrustStore
from homebutler.config.main import Config
from homebutler.config.parser import ConfigError, HostRegistryParser
from homebutler.config.settings import Settings

__all__ = ["Config", "ConfigError", "HostRegistryParser", "TrustStore", "Settings"]
