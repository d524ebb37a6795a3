"""Global state management for homebutler."""

from homebutler.config import Config
from homebutler.dependencies import Dependencies

# Global state (initialized on first access)
_config: Config | None = None
_deps: Dependencies | None = None


def get_config() -> Config:
    """Get or create config."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def get_deps() -> Dependencies:
    """Get or create the dependency container."""
    global _deps
    if _deps is None:
        _deps = Dependencies.from_config(get_config())
    return _deps


def reset_state() -> None:
    """Reset global state for testing.

    This function clears the singleton instances, allowing tests
    to start with fresh state. Should only be used in test fixtures.
    """
    global _config, _deps
    _config = None
    _deps = None


def set_config(config: Config) -> None:
    """Set the global config instance.

    Clears the dependency container so it is rebuilt from this config.

    Args:
        config: Config instance to use globally.
    """
    global _config, _deps
    _config = config
    _deps = None


def set_deps(deps: Dependencies) -> None:
    """Set the global dependency container.

    Allows tests to inject mocks without modifying module internals.

    Args:
        deps: Dependencies instance to use globally.
    """
    global _config, _deps
    _config = deps.config
    _deps = deps
