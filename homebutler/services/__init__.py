"""Services for homebutler."""

from homebutler.services.connection import ConnectionManager
from homebutler.services.executors import CommandExecutor, build_remote_command
from homebutler.services.fanout import (
    format_results,
    gather_hosts,
    run_all,
    run_with_deadline,
)
from homebutler.services.local import DockerError, LocalDispatch

__all__ = [
    "CommandExecutor",
    "ConnectionManager",
    "DockerError",
    "LocalDispatch",
    "build_remote_command",
    "format_results",
    "gather_hosts",
    "run_all",
    "run_with_deadline",
]
