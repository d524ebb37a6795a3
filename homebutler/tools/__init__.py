"""MCP tools for homebutler."""

from homebutler.tools.homelab import (
    alerts,
    docker_list,
    docker_logs,
    docker_restart,
    docker_stop,
    fleet,
    open_ports,
    system_status,
)

__all__ = [
    "alerts",
    "docker_list",
    "docker_logs",
    "docker_restart",
    "docker_stop",
    "fleet",
    "open_ports",
    "system_status",
]
