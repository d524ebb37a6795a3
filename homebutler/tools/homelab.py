"""MCP tools for homelab monitoring.

Each tool targets one server (default: this machine) except ``fleet``,
which fans the operation out to every configured server.
"""

import logging
from typing import Any

from homebutler.models import decode_payload
from homebutler.services.fanout import run_all
from homebutler.services.state import get_deps

logger = logging.getLogger(__name__)

# Fleet operation -> remote arguments
FLEET_OPERATIONS = {
    "status": ["status", "--json"],
    "alerts": ["alerts", "--json"],
    "docker": ["docker", "list", "--json"],
    "ports": ["ports", "--json"],
}


async def _run_on(server: str | None, args: list[str]) -> Any:
    """Run one operation on a named server, or locally when none is given.

    Raises:
        ConfigError: If the server name is unknown
        HomeButlerError: If the operation fails on that server
    """
    deps = get_deps()
    if not server:
        return decode_payload("local", await deps.local.dispatch(args))

    host = deps.config.require_host(server)
    return decode_payload(host.name, await deps.executor.run(host, args))


async def system_status(server: str | None = None) -> dict[str, Any]:
    """Get CPU, memory, disk usage and uptime.

    Args:
        server: Configured server name (default: this machine)

    Returns:
        Status payload (hostname, os, arch, uptime, cpu, memory, disks, time)
    """
    return await _run_on(server, ["status", "--json"])


async def docker_list(server: str | None = None) -> list[dict[str, Any]]:
    """List Docker containers with state, image and ports.

    Args:
        server: Configured server name (default: this machine)
    """
    return await _run_on(server, ["docker", "list", "--json"])


async def docker_restart(name: str, server: str | None = None) -> dict[str, Any]:
    """Restart a Docker container.

    Args:
        name: Container name
        server: Configured server name (default: this machine)
    """
    return await _run_on(server, ["docker", "restart", name, "--json"])


async def docker_stop(name: str, server: str | None = None) -> dict[str, Any]:
    """Stop a Docker container.

    Args:
        name: Container name
        server: Configured server name (default: this machine)
    """
    return await _run_on(server, ["docker", "stop", name, "--json"])


async def docker_logs(name: str, lines: int = 50, server: str | None = None) -> dict[str, Any]:
    """Get the last lines of a Docker container's logs.

    Args:
        name: Container name
        lines: Number of log lines (default: 50)
        server: Configured server name (default: this machine)

    Returns:
        Dict with container, lines and logs
    """
    return await _run_on(server, ["docker", "logs", name, str(lines), "--json"])


async def alerts(server: str | None = None) -> dict[str, Any]:
    """Check CPU, memory and disk usage against alert thresholds.

    Args:
        server: Configured server name (default: this machine)

    Returns:
        Per-resource status (ok, warning, critical) with current and threshold
    """
    return await _run_on(server, ["alerts", "--json"])


async def open_ports(server: str | None = None) -> list[dict[str, Any]]:
    """List listening ports with the owning process.

    Args:
        server: Configured server name (default: this machine)
    """
    return await _run_on(server, ["ports", "--json"])


async def fleet(operation: str = "status") -> dict[str, Any]:
    """Run an operation on every configured server at once.

    One unreachable server never hides the others: each entry carries
    either ``data`` or ``error``.

    Args:
        operation: One of status, alerts, docker, ports

    Returns:
        Dict with ``results`` in configuration order
    """
    if operation not in FLEET_OPERATIONS:
        raise ValueError(
            f"unknown operation {operation!r} (use: {', '.join(FLEET_OPERATIONS)})"
        )

    deps = get_deps()
    hosts = deps.config.get_hosts()
    if not hosts:
        raise ValueError("no servers configured. Add servers to your config file")

    results = await run_all(hosts, FLEET_OPERATIONS[operation], deps.executor)
    failed = sum(1 for result in results if not result.ok)
    logger.info("Fleet %s: %d/%d server(s) ok", operation, len(results) - failed, len(results))
    return {"operation": operation, "results": [result.to_dict() for result in results]}
