"""In-process probes for the local machine.

These produce the same JSON payloads the remote binary emits, so local and
remote results are interchangeable in fan-out batches and the dashboard.
"""

import asyncio
import json
import logging
import platform
import re
import shutil
import socket
import time
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import psutil

from homebutler.errors import HomeButlerError, UnsupportedOperationError
from homebutler.models import AlertThresholds

logger = logging.getLogger(__name__)

DOCKER_FORMAT = "{{.ID}}\t{{.Names}}\t{{.Image}}\t{{.Status}}\t{{.State}}\t{{.Ports}}"
DEFAULT_DOCKER_TIMEOUT = 2.0
DEFAULT_LOG_LINES = "50"
CONTAINER_ACTIONS = ("restart", "stop")

_CONTAINER_NAME = re.compile(r"[A-Za-z0-9_.-]{1,128}")

# Pseudo filesystems that never represent user storage
_SKIP_FSTYPES = {"squashfs", "tmpfs", "devtmpfs", "overlay", "autofs", "proc", "sysfs"}


class DockerError(HomeButlerError):
    """Docker CLI missing, daemon not reachable, or a container action failed."""


def _gb(value: int) -> float:
    return round(value / (1024**3), 2)


def format_uptime(seconds: float) -> str:
    """Render uptime as ``Nd Nh`` or ``Nh Nm``."""
    total = int(seconds)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    if days > 0:
        return f"{days}d {hours}h"
    return f"{hours}h {rest // 60}m"


def system_status() -> dict[str, Any]:
    """Collect hostname, CPU, memory and disk usage.

    Blocks for ~200ms while sampling CPU usage.
    """
    memory = psutil.virtual_memory()
    return {
        "hostname": socket.gethostname(),
        "os": platform.system().lower(),
        "arch": platform.machine(),
        "uptime": format_uptime(time.time() - psutil.boot_time()),
        "cpu": {
            "usage_percent": round(min(psutil.cpu_percent(interval=0.2), 100.0), 2),
            "cores": psutil.cpu_count() or 0,
        },
        "memory": {
            "total_gb": _gb(memory.total),
            "used_gb": _gb(memory.total - memory.available),
            "usage_percent": round(memory.percent, 2),
        },
        "disks": disk_usage(),
        "time": datetime.now().astimezone().isoformat(timespec="seconds"),
    }


def disk_usage() -> list[dict[str, Any]]:
    """Usage of mounted physical filesystems, one entry per device."""
    disks = []
    seen: set[str] = set()
    for part in psutil.disk_partitions(all=False):
        if part.fstype in _SKIP_FSTYPES or part.device in seen:
            continue
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except (PermissionError, OSError) as e:
            logger.debug("Skipping mount %s: %s", part.mountpoint, e)
            continue
        seen.add(part.device)
        disks.append(
            {
                "mount": part.mountpoint,
                "total_gb": _gb(usage.total),
                "used_gb": _gb(usage.used),
                "usage_percent": round(usage.percent, 2),
            }
        )
    return disks


def status_for(current: float, threshold: float) -> str:
    """Classify a usage value: critical at threshold, warning above 90% of it."""
    if current >= threshold:
        return "critical"
    if current > threshold * 0.9:
        return "warning"
    return "ok"


def check_alerts(
    thresholds: AlertThresholds, status: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Compare current usage against thresholds.

    Args:
        thresholds: Alert thresholds in percent
        status: Pre-collected status payload (collected if omitted)

    Returns:
        Alert payload with cpu, memory and per-disk entries
    """
    status = status or system_status()

    def item(current: float, threshold: float) -> dict[str, Any]:
        return {
            "status": status_for(current, threshold),
            "current": current,
            "threshold": threshold,
        }

    return {
        "cpu": item(status["cpu"]["usage_percent"], thresholds.cpu),
        "memory": item(status["memory"]["usage_percent"], thresholds.memory),
        "disks": [
            {"mount": disk["mount"], **item(disk["usage_percent"], thresholds.disk)}
            for disk in status["disks"]
        ],
    }


def open_ports() -> list[dict[str, Any]]:
    """Listening TCP sockets and bound UDP sockets with owning process."""
    ports = []
    seen: set[tuple[str, str, int]] = set()
    for conn in psutil.net_connections(kind="inet"):
        if not conn.laddr:
            continue
        protocol = "tcp" if conn.type == socket.SOCK_STREAM else "udp"
        if protocol == "tcp" and conn.status != psutil.CONN_LISTEN:
            continue
        if protocol == "udp" and conn.raddr:
            continue
        key = (protocol, conn.laddr.ip, conn.laddr.port)
        if key in seen:
            continue
        seen.add(key)
        ports.append(
            {
                "protocol": protocol,
                "address": conn.laddr.ip,
                "port": conn.laddr.port,
                "pid": conn.pid,
                "process": _process_name(conn.pid),
            }
        )
    ports.sort(key=lambda p: (p["port"], p["protocol"]))
    return ports


def _process_name(pid: int | None) -> str:
    if not pid:
        return ""
    try:
        return psutil.Process(pid).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return ""


def top_processes(limit: int = 10) -> list[dict[str, Any]]:
    """Processes sorted by CPU usage, highest first."""
    procs = []
    for proc in psutil.process_iter(["pid", "name", "cpu_percent", "memory_percent"]):
        info = proc.info
        procs.append(
            {
                "pid": info["pid"],
                "name": info["name"] or "",
                "cpu": round(info["cpu_percent"] or 0.0, 1),
                "mem": round(info["memory_percent"] or 0.0, 1),
            }
        )
    procs.sort(key=lambda p: p["cpu"], reverse=True)
    return procs[:limit]


def parse_docker_ps(output: str) -> list[dict[str, str]]:
    """Parse tab-separated ``docker ps`` output into container records."""
    containers = []
    for line in output.splitlines():
        if not line:
            continue
        fields = line.split("\t")
        if len(fields) < 5:
            continue
        containers.append(
            {
                "id": fields[0][:12],
                "name": fields[1],
                "image": fields[2],
                "status": fields[3],
                "state": fields[4],
                "ports": fields[5] if len(fields) > 5 else "",
            }
        )
    return containers


async def _run_docker(host_name: str, *args: str) -> tuple[int | None, str]:
    """Run the docker CLI and return (exit status, combined output).

    Raises:
        DockerError: If docker is not installed
    """
    if shutil.which("docker") is None:
        raise DockerError(host_name, "docker is not installed (binary not found in PATH)")

    proc = await asyncio.create_subprocess_exec(
        "docker",
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    stdout, _ = await proc.communicate()
    return proc.returncode, stdout.decode("utf-8", errors="replace")


async def list_containers(host_name: str = "local") -> list[dict[str, str]]:
    """List all containers through the docker CLI.

    Raises:
        DockerError: If docker is not installed or the daemon is down
    """
    returncode, output = await _run_docker(host_name, "ps", "-a", "--format", DOCKER_FORMAT)
    if returncode != 0:
        raise DockerError(host_name, f"docker daemon is not running: {output.strip()}")
    return parse_docker_ps(output)


def check_container_name(name: str, host_name: str = "local") -> str:
    """Only letters, digits, ``-``, ``_`` and ``.``; at most 128 characters."""
    if not _CONTAINER_NAME.fullmatch(name):
        raise DockerError(host_name, f"invalid container name: {name}")
    return name


async def container_action(action: str, name: str, host_name: str = "local") -> dict[str, str]:
    """Restart or stop one container.

    Raises:
        DockerError: If the name is invalid or docker refuses the action
    """
    if action not in CONTAINER_ACTIONS:
        raise UnsupportedOperationError(host_name, f"unknown container action {action!r}")
    check_container_name(name, host_name)

    returncode, output = await _run_docker(host_name, action, name)
    if returncode != 0:
        raise DockerError(host_name, f"failed to {action} {name}: {output.strip()}")

    logger.info("Container %s: %s ok on %s", name, action, host_name)
    return {"action": action, "container": name, "status": "ok"}


async def container_logs(
    name: str, lines: str = DEFAULT_LOG_LINES, host_name: str = "local"
) -> dict[str, str]:
    """Last ``lines`` lines of a container's output."""
    check_container_name(name, host_name)
    if not lines.isdigit():
        raise DockerError(host_name, f"invalid line count: {lines}")

    returncode, output = await _run_docker(host_name, "logs", "--tail", lines, name)
    if returncode != 0:
        raise DockerError(host_name, f"failed to get logs for {name}: {output.strip()}")
    return {"container": name, "lines": lines, "logs": output}


class LocalDispatch:
    """Runs operations on this machine without SSH."""

    OPERATIONS = ("status", "alerts", "docker", "ports", "processes")

    def __init__(self, thresholds: AlertThresholds | None = None) -> None:
        """Initialize dispatcher.

        Args:
            thresholds: Alert thresholds (default 90/85/90)
        """
        self.thresholds = thresholds or AlertThresholds()

    async def status(self) -> dict[str, Any]:
        return await asyncio.to_thread(system_status)

    async def alerts(self) -> dict[str, Any]:
        return await asyncio.to_thread(check_alerts, self.thresholds)

    async def containers(self, host_name: str = "local") -> list[dict[str, str]]:
        return await list_containers(host_name)

    async def ports(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(open_ports)

    async def processes(self, limit: int = 10) -> list[dict[str, Any]]:
        return await asyncio.to_thread(top_processes, limit)

    async def dispatch(self, args: Sequence[str], host_name: str = "local") -> bytes:
        """Run the operation named by ``args[0]`` and return its JSON payload.

        Flags such as ``--json`` are ignored; payloads are always JSON.

        Args:
            args: Operation and its arguments (e.g. ``["docker", "list"]``)
            host_name: Host name used in error messages

        Returns:
            JSON-encoded payload

        Raises:
            UnsupportedOperationError: If the operation has no local implementation
            DockerError: If a docker operation fails
        """
        words = [arg for arg in args if not arg.startswith("--")]
        if not words:
            raise UnsupportedOperationError(host_name, "no command specified")

        operation = words[0]
        payload: Any
        if operation == "status":
            payload = await self.status()
        elif operation == "alerts":
            payload = await self.alerts()
        elif operation == "docker":
            payload = await self.docker(words[1:], host_name)
        elif operation == "ports":
            payload = await self.ports()
        elif operation == "processes":
            payload = await self.processes()
        else:
            raise UnsupportedOperationError(
                host_name,
                f"command {operation!r} not supported locally",
                "Supported: " + ", ".join(self.OPERATIONS),
            )

        logger.debug("Local %s completed on %s", operation, host_name)
        return json.dumps(payload).encode("utf-8")

    async def docker(self, words: Sequence[str], host_name: str = "local") -> Any:
        """``list|ls``, ``restart <name>``, ``stop <name>`` or ``logs <name> [lines]``."""
        action = words[0] if words else ""
        if action in ("list", "ls"):
            return await self.containers(host_name)
        if action in CONTAINER_ACTIONS or action == "logs":
            if len(words) < 2:
                raise UnsupportedOperationError(
                    host_name, f"usage: docker {action} <container>"
                )
            if action == "logs":
                lines = words[2] if len(words) > 2 else DEFAULT_LOG_LINES
                return await container_logs(words[1], lines, host_name)
            return await container_action(action, words[1], host_name)
        raise UnsupportedOperationError(
            host_name,
            f"unknown docker action {action!r}",
            "Supported: list, restart, stop, logs",
        )
