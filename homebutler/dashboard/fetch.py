"""Data collection for dashboard tabs.

Every fetch runs in its own worker task and always returns a snapshot;
failures are folded into the snapshot instead of raised.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from homebutler.dashboard.model import ContainerSnapshot, DockerStatus, StatusSnapshot
from homebutler.errors import FetchTimeoutError, InvalidPayloadError
from homebutler.models import decode_payload
from homebutler.services.fanout import run_with_deadline
from homebutler.services.local import check_alerts

if TYPE_CHECKING:
    from homebutler.models import HostConfig
    from homebutler.services.executors import CommandExecutor
    from homebutler.services.local import LocalDispatch

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 10.0
DEFAULT_DOCKER_TIMEOUT = 2.0


def check_status_payload(host_name: str, payload: Any) -> dict[str, Any]:
    """Reject status payloads without cpu and memory sections.

    Raises:
        InvalidPayloadError: If the payload does not have the status shape
    """
    if not isinstance(payload, dict):
        raise InvalidPayloadError(
            host_name, f"expected a status object, got {type(payload).__name__}"
        )
    missing = [key for key in ("cpu", "memory") if not isinstance(payload.get(key), dict)]
    if missing:
        raise InvalidPayloadError(host_name, "status is missing " + ", ".join(missing))
    return payload


def is_alerts_payload(payload: Any) -> bool:
    return isinstance(payload, dict) and all(
        isinstance(payload.get(key), dict) for key in ("cpu", "memory")
    )


def classify_docker_error(error: Exception) -> DockerStatus:
    """Map a container listing failure to a docker status."""
    if isinstance(error, FetchTimeoutError):
        return DockerStatus.UNAVAILABLE
    message = str(error)
    if "not installed" in message or "not found" in message:
        return DockerStatus.NOT_INSTALLED
    return DockerStatus.UNAVAILABLE


class StatusFetcher:
    """Collects status snapshots for local and remote hosts."""

    def __init__(
        self,
        executor: "CommandExecutor",
        local: "LocalDispatch",
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        docker_timeout: float = DEFAULT_DOCKER_TIMEOUT,
    ) -> None:
        """Initialize fetcher.

        Args:
            executor: Executor for remote hosts
            local: In-process probes for local hosts
            fetch_timeout: Per-host deadline for a full status fetch
            docker_timeout: Deadline for a local container listing
        """
        self.executor = executor
        self.local = local
        self.fetch_timeout = fetch_timeout
        self.docker_timeout = docker_timeout

    async def fetch_status(self, host: "HostConfig") -> StatusSnapshot:
        """Full status fetch bounded by the per-host deadline.

        Returns:
            Snapshot with status, or with ``error`` set on failure
        """
        operation = self._fetch_local() if host.local else self._fetch_remote(host)
        try:
            return await run_with_deadline(operation, self.fetch_timeout, host.name)
        except Exception as e:
            logger.warning("Status fetch for %s failed: %s", host.name, e)
            return StatusSnapshot(name=host.name, error=str(e))

    async def _fetch_local(self) -> StatusSnapshot:
        status = await self.local.status()
        alerts = await asyncio.to_thread(check_alerts, self.local.thresholds, status)
        return StatusSnapshot(name=status["hostname"], status=status, alerts=alerts)

    async def _fetch_remote(self, host: "HostConfig") -> StatusSnapshot:
        out = await self.executor.run(host, ["status", "--json"])
        payload = check_status_payload(host.name, decode_payload(host.name, out))
        snapshot = StatusSnapshot(name=host.name, status=payload)

        containers = await self._optional(host, ["docker", "list", "--json"])
        if isinstance(containers, list):
            snapshot.containers = [c for c in containers if isinstance(c, dict)]
            snapshot.docker_status = DockerStatus.OK

        alerts = await self._optional(host, ["alerts", "--json"])
        if is_alerts_payload(alerts):
            snapshot.alerts = alerts
        elif alerts is not None:
            logger.debug("Ignoring malformed alerts payload from %s", host.name)

        return snapshot

    async def _optional(self, host: "HostConfig", args: list[str]) -> Any:
        """Run a secondary command; failures only cost that section."""
        try:
            return decode_payload(host.name, await self.executor.run(host, args))
        except Exception as e:
            logger.debug("Optional %s on %s failed: %s", args[0], host.name, e)
            return None

    async def fetch_containers(self) -> ContainerSnapshot:
        """List local containers, bounded by the docker deadline."""
        try:
            containers = await run_with_deadline(
                self.local.containers(), self.docker_timeout, "local"
            )
        except Exception as e:
            status = classify_docker_error(e)
            logger.debug("Docker listing failed (%s): %s", status.value, e)
            return ContainerSnapshot(docker_status=status)
        return ContainerSnapshot(containers=containers, docker_status=DockerStatus.OK)
