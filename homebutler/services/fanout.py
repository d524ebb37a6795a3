"""Concurrent multi-host execution.

Results are positional: slot ``i`` always belongs to ``hosts[i]`` no matter
when it completes. A failing or slow host only ever affects its own slot.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

from homebutler.errors import FetchTimeoutError
from homebutler.models import HostResult

if TYPE_CHECKING:
    from homebutler.models import HostConfig
    from homebutler.services.executors import CommandExecutor

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Operations that lost the race against their deadline; referenced until done
_abandoned: set[asyncio.Future[Any]] = set()


def _discard_abandoned(task: asyncio.Future[Any]) -> None:
    _abandoned.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Abandoned operation finished with error: %s", exc)
    else:
        logger.debug("Abandoned operation finished; result discarded")


def abandoned_count() -> int:
    """Number of abandoned operations still running."""
    return len(_abandoned)


async def run_with_deadline(
    operation: Awaitable[T],
    deadline: float,
    host_name: str,
) -> T:
    """Race an operation against a timer.

    On expiry the operation keeps running in the background (it is not
    cancelled); whatever it eventually produces is discarded.

    Args:
        operation: Awaitable to run
        deadline: Seconds to wait
        host_name: Host name for the timeout error

    Returns:
        The operation's result if it finished in time

    Raises:
        FetchTimeoutError: If the deadline expired first
    """
    task = asyncio.ensure_future(operation)
    done, _ = await asyncio.wait({task}, timeout=deadline)
    if task in done:
        return task.result()

    _abandoned.add(task)
    task.add_done_callback(_discard_abandoned)
    logger.warning("Operation on %s exceeded %gs deadline, abandoning", host_name, deadline)
    raise FetchTimeoutError(host_name, deadline)


async def gather_hosts(
    hosts: Sequence["HostConfig"],
    operation: Callable[["HostConfig"], Awaitable[bytes]],
    deadline: float | None = None,
) -> list[HostResult]:
    """Apply an operation to every host concurrently.

    Args:
        hosts: Target hosts
        operation: Coroutine function producing a host's payload
        deadline: Optional per-host deadline in seconds

    Returns:
        One HostResult per host, in input order
    """
    results: list[HostResult | None] = [None] * len(hosts)

    async def run_one(index: int, host: "HostConfig") -> None:
        """Fill one slot, converting any failure into an error result."""
        try:
            if deadline is not None:
                data = await run_with_deadline(operation(host), deadline, host.name)
            else:
                data = await operation(host)
            results[index] = HostResult(host=host.name, data=data)
        except Exception as e:
            logger.warning("Host %s failed: %s", host.name, e)
            results[index] = HostResult(host=host.name, error=str(e))

    await asyncio.gather(*(run_one(i, host) for i, host in enumerate(hosts)))
    return [result for result in results if result is not None]


async def run_all(
    hosts: Sequence["HostConfig"],
    args: Sequence[str],
    executor: "CommandExecutor",
    deadline: float | None = None,
) -> list[HostResult]:
    """Run one subcommand on every host concurrently.

    Args:
        hosts: Target hosts (local hosts dispatch in process)
        args: Subcommand and flags
        executor: Command executor
        deadline: Optional per-host deadline in seconds

    Returns:
        One HostResult per host, in input order; never raises for
        per-host failures
    """
    logger.info("Running %r on %d host(s)", " ".join(args), len(hosts))
    return await gather_hosts(hosts, lambda host: executor.run(host, args), deadline)


def _nested_float(data: dict[str, Any], *keys: str) -> float:
    current: Any = data
    for key in keys:
        if not isinstance(current, dict):
            return 0.0
        current = current.get(key)
    return float(current) if isinstance(current, (int, float)) else 0.0


def _first_disk_percent(data: dict[str, Any]) -> float:
    disks = data.get("disks")
    if isinstance(disks, list) and disks and isinstance(disks[0], dict):
        return _nested_float(disks[0], "usage_percent")
    return 0.0


def format_results(results: Sequence[HostResult]) -> str:
    """Render a status batch as one line per host.

    Args:
        results: Batch from run_all with ``status`` payloads

    Returns:
        Human-readable summary
    """
    lines = []
    for result in results:
        if result.error is not None:
            lines.append(f"❌ {result.host:<12} {result.error}")
            continue
        data = result.payload()
        if not isinstance(data, dict):
            lines.append(f"📡 {result.host:<12} (parse error)")
            continue
        cpu = _nested_float(data, "cpu", "usage_percent")
        mem = _nested_float(data, "memory", "usage_percent")
        disk = _first_disk_percent(data)
        uptime = data.get("uptime") if isinstance(data.get("uptime"), str) else ""
        lines.append(
            f"📡 {result.host:<12} CPU {cpu:4.0f}% | Mem {mem:4.0f}% | "
            f"Disk {disk:4.0f}% | Up {uptime}"
        )
    return "\n".join(lines)
