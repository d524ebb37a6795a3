"""Remote command executor.

Runs one homebutler subcommand on one host: in process for local hosts,
over a fresh SSH session for remote ones.
"""

import logging
import shlex
from collections.abc import Sequence
from typing import TYPE_CHECKING

import asyncssh

from homebutler.errors import ConnectionFailedError, RemoteCommandError

if TYPE_CHECKING:
    from homebutler.models import HostConfig
    from homebutler.services.connection import ConnectionManager
    from homebutler.services.local import LocalDispatch

logger = logging.getLogger(__name__)

# Common install locations, so the binary is found without a login shell
REMOTE_PATH = (
    "$HOME/.local/bin:$HOME/bin:$HOME/go/bin:/opt/homebrew/bin:"
    "/usr/local/bin:/usr/local/sbin:/snap/bin:$PATH"
)


def build_remote_command(bin_path: str, args: Sequence[str]) -> str:
    """Build the shell line executed on the remote host.

    Args:
        bin_path: Remote binary (name or path)
        args: Subcommand arguments

    Returns:
        ``export PATH=...; <bin> <args>`` with each argument shell-quoted
    """
    parts = [bin_path, *(shlex.quote(arg) for arg in args)]
    return f"export PATH={REMOTE_PATH}; " + " ".join(parts)


class CommandExecutor:
    """Executes one logical operation on one host."""

    def __init__(self, connections: "ConnectionManager", local: "LocalDispatch") -> None:
        self.connections = connections
        self.local = local

    async def run(self, host: "HostConfig", args: Sequence[str]) -> bytes:
        """Run an operation on a host.

        Args:
            host: Target host
            args: Subcommand and flags (e.g. ``["status", "--json"]``)

        Returns:
            Raw output (JSON payload on success)

        Raises:
            UnsupportedOperationError: Local host, operation not available
            RemoteCommandError: Remote command exited non-zero
            HomeButlerError: Any connection or trust failure
        """
        if host.local:
            return await self.local.dispatch(args, host_name=host.name)

        command = build_remote_command(host.bin_path, args)
        conn = await self.connections.connect(host)
        async with conn:
            try:
                result = await conn.run(
                    command,
                    check=False,
                    stderr=asyncssh.STDOUT,
                    encoding=None,
                )
            except (OSError, asyncssh.Error) as e:
                raise ConnectionFailedError(
                    host.name,
                    host.address,
                    e,
                    "Failed to open an SSH session channel",
                ) from e

        output = result.stdout or b""
        if isinstance(output, str):
            output = output.encode("utf-8")

        if result.returncode != 0:
            logger.warning(
                "Command on %s exited with status %s", host.name, result.returncode
            )
            raise RemoteCommandError(
                host.name,
                result.returncode,
                output.decode("utf-8", errors="replace"),
                host.bin_path,
            )

        logger.debug("Command on %s returned %d bytes", host.name, len(output))
        return output
