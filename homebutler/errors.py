"""Error taxonomy for remote execution and trust decisions.

Every error names the host it originated from and, where the operator can
do something about it, carries a remedy line.
"""

CONFIG_HINT = "~/.config/homebutler/config.yaml"


class HomeButlerError(Exception):
    """Base error carrying the originating host and an optional remedy."""

    def __init__(self, host_name: str, message: str, remedy: str | None = None):
        """Initialize error.

        Args:
            host_name: Name of the host the error originated from
            message: Human-readable description
            remedy: Suggested next step for the operator
        """
        self.host_name = host_name
        self.message = message
        self.remedy = remedy
        text = f"[{host_name}] {message}"
        if remedy:
            text += "".join(f"\n  → {line}" for line in remedy.splitlines())
        super().__init__(text)


class TransportTimeoutError(HomeButlerError):
    """Dial exceeded the fixed connection timeout."""

    def __init__(self, host_name: str, address: str):
        super().__init__(
            host_name,
            f"connection timed out ({address})",
            "Check if the server is online and reachable\n"
            f"Verify host/port in {CONFIG_HINT}",
        )
        self.address = address


class NoCredentialsError(HomeButlerError):
    """No usable credentials for the selected auth mode."""


class TrustUnresolvedError(HomeButlerError):
    """Host identity could not be established automatically or was declined."""


class TrustCancelledError(TrustUnresolvedError):
    """Operator declined to trust the presented host key."""

    def __init__(self, host_name: str):
        super().__init__(host_name, "trust cancelled by user")


class TrustMismatchError(HomeButlerError):
    """Presented host key differs from the recorded one."""

    def __init__(self, host_name: str, address: str):
        super().__init__(
            host_name,
            f"⚠️  SSH HOST KEY CHANGED ({address})\n"
            "  The server's host key does not match the one in known_hosts.\n"
            "  This could mean:\n"
            "    1. The server was reinstalled or its SSH keys were regenerated\n"
            "    2. A man-in-the-middle attack is in progress",
            f"If you trust this change: homebutler trust {host_name} --reset\n"
            "If unexpected: do NOT connect and investigate",
        )
        self.address = address


class ConnectionFailedError(HomeButlerError):
    """Dial or session setup failed for a reason other than timeout or trust."""

    def __init__(
        self,
        host_name: str,
        address: str,
        original_error: Exception,
        remedy: str | None = None,
    ):
        super().__init__(
            host_name,
            f"SSH connection failed ({address}): {original_error}",
            remedy
            or "Check: server online? correct host/port? firewall rules?\n"
            f"Config: {CONFIG_HINT}",
        )
        self.address = address
        self.original_error = original_error


class RemoteCommandError(HomeButlerError):
    """Remote command exited non-zero; output is attached verbatim."""

    def __init__(self, host_name: str, exit_status: int | None, output: str, bin_path: str):
        super().__init__(
            host_name,
            f"remote command failed (exit status {exit_status})\n  → Output: {output.strip()}",
            f"Check if {bin_path} is installed on the remote server "
            f"or set 'bin' for {host_name} in {CONFIG_HINT}",
        )
        self.exit_status = exit_status
        self.output = output


class UnsupportedOperationError(HomeButlerError):
    """Operation has no local in-process implementation."""


class FetchTimeoutError(HomeButlerError):
    """Per-host deadline expired before the operation finished."""

    def __init__(self, host_name: str, timeout: float):
        super().__init__(host_name, f"fetch timeout ({timeout:g}s)")
        self.timeout = timeout


class InvalidPayloadError(HomeButlerError):
    """Remote output was not the JSON shape this version expects."""

    def __init__(self, host_name: str, detail: str, bin_path: str = "homebutler"):
        super().__init__(
            host_name,
            f"invalid response from remote server: {detail}",
            f"Check that {bin_path} on the remote server matches this version",
        )
        self.detail = detail
