"""SSH connection manager with trust-on-first-use.

Each call opens a fresh session. Host identity is checked against the
trust store file; an unknown key is probed, accepted and redialed exactly
once, a changed key is always refused. Async methods touch key files and the
trust file only from worker threads.
"""

import asyncio
import logging
import os
from collections.abc import Callable
from typing import TYPE_CHECKING

import asyncssh

from homebutler.errors import (
    CONFIG_HINT,
    ConnectionFailedError,
    NoCredentialsError,
    TransportTimeoutError,
    TrustCancelledError,
    TrustMismatchError,
    TrustUnresolvedError,
)
from homebutler.models import HostKeyProbe, TrustRecord, TrustStatus

if TYPE_CHECKING:
    from homebutler.config import TrustStore
    from homebutler.models import HostConfig

logger = logging.getLogger(__name__)

DEFAULT_DIAL_TIMEOUT = 10.0
DEFAULT_KEY_FILES = ("~/.ssh/id_ed25519", "~/.ssh/id_rsa")

# Signature algorithms a recorded key type may be negotiated under
_HOST_KEY_ALGS = {
    "ssh-rsa": ["rsa-sha2-512", "rsa-sha2-256", "ssh-rsa"],
}


def host_key_algs(key_types: list[str]) -> list[str]:
    """Expand recorded key types to host key algorithms for negotiation."""
    algs: list[str] = []
    for key_type in key_types:
        for alg in _HOST_KEY_ALGS.get(key_type, [key_type]):
            if alg not in algs:
                algs.append(alg)
    return algs


def split_public_key(key: asyncssh.SSHKey) -> tuple[str, str]:
    """Return (key_type, base64 blob) as written in known_hosts."""
    exported = key.export_public_key("openssh").decode("ascii").split()
    return exported[0], exported[1]


class ConnectionManager:
    """Opens authenticated SSH sessions, one per call."""

    def __init__(
        self,
        trust_store: "TrustStore",
        dial_timeout: float = DEFAULT_DIAL_TIMEOUT,
        auto_trust: bool = True,
        default_key_files: tuple[str, ...] = DEFAULT_KEY_FILES,
    ) -> None:
        """Initialize connection manager.

        Args:
            trust_store: Store consulted for host identity decisions
            dial_timeout: Seconds allowed for TCP connect plus SSH handshake
            auto_trust: Accept unknown host keys on first use
            default_key_files: Keys tried in order when none is configured
        """
        self.trust_store = trust_store
        self.dial_timeout = dial_timeout
        self.auto_trust = auto_trust
        self.default_key_files = default_key_files

        logger.info(
            "ConnectionManager initialized (known_hosts=%s, dial_timeout=%gs, auto_trust=%s)",
            trust_store.path,
            dial_timeout,
            auto_trust,
        )

    def resolve_credentials(
        self, host: "HostConfig"
    ) -> tuple[list[asyncssh.SSHKey] | None, str | None]:
        """Pick the single auth method configured for a host.

        Args:
            host: Host configuration

        Returns:
            Tuple of (client keys, password); exactly one is set

        Raises:
            NoCredentialsError: If the selected method has nothing usable
        """
        if not host.use_key_auth:
            if not host.password:
                raise NoCredentialsError(
                    host.name,
                    "password auth selected but no password configured",
                    f"Set 'password' for {host.name} in {CONFIG_HINT}",
                )
            return None, host.password

        if host.key_file:
            path = os.path.expanduser(host.key_file)
            try:
                return [asyncssh.read_private_key(path)], None
            except (OSError, asyncssh.KeyImportError) as e:
                raise NoCredentialsError(
                    host.name,
                    f"failed to read SSH key {path}: {e}",
                    f"Check 'key' for {host.name} in {CONFIG_HINT}",
                ) from e

        for candidate in self.default_key_files:
            path = os.path.expanduser(candidate)
            try:
                key = asyncssh.read_private_key(path)
            except (OSError, asyncssh.KeyImportError) as e:
                logger.debug("Skipping default key %s: %s", path, e)
                continue
            logger.debug("Using default key %s for %s", path, host.name)
            return [key], None

        raise NoCredentialsError(
            host.name,
            "no SSH key found (tried " + ", ".join(self.default_key_files) + ")",
            "Generate one with: ssh-keygen -t ed25519\n"
            f"Or set 'key' for {host.name} in {CONFIG_HINT}",
        )

    async def _dial(
        self,
        host: "HostConfig",
        client_keys: list[asyncssh.SSHKey] | None,
        password: str | None,
    ) -> asyncssh.SSHClientConnection:
        return await asyncssh.connect(
            host.host,
            port=host.port,
            username=host.user,
            client_keys=client_keys,
            password=password,
            agent_path=None,
            preferred_auth="publickey" if client_keys else "password,keyboard-interactive",
            known_hosts=str(self.trust_store.path),
            connect_timeout=self.dial_timeout,
        )

    async def probe(self, host: "HostConfig") -> HostKeyProbe:
        """Fetch the key a host presents and classify it.

        When the address already has records, negotiation is limited to the
        recorded key types so a host offering several keys is compared like
        for like.

        Args:
            host: Host configuration

        Returns:
            HostKeyProbe with the trust status and presented key

        Raises:
            asyncio.TimeoutError: If the host does not answer in time
            OSError, asyncssh.Error: If the handshake fails
        """
        address = host.known_hosts_address
        known_types = await asyncio.to_thread(self.trust_store.known_key_types, address)
        kwargs = {"server_host_key_algs": host_key_algs(known_types)} if known_types else {}

        server_key = await asyncio.wait_for(
            asyncssh.get_server_host_key(host.host, host.port, **kwargs),
            timeout=self.dial_timeout,
        )
        if server_key is None:
            raise ConnectionFailedError(
                host.name, host.address, RuntimeError("server presented no host key")
            )

        key_type, key = split_public_key(server_key)
        status = await asyncio.to_thread(self.trust_store.verify, address, key_type, key)
        logger.debug("Probed %s (%s): %s %s", host.name, address, key_type, status.value)
        return HostKeyProbe(status=status, address=address, key_type=key_type, key=key)

    async def connect(self, host: "HostConfig") -> asyncssh.SSHClientConnection:
        """Open one authenticated session to a remote host.

        Args:
            host: Host configuration (must not be local)

        Returns:
            Open SSH connection; the caller closes it

        Raises:
            NoCredentialsError: Before dialing, if auth cannot be satisfied
            TransportTimeoutError: If the dial exceeds the timeout
            TrustMismatchError: If the host key differs from the record
            TrustUnresolvedError: If an unknown key could not be accepted
            ConnectionFailedError: For any other dial failure
        """
        client_keys, password = await asyncio.to_thread(self.resolve_credentials, host)
        await asyncio.to_thread(self.trust_store.ensure_exists)

        logger.info(
            "Opening SSH connection to %s (%s@%s)",
            host.name,
            host.user,
            host.address,
        )
        try:
            return await self._dial(host, client_keys, password)
        except asyncssh.HostKeyNotVerifiable as e:
            logger.info("Host key for %s not verified: %s", host.name, e)
            return await self._resolve_trust(host, client_keys, password)
        except asyncio.TimeoutError as e:
            raise TransportTimeoutError(host.name, host.address) from e
        except asyncssh.PermissionDenied as e:
            raise ConnectionFailedError(
                host.name,
                host.address,
                e,
                f"Check user/credentials for {host.name} in {CONFIG_HINT}",
            ) from e
        except (OSError, asyncssh.Error) as e:
            raise ConnectionFailedError(host.name, host.address, e) from e

    async def _resolve_trust(
        self,
        host: "HostConfig",
        client_keys: list[asyncssh.SSHKey] | None,
        password: str | None,
    ) -> asyncssh.SSHClientConnection:
        """Probe an unverified host, accept it on first use and redial once."""
        remedy = f"Run: homebutler trust {host.name}"
        try:
            probe = await self.probe(host)
        except asyncio.TimeoutError as e:
            raise TransportTimeoutError(host.name, host.address) from e
        except (OSError, asyncssh.Error, ConnectionFailedError) as e:
            raise TrustUnresolvedError(
                host.name, f"could not read host key ({host.address}): {e}", remedy
            ) from e

        if probe.status == TrustStatus.MISMATCH:
            logger.error(
                "Host key mismatch for %s (%s): presented %s",
                host.name,
                probe.address,
                probe.fingerprint,
            )
            raise TrustMismatchError(host.name, probe.address)

        if not self.auto_trust:
            raise TrustUnresolvedError(
                host.name, f"unknown host key ({probe.address}) {probe.fingerprint}", remedy
            )

        try:
            await asyncio.to_thread(
                self.trust_store.auto_accept, probe.address, probe.key_type, probe.key
            )
            logger.info(
                "Trusted new host key for %s (%s %s)",
                host.name,
                probe.key_type,
                probe.fingerprint,
            )
            return await self._dial(host, client_keys, password)
        except TrustMismatchError as e:
            raise TrustMismatchError(host.name, probe.address) from e
        except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
            logger.warning("Retry after trusting %s failed: %s", host.name, e)
            raise TrustUnresolvedError(
                host.name, f"connection failed after trusting host key: {e}", remedy
            ) from e

    async def trust_host(
        self,
        host: "HostConfig",
        confirm_fn: Callable[[str], bool],
    ) -> TrustRecord:
        """Interactively trust a host's current key.

        Args:
            host: Host configuration
            confirm_fn: Receives the fingerprint, returns the operator decision

        Returns:
            The trusted record (existing or newly written)

        Raises:
            TrustMismatchError: If a different key is already recorded
            TrustCancelledError: If the operator declined
            TransportTimeoutError: If the host does not answer in time
            ConnectionFailedError: If the key cannot be read
            NoCredentialsError: If the host has no usable credentials
        """
        await asyncio.to_thread(self.resolve_credentials, host)
        try:
            probe = await self.probe(host)
        except asyncio.TimeoutError as e:
            raise TransportTimeoutError(host.name, host.address) from e
        except (OSError, asyncssh.Error) as e:
            raise ConnectionFailedError(host.name, host.address, e) from e

        if probe.status == TrustStatus.TRUSTED:
            logger.info("Host %s is already trusted", host.name)
            return TrustRecord(hosts=(probe.address,), key_type=probe.key_type, key=probe.key)
        if probe.status == TrustStatus.MISMATCH:
            raise TrustMismatchError(host.name, probe.address)

        try:
            return await asyncio.to_thread(
                self.trust_store.confirm, probe.address, probe.key_type, probe.key, confirm_fn
            )
        except TrustCancelledError as e:
            raise TrustCancelledError(host.name) from e

    def forget_host(self, host: "HostConfig") -> int:
        """Remove every trust record for a host's address.

        Returns:
            Number of removed records
        """
        return self.trust_store.forget(host.known_hosts_address)
