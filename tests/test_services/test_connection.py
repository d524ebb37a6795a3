"""Tests for the SSH connection manager."""

import asyncio
import base64
import threading
from collections.abc import Generator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import asyncssh
import pytest

from homebutler.config import TrustStore
from homebutler.errors import (
    ConnectionFailedError,
    NoCredentialsError,
    TransportTimeoutError,
    TrustCancelledError,
    TrustMismatchError,
    TrustUnresolvedError,
)
from homebutler.models import AuthMode, HostConfig, TrustStatus
from homebutler.services.connection import (
    ConnectionManager,
    host_key_algs,
    split_public_key,
)

KEY_A = base64.b64encode(b"server-key-a").decode()
KEY_B = base64.b64encode(b"server-key-b").decode()


def server_key(key_type: str, key: str) -> MagicMock:
    """Fake asyncssh.SSHKey exporting an OpenSSH public key line."""
    mock = MagicMock()
    mock.export_public_key.return_value = f"{key_type} {key} root@nas\n".encode()
    return mock


@pytest.fixture
def host() -> HostConfig:
    """Password-auth host so no key files are read."""
    return HostConfig(
        name="nas",
        host="10.0.0.5",
        port=2222,
        user="admin",
        auth=AuthMode.PASSWORD,
        password="secret",
    )


@pytest.fixture
def store(tmp_path: Path) -> TrustStore:
    return TrustStore(tmp_path / "known_hosts")


@pytest.fixture
def manager(store: TrustStore) -> ConnectionManager:
    return ConnectionManager(store, dial_timeout=5.0)


@pytest.fixture
def mock_connect() -> Generator[AsyncMock, None, None]:
    with patch("homebutler.services.connection.asyncssh.connect", new_callable=AsyncMock) as mock:
        yield mock


@pytest.fixture
def mock_host_key() -> Generator[AsyncMock, None, None]:
    with patch(
        "homebutler.services.connection.asyncssh.get_server_host_key",
        new_callable=AsyncMock,
    ) as mock:
        mock.return_value = server_key("ssh-ed25519", KEY_A)
        yield mock


def test_host_key_algs_expands_rsa() -> None:
    assert host_key_algs(["ssh-ed25519", "ssh-rsa"]) == [
        "ssh-ed25519",
        "rsa-sha2-512",
        "rsa-sha2-256",
        "ssh-rsa",
    ]


def test_split_public_key() -> None:
    assert split_public_key(server_key("ssh-ed25519", KEY_A)) == ("ssh-ed25519", KEY_A)


class TestResolveCredentials:
    """Tests for choosing the auth method."""

    def test_password(self, manager: ConnectionManager, host: HostConfig) -> None:
        assert manager.resolve_credentials(host) == (None, "secret")

    def test_password_mode_without_password(self, manager: ConnectionManager) -> None:
        host = HostConfig(name="nas", host="10.0.0.5", auth=AuthMode.PASSWORD)

        with pytest.raises(NoCredentialsError, match="no password configured"):
            manager.resolve_credentials(host)

    def test_unreadable_key_file(self, manager: ConnectionManager, tmp_path: Path) -> None:
        host = HostConfig(name="nas", host="10.0.0.5", key_file=str(tmp_path / "absent"))

        with pytest.raises(NoCredentialsError, match="failed to read SSH key"):
            manager.resolve_credentials(host)

    def test_configured_key_file(self, manager: ConnectionManager) -> None:
        host = HostConfig(name="nas", host="10.0.0.5", key_file="~/.ssh/custom")
        key = MagicMock()

        with patch(
            "homebutler.services.connection.asyncssh.read_private_key", return_value=key
        ) as read:
            assert manager.resolve_credentials(host) == ([key], None)

        read.assert_called_once_with(str(Path("~/.ssh/custom").expanduser()))

    def test_first_readable_default_key(self, store: TrustStore, tmp_path: Path) -> None:
        """Default keys are tried in order; unreadable ones are skipped."""
        first = str(tmp_path / "id_ed25519")
        second = str(tmp_path / "id_rsa")
        manager = ConnectionManager(store, default_key_files=(first, second))
        key = MagicMock()

        with patch(
            "homebutler.services.connection.asyncssh.read_private_key",
            side_effect=[FileNotFoundError(first), key],
        ):
            keys, password = manager.resolve_credentials(HostConfig(name="nas", host="h"))

        assert keys == [key]
        assert password is None

    def test_no_default_key(self, store: TrustStore, tmp_path: Path) -> None:
        manager = ConnectionManager(store, default_key_files=(str(tmp_path / "none"),))

        with pytest.raises(NoCredentialsError) as exc_info:
            manager.resolve_credentials(HostConfig(name="nas", host="h"))

        assert "ssh-keygen -t ed25519" in str(exc_info.value)


class TestConnect:
    """Tests for dialing with trust-on-first-use."""

    @pytest.mark.asyncio
    async def test_trusted_host_connects_directly(
        self,
        manager: ConnectionManager,
        host: HostConfig,
        store: TrustStore,
        mock_connect: AsyncMock,
    ) -> None:
        conn = MagicMock()
        mock_connect.return_value = conn

        result = await manager.connect(host)

        assert result is conn
        kwargs = mock_connect.call_args.kwargs
        assert mock_connect.call_args.args == ("10.0.0.5",)
        assert kwargs["port"] == 2222
        assert kwargs["username"] == "admin"
        assert kwargs["password"] == "secret"
        assert kwargs["known_hosts"] == str(store.path)
        assert kwargs["connect_timeout"] == 5.0
        assert kwargs["agent_path"] is None
        assert store.path.exists()

    @pytest.mark.asyncio
    async def test_unknown_key_is_trusted_and_redialed(
        self,
        manager: ConnectionManager,
        host: HostConfig,
        store: TrustStore,
        mock_connect: AsyncMock,
        mock_host_key: AsyncMock,
    ) -> None:
        """First contact records the key and redials exactly once."""
        conn = MagicMock()
        mock_connect.side_effect = [asyncssh.HostKeyNotVerifiable("Host key is not trusted"), conn]

        result = await manager.connect(host)

        assert result is conn
        assert mock_connect.call_count == 2
        assert store.verify("[10.0.0.5]:2222", "ssh-ed25519", KEY_A) == TrustStatus.TRUSTED
        mock_host_key.assert_awaited_once_with("10.0.0.5", 2222)

    @pytest.mark.asyncio
    async def test_changed_key_is_refused(
        self,
        manager: ConnectionManager,
        host: HostConfig,
        store: TrustStore,
        mock_connect: AsyncMock,
        mock_host_key: AsyncMock,
    ) -> None:
        store.auto_accept("[10.0.0.5]:2222", "ssh-ed25519", KEY_B)
        mock_connect.side_effect = asyncssh.HostKeyNotVerifiable("Host key is not trusted")

        with pytest.raises(TrustMismatchError) as exc_info:
            await manager.connect(host)

        assert exc_info.value.host_name == "nas"
        assert "homebutler trust nas --reset" in str(exc_info.value)
        assert mock_connect.call_count == 1
        assert store.records("[10.0.0.5]:2222")[0].key == KEY_B

    @pytest.mark.asyncio
    async def test_key_scan_limits_algorithms_to_recorded_types(
        self,
        manager: ConnectionManager,
        host: HostConfig,
        store: TrustStore,
        mock_host_key: AsyncMock,
    ) -> None:
        store.auto_accept("[10.0.0.5]:2222", "ssh-rsa", KEY_B)
        mock_host_key.return_value = server_key("ssh-rsa", KEY_B)

        scanned = await manager.probe(host)

        assert scanned.status == TrustStatus.TRUSTED
        mock_host_key.assert_awaited_once_with(
            "10.0.0.5",
            2222,
            server_host_key_algs=["rsa-sha2-512", "rsa-sha2-256", "ssh-rsa"],
        )

    @pytest.mark.asyncio
    async def test_auto_trust_disabled(
        self,
        store: TrustStore,
        host: HostConfig,
        mock_connect: AsyncMock,
        mock_host_key: AsyncMock,
    ) -> None:
        manager = ConnectionManager(store, auto_trust=False)
        mock_connect.side_effect = asyncssh.HostKeyNotVerifiable("Host key is not trusted")

        with pytest.raises(TrustUnresolvedError) as exc_info:
            await manager.connect(host)

        assert "homebutler trust nas" in str(exc_info.value)
        assert store.records() == []

    @pytest.mark.asyncio
    async def test_redial_failure_is_unresolved(
        self,
        manager: ConnectionManager,
        host: HostConfig,
        mock_connect: AsyncMock,
        mock_host_key: AsyncMock,
    ) -> None:
        mock_connect.side_effect = [
            asyncssh.HostKeyNotVerifiable("Host key is not trusted"),
            OSError("Connection reset"),
        ]

        with pytest.raises(TrustUnresolvedError, match="connection failed after trusting"):
            await manager.connect(host)

    @pytest.mark.asyncio
    async def test_key_scan_failure_is_unresolved(
        self,
        manager: ConnectionManager,
        host: HostConfig,
        mock_connect: AsyncMock,
        mock_host_key: AsyncMock,
    ) -> None:
        mock_connect.side_effect = asyncssh.HostKeyNotVerifiable("Host key is not trusted")
        mock_host_key.side_effect = OSError("Connection refused")

        with pytest.raises(TrustUnresolvedError, match="could not read host key"):
            await manager.connect(host)

    @pytest.mark.asyncio
    async def test_timeout(
        self, manager: ConnectionManager, host: HostConfig, mock_connect: AsyncMock
    ) -> None:
        mock_connect.side_effect = asyncio.TimeoutError()

        with pytest.raises(TransportTimeoutError) as exc_info:
            await manager.connect(host)

        assert exc_info.value.host_name == "nas"
        assert exc_info.value.address == "10.0.0.5:2222"

    @pytest.mark.asyncio
    async def test_permission_denied(
        self, manager: ConnectionManager, host: HostConfig, mock_connect: AsyncMock
    ) -> None:
        mock_connect.side_effect = asyncssh.PermissionDenied("Permission denied")

        with pytest.raises(ConnectionFailedError) as exc_info:
            await manager.connect(host)

        assert "Check user/credentials for nas" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_refused(
        self, manager: ConnectionManager, host: HostConfig, mock_connect: AsyncMock
    ) -> None:
        mock_connect.side_effect = ConnectionRefusedError("Connection refused")

        with pytest.raises(ConnectionFailedError, match="Connection refused"):
            await manager.connect(host)

    @pytest.mark.asyncio
    async def test_no_credentials_never_dials(
        self, manager: ConnectionManager, mock_connect: AsyncMock
    ) -> None:
        host = HostConfig(name="nas", host="10.0.0.5", auth=AuthMode.PASSWORD)

        with pytest.raises(NoCredentialsError):
            await manager.connect(host)

        mock_connect.assert_not_called()

    @pytest.mark.asyncio
    async def test_key_file_read_off_event_loop(
        self, manager: ConnectionManager, mock_connect: AsyncMock
    ) -> None:
        loop_thread = threading.get_ident()
        reader_threads: list[int] = []

        def read_key(path: str) -> MagicMock:
            reader_threads.append(threading.get_ident())
            return MagicMock()

        host = HostConfig(name="nas", host="10.0.0.5", key_file="/keys/nas")
        with patch(
            "homebutler.services.connection.asyncssh.read_private_key", side_effect=read_key
        ):
            await manager.connect(host)

        assert len(reader_threads) == 1
        assert reader_threads[0] != loop_thread


class TestTrustHost:
    """Tests for interactive trust."""

    @pytest.mark.asyncio
    async def test_approved(
        self,
        manager: ConnectionManager,
        host: HostConfig,
        store: TrustStore,
        mock_host_key: AsyncMock,
    ) -> None:
        prompts: list[str] = []

        def approve(fp: str) -> bool:
            prompts.append(fp)
            return True

        record = await manager.trust_host(host, approve)

        assert prompts == [record.fingerprint]
        assert store.verify("[10.0.0.5]:2222", "ssh-ed25519", KEY_A) == TrustStatus.TRUSTED

    @pytest.mark.asyncio
    async def test_prompt_runs_off_event_loop(
        self, manager: ConnectionManager, host: HostConfig, mock_host_key: AsyncMock
    ) -> None:
        loop_thread = threading.get_ident()
        prompt_threads: list[int] = []

        def approve(fp: str) -> bool:
            prompt_threads.append(threading.get_ident())
            return True

        await manager.trust_host(host, approve)

        assert prompt_threads and prompt_threads[0] != loop_thread

    @pytest.mark.asyncio
    async def test_declined(
        self,
        manager: ConnectionManager,
        host: HostConfig,
        store: TrustStore,
        mock_host_key: AsyncMock,
    ) -> None:
        with pytest.raises(TrustCancelledError) as exc_info:
            await manager.trust_host(host, lambda fp: False)

        assert exc_info.value.host_name == "nas"
        assert store.records() == []

    @pytest.mark.asyncio
    async def test_already_trusted_skips_prompt(
        self,
        manager: ConnectionManager,
        host: HostConfig,
        store: TrustStore,
        mock_host_key: AsyncMock,
    ) -> None:
        store.auto_accept("[10.0.0.5]:2222", "ssh-ed25519", KEY_A)
        approve = MagicMock()

        record = await manager.trust_host(host, approve)

        approve.assert_not_called()
        assert record.key == KEY_A

    @pytest.mark.asyncio
    async def test_mismatch_refused_without_prompt(
        self,
        manager: ConnectionManager,
        host: HostConfig,
        store: TrustStore,
        mock_host_key: AsyncMock,
    ) -> None:
        store.auto_accept("[10.0.0.5]:2222", "ssh-ed25519", KEY_B)
        approve = MagicMock()

        with pytest.raises(TrustMismatchError):
            await manager.trust_host(host, approve)

        approve.assert_not_called()

    @pytest.mark.asyncio
    async def test_unreachable(
        self, manager: ConnectionManager, host: HostConfig, mock_host_key: Any
    ) -> None:
        mock_host_key.side_effect = asyncio.TimeoutError()

        with pytest.raises(TransportTimeoutError):
            await manager.trust_host(host, lambda fp: True)

    def test_forget_host(
        self, manager: ConnectionManager, host: HostConfig, store: TrustStore
    ) -> None:
        store.auto_accept("[10.0.0.5]:2222", "ssh-ed25519", KEY_A)

        assert manager.forget_host(host) == 1
        assert store.records() == []
