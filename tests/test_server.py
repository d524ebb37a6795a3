"""Tests for the HTTP API and server wiring."""

import json
import logging
from collections.abc import Generator, Sequence
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.testclient import TestClient

from homebutler.config import Config, Settings
from homebutler.dependencies import Dependencies
from homebutler.errors import ConnectionFailedError, TransportTimeoutError
from homebutler.services.local import DockerError
from homebutler.models import HostConfig
from homebutler.server import configure_logging, create_server
from homebutler.services.state import reset_state, set_deps
from homebutler.utils.console import ColorfulFormatter, RequestFormatter

REGISTRY = """
servers:
  - name: nas
    host: 10.0.0.5
    password: secret
    auth: password
  - name: pi
    host: 10.0.0.9
    port: 2222
"""


@pytest.fixture
def deps(tmp_path: Path) -> Generator[Dependencies, None, None]:
    """Dependencies with a real registry and a mocked executor."""
    path = tmp_path / "config.yaml"
    path.write_text(REGISTRY)
    config = Config.from_file(path, known_hosts_path=tmp_path / "known_hosts")
    container = Dependencies.from_config(config)
    container.executor = MagicMock()
    container.executor.run = AsyncMock(return_value=b'{"hostname": "nas"}')
    set_deps(container)
    yield container
    reset_state()


@pytest.fixture
def client(deps: Dependencies) -> TestClient:
    """Test client for the HTTP app."""
    server = create_server(Settings())
    return TestClient(server.http_app())


class TestRoutes:
    """Tests for the JSON HTTP API."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.text == "OK"
        assert "text/plain" in response.headers["content-type"]

    def test_list_servers_omits_credentials(self, client: TestClient) -> None:
        response = client.get("/api/servers")

        assert response.status_code == 200
        body = response.json()
        assert [server["name"] for server in body] == ["nas", "pi"]
        assert body[1] == {
            "name": "pi",
            "host": "10.0.0.9",
            "port": 2222,
            "user": "root",
            "local": False,
        }
        assert "secret" not in response.text

    def test_server_status(self, client: TestClient, deps: Dependencies) -> None:
        response = client.get("/api/servers/nas/status")

        assert response.status_code == 200
        assert response.json() == {"hostname": "nas"}
        host, args = deps.executor.run.call_args.args
        assert host.name == "nas"
        assert args == ["status", "--json"]

    def test_unknown_server(self, client: TestClient) -> None:
        response = client.get("/api/servers/ghost/status")

        assert response.status_code == 404
        assert "Available servers: nas, pi" in response.json()["error"]

    def test_unreachable_server(self, client: TestClient, deps: Dependencies) -> None:
        deps.executor.run.side_effect = TransportTimeoutError("nas", "10.0.0.5:22")

        response = client.get("/api/servers/nas/status")

        assert response.status_code == 502
        assert response.json()["error"].startswith("[nas] connection timed out")

    def test_non_json_output_is_bad_gateway(
        self, client: TestClient, deps: Dependencies
    ) -> None:
        deps.executor.run.return_value = b"homebutler: unknown command \"status\""

        response = client.get("/api/servers/nas/status")

        assert response.status_code == 502
        error = response.json()["error"]
        assert error.startswith("[nas] invalid response from remote server: not JSON")
        assert "unknown command" in error

    def test_unknown_fleet_operation(self, client: TestClient) -> None:
        assert client.get("/api/fleet/reboot").status_code == 404

    def test_fleet_reports_each_server(self, client: TestClient, deps: Dependencies) -> None:
        async def run(host: HostConfig, args: Sequence[str]) -> bytes:
            if host.name == "pi":
                raise ConnectionFailedError("pi", host.address, OSError("refused"))
            return json.dumps({"host": host.name, "op": args[0]}).encode()

        deps.executor.run.side_effect = run

        response = client.get("/api/fleet/alerts")

        assert response.status_code == 200
        nas, pi = response.json()
        assert nas == {"server": "nas", "data": {"host": "nas", "op": "alerts"}}
        assert pi["server"] == "pi"
        assert "SSH connection failed" in pi["error"]


class TestCreateServer:
    """Tests for tool registration."""

    @pytest.mark.asyncio
    async def test_tools_registered(self, deps: Dependencies) -> None:
        server = create_server(Settings())

        tools: Any = await server.get_tools()

        assert set(tools) == {
            "system_status",
            "docker_list",
            "docker_restart",
            "docker_stop",
            "docker_logs",
            "alerts",
            "open_ports",
            "fleet",
        }


class TestConfigureLogging:
    """Tests for logging setup."""

    def test_stderr_handler(self) -> None:
        configure_logging(Settings(log_level="DEBUG"))

        package_logger = logging.getLogger("homebutler")
        assert package_logger.level == logging.DEBUG
        assert len(package_logger.handlers) == 1
        assert isinstance(package_logger.handlers[0].formatter, RequestFormatter)
        assert logging.getLogger("asyncssh").level == logging.WARNING

    def test_file_handler(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "watch.log"

        configure_logging(Settings(), log_file=log_file)
        logging.getLogger("homebutler.dashboard").info("Dashboard started")

        handler = logging.getLogger("homebutler").handlers[0]
        assert isinstance(handler, logging.FileHandler)
        assert type(handler.formatter) is ColorfulFormatter
        handler.flush()
        assert "Dashboard started" in log_file.read_text()
        handler.close()


class TestLocalRoutes:
    """Tests for the single-host endpoints."""

    @pytest.fixture
    def local(self, deps: Dependencies) -> MagicMock:
        deps.local = MagicMock()
        deps.local.dispatch = AsyncMock(return_value=b'{"hostname": "desk"}')
        deps.local.containers = AsyncMock(return_value=[{"name": "plex"}])
        return deps.local

    @pytest.mark.parametrize(
        "path,operation",
        [
            ("/api/status", "status"),
            ("/api/alerts", "alerts"),
            ("/api/ports", "ports"),
            ("/api/processes", "processes"),
        ],
    )
    def test_runs_locally(
        self, client: TestClient, local: MagicMock, deps: Dependencies, path: str, operation: str
    ) -> None:
        response = client.get(path)

        assert response.status_code == 200
        assert response.json() == {"hostname": "desk"}
        local.dispatch.assert_awaited_once_with([operation, "--json"], host_name="local")
        deps.executor.run.assert_not_called()

    def test_server_param_forwards(
        self, client: TestClient, local: MagicMock, deps: Dependencies
    ) -> None:
        response = client.get("/api/ports", params={"server": "pi"})

        assert response.status_code == 200
        host, args = deps.executor.run.call_args.args
        assert host.name == "pi"
        assert args == ["ports", "--json"]
        local.dispatch.assert_not_called()

    def test_unknown_server_param(self, client: TestClient, local: MagicMock) -> None:
        assert client.get("/api/status", params={"server": "ghost"}).status_code == 404

    def test_docker(self, client: TestClient, local: MagicMock) -> None:
        response = client.get("/api/docker")

        assert response.json() == {"available": True, "containers": [{"name": "plex"}]}

    def test_docker_unavailable(self, client: TestClient, local: MagicMock) -> None:
        local.containers.side_effect = DockerError("local", "docker is not installed")

        response = client.get("/api/docker")

        assert response.status_code == 200
        assert response.json() == {
            "available": False,
            "message": "Docker is not available",
            "containers": [],
        }
