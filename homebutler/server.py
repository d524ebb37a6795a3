"""homebutler FastMCP server.

Wires the MCP tools, middleware and the small JSON HTTP API together.
Business logic lives in services/ and tools/.
"""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse

from homebutler.config import ConfigError, Settings
from homebutler.errors import HomeButlerError
from homebutler.models import HostConfig, decode_payload
from homebutler.middleware import ErrorHandlingMiddleware, LoggingMiddleware
from homebutler.services.fanout import abandoned_count, run_all
from homebutler.services.local import DockerError
from homebutler.services.state import get_deps
from homebutler.tools import (
    alerts,
    docker_list,
    docker_logs,
    docker_restart,
    docker_stop,
    fleet,
    open_ports,
    system_status,
)
from homebutler.tools.homelab import FLEET_OPERATIONS
from homebutler.utils.console import ColorfulFormatter, RequestFormatter

logger = logging.getLogger(__name__)

NOISY_LOGGERS = [
    "uvicorn",
    "uvicorn.access",
    "uvicorn.error",
    "asyncssh",
    "httpx",
    "httpcore",
    "fastmcp",
    "starlette",
    "anyio",
]


def configure_logging(settings: Settings, log_file: Path | None = None) -> None:
    """Configure logging for the homebutler package.

    Args:
        settings: Source of the log level
        log_file: Write to this file instead of stderr (used while the
            dashboard owns the terminal)
    """
    package_logger = logging.getLogger("homebutler")
    package_logger.setLevel(getattr(logging, settings.log_level, logging.INFO))
    package_logger.handlers = []
    package_logger.propagate = False

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file)
        handler.setFormatter(ColorfulFormatter(use_colors=False))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(RequestFormatter(use_colors=sys.stderr.isatty()))
    package_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        lg = logging.getLogger(name)
        lg.setLevel(logging.WARNING)
        lg.handlers = []
        lg.propagate = False

    root_logger = logging.getLogger()
    root_logger.handlers = []
    root_logger.setLevel(logging.WARNING)


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Build dependencies at startup and report the configured fleet.

    Yields:
        Dict with configured server names
    """
    logger.info("homebutler server starting up")
    deps = get_deps()
    hosts = deps.config.get_hosts()
    logger.info(
        "Loaded %d server(s): %s",
        len(hosts),
        ", ".join(host.name for host in hosts) if hosts else "(none)",
    )
    logger.info("homebutler server ready to accept connections")
    try:
        yield {"servers": [host.name for host in hosts]}
    finally:
        pending = abandoned_count()
        if pending:
            logger.info("Leaving %d abandoned operation(s) behind", pending)
        logger.info("homebutler server shutting down")


def configure_middleware(server: FastMCP, settings: Settings) -> None:
    """Add middleware in order: ErrorHandling -> Logging.

    Args:
        server: The FastMCP server to configure.
        settings: Payload logging, slow threshold and traceback options
    """
    server.add_middleware(ErrorHandlingMiddleware(include_traceback=settings.include_traceback))
    server.add_middleware(
        LoggingMiddleware(
            include_payloads=settings.log_payloads,
            slow_threshold_ms=settings.slow_threshold_ms,
        )
    )


def _error_response(error: Exception, status_code: int) -> JSONResponse:
    return JSONResponse({"error": str(error)}, status_code=status_code)


async def _run_remote(host: HostConfig, args: list[str]) -> JSONResponse:
    """Relay one server's JSON payload; any failure is a 502."""
    try:
        output = await get_deps().executor.run(host, args)
        return JSONResponse(decode_payload(host.name, output))
    except HomeButlerError as e:
        return _error_response(e, 502)


async def _run_query(request: Request, args: list[str]) -> JSONResponse:
    """Run an operation on this machine, or on ``?server=<name>``."""
    deps = get_deps()
    name = request.query_params.get("server")
    host_name = "local"
    if name:
        try:
            host = deps.config.require_host(name)
        except ConfigError as e:
            return _error_response(e, 404)
        if not host.local:
            return await _run_remote(host, args)
        host_name = host.name

    try:
        output = await deps.local.dispatch(args, host_name=host_name)
        return JSONResponse(decode_payload(host_name, output))
    except HomeButlerError as e:
        return _error_response(e, 500)


def register_local_routes(server: FastMCP) -> None:
    """Single-host endpoints; ``?server=<name>`` forwards to a configured server."""

    @server.custom_route("/api/status", methods=["GET"])
    async def status(request: Request) -> JSONResponse:
        return await _run_query(request, ["status", "--json"])

    @server.custom_route("/api/alerts", methods=["GET"])
    async def alerts_route(request: Request) -> JSONResponse:
        return await _run_query(request, ["alerts", "--json"])

    @server.custom_route("/api/ports", methods=["GET"])
    async def ports(request: Request) -> JSONResponse:
        return await _run_query(request, ["ports", "--json"])

    @server.custom_route("/api/processes", methods=["GET"])
    async def processes(request: Request) -> JSONResponse:
        return await _run_query(request, ["processes", "--json"])

    @server.custom_route("/api/docker", methods=["GET"])
    async def docker(request: Request) -> JSONResponse:
        """Local listing degrades to ``available: false`` when docker is down."""
        if request.query_params.get("server"):
            return await _run_query(request, ["docker", "list", "--json"])
        try:
            containers = await get_deps().local.containers()
        except DockerError as e:
            logger.debug("Docker listing failed: %s", e)
            return JSONResponse(
                {"available": False, "message": "Docker is not available", "containers": []}
            )
        return JSONResponse({"available": True, "containers": containers})


def register_routes(server: FastMCP) -> None:
    """Register the HTTP API on the MCP app."""
    register_local_routes(server)

    @server.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> PlainTextResponse:
        """Health check endpoint."""
        client_host = request.client.host if request.client else "unknown"
        logger.debug("Health check from %s", client_host)
        return PlainTextResponse("OK")

    @server.custom_route("/api/servers", methods=["GET"])
    async def list_servers(request: Request) -> JSONResponse:
        """Configured servers without credentials."""
        try:
            hosts = get_deps().config.get_hosts()
        except ConfigError as e:
            return _error_response(e, 500)
        return JSONResponse(
            [
                {
                    "name": host.name,
                    "host": host.host,
                    "port": host.port,
                    "user": host.user,
                    "local": host.local,
                }
                for host in hosts
            ]
        )

    @server.custom_route("/api/servers/{name}/status", methods=["GET"])
    async def server_status(request: Request) -> JSONResponse:
        """Status of one configured server."""
        deps = get_deps()
        try:
            host = deps.config.require_host(request.path_params["name"])
        except ConfigError as e:
            return _error_response(e, 404)
        return await _run_remote(host, ["status", "--json"])

    @server.custom_route("/api/fleet/{operation}", methods=["GET"])
    async def fleet_operation(request: Request) -> JSONResponse:
        """Fan an operation out to all servers; per-server errors are inline."""
        operation = request.path_params["operation"]
        if operation not in FLEET_OPERATIONS:
            return JSONResponse(
                {"error": f"unknown operation {operation!r}"}, status_code=404
            )
        deps = get_deps()
        try:
            hosts = deps.config.get_hosts()
        except ConfigError as e:
            return _error_response(e, 500)
        results = await run_all(hosts, FLEET_OPERATIONS[operation], deps.executor)
        return JSONResponse([result.to_dict() for result in results])


def create_server(settings: Settings | None = None) -> FastMCP:
    """Create and configure the MCP server with middleware, tools and routes.

    Returns:
        Configured FastMCP server instance
    """
    settings = settings or get_deps().config.settings
    server = FastMCP("homebutler", lifespan=app_lifespan)

    configure_middleware(server, settings)

    server.tool()(system_status)
    server.tool()(docker_list)
    server.tool()(docker_restart)
    server.tool()(docker_stop)
    server.tool()(docker_logs)
    server.tool()(alerts)
    server.tool()(open_ports)
    server.tool()(fleet)

    register_routes(server)
    return server
