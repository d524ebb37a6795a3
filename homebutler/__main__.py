"""Command-line entry point for homebutler."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from homebutler import __version__
from homebutler.config import ConfigError
from homebutler.dashboard import DashboardEngine, DashboardModel, StatusFetcher
from homebutler.dependencies import Dependencies
from homebutler.errors import HomeButlerError
from homebutler.models import HostResult
from homebutler.services.fanout import format_results, run_all
from homebutler.services.state import set_deps

logger = logging.getLogger(__name__)

QUERY_COMMANDS = ("status", "alerts", "docker", "ports", "processes")
DOCKER_ACTIONS = ("list", "ls", "restart", "stop", "logs")
WATCH_LOG = Path.home() / ".cache" / "homebutler" / "watch.log"


@dataclass(frozen=True)
class Options:
    """Parsed command line, built once and passed by value."""

    command: str
    args: tuple[str, ...] = ()
    server: str | None = None
    all_servers: bool = False
    json_output: bool = False
    config_path: str | None = None
    reset: bool = False
    list_keys: bool = False
    servers: tuple[str, ...] = field(default_factory=tuple)

    @property
    def remote_args(self) -> list[str]:
        """Arguments forwarded to the remote binary; payloads are always JSON."""
        return [self.command, *self.args, "--json"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="homebutler",
        description="Monitor and manage homelab servers.",
    )
    parser.add_argument("--config", metavar="PATH", help="host registry file")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_target_flags(p: argparse.ArgumentParser) -> None:
        p.add_argument("--server", metavar="NAME", help="run on a configured server")
        p.add_argument("--all", dest="all_servers", action="store_true", help="run on every server")
        p.add_argument("--json", dest="json_output", action="store_true", help="JSON output")

    add_target_flags(sub.add_parser("status", help="system status"))
    add_target_flags(sub.add_parser("alerts", help="threshold alerts"))
    add_target_flags(sub.add_parser("ports", help="listening ports"))
    add_target_flags(sub.add_parser("processes", help="top processes by CPU"))
    docker = sub.add_parser("docker", help="list and control docker containers")
    docker.add_argument("action", choices=DOCKER_ACTIONS)
    docker.add_argument("container", nargs="?", help="container name (restart, stop, logs)")
    docker.add_argument("lines", nargs="?", help="log lines to show (default: 50)")
    add_target_flags(docker)

    trust = sub.add_parser("trust", help="verify and trust a server's SSH host key")
    trust.add_argument("server_name", metavar="server")
    trust.add_argument("--reset", action="store_true", help="remove old keys first")
    trust.add_argument("--list", dest="list_keys", action="store_true", help="show recorded keys")

    watch = sub.add_parser("watch", help="live dashboard")
    watch.add_argument("servers", nargs="*", help="servers to monitor (default: all)")

    sub.add_parser("serve", help="run the MCP server over HTTP")
    sub.add_parser("mcp", help="run the MCP server over stdio")
    sub.add_parser("version", help="print version")
    return parser


def parse_options(argv: Sequence[str] | None = None) -> Options:
    """Parse argv into Options."""
    parser = build_parser()
    ns = parser.parse_args(argv)
    args: tuple[str, ...] = ()
    if ns.command == "docker":
        if ns.action not in ("list", "ls") and not ns.container:
            parser.error(f"docker {ns.action} needs a container name")
        args = tuple(arg for arg in (ns.action, ns.container, ns.lines) if arg)
    return Options(
        command=ns.command,
        args=args,
        server=getattr(ns, "server", None) or getattr(ns, "server_name", None),
        all_servers=getattr(ns, "all_servers", False),
        json_output=getattr(ns, "json_output", False),
        config_path=ns.config,
        reset=getattr(ns, "reset", False),
        list_keys=getattr(ns, "list_keys", False),
        servers=tuple(getattr(ns, "servers", ()) or ()),
    )


def _print_containers(console: Console, containers: list[dict[str, Any]]) -> None:
    table = Table(box=None, header_style="bold")
    for column in ("NAME", "STATE", "IMAGE", "STATUS", "PORTS"):
        table.add_column(column)
    for c in containers:
        table.add_row(c["name"], c["state"], c["image"], c["status"], c.get("ports", ""))
    console.print(table)


def print_output(options: Options, host_name: str, output: bytes) -> None:
    """Print one host's payload as JSON or a short human summary."""
    if options.json_output:
        sys.stdout.write(output.decode("utf-8", errors="replace"))
        if not output.endswith(b"\n"):
            sys.stdout.write("\n")
        return

    data = HostResult(host=host_name, data=output).payload()
    if options.command == "status":
        print(format_results([HostResult(host=host_name, data=output)]))
    elif options.command == "docker" and isinstance(data, list):
        _print_containers(Console(), data)
    elif options.command == "docker" and isinstance(data, dict) and "logs" in data:
        sys.stdout.write(data["logs"])
    elif options.command == "docker" and isinstance(data, dict) and "action" in data:
        print(f"{data['container']}: {data['action']} {data['status']}")
    else:
        print(json.dumps(data, indent=2))


async def run_query(options: Options, deps: Dependencies) -> int:
    """Run a query command locally, on one server, or on all of them."""
    config = deps.config
    if options.all_servers:
        hosts = config.get_hosts()
        if not hosts:
            raise ConfigError("no servers configured. Add servers to your config file")
        results = await run_all(hosts, options.remote_args, deps.executor)
        if options.json_output:
            print(json.dumps([result.to_dict() for result in results], indent=2))
        else:
            print(format_results(results))
        return 0

    if options.server:
        host = config.require_host(options.server)
        output = await deps.executor.run(host, options.remote_args)
        print_output(options, host.name, output)
        return 0

    output = await deps.local.dispatch(options.remote_args)
    print_output(options, "local", output)
    return 0


def _ask(fingerprint: str) -> bool:
    print(f"host key fingerprint: {fingerprint}", file=sys.stderr)
    print("trust this host? (y/n): ", end="", file=sys.stderr, flush=True)
    return sys.stdin.readline().strip().lower() == "y"


async def run_trust(options: Options, deps: Dependencies) -> int:
    """Show, reset or interactively accept a server's host key."""
    host = deps.config.require_host(options.server or "")
    if host.local:
        print(f"{host.name} is local; nothing to trust", file=sys.stderr)
        return 0

    if options.list_keys:
        for record in deps.trust_store.records(host.known_hosts_address):
            print(f"{record.key_type} {record.fingerprint}")
        return 0

    if options.reset:
        print(f"removing old host keys for {host.name}...", file=sys.stderr)
        removed = deps.connections.forget_host(host)
        logger.info("Removed %d key(s) for %s", removed, host.name)

    print(f"connecting to {host.name} ({host.address})...", file=sys.stderr)
    await deps.connections.trust_host(host, _ask)
    print(f"host key for {host.name} added to known_hosts", file=sys.stderr)
    return 0


async def run_watch(options: Options, deps: Dependencies) -> int:
    """Run the live dashboard until the operator quits."""
    settings = deps.config.settings
    model = DashboardModel.build(
        deps.config.get_hosts(),
        options.servers,
        history_size=settings.history_size,
        refresh_interval=settings.refresh_interval,
    )
    fetcher = StatusFetcher(
        deps.executor,
        deps.local,
        fetch_timeout=settings.fetch_timeout,
        docker_timeout=settings.docker_timeout,
    )
    await DashboardEngine(model, fetcher).run()
    return 0


def run_server(deps: Dependencies, transport: str) -> None:
    """Run the MCP server with the given transport."""
    from homebutler.server import create_server

    config = deps.config
    mcp = create_server(config.settings)
    if transport == "stdio":
        logger.info("Starting homebutler MCP server (transport=stdio)")
        mcp.run(transport="stdio")
    else:
        logger.info(
            "Starting homebutler MCP server (transport=http, host=%s, port=%d)",
            config.http_host,
            config.http_port,
        )
        mcp.run(transport="http", host=config.http_host, port=config.http_port)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Process exit status
    """
    options = parse_options(argv)
    if options.command == "version":
        print(f"homebutler {__version__}")
        return 0

    from homebutler.server import configure_logging

    try:
        deps = Dependencies.create(options.config_path)
        configure_logging(
            deps.config.settings,
            log_file=WATCH_LOG if options.command == "watch" else None,
        )
        set_deps(deps)

        if options.command in QUERY_COMMANDS:
            return asyncio.run(run_query(options, deps))
        if options.command == "trust":
            return asyncio.run(run_trust(options, deps))
        if options.command == "watch":
            return asyncio.run(run_watch(options, deps))
        run_server(deps, "stdio" if options.command == "mcp" else "http")
        return 0
    except (HomeButlerError, ConfigError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
