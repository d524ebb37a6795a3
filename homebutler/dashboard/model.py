"""Dashboard state machine.

``DashboardModel.update`` is the only place view state changes. It takes one
event, mutates the model, and returns the commands the engine should run.
It never performs I/O, so it can be driven entirely from tests.
"""

import time
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from homebutler.models import HostConfig

DEFAULT_REFRESH_INTERVAL = 2.0
DEFAULT_HISTORY_SIZE = 60


class DockerStatus(str, Enum):
    """Outcome of the most recent container listing."""

    PENDING = ""
    OK = "ok"
    UNAVAILABLE = "unavailable"
    NOT_INSTALLED = "not_installed"


class TabState(Enum):
    """Lifecycle of a host tab."""

    LOADING = "loading"
    POPULATED = "populated"
    ERRORED = "errored"


class ResultKind(Enum):
    """Which part of a tab a result refreshes."""

    STATUS = "status"
    CONTAINERS = "containers"


@dataclass
class StatusSnapshot:
    """Full status fetch for one host.

    ``docker_status`` stays PENDING when the fetch did not list containers.
    """

    name: str
    status: dict[str, Any] | None = None
    containers: list[dict[str, Any]] = field(default_factory=list)
    docker_status: DockerStatus = DockerStatus.PENDING
    alerts: dict[str, Any] | None = None
    error: str | None = None
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def cpu_percent(self) -> float:
        return usage_percent(self.status.get("cpu")) if self.status else 0.0

    @property
    def mem_percent(self) -> float:
        return usage_percent(self.status.get("memory")) if self.status else 0.0


def usage_percent(section: Any, key: str = "usage_percent") -> float:
    """Read a percentage from a payload section, 0.0 when absent or malformed."""
    if not isinstance(section, dict):
        return 0.0
    try:
        return float(section.get(key) or 0.0)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class ContainerSnapshot:
    """Independent container listing for a local host."""

    containers: list[dict[str, Any]] = field(default_factory=list)
    docker_status: DockerStatus = DockerStatus.PENDING


@dataclass
class HostTab:
    """One monitored host's live view."""

    host: HostConfig
    data: StatusSnapshot
    cpu_history: deque[float]
    mem_history: deque[float]

    @classmethod
    def for_host(cls, host: HostConfig, history_size: int = DEFAULT_HISTORY_SIZE) -> "HostTab":
        return cls(
            host=host,
            data=StatusSnapshot(name=host.name),
            cpu_history=deque(maxlen=history_size),
            mem_history=deque(maxlen=history_size),
        )

    @property
    def state(self) -> TabState:
        if self.data.error is not None:
            return TabState.ERRORED
        if self.data.status is None:
            return TabState.LOADING
        return TabState.POPULATED

    @property
    def label(self) -> str:
        return self.data.name or self.host.name


# Events


@dataclass(frozen=True)
class KeyPress:
    key: str


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class Tick:
    at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class ResultArrived:
    index: int
    kind: ResultKind
    snapshot: StatusSnapshot | ContainerSnapshot


Event = KeyPress | Resize | Tick | ResultArrived


# Commands


@dataclass(frozen=True)
class FetchStatus:
    index: int


@dataclass(frozen=True)
class FetchContainers:
    index: int


@dataclass(frozen=True)
class ScheduleTick:
    delay: float


@dataclass(frozen=True)
class Quit:
    pass


Command = FetchStatus | FetchContainers | ScheduleTick | Quit

QUIT_KEYS = ("q", "ctrl+c")


class DashboardModel:
    """Per-host view state plus the transition function."""

    def __init__(
        self,
        tabs: list[HostTab],
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
    ) -> None:
        if not tabs:
            raise ValueError("dashboard needs at least one host")
        self.tabs = tabs
        self.refresh_interval = refresh_interval
        self.active_tab = 0
        self.width = 0
        self.height = 0
        self.quitting = False

    @classmethod
    def build(
        cls,
        hosts: Sequence[HostConfig],
        names: Sequence[str] | None = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
    ) -> "DashboardModel":
        """Create tabs for all hosts, or for the named ones.

        Unknown names are skipped. With nothing left, a synthetic ``local``
        host is monitored.
        """
        if names:
            by_name = {host.name: host for host in hosts}
            selected = [by_name[name] for name in names if name in by_name]
        else:
            selected = list(hosts)

        if not selected:
            selected = [HostConfig(name="local", local=True)]

        tabs = [HostTab.for_host(host, history_size) for host in selected]
        return cls(tabs, refresh_interval=refresh_interval)

    @property
    def current(self) -> HostTab:
        return self.tabs[self.active_tab]

    def _fetch_all(self) -> list[Command]:
        commands: list[Command] = []
        for index, tab in enumerate(self.tabs):
            commands.append(FetchStatus(index))
            if tab.host.local:
                commands.append(FetchContainers(index))
        return commands

    def init(self) -> list[Command]:
        """Initial fetch of every host plus the first tick."""
        return [*self._fetch_all(), ScheduleTick(self.refresh_interval)]

    def update(self, event: Event) -> list[Command]:
        """Apply one event.

        Args:
            event: KeyPress, Resize, Tick or ResultArrived

        Returns:
            Commands for the engine to execute
        """
        if isinstance(event, KeyPress):
            return self._on_key(event.key)

        if isinstance(event, Resize):
            self.width = event.width
            self.height = event.height
            return []

        if isinstance(event, Tick):
            return [*self._fetch_all(), ScheduleTick(self.refresh_interval)]

        if isinstance(event, ResultArrived):
            if not 0 <= event.index < len(self.tabs):
                return []
            tab = self.tabs[event.index]
            if event.kind == ResultKind.STATUS and isinstance(event.snapshot, StatusSnapshot):
                self._merge_status(tab, event.snapshot)
            elif event.kind == ResultKind.CONTAINERS and isinstance(
                event.snapshot, ContainerSnapshot
            ):
                tab.data.containers = event.snapshot.containers
                tab.data.docker_status = event.snapshot.docker_status
            return []

        return []

    def _on_key(self, key: str) -> list[Command]:
        if key in QUIT_KEYS:
            self.quitting = True
            return [Quit()]
        count = len(self.tabs)
        if count > 1:
            if key == "tab":
                self.active_tab = (self.active_tab + 1) % count
            elif key == "shift+tab":
                self.active_tab = (self.active_tab - 1 + count) % count
        return []

    @staticmethod
    def _merge_status(tab: HostTab, snapshot: StatusSnapshot) -> None:
        previous = tab.data
        tab.data = snapshot
        if snapshot.docker_status == DockerStatus.PENDING:
            snapshot.docker_status = previous.docker_status
            snapshot.containers = previous.containers
        if snapshot.status is not None:
            tab.cpu_history.append(snapshot.cpu_percent)
            tab.mem_history.append(snapshot.mem_percent)
