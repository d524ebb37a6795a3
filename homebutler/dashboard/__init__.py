"""Live terminal dashboard."""

from homebutler.dashboard.engine import DashboardEngine
from homebutler.dashboard.fetch import StatusFetcher
from homebutler.dashboard.model import (
    ContainerSnapshot,
    DashboardModel,
    DockerStatus,
    HostTab,
    KeyPress,
    Resize,
    ResultArrived,
    ResultKind,
    StatusSnapshot,
    TabState,
    Tick,
)

__all__ = [
    "ContainerSnapshot",
    "DashboardEngine",
    "DashboardModel",
    "DockerStatus",
    "HostTab",
    "KeyPress",
    "Resize",
    "ResultArrived",
    "ResultKind",
    "StatusFetcher",
    "StatusSnapshot",
    "TabState",
    "Tick",
]
