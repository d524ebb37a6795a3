"""Tests for the dashboard event loop."""

import asyncio
import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from rich.console import Console

from homebutler.dashboard.engine import DashboardEngine, decode_keys
from homebutler.dashboard.model import (
    ContainerSnapshot,
    DashboardModel,
    DockerStatus,
    FetchContainers,
    FetchStatus,
    KeyPress,
    ScheduleTick,
    StatusSnapshot,
    TabState,
    Tick,
)
from homebutler.models import HostConfig

STATUS = {"cpu": {"usage_percent": 20.0}, "memory": {"usage_percent": 30.0}, "disks": []}


@pytest.mark.parametrize(
    "data,keys",
    [
        (b"q", ["q"]),
        (b"\t", ["tab"]),
        (b"\x1b[Z", ["shift+tab"]),
        (b"\x03", ["ctrl+c"]),
        (b"\t\x1b[Z\tq", ["tab", "shift+tab", "tab", "q"]),
        (b"\x1b", []),
    ],
)
def test_decode_keys(data: bytes, keys: list[str]) -> None:
    assert decode_keys(data) == keys


@pytest.fixture
def fetcher() -> MagicMock:
    mock = MagicMock()
    mock.fetch_status = AsyncMock(
        side_effect=lambda host: StatusSnapshot(name=host.name, status=STATUS)
    )
    mock.fetch_containers = AsyncMock(
        return_value=ContainerSnapshot(containers=[], docker_status=DockerStatus.OK)
    )
    return mock


@pytest.fixture
def engine(fetcher: MagicMock) -> DashboardEngine:
    model = DashboardModel.build(
        [HostConfig(name="nas", host="10.0.0.5"), HostConfig(name="desk", local=True)],
        refresh_interval=0.01,
    )
    return DashboardEngine(model, fetcher, console=Console(file=io.StringIO()))


class TestDashboardEngine:
    """Tests for event dispatch."""

    @pytest.mark.asyncio
    async def test_fetch_result_is_posted_back(
        self, engine: DashboardEngine, fetcher: MagicMock
    ) -> None:
        engine.execute([FetchStatus(0)])

        await asyncio.wait_for(engine.step(), timeout=1.0)

        assert engine.model.tabs[0].state == TabState.POPULATED
        fetcher.fetch_status.assert_awaited_once_with(engine.model.tabs[0].host)

    @pytest.mark.asyncio
    async def test_container_result(self, engine: DashboardEngine) -> None:
        engine.execute([FetchContainers(1)])

        await asyncio.wait_for(engine.step(), timeout=1.0)

        assert engine.model.tabs[1].data.docker_status == DockerStatus.OK

    @pytest.mark.asyncio
    async def test_scheduled_tick_arrives(self, engine: DashboardEngine) -> None:
        engine.execute([ScheduleTick(0.01)])

        event = await asyncio.wait_for(engine._queue.get(), timeout=1.0)

        assert isinstance(event, Tick)

    @pytest.mark.asyncio
    async def test_quit_key(self, engine: DashboardEngine) -> None:
        engine.post(KeyPress("q"))

        await engine.step()

        assert engine.model.quitting is True

    @pytest.mark.asyncio
    async def test_shutdown_cancels_workers(self, engine: DashboardEngine) -> None:
        gate = asyncio.Event()

        async def hang(host: HostConfig) -> StatusSnapshot:
            await gate.wait()
            return StatusSnapshot(name=host.name)

        engine.fetcher.fetch_status = AsyncMock(side_effect=hang)
        engine.execute([FetchStatus(0), ScheduleTick(10.0)])
        await asyncio.sleep(0)
        workers = list(engine._workers)

        engine._shutdown()
        await asyncio.sleep(0)

        assert len(workers) == 1
        assert workers[0].cancelled()
        assert engine._tick_handle is not None
        assert engine._tick_handle.cancelled()
