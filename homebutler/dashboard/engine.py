"""Dashboard event loop.

One coroutine owns the model and consumes an event queue. Fetches run as
worker tasks that only post ResultArrived events back; ticks come from
``loop.call_later``; keys and resizes are read from the terminal and posted
the same way.
"""

import asyncio
import contextlib
import logging
import os
import signal
import sys
import termios
import tty
from collections.abc import Iterator
from typing import TYPE_CHECKING

from rich.console import Console
from rich.live import Live

from homebutler.dashboard.model import (
    Command,
    Event,
    FetchContainers,
    FetchStatus,
    KeyPress,
    Resize,
    ResultArrived,
    ResultKind,
    ScheduleTick,
    Tick,
)
from homebutler.dashboard.render import render_dashboard

if TYPE_CHECKING:
    from homebutler.dashboard.fetch import StatusFetcher
    from homebutler.dashboard.model import DashboardModel

logger = logging.getLogger(__name__)

_ESCAPES = {
    b"\x1b[Z": "shift+tab",
}
_SINGLE_KEYS = {
    b"\t": "tab",
    b"\x03": "ctrl+c",
}


def decode_keys(data: bytes) -> list[str]:
    """Translate raw terminal input into key names."""
    keys: list[str] = []
    i = 0
    while i < len(data):
        for sequence, name in _ESCAPES.items():
            if data.startswith(sequence, i):
                keys.append(name)
                i += len(sequence)
                break
        else:
            byte = data[i : i + 1]
            if byte in _SINGLE_KEYS:
                keys.append(_SINGLE_KEYS[byte])
            elif byte != b"\x1b":
                keys.append(byte.decode("utf-8", errors="ignore"))
            i += 1
    return keys


class DashboardEngine:
    """Drives a DashboardModel with real I/O."""

    def __init__(
        self,
        model: "DashboardModel",
        fetcher: "StatusFetcher",
        console: Console | None = None,
    ) -> None:
        self.model = model
        self.fetcher = fetcher
        self.console = console or Console()
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._workers: set[asyncio.Task[None]] = set()
        self._tick_handle: asyncio.TimerHandle | None = None

    def post(self, event: Event) -> None:
        """Queue an event for the owning coroutine."""
        self._queue.put_nowait(event)

    async def step(self) -> None:
        """Apply the next queued event and execute the resulting commands."""
        event = await self._queue.get()
        self.execute(self.model.update(event))

    def execute(self, commands: list[Command]) -> None:
        """Start workers and timers for model commands."""
        loop = asyncio.get_running_loop()
        for command in commands:
            if isinstance(command, FetchStatus):
                self._spawn(self._fetch_status(command.index))
            elif isinstance(command, FetchContainers):
                self._spawn(self._fetch_containers(command.index))
            elif isinstance(command, ScheduleTick):
                self._tick_handle = loop.call_later(command.delay, self._post_tick)

    def _post_tick(self) -> None:
        self.post(Tick())

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._workers.add(task)
        task.add_done_callback(self._workers.discard)

    async def _fetch_status(self, index: int) -> None:
        snapshot = await self.fetcher.fetch_status(self.model.tabs[index].host)
        self.post(ResultArrived(index, ResultKind.STATUS, snapshot))

    async def _fetch_containers(self, index: int) -> None:
        snapshot = await self.fetcher.fetch_containers()
        self.post(ResultArrived(index, ResultKind.CONTAINERS, snapshot))

    def _on_input(self, fd: int) -> None:
        try:
            data = os.read(fd, 32)
        except OSError as e:
            logger.debug("Terminal read failed: %s", e)
            return
        for key in decode_keys(data):
            self.post(KeyPress(key))

    def _on_resize(self) -> None:
        size = self.console.size
        self.post(Resize(size.width, size.height))

    @contextlib.contextmanager
    def _terminal(self, loop: asyncio.AbstractEventLoop) -> Iterator[None]:
        """Put stdin in cbreak mode and route keys, resizes and ^C to the queue."""
        fd = sys.stdin.fileno() if sys.stdin.isatty() else None
        saved = termios.tcgetattr(fd) if fd is not None else None
        try:
            if fd is not None:
                tty.setcbreak(fd)
                loop.add_reader(fd, self._on_input, fd)
            loop.add_signal_handler(signal.SIGWINCH, self._on_resize)
            loop.add_signal_handler(signal.SIGINT, self.post, KeyPress("ctrl+c"))
            yield
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            loop.remove_signal_handler(signal.SIGWINCH)
            if fd is not None:
                loop.remove_reader(fd)
                termios.tcsetattr(fd, termios.TCSADRAIN, saved)

    def _shutdown(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
        for task in list(self._workers):
            task.cancel()

    async def run(self) -> None:
        """Run until a quit key is pressed."""
        loop = asyncio.get_running_loop()
        logger.info("Dashboard started with %d host(s)", len(self.model.tabs))
        with self._terminal(loop), Live(
            render_dashboard(self.model),
            console=self.console,
            screen=True,
            auto_refresh=False,
        ) as live:
            self._on_resize()
            self.execute(self.model.init())
            try:
                while not self.model.quitting:
                    await self.step()
                    live.update(render_dashboard(self.model), refresh=True)
            finally:
                self._shutdown()
        logger.info("Dashboard stopped")
