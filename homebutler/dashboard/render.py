"""Rich renderables for the dashboard."""

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from rich.console import Group, RenderableType
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from homebutler.dashboard.model import DockerStatus, usage_percent

if TYPE_CHECKING:
    from homebutler.dashboard.model import DashboardModel, HostTab, StatusSnapshot

BAR_FILL = "█"
BAR_EMPTY = "░"
SPARKLINE_CHARS = "▁▂▃▄▅▆▇█"
MAX_CONTAINERS = 8
BORDER = "medium_purple"

ALERT_STYLES = {
    "ok": "green",
    "warning": "yellow",
    "critical": "red",
}


def truncate(value: str, limit: int) -> str:
    """Shorten a string to ``limit`` characters, marking the cut with ``~``."""
    if len(value) <= limit:
        return value
    if limit <= 1:
        return value[:limit]
    return value[: limit - 1] + "~"


def threshold_color(percent: float) -> str:
    """Green below 70%, yellow below 90%, red otherwise."""
    if percent >= 90:
        return "red"
    if percent >= 70:
        return "yellow"
    return "green"


def alert_style(status: str) -> str:
    return ALERT_STYLES.get(status, "dim")


def _alert_status(item: Any) -> str:
    return str(item.get("status", "")) if isinstance(item, dict) else ""


def progress_bar(percent: float, width: int) -> Text:
    """Threshold-coloured bar.

    Example: ████████░░░░░░░░
    """
    width = max(width, 5)
    filled = max(0, min(width, int(percent / 100 * width)))
    text = Text()
    text.append(BAR_FILL * filled, style=threshold_color(percent))
    text.append(BAR_EMPTY * (width - filled), style="dim")
    return text


def sparkline(values: Iterable[float], width: int) -> Text:
    """Render the most recent ``width`` samples as a sparkline."""
    samples = list(values)[-width:] if width > 0 else []
    if not samples:
        return Text("▁" * max(width, 0), style="dim")

    max_idx = len(SPARKLINE_CHARS) - 1
    text = Text()
    for value in samples:
        normalized = max(0.0, min(1.0, value / 100.0))
        text.append(SPARKLINE_CHARS[int(normalized * max_idx)], style=threshold_color(value))
    return text


def render_tabs(model: "DashboardModel") -> Text:
    text = Text()
    for index, tab in enumerate(model.tabs):
        label = f" [{index + 1}] {tab.label} "
        if index == model.active_tab:
            text.append(label, style="bold #ffffd7 on medium_purple")
        else:
            text.append(label, style="grey50")
    text.append(f"  ({len(model.tabs)} available · Tab to switch)", style="dim")
    return text


def _metric_line(label: str, percent: float, bar_width: int) -> Text:
    line = Text(f"  {label:<4} ")
    line.append_text(progress_bar(percent, bar_width))
    line.append(f" {percent:5.1f}%")
    return line


def render_system_panel(tab: "HostTab", width: int) -> Panel:
    """CPU, memory and disk bars with history sparklines."""
    snapshot = tab.data
    lines: list[RenderableType] = []
    status = snapshot.status

    if status is None:
        lines.append(Text("  Waiting for data...", style="dim"))
    else:
        bar_width = max(width - 20, 8)
        pad = " " * 7

        lines.append(_metric_line("CPU", snapshot.cpu_percent, bar_width))
        lines.append(Text(pad).append_text(sparkline(tab.cpu_history, bar_width)))
        lines.append(_metric_line("Mem", snapshot.mem_percent, bar_width))
        lines.append(Text(pad).append_text(sparkline(tab.mem_history, bar_width)))

        for disk in status.get("disks") or []:
            if not isinstance(disk, dict):
                continue
            lines.append(
                _metric_line(
                    truncate(str(disk.get("mount", "?")), 4), usage_percent(disk), bar_width
                )
            )

        memory = status.get("memory", {})
        lines.append(Text(""))
        lines.append(Text(f"  Uptime:  {status.get('uptime', '')}"))
        lines.append(Text(f"  OS:      {status.get('os', '')}/{status.get('arch', '')}"))
        lines.append(Text(f"  Cores:   {status.get('cpu', {}).get('cores', 0)}"))
        lines.append(
            Text(
                f"  Memory:  {memory.get('used_gb', 0):.1f} / {memory.get('total_gb', 0):.1f} GB"
            )
        )

    title = Text("⚡ " + (snapshot.name or "System"), style="bold")
    return Panel(Group(*lines), title=title, title_align="left", border_style=BORDER)


def _state_style(state: str) -> str:
    if state == "running":
        return "green"
    if state == "exited":
        return "red"
    return "yellow"


def render_docker_panel(snapshot: "StatusSnapshot") -> Panel:
    """Container table, at most MAX_CONTAINERS rows."""
    body: RenderableType
    if snapshot.docker_status == DockerStatus.NOT_INSTALLED:
        body = Text("  Docker not installed", style="dim")
    elif snapshot.docker_status == DockerStatus.UNAVAILABLE:
        body = Text("  Docker unavailable (daemon not running?)", style="yellow")
    elif snapshot.docker_status == DockerStatus.OK:
        body = _container_table(snapshot.containers)
    else:
        body = Text("  Waiting for data...", style="dim")
    return Panel(
        body,
        title=Text("Docker Containers", style="bold"),
        title_align="left",
        border_style=BORDER,
    )


def _container_table(containers: list[dict[str, Any]]) -> RenderableType:
    if not containers:
        return Text("  No containers", style="dim")

    table = Table(box=None, header_style="bold medium_purple", pad_edge=True)
    table.add_column("NAME", no_wrap=True)
    table.add_column("STATE", no_wrap=True)
    table.add_column("IMAGE", no_wrap=True)
    table.add_column("STATUS", no_wrap=True)
    for container in containers[:MAX_CONTAINERS]:
        state = container.get("state", "")
        table.add_row(
            truncate(container.get("name", ""), 18),
            Text(state, style=_state_style(state)),
            truncate(container.get("image", ""), 10),
            truncate(container.get("status", ""), 20),
        )

    if len(containers) <= MAX_CONTAINERS:
        return table
    more = Text(f"  ... and {len(containers) - MAX_CONTAINERS} more", style="dim")
    return Group(table, more)


def render_footer(model: "DashboardModel") -> Panel:
    """Alert summary for the active host and key hints."""
    lines: list[Text] = []
    alerts = model.current.data.alerts
    if alerts:
        line = Text("  Alerts: ")
        parts = []
        for key, label in (("cpu", "CPU"), ("memory", "Mem")):
            item = alerts.get(key)
            if isinstance(item, dict):
                parts.append(
                    (_alert_status(item), f"{label}: {usage_percent(item, 'current'):.0f}%")
                )
        parts.extend(
            (
                _alert_status(disk),
                f"Disk {disk.get('mount', '?')}: {usage_percent(disk, 'current'):.0f}%",
            )
            for disk in alerts.get("disks") or []
            if isinstance(disk, dict)
        )
        for status, label in parts:
            line.append(label, style=alert_style(status))
            line.append("  ")
        lines.append(line)

    keys = Text("  ")
    if len(model.tabs) > 1:
        keys.append("Tab/Shift+Tab", style="bold medium_purple")
        keys.append(" switch server  │  ")
    keys.append("q", style="bold medium_purple")
    keys.append(" quit  │  ")
    keys.append(f"⟳ {model.refresh_interval:g}s", style="dim")
    lines.append(keys)

    return Panel(Group(*lines), border_style=BORDER)


def render_dashboard(model: "DashboardModel") -> RenderableType:
    """Full screen: tab bar, content panels and footer."""
    if model.width == 0:
        return Text("  Loading dashboard...")

    tab = model.current
    if tab.data.error is not None:
        content: Layout = Layout(
            Panel(Text(f"  Error: {tab.data.error}", style="red"), border_style=BORDER)
        )
    else:
        left_width = max(model.width * 2 // 5 - 2, 28)
        content = Layout()
        content.split_row(
            Layout(render_system_panel(tab, left_width), size=left_width + 4),
            Layout(render_docker_panel(tab.data)),
        )

    root = Layout()
    root.split_column(
        Layout(render_tabs(model), size=1),
        content,
        Layout(render_footer(model), size=4 if tab.data.alerts else 3),
    )
    return root
