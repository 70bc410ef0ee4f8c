"""Live terminal dashboard built from SystemSnapshot values."""

import asyncio
import time

from rich.console import Group, RenderableType
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from device_pulse.config import DisplayConfig
from device_pulse.formatting import format_kb, format_rate, sparkline
from device_pulse.sampler import Sampler
from device_pulse.snapshot import CPU, DISK, MEMORY, NETWORK, PROCESSES, SystemSnapshot

SPARK_WIDTH = 40


def _percent_color(percent: float) -> str:
    if percent >= 90:
        return "bright_red"
    if percent >= 70:
        return "bright_yellow"
    return "green"


def _stale_mark(snapshot: SystemSnapshot, family: str) -> str:
    return " [dim](stale)[/]" if snapshot.is_stale(family) else ""


def render_dashboard(
    snapshot: SystemSnapshot,
    display: DisplayConfig,
    now: float | None = None,
) -> RenderableType:
    """Build the dashboard renderable for one snapshot."""
    if snapshot.updated_at is None:
        return Panel(Text("Waiting for first sample..."), title="device-pulse")

    history = snapshot.history
    cpu_c = _percent_color(snapshot.cpu_percent)
    mem_c = _percent_color(snapshot.mem_percent)

    lines = [
        f"CPU  [{cpu_c}]{snapshot.cpu_percent:5.1f}%[/] "
        f"[{cpu_c}]{sparkline(history.cpu, SPARK_WIDTH, 100.0)}[/]{_stale_mark(snapshot, CPU)}",
        f"MEM  [{mem_c}]{snapshot.mem_percent:5.1f}%[/] "
        f"[{mem_c}]{sparkline(history.mem, SPARK_WIDTH, 100.0)}[/]{_stale_mark(snapshot, MEMORY)}",
        f"NET  ↓{format_rate(snapshot.net_rx_rate):>10} [cyan]{sparkline(history.net_rx, 20)}[/]"
        f"  ↑{format_rate(snapshot.net_tx_rate):>10} [magenta]{sparkline(history.net_tx, 20)}[/]"
        f"{_stale_mark(snapshot, NETWORK)}",
    ]
    if snapshot.memory is not None:
        mem = snapshot.memory
        lines[1] += f"  [dim]{format_kb(mem.used_kb)}/{format_kb(mem.total_kb)}[/]"
    if snapshot.disk is not None:
        disk = snapshot.disk
        disk_c = _percent_color(snapshot.disk_percent)
        lines.append(
            f"DISK [{disk_c}]{snapshot.disk_percent:5.1f}%[/] {escape(disk.mount)} "
            f"[dim]{format_kb(disk.used_kb)}/{format_kb(disk.total_kb)}[/]"
            f"{_stale_mark(snapshot, DISK)}"
        )

    age = snapshot.age(now)
    subtitle = f"cycle {snapshot.cycle}"
    if age is not None and age > display.stale_after:
        subtitle += f" [bright_red]no update for {age:.0f}s[/]"

    table = Table(expand=True, title=f"Processes{_stale_mark(snapshot, PROCESSES)}")
    table.add_column("PID", justify="right", width=7)
    table.add_column("USER", width=10)
    table.add_column("CPU%", justify="right", width=6)
    table.add_column("MEM%", justify="right", width=6)
    table.add_column("Command", no_wrap=True)
    for proc in snapshot.processes[: display.process_limit]:
        table.add_row(
            str(proc.pid),
            Text(proc.user[:10]),
            f"{proc.cpu_percent:.1f}",
            f"{proc.mem_percent:.1f}",
            Text(proc.name),
        )

    header = Panel(Text.from_markup("\n".join(lines)), title="device-pulse", subtitle=subtitle)
    return Group(header, table)


async def watch(sampler: Sampler, display: DisplayConfig) -> None:
    """Run the sampler and redraw the dashboard until the sampler stops.

    The dashboard only ever reads the SnapshotStore; it never drives the
    sampler's cadence.

    Raises:
        ChannelError: If the sampler cannot reach the device.
    """
    task = asyncio.create_task(sampler.start())
    try:
        with Live(render_dashboard(sampler.store.read(), display), auto_refresh=False) as live:
            while not task.done():
                live.update(render_dashboard(sampler.store.read(), display, time.time()))
                live.refresh()
                await asyncio.sleep(display.refresh_interval)
    finally:
        if not task.done():
            sampler.request_stop()
        await task
