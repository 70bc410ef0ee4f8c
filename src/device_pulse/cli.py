"""CLI commands for device-pulse."""

import asyncio

import click

from device_pulse.config import Config


def _load_config() -> Config:
    try:
        return Config.load()
    except ValueError as e:
        raise click.ClickException(str(e)) from e


def _make_channel(config: Config, serial: str | None, local: bool):
    from device_pulse.channel import AdbChannel, LocalChannel

    if local:
        return LocalChannel()
    return AdbChannel(
        serial=serial or config.device.serial,
        adb_path=config.device.adb_path,
        connect_timeout=config.sampler.connect_timeout,
    )


def channel_options(func):
    """Add --serial/--local options shared by commands that reach a device."""
    func = click.option("--local", is_flag=True, help="Read this host instead of an adb device")(
        func
    )
    return click.option("--serial", "-s", default=None, help="Device serial (default from config)")(
        func
    )


@click.group()
@click.version_option(package_name="device-pulse")
def main() -> None:
    """Live CPU, memory, network, disk and process telemetry from a device."""
    pass


@main.command()
@channel_options
def run(serial: str | None, local: bool) -> None:
    """Run the sampler headless, logging heartbeats."""
    from device_pulse import logging as pulse_log
    from device_pulse.errors import ChannelError
    from device_pulse.sampler import run_sampler

    config = _load_config()
    channel = _make_channel(config, serial, local)

    try:
        asyncio.run(run_sampler(channel, config))
    except ChannelError as e:
        pulse_log.channel_failed(str(e))
        raise SystemExit(1) from e


@main.command()
@channel_options
def watch(serial: str | None, local: bool) -> None:
    """Launch the live dashboard."""
    from device_pulse import logging as pulse_log
    from device_pulse.dashboard import watch as watch_dashboard
    from device_pulse.errors import ChannelError
    from device_pulse.sampler import Sampler

    config = _load_config()
    pulse_log.configure(config)
    channel = _make_channel(config, serial, local)

    async def _watch() -> None:
        sampler = Sampler(channel, config)
        try:
            await watch_dashboard(sampler, config.display)
        finally:
            await sampler.stop()

    try:
        asyncio.run(_watch())
    except ChannelError as e:
        pulse_log.channel_failed(str(e))
        raise SystemExit(1) from e


@main.command()
@channel_options
@click.option(
    "--cycles",
    "-n",
    default=2,
    type=click.IntRange(min=1),
    help="Cycles to run before printing (rates need at least 2)",
)
def snapshot(serial: str | None, local: bool, cycles: int) -> None:
    """Sample a few cycles and print the snapshot as JSON."""
    import json

    from device_pulse import logging as pulse_log
    from device_pulse.errors import ChannelError
    from device_pulse.sampler import Sampler

    config = _load_config()
    pulse_log.configure(config)
    channel = _make_channel(config, serial, local)

    async def _sample():
        await channel.connect()
        sampler = Sampler(channel, config)
        result = sampler.store.read()
        for i in range(cycles):
            if i:
                await asyncio.sleep(config.sampler.interval)
            result = await sampler.run_cycle()
        return result

    try:
        result = asyncio.run(_sample())
    except ChannelError as e:
        raise click.ClickException(str(e)) from e

    click.echo(json.dumps(result.to_dict(), indent=2))


@main.command()
@click.argument("pid", type=click.IntRange(min=1))
@click.option("--force", "-f", is_flag=True, help="Force kill (SIGKILL) instead of SIGTERM")
@channel_options
def kill(pid: int, force: bool, serial: str | None, local: bool) -> None:
    """Terminate a process on the device."""
    from device_pulse import logging as pulse_log
    from device_pulse.errors import ChannelError
    from device_pulse.processes import ProcessTable

    config = _load_config()
    pulse_log.configure(config)
    channel = _make_channel(config, serial, local)

    async def _kill() -> bool:
        await channel.connect()
        table = ProcessTable(channel, timeout=config.sampler.query_timeout)
        return await table.terminate(pid, force)

    try:
        ok = asyncio.run(_kill())
    except ChannelError as e:
        raise click.ClickException(str(e)) from e

    if not ok:
        raise click.ClickException(f"Could not signal PID {pid}")
    pulse_log.terminate_requested(pid, force)


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Display current configuration."""
    cfg = _load_config()

    click.echo(f"Config file: {cfg.config_path}")
    click.echo(f"Exists: {cfg.config_path.exists()}")
    click.echo()
    click.echo("[device]")
    click.echo(f"  serial = {cfg.device.serial!r}")
    click.echo(f"  adb_path = {cfg.device.adb_path!r}")
    click.echo()
    click.echo("[sampler]")
    click.echo(f"  interval = {cfg.sampler.interval}")
    click.echo(f"  query_timeout = {cfg.sampler.query_timeout}")
    click.echo(f"  history_size = {cfg.sampler.history_size}")
    click.echo(f"  disk_path = {cfg.sampler.disk_path!r}")
    click.echo()
    click.echo("[display]")
    click.echo(f"  refresh_interval = {cfg.display.refresh_interval}")
    click.echo(f"  process_limit = {cfg.display.process_limit}")


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    from device_pulse import logging as pulse_log

    cfg = Config()
    cfg.save()
    pulse_log.config_created(str(cfg.config_path))
