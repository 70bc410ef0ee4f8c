"""Sampler: polls the device on a fixed interval and publishes snapshots."""

import asyncio
import signal
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime

import structlog

from device_pulse import logging as pulse_log
from device_pulse.channel import CommandChannel
from device_pulse.config import Config
from device_pulse.errors import CommandFailure, ParseError
from device_pulse.formatting import format_rate
from device_pulse.history import HistoryStore
from device_pulse.parsers import (
    RawSample,
    parse_df,
    parse_meminfo,
    parse_net_dev,
    parse_proc_stat,
)
from device_pulse.processes import ProcessTable
from device_pulse.rates import CpuRateEngine, NetRateEngine
from device_pulse.snapshot import (
    CPU,
    DISK,
    MEMORY,
    NETWORK,
    PROCESSES,
    SnapshotStore,
    SystemSnapshot,
)

log = structlog.get_logger()

PS_COMMAND = ("ps", "-A", "-o", "USER,PID,PPID,VSZ,RSS,%CPU,%MEM,S,ARGS")


@dataclass(frozen=True)
class Query:
    """One remote command feeding one metric family."""

    family: str
    command: tuple[str, ...]


def build_queries(disk_path: str = "/data") -> tuple[Query, ...]:
    """The five queries issued every cycle."""
    return (
        Query(CPU, ("cat", "/proc/stat")),
        Query(MEMORY, ("cat", "/proc/meminfo")),
        Query(NETWORK, ("cat", "/proc/net/dev")),
        Query(DISK, ("df", "-h", disk_path)),
        Query(PROCESSES, PS_COMMAND),
    )


@dataclass
class SamplerState:
    """Runtime counters of the sampler."""

    running: bool = False
    cycles: int = 0
    failures: int = 0  # Failed queries since start
    last_cycle_time: datetime | None = None

    def update_cycle(self, failed: int) -> None:
        """Update state after a cycle."""
        self.cycles += 1
        self.failures += failed
        self.last_cycle_time = datetime.now()


class Sampler:
    """Runs polling cycles and is the sole writer of the SnapshotStore.

    Each cycle issues all queries concurrently, each bounded by
    ``query_timeout``. A query that fails (command error, timeout or
    unparseable output) only affects its own metric family: the previous
    value is kept and the family is listed in ``snapshot.stale``.
    """

    def __init__(
        self,
        channel: CommandChannel,
        config: Config | None = None,
        store: SnapshotStore | None = None,
        *,
        console: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or Config()
        self.channel = channel
        self.store = store or SnapshotStore()
        self.state = SamplerState()
        self.console = console  # Mirror failures/heartbeats to the Rich console
        self._clock = clock

        sampler_cfg = self.config.sampler
        self.queries = build_queries(sampler_cfg.disk_path)
        self.history = HistoryStore(sampler_cfg.history_size)
        self.cpu_engine = CpuRateEngine()
        self.net_engine = NetRateEngine()
        self.processes = ProcessTable(channel, timeout=sampler_cfg.query_timeout)

        self._stop_event = asyncio.Event()
        self._signals_installed = False

    # ─────────────────────────────────────────────────────────────────────────
    # One cycle
    # ─────────────────────────────────────────────────────────────────────────

    async def _query(self, query: Query) -> RawSample:
        """Run one query with the configured timeout."""
        result = await asyncio.wait_for(
            self.channel.execute(list(query.command)),
            timeout=self.config.sampler.query_timeout,
        )
        if not result.success:
            raise CommandFailure(list(query.command), result.stderr)
        return RawSample(text=result.stdout, captured_at=self._clock())

    def _apply(self, family: str, raw: RawSample) -> dict:
        """Parse one result and feed the engines and histories.

        Parsing happens first, so a ParseError leaves all state untouched.
        Returns the snapshot fields to replace.
        """
        if family == CPU:
            usage = self.cpu_engine.update(parse_proc_stat(raw.text), raw.captured_at)
            self.history.cpu.push(usage)
            return {"cpu_percent": usage}

        if family == MEMORY:
            memory = parse_meminfo(raw.text)
            self.history.mem.push(memory.percent)
            return {"memory": memory}

        if family == NETWORK:
            net = parse_net_dev(raw.text)
            rates = self.net_engine.update(net, raw.captured_at)
            self.history.net_rx.push(rates.rx_per_s)
            self.history.net_tx.push(rates.tx_per_s)
            return {"net": net, "net_rx_rate": rates.rx_per_s, "net_tx_rate": rates.tx_per_s}

        if family == DISK:
            return {"disk": parse_df(raw.text, self.config.sampler.disk_path)}

        if family == PROCESSES:
            return {"processes": self.processes.build(raw.text)}

        raise ValueError(f"Unknown metric family: {family!r}")

    def _record_failure(self, family: str, error: BaseException) -> None:
        if isinstance(error, asyncio.TimeoutError):
            kind, message = "timeout", f"no answer within {self.config.sampler.query_timeout}s"
        elif isinstance(error, ParseError):
            kind, message = "parse", str(error)
        else:
            kind, message = "command", str(error) or type(error).__name__
        log.warning("query_failed", family=family, kind=kind, error=message)
        if self.console:
            pulse_log.query_failed(family, message)

    async def run_cycle(self) -> SystemSnapshot:
        """Run one polling cycle and publish the resulting snapshot.

        Returns:
            The snapshot that was published.
        """
        results = await asyncio.gather(
            *(self._query(q) for q in self.queries), return_exceptions=True
        )

        changes: dict = {}
        failed: set[str] = set()
        for query, result in zip(self.queries, results):
            if isinstance(result, Exception):
                self._record_failure(query.family, result)
                failed.add(query.family)
                continue
            if isinstance(result, BaseException):
                raise result
            try:
                changes.update(self._apply(query.family, result))
            except ParseError as e:
                self._record_failure(query.family, e)
                failed.add(query.family)

        previous = self.store.read()
        snapshot = replace(
            previous,
            **changes,
            cycle=previous.cycle + 1,
            updated_at=time.time(),
            history=self.history.freeze(),
            stale=frozenset(failed),
        )
        self.store.publish(snapshot)

        self.state.update_cycle(len(failed))
        if self.state.cycles % self.config.sampler.heartbeat_cycles == 0:
            self._heartbeat(snapshot)
        return snapshot

    def _heartbeat(self, snapshot: SystemSnapshot) -> None:
        log.info(
            "sampler_heartbeat",
            cycles=self.state.cycles,
            failures=self.state.failures,
            cpu=round(snapshot.cpu_percent, 1),
            mem=round(snapshot.mem_percent, 1),
            rx_rate=round(snapshot.net_rx_rate),
            tx_rate=round(snapshot.net_tx_rate),
            processes=len(snapshot.processes),
            buffer=f"{len(self.history.cpu)}/{self.history.capacity}",
        )
        if self.console:
            pulse_log.heartbeat(
                cycles=self.state.cycles,
                failures=self.state.failures,
                cpu_percent=snapshot.cpu_percent,
                mem_percent=snapshot.mem_percent,
                rx_rate=format_rate(snapshot.net_rx_rate),
                tx_rate=format_rate(snapshot.net_tx_rate),
            )

    # ─────────────────────────────────────────────────────────────────────────
    # Loop control
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        """Ask the loop to exit after the current cycle."""
        self._stop_event.set()

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signals."""
        log.info("signal_received", signal=sig.name)
        if self.console:
            pulse_log.signal_received(sig.name)
        self.request_stop()

    async def run(self) -> None:
        """Run cycles every ``interval`` seconds until a stop is requested.

        The stop event is checked between cycles; a cycle in progress always
        completes. The wait between cycles ends early on stop.
        """
        loop = asyncio.get_running_loop()
        self.processes.loop = loop
        self.state.running = True
        interval = self.config.sampler.interval

        try:
            while not self._stop_event.is_set():
                iteration_start = loop.time()
                try:
                    await self.run_cycle()
                except Exception as e:
                    log.error("cycle_failed", error=str(e))

                elapsed = loop.time() - iteration_start
                sleep_time = max(0.0, interval - elapsed)
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_time)
                except asyncio.TimeoutError:
                    pass  # Normal timeout, continue to next cycle
        finally:
            self.state.running = False

    async def start(self) -> None:
        """Establish the channel, install signal handlers and run until stopped.

        Raises:
            ChannelError: If the channel cannot be established.
        """
        from importlib.metadata import version

        pulse_version = version("device-pulse")
        log.info("sampler_starting", version=pulse_version)
        if self.console:
            pulse_log.version_info("device-pulse", pulse_version)

        await self.channel.connect()
        if self.console:
            pulse_log.channel_ready(self.channel.target)

        loop = asyncio.get_running_loop()
        try:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda s=sig: self._handle_signal(s))
            self._signals_installed = True
        except (NotImplementedError, RuntimeError):
            pass  # No signal support (Windows, or not the main thread)

        sampler_cfg = self.config.sampler
        log.info(
            "sampler_started",
            interval=sampler_cfg.interval,
            query_timeout=sampler_cfg.query_timeout,
            history_size=sampler_cfg.history_size,
            disk_path=sampler_cfg.disk_path,
        )
        if self.console:
            pulse_log.sampler_started(sampler_cfg.interval, sampler_cfg.query_timeout)

        await self.run()

    async def stop(self) -> None:
        """Stop the loop and remove signal handlers."""
        if self.console:
            pulse_log.sampler_stopping()
        self.request_stop()

        if self._signals_installed:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
            self._signals_installed = False

        log.info("sampler_stopped", cycles=self.state.cycles, failures=self.state.failures)
        if self.console:
            pulse_log.sampler_stopped(self.state.cycles)


async def run_sampler(channel: CommandChannel, config: Config | None = None) -> None:
    """Run a sampler with console output until SIGINT/SIGTERM.

    Args:
        channel: Command channel to the device
        config: Optional config, loads from file if not provided
    """
    if config is None:
        config = Config.load()

    pulse_log.configure(config)
    sampler = Sampler(channel, config, console=True)

    try:
        await sampler.start()
    except Exception as e:
        log.exception("sampler_crashed", error=str(e))
        raise
    finally:
        await sampler.stop()
