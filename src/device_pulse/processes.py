"""Process table: sorted views of the device's processes and kill requests."""

import asyncio
import concurrent.futures

import structlog

from device_pulse.channel import CommandChannel
from device_pulse.parsers import ProcessRecord, parse_process_table

log = structlog.get_logger()


def termination_command(pid: int, force: bool = False) -> list[str]:
    """Shell command that terminates (SIGTERM) or force-kills (SIGKILL) pid."""
    if pid <= 0:
        raise ValueError(f"refusing to signal pid {pid}")
    if force:
        return ["kill", "-9", str(pid)]
    return ["kill", str(pid)]


def top_by_cpu(records: tuple[ProcessRecord, ...], count: int) -> list[ProcessRecord]:
    """Highest cpu% first. Ties keep their listing order."""
    return sorted(records, key=lambda r: r.cpu_percent, reverse=True)[:count]


def top_by_memory(records: tuple[ProcessRecord, ...], count: int) -> list[ProcessRecord]:
    """Highest mem% first. Ties keep their listing order."""
    return sorted(records, key=lambda r: r.mem_percent, reverse=True)[:count]


class ProcessTable:
    """Builds the process list and sends termination requests.

    terminate() is fire-and-forget: it schedules the kill command and returns
    immediately. The returned handle can be awaited for a bool outcome, but
    nothing is ever raised to the caller; failures are logged.
    """

    def __init__(
        self,
        channel: CommandChannel,
        timeout: float = 5.0,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.channel = channel
        self.timeout = timeout
        # Loop that owns the channel; set so other threads can call terminate()
        self.loop = loop
        self._pending: set[asyncio.Task] = set()

    def build(self, text: str) -> tuple[ProcessRecord, ...]:
        """Parse a ps listing into records sorted by cpu% descending."""
        return parse_process_table(text)

    @property
    def pending(self) -> int:
        """Number of termination requests still in flight on this loop."""
        return len(self._pending)

    def terminate(
        self, pid: int, force: bool = False
    ) -> "asyncio.Task[bool] | concurrent.futures.Future[bool]":
        """Ask the device to terminate pid without waiting for the outcome.

        Raises:
            ValueError: If pid is not a positive process id.
            RuntimeError: If called with no event loop to run the request on.
        """
        command = termination_command(pid, force)
        coro = self._send(command, pid, force)

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if self.loop is not None and running is not self.loop:
            return asyncio.run_coroutine_threadsafe(coro, self.loop)
        if running is None:
            coro.close()
            raise RuntimeError("terminate() needs a running event loop")

        task = running.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _send(self, command: list[str], pid: int, force: bool) -> bool:
        try:
            result = await asyncio.wait_for(self.channel.execute(command), timeout=self.timeout)
        except asyncio.TimeoutError:
            log.warning("terminate_failed", pid=pid, force=force, error="timeout")
            return False
        except Exception as e:
            log.warning("terminate_failed", pid=pid, force=force, error=str(e))
            return False

        if not result.success:
            log.warning("terminate_failed", pid=pid, force=force, error=result.stderr.strip())
            return False

        log.info("terminate_sent", pid=pid, force=force)
        return True
