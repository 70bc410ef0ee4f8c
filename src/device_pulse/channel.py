"""Command channels: run a shell command somewhere and return its text output.

AdbChannel talks to an Android device through ``adb -s <serial> shell``.
LocalChannel runs the same commands on this host, which exposes the same
/proc formats on Linux.
"""

import asyncio
from typing import NamedTuple, Protocol

import structlog

from device_pulse.errors import ChannelError

log = structlog.get_logger()


class CommandResult(NamedTuple):
    """Outcome of one command: (success, stdout, stderr)."""

    success: bool
    stdout: str
    stderr: str


class CommandChannel(Protocol):
    """Anything that can run a command and hand back its output."""

    @property
    def target(self) -> str: ...

    async def connect(self) -> None: ...

    async def execute(self, command: list[str]) -> CommandResult: ...


async def _run(argv: list[str]) -> CommandResult:
    """Run argv as a subprocess and collect its output.

    Spawn errors come back as a failed result rather than an exception. If the
    caller cancels (e.g. a wait_for timeout) the child is killed.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        return CommandResult(False, "", str(e))

    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        try:
            process.kill()
        except ProcessLookupError:
            pass  # Already exited
        raise

    return CommandResult(
        process.returncode == 0,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


class AdbChannel:
    """Runs shell commands on an Android device via adb."""

    def __init__(
        self,
        serial: str = "",
        adb_path: str = "adb",
        connect_timeout: float = 10.0,
    ) -> None:
        self.serial = serial
        self.adb_path = adb_path
        self.connect_timeout = connect_timeout

    @property
    def target(self) -> str:
        """Human-readable description of where commands run."""
        return f"adb:{self.serial or 'default'}"

    def _shell_args(self, command: list[str]) -> list[str]:
        args = [self.adb_path]
        if self.serial:
            args += ["-s", self.serial]
        return args + ["shell", *command]

    async def _checked(self, *args: str) -> CommandResult:
        try:
            result = await asyncio.wait_for(
                _run([self.adb_path, *args]), timeout=self.connect_timeout
            )
        except asyncio.TimeoutError as e:
            raise ChannelError(
                f"adb {' '.join(args)} timed out after {self.connect_timeout}s"
            ) from e
        if not result.success:
            raise ChannelError(f"adb {' '.join(args)} failed: {result.stderr.strip()}")
        return result

    async def connect(self) -> None:
        """Make sure adb works and the device answers.

        Raises:
            ChannelError: If adb is missing, broken, or the device is unreachable.
        """
        await self._checked("version")
        await self._checked("start-server")
        if self.serial:
            await self._checked("-s", self.serial, "get-state")
        else:
            await self._checked("get-state")
        log.info("channel_ready", kind="adb", serial=self.serial or "default")

    async def execute(self, command: list[str]) -> CommandResult:
        """Run a shell command on the device."""
        return await _run(self._shell_args(command))


class LocalChannel:
    """Runs commands on the local host."""

    @property
    def target(self) -> str:
        return "localhost"

    async def connect(self) -> None:
        log.info("channel_ready", kind="local")

    async def execute(self, command: list[str]) -> CommandResult:
        return await _run(list(command))
