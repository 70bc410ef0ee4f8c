"""Shared test fixtures for device-pulse."""

import asyncio
from collections.abc import Callable

import pytest

from device_pulse.channel import CommandResult
from device_pulse.config import Config

# ─────────────────────────────────────────────────────────────────────────────
# Captured device output
# ─────────────────────────────────────────────────────────────────────────────

PROC_STAT = """\
cpu  1000 50 300 8000 100 20 30 0 0 0
cpu0 500 25 150 4000 50 10 15 0 0 0
cpu1 500 25 150 4000 50 10 15 0 0 0
intr 123456 0 0
ctxt 987654
btime 1700000000
processes 4321
procs_running 2
procs_blocked 0
"""

MEMINFO = """\
MemTotal:        3809036 kB
MemFree:          148312 kB
MemAvailable:    1904518 kB
Buffers:           12345 kB
Cached:          1234567 kB
SwapCached:        10000 kB
Active:          1500000 kB
"""

NET_DEV = """\
Inter-|   Receive                                                |  Transmit
 face |bytes    packets errs drop fifo frame compressed multicast|bytes    packets errs drop fifo colls carrier compressed
    lo:  500000    1000    0    0    0     0          0         0   500000    1000    0    0    0     0       0          0
 wlan0: 1000000    2000    0    0    0     0          0         0   200000    1500    0    0    0     0       0          0
rmnet0:   50000     100    0    0    0     0          0         0    30000      80    0    0    0     0       0          0
"""

DF_DATA = """\
Filesystem      Size  Used Avail Use% Mounted on
/dev/block/dm-5  10G  4.0G  6.0G  40% /data
"""

PS_OUTPUT = """\
USER           PID  PPID     VSZ    RSS %CPU %MEM S ARGS
root             1     0 1234567   4000  0.0  0.1 S init
system         812     1 9876543 150000 12.5  4.2 S system_server
u0_a123       4567   812 5555555  80000 35.0  2.1 R com.example.app:remote
root             2     0       0      0  0.0  0.0 S [kthreadd]
"""


def proc_stat(user: int, nice: int, system: int, idle: int) -> str:
    """A minimal /proc/stat with just the aggregate line."""
    return f"cpu  {user} {nice} {system} {idle}\n"


def net_dev(rx: int, tx: int) -> str:
    """A /proc/net/dev with a single wlan0 row."""
    header = NET_DEV.splitlines()[:2]
    row = f" wlan0: {rx} 10 0 0 0 0 0 0 {tx} 10 0 0 0 0 0 0"
    return "\n".join([*header, row]) + "\n"


# ─────────────────────────────────────────────────────────────────────────────
# Fake channel
# ─────────────────────────────────────────────────────────────────────────────

Response = CommandResult | BaseException | Callable[[], CommandResult]


class FakeChannel:
    """In-memory CommandChannel keyed by the command's first two tokens.

    A response may be a CommandResult, an exception to raise, or a callable
    producing a CommandResult (for outputs that change between cycles).
    ``delays`` makes a command hang for that many seconds first.
    """

    target = "fake"

    def __init__(
        self,
        responses: dict[tuple[str, ...], Response] | None = None,
        delays: dict[tuple[str, ...], float] | None = None,
    ) -> None:
        self.responses = dict(responses or {})
        self.delays = dict(delays or {})
        self.calls: list[list[str]] = []
        self.connected = False

    async def connect(self) -> None:
        self.connected = True

    async def execute(self, command: list[str]) -> CommandResult:
        self.calls.append(list(command))
        key = tuple(command[:2])
        delay = self.delays.get(key)
        if delay:
            await asyncio.sleep(delay)

        response = self.responses.get(key)
        if response is None:
            return CommandResult(False, "", f"{command[0]}: not found")
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response()
        return response


def ok(stdout: str) -> CommandResult:
    return CommandResult(True, stdout, "")


def default_responses() -> dict[tuple[str, ...], Response]:
    """Responses for every sampler query, keyed like FakeChannel expects."""
    return {
        ("cat", "/proc/stat"): ok(PROC_STAT),
        ("cat", "/proc/meminfo"): ok(MEMINFO),
        ("cat", "/proc/net/dev"): ok(NET_DEV),
        ("df", "-h"): ok(DF_DATA),
        ("ps", "-A"): ok(PS_OUTPUT),
    }


@pytest.fixture
def fake_channel() -> FakeChannel:
    """A channel that answers every sampler query successfully."""
    return FakeChannel(default_responses())


@pytest.fixture
def fast_config() -> Config:
    """Config with short timeouts for loop tests."""
    config = Config()
    config.sampler.interval = 0.01
    config.sampler.query_timeout = 0.2
    config.sampler.history_size = 5
    return config
