"""Parsers turning raw device command output into typed samples.

Every parser is a pure function of the text it is given. Text that does not
have the expected shape raises ParseError; individual malformed rows inside
otherwise valid output are skipped.
"""

import re
from dataclasses import dataclass

from device_pulse.errors import ParseError

LOOPBACK = "lo"


@dataclass(frozen=True)
class RawSample:
    """Command output plus the time.monotonic() it was captured at."""

    text: str
    captured_at: float


# ─────────────────────────────────────────────────────────────────────────────
# CPU (/proc/stat)
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CpuCounterSample:
    """Cumulative CPU ticks from the aggregate ``cpu`` line."""

    user: int
    nice: int
    system: int
    idle: int
    iowait: int = 0
    irq: int = 0
    softirq: int = 0

    @property
    def total(self) -> int:
        return (
            self.user
            + self.nice
            + self.system
            + self.idle
            + self.iowait
            + self.irq
            + self.softirq
        )


def parse_proc_stat(text: str) -> CpuCounterSample:
    """Parse the aggregate line ``cpu  <user> <nice> <system> <idle> [...]``.

    Per-core ``cpuN`` lines are ignored. Fields past softirq (steal, guest)
    are ignored; iowait/irq/softirq default to 0 when absent.

    Raises:
        ParseError: If there is no aggregate line with at least 4 counters.
    """
    for line in text.splitlines():
        parts = line.split()
        if not parts or parts[0] != "cpu":
            continue

        values: list[int] = []
        for token in parts[1:8]:
            try:
                values.append(int(token))
            except ValueError:
                break

        if len(values) < 4:
            raise ParseError(f"cpu line has {len(values)} counters, need at least 4: {line!r}")
        return CpuCounterSample(*values)

    raise ParseError("no aggregate cpu line in /proc/stat output")


# ─────────────────────────────────────────────────────────────────────────────
# Memory (/proc/meminfo)
# ─────────────────────────────────────────────────────────────────────────────

_MEMINFO_LABELS = {"MemTotal", "MemAvailable", "MemFree", "Buffers", "Cached"}


@dataclass(frozen=True)
class MemorySample:
    """Memory totals in KB."""

    total_kb: int
    available_kb: int
    free_kb: int = 0
    cached_kb: int = 0

    @property
    def used_kb(self) -> int:
        return max(0, self.total_kb - self.available_kb)

    @property
    def percent(self) -> float:
        if self.total_kb <= 0:
            return 0.0
        return self.used_kb / self.total_kb * 100.0


def parse_meminfo(text: str) -> MemorySample:
    """Parse ``<Label>:    <value> kB`` lines.

    Only MemTotal and MemAvailable matter; MemFree/Buffers/Cached are kept
    for kernels that predate MemAvailable, where available is estimated as
    free + buffers + cached.

    Raises:
        ParseError: If MemTotal is missing.
    """
    values: dict[str, int] = {}
    for line in text.splitlines():
        label, sep, rest = line.partition(":")
        label = label.strip()
        if not sep or label not in _MEMINFO_LABELS:
            continue
        tokens = rest.split()
        if not tokens:
            continue
        try:
            values[label] = int(tokens[0])
        except ValueError:
            continue

    if "MemTotal" not in values:
        raise ParseError("no MemTotal line in /proc/meminfo output")

    free = values.get("MemFree", 0)
    cached = values.get("Cached", 0)
    available = values.get("MemAvailable")
    if available is None:
        available = free + values.get("Buffers", 0) + cached

    return MemorySample(
        total_kb=values["MemTotal"],
        available_kb=available,
        free_kb=free,
        cached_kb=cached,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Network (/proc/net/dev)
# ─────────────────────────────────────────────────────────────────────────────

# Receive: bytes packets errs drop fifo frame compressed multicast, then Transmit
_NET_RX_FIELD = 0
_NET_TX_FIELD = 8


@dataclass(frozen=True)
class InterfaceCounters:
    """Cumulative byte counters of one interface."""

    name: str
    rx_bytes: int
    tx_bytes: int


@dataclass(frozen=True)
class NetCounterSample:
    """Byte counters summed over every non-loopback interface."""

    rx_bytes: int
    tx_bytes: int
    interfaces: tuple[InterfaceCounters, ...] = ()


def parse_net_dev(text: str) -> NetCounterSample:
    """Parse the per-interface table after the two header lines.

    The interface name may be glued to the first counter (``eth0:1234``) on
    busy interfaces, so rows are split on the colon first.

    Raises:
        ParseError: If no interface row could be read.
    """
    interfaces: list[InterfaceCounters] = []
    for line in text.splitlines()[2:]:
        name, sep, rest = line.partition(":")
        if not sep:
            continue
        counters = rest.split()
        if len(counters) <= _NET_TX_FIELD:
            continue
        try:
            rx = int(counters[_NET_RX_FIELD])
            tx = int(counters[_NET_TX_FIELD])
        except ValueError:
            continue
        interfaces.append(InterfaceCounters(name=name.strip(), rx_bytes=rx, tx_bytes=tx))

    if not interfaces:
        raise ParseError("no interface rows in /proc/net/dev output")

    external = tuple(i for i in interfaces if i.name != LOOPBACK)
    return NetCounterSample(
        rx_bytes=sum(i.rx_bytes for i in external),
        tx_bytes=sum(i.tx_bytes for i in external),
        interfaces=external,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Disk (df -h <path>)
# ─────────────────────────────────────────────────────────────────────────────

_SIZE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([A-Za-z]*)")
_SIZE_MULTIPLIERS_KB = {"K": 1, "M": 1024, "G": 1024**2, "T": 1024**3}


def parse_size_kb(value: str) -> int:
    """Parse a df size like '512', '12K', '1.5G' or '10240M' into KB.

    Plain numbers are already KB. An unknown suffix is treated as KB too.

    Raises:
        ParseError: If the value does not start with a number.
    """
    match = _SIZE_RE.fullmatch(value.strip())
    if not match:
        raise ParseError(f"not a size: {value!r}")

    number = float(match.group(1))
    suffix = match.group(2)[:1].upper()
    return int(number * _SIZE_MULTIPLIERS_KB.get(suffix, 1))


@dataclass(frozen=True)
class DiskSample:
    """Usage of one mounted filesystem, in KB."""

    mount: str
    filesystem: str
    total_kb: int
    used_kb: int
    available_kb: int

    @property
    def percent(self) -> float:
        if self.total_kb <= 0:
            return 0.0
        return self.used_kb / self.total_kb * 100.0


def parse_df_table(text: str) -> tuple[DiskSample, ...]:
    """Parse every data row of df output.

    Rows are ``<filesystem> <size> <used> <avail> <use%> <mount>``; rows
    with fewer columns or unreadable sizes are skipped.
    """
    rows: list[DiskSample] = []
    lines = [line for line in text.splitlines() if line.strip()]
    for line in lines[1:]:
        parts = line.split()
        if len(parts) < 6:
            continue
        try:
            total = parse_size_kb(parts[1])
            used = parse_size_kb(parts[2])
            available = parse_size_kb(parts[3])
        except ParseError:
            continue
        rows.append(
            DiskSample(
                mount=" ".join(parts[5:]),
                filesystem=parts[0],
                total_kb=total,
                used_kb=used,
                available_kb=available,
            )
        )
    return tuple(rows)


def parse_df(text: str, path: str) -> DiskSample:
    """Pick the row for ``path`` out of df output.

    ``df <path>`` normally prints a single row; if several come back the one
    mounted at path wins, otherwise the first.

    Raises:
        ParseError: If there is no readable data row.
    """
    rows = parse_df_table(text)
    if not rows:
        raise ParseError(f"no data row in df output for {path}")
    for row in rows:
        if row.mount == path:
            return row
    return rows[0]


# ─────────────────────────────────────────────────────────────────────────────
# Processes (ps -A -o USER,PID,PPID,VSZ,RSS,%CPU,%MEM,S,ARGS)
# ─────────────────────────────────────────────────────────────────────────────

_CPU_LABELS = {"%CPU", "CPU%"}
_MEM_LABELS = {"%MEM", "MEM%"}
_NAME_LABELS = {"ARGS", "CMD", "CMDLINE", "COMMAND", "NAME"}


@dataclass(frozen=True)
class ProcessRecord:
    """One row of the device's process table."""

    pid: int
    user: str
    cpu_percent: float
    mem_percent: float
    name: str
    ppid: int | None = None
    rss_kb: int | None = None
    state: str = ""


@dataclass(frozen=True)
class ColumnLayout:
    """Column offsets of a process table."""

    user: int
    pid: int
    cpu: int
    mem: int
    name: int
    ppid: int | None = None
    rss: int | None = None
    state: int | None = None

    @property
    def min_columns(self) -> int:
        return self.name + 1


# USER PID PPID VSZ RSS %CPU %MEM S ARGS
PS_LAYOUT = ColumnLayout(user=0, pid=1, ppid=2, rss=4, cpu=5, mem=6, state=7, name=8)


def _is_header(tokens: list[str]) -> bool:
    upper = {t.upper() for t in tokens}
    return "PID" in upper and "USER" in upper


def layout_from_header(tokens: list[str]) -> ColumnLayout | None:
    """Derive column offsets from a header row.

    Returns None unless PID, USER, a cpu%, a mem% and a trailing command
    column are all present; the caller then falls back to PS_LAYOUT.
    """
    index: dict[str, int] = {}
    for i, token in enumerate(tokens):
        label = token.upper()
        if label in _CPU_LABELS:
            label = "%CPU"
        elif label in _MEM_LABELS:
            label = "%MEM"
        elif label in _NAME_LABELS:
            label = "NAME"
        index.setdefault(label, i)

    required = ("USER", "PID", "%CPU", "%MEM", "NAME")
    if any(label not in index for label in required):
        return None
    if index["NAME"] != len(tokens) - 1:
        return None

    return ColumnLayout(
        user=index["USER"],
        pid=index["PID"],
        cpu=index["%CPU"],
        mem=index["%MEM"],
        name=index["NAME"],
        ppid=index.get("PPID"),
        rss=index.get("RSS"),
        state=index.get("S"),
    )


def _percent(token: str) -> float:
    try:
        return float(token.rstrip("%"))
    except ValueError:
        return 0.0


def _optional_int(parts: list[str], column: int | None) -> int | None:
    if column is None:
        return None
    try:
        return int(parts[column])
    except ValueError:
        return None


def parse_process_table(text: str) -> tuple[ProcessRecord, ...]:
    """Parse a process listing, sorted by cpu% descending.

    The header is the first row with both a PID and a USER token; anything
    before it is ignored. Rows that are too short or whose pid is not a
    number are skipped. The command is every token from the name column on.
    Ties keep their original order.

    Raises:
        ParseError: If no header row is found.
    """
    lines = text.splitlines()
    layout: ColumnLayout | None = None
    start = 0
    for i, line in enumerate(lines):
        tokens = line.split()
        if _is_header(tokens):
            layout = layout_from_header(tokens) or PS_LAYOUT
            start = i + 1
            break

    if layout is None:
        raise ParseError("no PID/USER header in process listing")

    records: list[ProcessRecord] = []
    for line in lines[start:]:
        parts = line.split()
        if len(parts) < layout.min_columns:
            continue
        try:
            pid = int(parts[layout.pid])
        except ValueError:
            continue
        records.append(
            ProcessRecord(
                pid=pid,
                user=parts[layout.user],
                cpu_percent=_percent(parts[layout.cpu]),
                mem_percent=_percent(parts[layout.mem]),
                name=" ".join(parts[layout.name :]),
                ppid=_optional_int(parts, layout.ppid),
                rss_kb=_optional_int(parts, layout.rss),
                state=parts[layout.state] if layout.state is not None else "",
            )
        )

    return tuple(sorted(records, key=lambda r: r.cpu_percent, reverse=True))
