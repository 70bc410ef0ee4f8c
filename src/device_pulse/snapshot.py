"""Shared system snapshot.

The sampler is the only writer: once per cycle it builds a fresh, frozen
SystemSnapshot and swaps it into the SnapshotStore. Readers take the current
reference under the same lock, so they always see one whole cycle's result
and never block the sampler for longer than an assignment.
"""

import threading
import time
from dataclasses import asdict, dataclass, field

from device_pulse.history import HistoryView
from device_pulse.parsers import DiskSample, MemorySample, NetCounterSample, ProcessRecord

CPU = "cpu"
MEMORY = "memory"
NETWORK = "network"
DISK = "disk"
PROCESSES = "processes"
METRIC_FAMILIES = (CPU, MEMORY, NETWORK, DISK, PROCESSES)


@dataclass(frozen=True)
class SystemSnapshot:
    """Latest derived metrics, histories and process list."""

    cycle: int = 0
    updated_at: float | None = None  # time.time() when published
    cpu_percent: float = 0.0
    memory: MemorySample | None = None
    net: NetCounterSample | None = None
    net_rx_rate: float = 0.0  # bytes/sec
    net_tx_rate: float = 0.0  # bytes/sec
    disk: DiskSample | None = None
    processes: tuple[ProcessRecord, ...] = ()
    history: HistoryView = field(default_factory=HistoryView)
    stale: frozenset[str] = frozenset()  # Families whose last query failed

    @property
    def mem_percent(self) -> float:
        return self.memory.percent if self.memory else 0.0

    @property
    def disk_percent(self) -> float:
        return self.disk.percent if self.disk else 0.0

    def is_stale(self, family: str) -> bool:
        """True if the family's value is left over from an earlier cycle."""
        return family in self.stale

    def age(self, now: float | None = None) -> float | None:
        """Seconds since publication, or None if never published."""
        if self.updated_at is None:
            return None
        if now is None:
            now = time.time()
        return max(0.0, now - self.updated_at)

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dictionary."""
        data = asdict(self)
        data["stale"] = sorted(self.stale)
        data["mem_percent"] = self.mem_percent
        data["disk_percent"] = self.disk_percent
        return data


class SnapshotStore:
    """Single-writer, multi-reader holder of the current snapshot."""

    def __init__(self, initial: SystemSnapshot | None = None) -> None:
        self._lock = threading.Lock()
        self._snapshot = initial or SystemSnapshot()

    def publish(self, snapshot: SystemSnapshot) -> None:
        """Replace the current snapshot."""
        with self._lock:
            self._snapshot = snapshot

    def read(self) -> SystemSnapshot:
        """Return the current snapshot."""
        with self._lock:
            return self._snapshot
