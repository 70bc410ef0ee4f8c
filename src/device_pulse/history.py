"""Fixed-capacity metric history buffers.

One MetricHistory per tracked scalar (cpu %, mem %, net rx/tx rate).
Once full, each push evicts the oldest value. Reads return tuple copies so
a consumer can hold on to them while the sampler keeps pushing.
"""

from collections import deque
from dataclasses import dataclass

DEFAULT_CAPACITY = 120


class MetricHistory:
    """Circular buffer of float samples."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._values: deque[float] = deque(maxlen=capacity)

    def __len__(self) -> int:
        """Return number of values in buffer."""
        return len(self._values)

    @property
    def capacity(self) -> int:
        """Return maximum number of values the buffer can hold."""
        return self._values.maxlen or 0

    @property
    def latest(self) -> float | None:
        """Most recent value, or None if empty."""
        return self._values[-1] if self._values else None

    def push(self, value: float) -> None:
        """Append a value, evicting the oldest when full."""
        self._values.append(float(value))

    def values(self) -> tuple[float, ...]:
        """Immutable copy of the contents, oldest first."""
        return tuple(self._values)

    def clear(self) -> None:
        """Empty the buffer."""
        self._values.clear()


@dataclass(frozen=True)
class HistoryView:
    """Immutable copy of all histories at one instant."""

    cpu: tuple[float, ...] = ()
    mem: tuple[float, ...] = ()
    net_rx: tuple[float, ...] = ()
    net_tx: tuple[float, ...] = ()


class HistoryStore:
    """The four metric histories the sampler maintains."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self.cpu = MetricHistory(capacity)
        self.mem = MetricHistory(capacity)
        self.net_rx = MetricHistory(capacity)
        self.net_tx = MetricHistory(capacity)

    @property
    def capacity(self) -> int:
        return self.cpu.capacity

    def freeze(self) -> HistoryView:
        """Return immutable copy of every history."""
        return HistoryView(
            cpu=self.cpu.values(),
            mem=self.mem.values(),
            net_rx=self.net_rx.values(),
            net_tx=self.net_tx.values(),
        )
