"""Rate engines: turn cumulative counters into instantaneous rates.

Each engine keeps the previous observation (a RateState) and differences the
new one against it. Subtraction saturates at zero so a counter that goes
backwards (device reboot) never produces a negative or wrapped delta.
"""

from dataclasses import dataclass

from device_pulse.parsers import CpuCounterSample, NetCounterSample


def saturating_sub(current: int, previous: int) -> int:
    """current - previous, floored at 0."""
    return current - previous if current > previous else 0


@dataclass(frozen=True)
class RateState:
    """Previous cumulative observation for delta calculations."""

    values: tuple[int, ...]
    timestamp: float  # time.monotonic() of the observation


class CpuRateEngine:
    """CPU usage % from successive /proc/stat samples.

    First observation records a baseline and reports 0%. A zero tick delta
    (no time passed, or a counter reset) repeats the previous usage instead
    of dividing by zero.
    """

    def __init__(self) -> None:
        self.state: RateState | None = None
        self.usage: float = 0.0

    def update(self, sample: CpuCounterSample, timestamp: float = 0.0) -> float:
        """Feed a new sample and return the current usage in [0, 100]."""
        total, idle = sample.total, sample.idle
        prev = self.state
        self.state = RateState(values=(total, idle), timestamp=timestamp)

        if prev is None:
            self.usage = 0.0
            return self.usage

        prev_total, prev_idle = prev.values
        d_total = saturating_sub(total, prev_total)
        d_idle = saturating_sub(idle, prev_idle)
        if d_total == 0:
            return self.usage

        usage = (1.0 - d_idle / d_total) * 100.0
        self.usage = max(0.0, min(100.0, usage))
        return self.usage


@dataclass(frozen=True)
class NetRates:
    """Throughput in bytes per second."""

    rx_per_s: float = 0.0
    tx_per_s: float = 0.0


class NetRateEngine:
    """Network throughput from successive /proc/net/dev samples.

    Rates use wall-clock elapsed time between the two sample timestamps.
    First observation and non-positive elapsed time both give 0.
    """

    def __init__(self) -> None:
        self.state: RateState | None = None

    def update(self, sample: NetCounterSample, timestamp: float) -> NetRates:
        """Feed a new sample taken at ``timestamp`` (seconds) and return rates."""
        prev = self.state
        self.state = RateState(values=(sample.rx_bytes, sample.tx_bytes), timestamp=timestamp)

        if prev is None:
            return NetRates()

        elapsed = timestamp - prev.timestamp
        if elapsed <= 0:
            return NetRates()

        prev_rx, prev_tx = prev.values
        return NetRates(
            rx_per_s=saturating_sub(sample.rx_bytes, prev_rx) / elapsed,
            tx_per_s=saturating_sub(sample.tx_bytes, prev_tx) / elapsed,
        )
