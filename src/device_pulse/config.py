"""Configuration system for device-pulse."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit


@dataclass
class DeviceConfig:
    """Which device to talk to and how."""

    serial: str = ""  # Empty = the single attached device
    adb_path: str = "adb"


@dataclass
class SamplerConfig:
    """Polling cycle configuration."""

    interval: float = 1.0  # Seconds between cycles
    query_timeout: float = 5.0  # Per-query timeout (seconds)
    connect_timeout: float = 10.0  # Timeout for establishing the channel
    history_size: int = 120  # Samples kept per metric history
    disk_path: str = "/data"  # Mount path reported by the disk query
    heartbeat_cycles: int = 60  # Log heartbeat every N cycles


@dataclass
class LoggingConfig:
    """Log file rotation."""

    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


@dataclass
class DisplayConfig:
    """Settings for the live dashboard."""

    refresh_interval: float = 0.5  # Seconds between redraws
    process_limit: int = 15  # Rows in the process table
    stale_after: float = 5.0  # Seconds without an update before flagging stale


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    device: DeviceConfig = field(default_factory=DeviceConfig)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "device-pulse"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "device-pulse"

    @property
    def log_path(self) -> Path:
        """Sampler log path (JSON Lines)."""
        return self.state_dir / "sampler.log"

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ("device", "sampler", "logging", "display"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() on an empty file are identical.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        device_data = data.get("device", {})
        logging_data = data.get("logging", {})
        dev = defaults.device
        lg = defaults.logging

        return cls(
            device=DeviceConfig(
                serial=str(device_data.get("serial", dev.serial)),
                adb_path=str(device_data.get("adb_path", dev.adb_path)),
            ),
            sampler=_load_sampler_config(data.get("sampler", {})),
            logging=LoggingConfig(
                log_max_bytes=logging_data.get("log_max_bytes", lg.log_max_bytes),
                log_backup_count=logging_data.get("log_backup_count", lg.log_backup_count),
            ),
            display=_load_display_config(data.get("display", {})),
        )


def _load_sampler_config(data: dict) -> SamplerConfig:
    """Load sampler config from TOML data, using dataclass defaults for missing fields."""
    defaults = SamplerConfig()

    interval = data.get("interval", defaults.interval)
    query_timeout = data.get("query_timeout", defaults.query_timeout)
    connect_timeout = data.get("connect_timeout", defaults.connect_timeout)
    history_size = data.get("history_size", defaults.history_size)
    heartbeat_cycles = data.get("heartbeat_cycles", defaults.heartbeat_cycles)

    if interval <= 0:
        raise ValueError(f"interval must be > 0, got {interval}")
    if query_timeout <= 0:
        raise ValueError(f"query_timeout must be > 0, got {query_timeout}")
    if connect_timeout <= 0:
        raise ValueError(f"connect_timeout must be > 0, got {connect_timeout}")
    if history_size < 1:
        raise ValueError(f"history_size must be >= 1, got {history_size}")
    if heartbeat_cycles < 1:
        raise ValueError(f"heartbeat_cycles must be >= 1, got {heartbeat_cycles}")

    return SamplerConfig(
        interval=interval,
        query_timeout=query_timeout,
        connect_timeout=connect_timeout,
        history_size=history_size,
        disk_path=str(data.get("disk_path", defaults.disk_path)),
        heartbeat_cycles=heartbeat_cycles,
    )


def _load_display_config(data: dict) -> DisplayConfig:
    """Load display config from TOML data."""
    d = DisplayConfig()
    refresh_interval = data.get("refresh_interval", d.refresh_interval)
    process_limit = data.get("process_limit", d.process_limit)

    if refresh_interval <= 0:
        raise ValueError(f"refresh_interval must be > 0, got {refresh_interval}")
    if process_limit < 0:
        raise ValueError(f"process_limit must be >= 0, got {process_limit}")

    return DisplayConfig(
        refresh_interval=refresh_interval,
        process_limit=process_limit,
        stale_after=data.get("stale_after", d.stale_after),
    )
