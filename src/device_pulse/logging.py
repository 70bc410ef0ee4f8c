"""Centralized console logging with Rich formatting.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Level-based styling
3. Core log functions (log, info, warn, error)
4. Domain-specific helpers (sampler_started, query_failed, heartbeat, etc.)
5. Structlog configuration (configure)

Console output uses Rich markup for colors. JSON file output via structlog
remains separate (machine-parseable, no colors).
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console

if TYPE_CHECKING:
    from device_pulse.config import Config

# Rich console for colorful human-readable output
_console = Console(highlight=False)


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    WAIT = "⏳"
    HEARTBEAT = "[magenta]♡[/]"
    SIGNAL = "⚡"
    KILL = "[bright_red]☠[/]"
    CONNECTED = "[green]⬤[/]"
    DISCONNECTED = "[red]⬤[/]"


# ─────────────────────────────────────────────────────────────────────────────
# Level Styles
# ─────────────────────────────────────────────────────────────────────────────

_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Args:
        level: Log level (info, warn, error)
        msg: Message to print (can include Rich markup)
        icon: Optional icon to show after level (e.g., Icon.OK)
    """
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    _console.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}")


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message."""
    log("error", msg, icon)


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def version_info(name: str, version: str) -> None:
    """Log version info."""
    info(f"[bold cyan]{name}[/] v{version}")


def channel_ready(target: str) -> None:
    """Log command channel established."""
    info(f"Connected to [cyan]{target}[/]", Icon.CONNECTED)


def channel_failed(error_msg: str) -> None:
    """Log command channel could not be established."""
    error(f"Channel unavailable: {error_msg}", Icon.DISCONNECTED)


def sampler_started(interval: float, query_timeout: float) -> None:
    """Log sampler startup complete."""
    info(
        f"Sampler started [dim](every {interval}s, query timeout {query_timeout}s)[/]",
        Icon.OK,
    )


def sampler_stopping() -> None:
    """Log sampler shutdown initiated."""
    info("Sampler stopping...", Icon.WAIT)


def sampler_stopped(cycles: int) -> None:
    """Log sampler shutdown complete."""
    info(f"Sampler stopped [dim]({cycles} cycles)[/]", Icon.OK)


def signal_received(name: str) -> None:
    """Log signal received."""
    info(f"Received [bold]{name}[/]", Icon.SIGNAL)


def query_failed(family: str, error_msg: str) -> None:
    """Log a query that failed for one cycle."""
    warn(f"[cyan]{family}[/] query failed: {error_msg}", Icon.FAIL)


def heartbeat(
    cycles: int,
    failures: int,
    cpu_percent: float,
    mem_percent: float,
    rx_rate: str,
    tx_rate: str,
) -> None:
    """Log periodic heartbeat stats."""
    info(
        f"cpu [cyan]{cpu_percent:.1f}%[/], mem [cyan]{mem_percent:.1f}%[/], "
        f"net ↓{rx_rate} ↑{tx_rate} "
        f"[dim]({cycles} cycles, {failures} failed queries)[/]",
        Icon.HEARTBEAT,
    )


def terminate_requested(pid: int, force: bool) -> None:
    """Log a process termination request."""
    how = "force-kill" if force else "terminate"
    info(f"Sent {how} to PID [bold]{pid}[/]", Icon.KILL)


def config_created(path: str) -> None:
    """Log config file created."""
    info(f"Created config at [cyan]{path}[/]")


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config) -> None:
    """Configure structlog to write JSON Lines to the rotating log file.

    Console output is left to the Rich helpers above so a live dashboard is
    never interleaved with structured log lines.

    Args:
        config: Application config with paths
    """
    # Ensure state directory exists for log file
    config.state_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        config.log_path,
        maxBytes=config.logging.log_max_bytes,
        backupCount=config.logging.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.INFO)

    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(logging.INFO)

    # Clear any existing handlers
    stdlib_root.handlers.clear()

    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
                _add_source("sampler"),
                structlog.processors.format_exc_info,
            ],
        )
    )
    stdlib_root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            _add_source("sampler"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

