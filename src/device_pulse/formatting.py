"""Formatting utilities for consistent output across CLI and dashboard."""

from collections.abc import Sequence

_SPARK_CHARS = "▁▂▃▄▅▆▇█"


def format_bytes(size: float) -> str:
    """Format a byte count as a human-readable string ('1.5M', '512B')."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:.1f}{unit}" if unit != "B" else f"{int(size)}B"
        size = size / 1024
    return f"{size:.1f}P"


def format_kb(size_kb: int) -> str:
    """Format a KB count as a human-readable string."""
    return format_bytes(size_kb * 1024)


def format_rate(bytes_per_s: float) -> str:
    """Format a throughput as '<size>/s'."""
    return f"{format_bytes(bytes_per_s)}/s"


def sparkline(
    values: Sequence[float],
    width: int = 40,
    max_value: float | None = None,
) -> str:
    """Render the last ``width`` values as a one-row block sparkline.

    Args:
        values: Samples, oldest first
        width: Maximum number of characters
        max_value: Value drawn as a full block; defaults to the largest sample

    Returns:
        Sparkline string, newest value rightmost. Empty input gives "".
    """
    window = list(values)[-width:] if width > 0 else []
    if not window:
        return ""

    top = max_value if max_value is not None else max(window)
    if top <= 0:
        return _SPARK_CHARS[0] * len(window)

    last = len(_SPARK_CHARS) - 1
    chars = []
    for value in window:
        level = int(max(0.0, min(1.0, value / top)) * last + 0.5)
        chars.append(_SPARK_CHARS[level])
    return "".join(chars)
