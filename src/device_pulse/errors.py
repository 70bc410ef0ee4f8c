"""Exception hierarchy for device-pulse.

Only ChannelError is fatal (raised before sampling starts). The others are
raised per query and recovered by the sampler within the same cycle.
"""


class DevicePulseError(Exception):
    """Base class for all device-pulse errors."""


class ChannelError(DevicePulseError):
    """The command channel could not be established."""


class CommandFailure(DevicePulseError):
    """A remote command failed to run or exited non-zero."""

    def __init__(self, command: list[str], stderr: str = "") -> None:
        self.command = list(command)
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"command {' '.join(self.command)!r} failed{detail}")


class ParseError(DevicePulseError, ValueError):
    """Command output did not have the expected shape."""
