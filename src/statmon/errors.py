"""Exception types raised by statmon."""


class StatError(Exception):
    """Base class for errors raised while producing a CPU report."""


class ParseError(StatError):
    """A counter reading could not be obtained. Fatal for the monitor."""


class SourceUnavailable(ParseError):
    """The counter source could not be opened or read, or had no line for us."""


class FormatError(ParseError):
    """A counter line did not have the expected shape."""

    def __init__(self, line: str) -> None:
        super().__init__(f"Unrecognised cpu counter line: {line.rstrip()!r}")
        self.line = line


class IdentityMismatch(StatError):
    """Arithmetic was attempted between readings of different CPUs."""

    def __init__(self, left, right) -> None:
        super().__init__(f"Cannot combine readings of '{left}' and '{right}'")
        self.left = left
        self.right = right


class CounterRegression(StatError):
    """A cumulative counter went backwards between two readings."""

    def __init__(self, field: str, earlier: int, later: int) -> None:
        super().__init__(
            f"Counter '{field}' went backwards from {earlier} to {later} (reset or wraparound)"
        )
        self.field = field
        self.earlier = earlier
        self.later = later


class ZeroActivity(StatError):
    """No kernel time units elapsed across the sampling interval."""

    def __init__(self, cpu_id) -> None:
        super().__init__(f"No time recorded for '{cpu_id}' during the interval")
        self.cpu_id = cpu_id


class SamplingCancelled(StatError):
    """The wait between two readings was interrupted."""


class ConfigError(Exception):
    """Invalid command-line option or configuration file."""


class PidFileError(Exception):
    """The pid file belongs to another running process."""
