"""Data models for statmon: CPU identities, counter readings and reports."""

from dataclasses import astuple, dataclass, fields

from statmon.errors import CounterRegression, IdentityMismatch, ZeroActivity


@dataclass(slots=True, frozen=True)
class Aggregate:
    """The combined "all cores" line of /proc/stat."""

    def __str__(self) -> str:
        return "cpu"


@dataclass(slots=True, frozen=True)
class Core:
    """A single core, identified by its kernel index."""

    index: int

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError(f"Core index must be non-negative, got {self.index}")

    def __str__(self) -> str:
        return f"cpu{self.index}"


CpuId = Aggregate | Core

AGGREGATE = Aggregate()


def cpu_id_from_label(label: str) -> CpuId:
    """Convert a kernel label such as ``cpu`` or ``cpu3`` into a CpuId."""
    if not label.startswith("cpu"):
        raise ValueError(f"Not a cpu label: {label!r}")
    suffix = label[3:]
    if not suffix:
        return AGGREGATE
    if not (suffix.isascii() and suffix.isdigit()):
        raise ValueError(f"Not a cpu label: {label!r}")
    return Core(int(suffix))


def check_cpus_match(left: CpuId, right: CpuId) -> None:
    """Raise IdentityMismatch unless both readings describe the same CPU."""
    if left != right:
        raise IdentityMismatch(left, right)


@dataclass(slots=True, frozen=True)
class CpuTimes:
    """Cumulative kernel time units per category, in /proc/stat column order."""

    user: int
    nice: int
    system: int
    idle: int
    iowait: int
    irq: int
    softirq: int

    def __post_init__(self) -> None:
        for name, value in self.as_dict().items():
            if value < 0:
                raise ValueError(f"Counter '{name}' must be non-negative, got {value}")

    def total(self) -> int:
        """Sum of all seven counters."""
        return sum(astuple(self))

    def as_dict(self) -> dict[str, int]:
        """Counters keyed by category name."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def plus(self, other: "CpuTimes") -> "CpuTimes":
        """Add counter by counter."""
        return CpuTimes(*(a + b for a, b in zip(astuple(self), astuple(other))))

    def minus(self, other: "CpuTimes") -> "CpuTimes":
        """
        Subtract counter by counter.

        Raises CounterRegression if any of ``other``'s counters is larger,
        rather than producing a negative or wrapped value.
        """
        diffs = []
        for f in fields(self):
            later = getattr(self, f.name)
            earlier = getattr(other, f.name)
            if later < earlier:
                raise CounterRegression(f.name, earlier, later)
            diffs.append(later - earlier)
        return CpuTimes(*diffs)


CATEGORIES = tuple(f.name for f in fields(CpuTimes))


@dataclass(slots=True, frozen=True)
class Delta:
    """Counter increase for one CPU over ``duration`` seconds."""

    duration: float
    cpu_id: CpuId
    times: CpuTimes


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Immutable point-in-time reading of one cpu line."""

    timestamp: float  # Seconds since the epoch
    cpu_id: CpuId
    times: CpuTimes
    monotonic: float | None = None  # time.monotonic() at the read, for durations

    def __sub__(self, other):
        if isinstance(other, Snapshot):
            return subtract(self, other)
        if isinstance(other, Delta):
            check_cpus_match(self.cpu_id, other.cpu_id)
            return Snapshot(
                timestamp=self.timestamp - other.duration,
                cpu_id=self.cpu_id,
                times=self.times.minus(other.times),
                monotonic=None if self.monotonic is None else self.monotonic - other.duration,
            )
        return NotImplemented

    def __add__(self, other):
        if isinstance(other, Delta):
            check_cpus_match(self.cpu_id, other.cpu_id)
            return Snapshot(
                timestamp=self.timestamp + other.duration,
                cpu_id=self.cpu_id,
                times=self.times.plus(other.times),
                monotonic=None if self.monotonic is None else self.monotonic + other.duration,
            )
        return NotImplemented


def subtract(later: Snapshot, earlier: Snapshot) -> Delta:
    """
    Compute the Delta between two readings of the same CPU.

    The duration comes from the monotonic stamps when both readings carry one,
    so a wall-clock step between the reads cannot distort it.
    """
    check_cpus_match(later.cpu_id, earlier.cpu_id)
    if later.monotonic is not None and earlier.monotonic is not None:
        duration = later.monotonic - earlier.monotonic
    else:
        duration = later.timestamp - earlier.timestamp
    return Delta(
        duration=duration,
        cpu_id=later.cpu_id,
        times=later.times.minus(earlier.times),
    )


@dataclass(slots=True, frozen=True)
class Report:
    """Share of elapsed CPU time spent in each category (0.0 - 1.0)."""

    duration: float
    cpu_id: CpuId
    user: float
    nice: float
    system: float
    idle: float
    iowait: float
    irq: float
    softirq: float
    total_used: float

    def fractions(self) -> dict[str, float]:
        """The seven category shares keyed by name."""
        return {name: getattr(self, name) for name in CATEGORIES}

    def as_dict(self) -> dict[str, object]:
        """Every field in a JSON-friendly form."""
        return {
            "cpu": str(self.cpu_id),
            "duration": self.duration,
            **self.fractions(),
            "total_used": self.total_used,
        }


def normalize(delta: Delta) -> Report:
    """
    Turn a Delta into a Report of fractional utilization.

    Raises ZeroActivity when no time units elapsed, instead of dividing by zero.
    """
    total = delta.times.total()
    if total == 0:
        raise ZeroActivity(delta.cpu_id)

    shares = {name: value / total for name, value in delta.times.as_dict().items()}
    return Report(
        duration=delta.duration,
        cpu_id=delta.cpu_id,
        **shares,
        # From idle alone so rounding in the other six shares cannot leak in
        total_used=1.0 - shares["idle"],
    )
