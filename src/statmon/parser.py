"""Reading and parsing cpu counter lines from /proc/stat."""

import logging
import re
import time
from collections.abc import Callable
from typing import Protocol

from statmon.errors import FormatError, SourceUnavailable
from statmon.models import AGGREGATE, CpuId, CpuTimes, Snapshot, cpu_id_from_label

logger = logging.getLogger(__name__)

DEFAULT_STAT_PATH = "/proc/stat"

# e.g. "cpu  4705 356 584 3699 23 23 0 0 0 0"
# Newer kernels append steal/guest/guest_nice; those columns are ignored.
CPU_LINE_RE = re.compile(
    r"\s*(?P<label>cpu\d*)"
    r"\s+(?P<user>\d+)\s+(?P<nice>\d+)\s+(?P<system>\d+)\s+(?P<idle>\d+)"
    r"\s+(?P<iowait>\d+)\s+(?P<irq>\d+)\s+(?P<softirq>\d+)"
    r"(?:\s+\d+)*\s*",
    re.ASCII,
)


class CounterSource(Protocol):
    """Anything that can hand back one raw cpu counter line."""

    def read_line(self) -> str: ...


class FileCounterSource:
    """
    Counter source backed by a /proc/stat style file.

    The file is reopened on every read since it is regenerated by the kernel.
    """

    def __init__(self, path: str = DEFAULT_STAT_PATH, cpu_id: CpuId = AGGREGATE) -> None:
        """
        Initialize the FileCounterSource.

        Args:
            path: File to read counters from.
            cpu_id: Which cpu line to return. The aggregate is always the first line.
        """
        self._path = path
        self._cpu_id = cpu_id
        self._label = str(cpu_id)

    @property
    def path(self) -> str:
        """File the counters are read from."""
        return self._path

    @property
    def cpu_id(self) -> CpuId:
        """CPU whose line this source returns."""
        return self._cpu_id

    def read_line(self) -> str:
        """Return the raw counter line for this source's CPU."""
        try:
            with open(self._path, encoding="ascii") as stat_file:
                if self._cpu_id == AGGREGATE:
                    line = stat_file.readline()
                    if not line:
                        raise SourceUnavailable(f"{self._path} is empty")
                    return line
                for line in stat_file:
                    if line.split(None, 1)[:1] == [self._label]:
                        return line
        except (OSError, UnicodeDecodeError) as e:
            raise SourceUnavailable(f"Could not read {self._path}: {e}") from e
        raise SourceUnavailable(f"No '{self._label}' line in {self._path}")


def parse_line(line: str, timestamp: float | None = None, monotonic: float | None = None) -> Snapshot:
    """
    Parse one cpu counter line into a Snapshot.

    Args:
        line: Raw line, e.g. ``"cpu0 100 0 20 300 4 0 1"``.
        timestamp: Reading time in epoch seconds. Defaults to now.
        monotonic: Monotonic clock reading, used for durations. Defaults to now.

    Raises:
        FormatError: If the line does not have the expected shape.
    """
    match = CPU_LINE_RE.fullmatch(line)
    if match is None:
        raise FormatError(line)

    groups = match.groupdict()
    return Snapshot(
        timestamp=time.time() if timestamp is None else timestamp,
        cpu_id=cpu_id_from_label(groups.pop("label")),
        times=CpuTimes(**{name: int(value) for name, value in groups.items()}),
        monotonic=time.monotonic() if monotonic is None else monotonic,
    )


def read_snapshot(
    source: CounterSource,
    now: Callable[[], float] = time.time,
    monotonic: Callable[[], float] = time.monotonic,
) -> Snapshot:
    """Read one line from ``source`` and parse it."""
    line = source.read_line()
    snapshot = parse_line(line, timestamp=now(), monotonic=monotonic())
    logger.debug("Read %s at %.3f: %s", snapshot.cpu_id, snapshot.timestamp, snapshot.times)
    return snapshot
