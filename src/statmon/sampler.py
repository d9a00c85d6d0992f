"""One sampling cycle: read, wait, read again, report."""

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol

from statmon.errors import SamplingCancelled
from statmon.models import Report, normalize
from statmon.parser import CounterSource, read_snapshot

logger = logging.getLogger(__name__)


class Waiter(Protocol):
    """
    Suspends the sampler between its two reads.

    ``wait`` returns True if it was interrupted before the timeout elapsed,
    which is exactly the contract of ``threading.Event.wait``.
    """

    def wait(self, timeout: float | None = None) -> bool: ...


def sample(
    source: CounterSource,
    interval: float,
    clock: Waiter | None = None,
    now: Callable[[], float] = time.time,
    monotonic: Callable[[], float] = time.monotonic,
) -> Report:
    """
    Measure CPU utilization over ``interval`` seconds.

    Args:
        source: Where counter lines are read from.
        interval: Seconds to wait between the two reads.
        clock: Waiter used for the pause. Defaults to an Event nobody sets.
        now: Wall-clock function used to stamp each reading.
        monotonic: Clock the report duration is measured with.

    Raises:
        SamplingCancelled: If the wait was interrupted. The cycle is discarded.
        StatError: Any parse, arithmetic or normalization failure, unchanged.
    """
    if clock is None:
        clock = threading.Event()

    start = read_snapshot(source, now, monotonic)
    logger.debug("Waiting %.2fs before second read of %s", interval, start.cpu_id)
    if clock.wait(interval):
        raise SamplingCancelled(f"Sampling of {start.cpu_id} cancelled during wait")
    end = read_snapshot(source, now, monotonic)

    report = normalize(end - start)
    logger.debug("Sampled %s over %.2fs: %.1f%% used", report.cpu_id, report.duration, report.total_used * 100)
    return report
