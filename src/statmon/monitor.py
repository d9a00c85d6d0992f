"""Background monitoring loop for statmon."""

import logging
import threading
from collections import deque
from queue import Queue

from statmon.errors import ParseError, SamplingCancelled, StatError
from statmon.models import Report
from statmon.parser import CounterSource
from statmon.sampler import sample

logger = logging.getLogger(__name__)

MIN_INTERVAL = 0.1
HISTORY_LENGTH = 60


class StatMonitor:
    """
    Repeats sampling cycles and pushes each Report to a thread-safe Queue.

    Runs in a separate daemon thread. A failed cycle is logged and the next
    one starts; an unreadable or malformed counter source, or any unexpected
    error, stops the loop and is kept in ``failure``.
    """

    def __init__(
        self,
        update_queue: Queue[Report],
        source: CounterSource,
        interval: float = 5.0,
        count: int | None = None,
    ) -> None:
        """
        Initialize the StatMonitor.

        Args:
            update_queue: Thread-safe queue to push reports to.
            source: Counter source shared by every cycle.
            interval: Length of each sampling cycle (in seconds). Default 5.0s.
            count: Stop after this many reports. None runs until stopped.
        """
        self._queue = update_queue
        self._source = source
        self._interval = max(MIN_INTERVAL, interval)
        self._count = count
        self._cycles = 0
        self._failure: Exception | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._history: deque[Report] = deque(maxlen=HISTORY_LENGTH)

    @property
    def interval(self) -> float:
        """Get the sampling interval."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the sampling interval, applied from the next cycle."""
        self._interval = max(MIN_INTERVAL, value)

    @property
    def cycles(self) -> int:
        """Number of reports produced so far."""
        return self._cycles

    @property
    def failure(self) -> Exception | None:
        """The fatal error that ended the loop, if any."""
        return self._failure

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="StatMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread, cancelling any cycle in progress.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def join(self, timeout: float | None = None) -> None:
        """Wait for the loop to end on its own (count reached or failure)."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def _poll_loop(self) -> None:
        """Main sampling loop running in the background thread."""
        while not self._stop_event.is_set():
            if self._count is not None and self._cycles >= self._count:
                break
            try:
                report = sample(self._source, self._interval, clock=self._stop_event)
            except SamplingCancelled:
                logger.debug("Sampling cycle cancelled by stop request")
                break
            except ParseError as e:
                logger.error("Cannot read cpu counters, stopping monitor: %s", e)
                self._failure = e
                break
            except StatError as e:
                logger.warning("Sampling cycle failed, continuing: %s", e)
                continue
            except Exception as e:
                logger.exception("Monitor loop crashed: %s", e)
                self._failure = e
                break

            self._cycles += 1
            self._history.append(report)
            self._queue.put(report)

    def get_history(self) -> list[Report]:
        """Get the most recent reports, oldest first."""
        return list(self._history)
