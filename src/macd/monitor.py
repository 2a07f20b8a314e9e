"""Supervision loop for macd."""

import logging
import time
from collections.abc import Callable

from macd.models import CycleSnapshot, Outcome, ProcessEntry, RunConfig, SupervisionTable
from macd.report import Reporter
from macd.sampler import ResourceSampler
from macd.signals import InterruptFlag
from macd.termination import terminate_all

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0
DEFAULT_POLL_INTERVAL = 0.1
MIN_INTERVAL = 0.1
MIN_POLL_INTERVAL = 0.01


def cpu_percent(delta_ticks: int, interval: float, ticks_per_second: int) -> int:
    """
    CPU usage over one interval as a whole percentage of one core.

    100 means one core was busy for the entire interval. Integer
    truncation means bursts shorter than a tick's share read as 0.
    """
    budget = max(1, int(interval * ticks_per_second))
    return max(0, delta_ticks) * 100 // budget


class MonitorLoop:
    """
    Periodically samples every live child and decides when the run ends.

    One pass over the table happens per interval. Between passes the loop
    sleeps in short steps so a time limit or an interrupt is noticed within
    one poll step rather than one full interval.
    """

    def __init__(
        self,
        table: SupervisionTable,
        config: RunConfig,
        sampler: ResourceSampler,
        reporter: Reporter,
        flag: InterruptFlag,
        interval: float = DEFAULT_INTERVAL,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        on_cycle: Callable[[CycleSnapshot], None] | None = None,
    ) -> None:
        """
        Initialize the MonitorLoop.

        Args:
            table: Entries produced by the launcher.
            config: Start time and optional time limit.
            sampler: Source of CPU ticks and memory readings.
            reporter: Destination for report lines.
            flag: Interrupt flag set by the signal relay.
            interval: Seconds between reporting cycles. Default 5.0s.
            poll_interval: Sleep step while waiting for the next cycle.
            clock: Monotonic time source, same base as config.start_time.
            sleep: Sleep function, replaceable in tests.
            on_cycle: Optional callback receiving a snapshot per cycle.
        """
        self._table = table
        self._config = config
        self._sampler = sampler
        self._reporter = reporter
        self._flag = flag
        self._clock = clock
        self._sleep = sleep
        self._on_cycle = on_cycle
        self.interval = interval
        self.poll_interval = poll_interval
        self._outcome: Outcome | None = None

    @property
    def interval(self) -> float:
        """Get the reporting interval."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        self._interval = max(MIN_INTERVAL, value)

    @property
    def poll_interval(self) -> float:
        """Get the sleep step used between cycles."""
        return self._poll_interval

    @poll_interval.setter
    def poll_interval(self, value: float) -> None:
        self._poll_interval = max(MIN_POLL_INTERVAL, value)

    @property
    def outcome(self) -> Outcome | None:
        """Terminal state once run() has returned."""
        return self._outcome

    def elapsed(self) -> float:
        return self._config.elapsed(self._clock())

    def run(self) -> Outcome:
        """Run cycles until every child exits or a termination trigger fires."""
        while True:
            self.run_cycle()

            if not self._table.any_alive():
                self._reporter.summary(self.elapsed())
                return self._finish(Outcome.ALL_EXITED)

            self._reporter.cycle_end()
            trigger = self.wait_for_next_cycle()
            if trigger is not None:
                if trigger is Outcome.INTERRUPTED:
                    logger.info("Interrupted by signal %s", self._flag.signum)
                else:
                    logger.info("Time limit of %ss reached", self._config.time_limit_seconds)
                terminate_all(
                    self._table,
                    self.elapsed(),
                    self._reporter,
                    interrupted=trigger is Outcome.INTERRUPTED,
                )
                return self._finish(trigger)

    def run_cycle(self) -> None:
        """Sample and report every live entry once, in index order."""
        self._reporter.cycle_start()
        for entry in self._table.alive_entries():
            self._check_entry(entry)
        self._publish()

    def _check_entry(self, entry: ProcessEntry) -> None:
        if entry.process.poll() is not None:
            self._mark_exited(entry)
            return

        sample = self._sampler.sample(entry.pid)
        if sample is None:
            # A vanished accounting record is treated as a definitive exit
            self._mark_exited(entry)
            return

        delta = sample.cpu_ticks - entry.last_cpu_ticks
        if delta < 0:
            logger.warning(
                "CPU ticks for pid %d went backwards (%d -> %d), clamping to 0",
                entry.pid,
                entry.last_cpu_ticks,
                sample.cpu_ticks,
            )
        percent = cpu_percent(delta, self._interval, self._sampler.ticks_per_second)
        entry.record_sample(sample, percent)
        self._reporter.running(entry.index, percent, sample.memory_mb)

    def _mark_exited(self, entry: ProcessEntry) -> None:
        logger.debug("[%d] pid %d has exited", entry.index, entry.pid)
        entry.mark_exited()
        self._reporter.exited(entry.index)

    def check_triggers(self) -> Outcome | None:
        """Return the termination trigger that has fired, if any."""
        if self._config.time_limit_reached(self._clock()):
            return Outcome.TIMED_OUT
        if self._flag.is_set():
            return Outcome.INTERRUPTED
        return None

    def wait_for_next_cycle(self) -> Outcome | None:
        """
        Sleep until the next cycle boundary in short steps.

        Returns the trigger that fired during the wait, or None when the
        boundary was reached without one.
        """
        deadline = self._clock() + self._interval
        while True:
            trigger = self.check_triggers()
            if trigger is not None:
                return trigger
            remaining = deadline - self._clock()
            if remaining <= 0:
                return None
            self._sleep(min(self._poll_interval, remaining))

    def _finish(self, outcome: Outcome) -> Outcome:
        self._outcome = outcome
        self._publish()
        return outcome

    def _publish(self) -> None:
        if self._on_cycle is None:
            return
        self._on_cycle(CycleSnapshot.capture(self._table, self.elapsed(), self._outcome))
