"""Line-oriented supervision report."""

import sys
from datetime import datetime
from collections.abc import Callable
from typing import TextIO

from macd.models import ProcessEntry

SEPARATOR = "..."


def format_timestamp(moment: datetime) -> str:
    """Format a timestamp as e.g. ``Mon, Oct 19, 2026 3:04:05 PM``."""
    hour = moment.hour % 12 or 12
    meridiem = "PM" if moment.hour >= 12 else "AM"
    return (
        f"{moment:%a}, {moment:%b} {moment.day}, {moment.year} "
        f"{hour}:{moment:%M}:{moment:%S} {meridiem}"
    )


class Reporter:
    """
    Writes one line per supervision event.

    Every line is flushed immediately so the report interleaves correctly
    with output from the children. A reporter created with ``stream=None``
    discards everything.
    """

    def __init__(
        self,
        stream: TextIO | None = sys.stdout,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._stream = stream
        self._now = now

    def _emit(self, line: str) -> None:
        if self._stream is None:
            return
        self._stream.write(line + "\n")
        self._stream.flush()

    def _timestamp(self) -> str:
        return format_timestamp(self._now())

    def starting(self) -> None:
        self._emit(f"Starting report, {self._timestamp()}")

    def launched(self, entry: ProcessEntry) -> None:
        self._emit(f"[{entry.index}] {entry.command.program}, started successfully (pid: {entry.pid})")

    def launch_failed(self, entry: ProcessEntry) -> None:
        program = entry.command.program
        if program is None:
            self._emit(f"[{entry.index}] badprogram , failed to start")
        else:
            self._emit(f"[{entry.index}] badprogram {program}, failed to start")

    def cycle_start(self) -> None:
        self._emit(SEPARATOR)
        self._emit(f"Normal report, {self._timestamp()}")

    def cycle_end(self) -> None:
        self._emit(SEPARATOR)

    def running(self, index: int, cpu_percent: int, memory_mb: int) -> None:
        self._emit(f"[{index}] Running, cpu usage: {cpu_percent}%, mem usage: {memory_mb} MB")

    def exited(self, index: int) -> None:
        self._emit(f"[{index}] Exited")

    def terminated(self, index: int) -> None:
        self._emit(f"[{index}] Terminated")

    def terminating(self, interrupted: bool = False) -> None:
        prefix = "Signal Received - " if interrupted else ""
        self._emit(f"{prefix}Terminating, {self._timestamp()}")

    def summary(self, elapsed_seconds: float) -> None:
        self._emit(f"Exiting (total time: {int(elapsed_seconds)} seconds)")
