"""Shared test doubles for macd tests."""

from datetime import datetime

import pytest

from macd.launcher import FailureReason
from macd.models import Command, ResourceSample, RunConfig, SupervisionTable
from macd.report import Reporter
from macd.signals import InterruptFlag


class FakeProcess:
    """Popen stand-in whose exit is controlled by the test."""

    def __init__(self, pid: int) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self.killed = False

    def poll(self) -> int | None:
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9

    def wait(self, timeout: float | None = None) -> int | None:
        return self.returncode

    def exit(self, code: int = 0) -> None:
        self.returncode = code


class FakeSampler:
    """Sampler returning scripted readings; a pid with no readings is gone."""

    def __init__(self, ticks_per_second: int = 100) -> None:
        self.ticks_per_second = ticks_per_second
        self.readings: dict[int, list[ResourceSample]] = {}
        self.calls: list[int] = []

    def script(self, pid: int, *samples: tuple[int, int]) -> None:
        self.readings[pid] = [ResourceSample(cpu_ticks=t, memory_mb=m) for t, m in samples]

    def sample(self, pid: int) -> ResourceSample | None:
        self.calls.append(pid)
        queue = self.readings.get(pid)
        if not queue:
            return None
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []
        self.on_sleep = None

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep(self.now)


class ListStream:
    """Text stream collecting written lines."""

    def __init__(self) -> None:
        self.buffer = ""

    def write(self, text: str) -> int:
        self.buffer += text
        return len(text)

    def flush(self) -> None:
        pass

    @property
    def lines(self) -> list[str]:
        return self.buffer.splitlines()


def make_command(line: str) -> Command:
    return Command(line=line, argv=tuple(line.split()))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sampler() -> FakeSampler:
    return FakeSampler()


@pytest.fixture
def stream() -> ListStream:
    return ListStream()


@pytest.fixture
def reporter(stream: ListStream) -> Reporter:
    return Reporter(stream, now=lambda: datetime(2026, 10, 19, 15, 4, 5))


@pytest.fixture
def flag() -> InterruptFlag:
    return InterruptFlag()


@pytest.fixture
def config(clock: FakeClock) -> RunConfig:
    return RunConfig(start_time=clock.now, started_at=datetime(2026, 10, 19, 15, 4, 5))


def build_table(*processes: FakeProcess | None) -> SupervisionTable:
    """Build a table from fake processes; None stands for a failed launch."""
    table = SupervisionTable()
    for i, process in enumerate(processes):
        command = make_command(f"prog{i} --arg")
        if process is None:
            table.add_failed(command, FailureReason.EXEC_FAILED)
        else:
            table.add_launched(command, process)
    return table
