"""Data models for macd."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from subprocess import Popen
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from macd.launcher import FailureReason


class Outcome(Enum):
    """Terminal states of the monitor loop."""

    ALL_EXITED = "all_exited"
    TIMED_OUT = "timed_out"
    INTERRUPTED = "interrupted"


class EntryState(Enum):
    """Display state of a supervised child."""

    RUNNING = "Running"
    EXITED = "Exited"
    TERMINATED = "Terminated"
    FAILED = "Failed"


@dataclass(slots=True, frozen=True)
class Command:
    """One directive line, tokenized."""

    line: str
    argv: tuple[str, ...]

    @property
    def program(self) -> str | None:
        return self.argv[0] if self.argv else None


@dataclass(slots=True, frozen=True)
class Directives:
    """Parsed directive file."""

    commands: tuple[Command, ...]
    time_limit_seconds: int | None = None


@dataclass(slots=True, frozen=True)
class RunConfig:
    """Immutable run parameters captured at program start."""

    start_time: float  # monotonic clock reading
    started_at: datetime
    time_limit_seconds: int | None = None

    def elapsed(self, now: float) -> float:
        """Seconds elapsed since start."""
        return now - self.start_time

    def time_limit_reached(self, now: float) -> bool:
        """Check whether the configured time limit has been reached."""
        if self.time_limit_seconds is None:
            return False
        return self.elapsed(now) >= self.time_limit_seconds


@dataclass(slots=True, frozen=True)
class ResourceSample:
    """Point-in-time resource reading for one process."""

    cpu_ticks: int  # cumulative user + system ticks
    memory_mb: int  # resident memory, truncated


@dataclass(slots=True)
class ProcessEntry:
    """
    One supervised child.

    Entries are never deleted. A dead process stays in the table as an
    ``alive=False`` record so indices keep matching directive lines.
    """

    index: int
    command: Command
    pid: int | None = None
    baseline_cpu_ticks: int = 0
    last_cpu_ticks: int = 0
    alive: bool = False
    last_sample: ResourceSample | None = None
    last_cpu_percent: int = 0
    failure: "FailureReason | None" = None
    terminated: bool = False
    process: Popen | None = field(default=None, repr=False, compare=False)

    @property
    def launched(self) -> bool:
        """Whether a process was ever started for this entry."""
        return self.pid is not None

    def mark_exited(self) -> None:
        """Move the entry to its terminal state. There is no way back."""
        self.alive = False

    def record_sample(self, sample: ResourceSample, cpu_percent: int) -> None:
        """Store a successful sample as the latest observation."""
        self.last_cpu_ticks = sample.cpu_ticks
        self.last_sample = sample
        self.last_cpu_percent = cpu_percent

    @property
    def state(self) -> EntryState:
        if not self.launched:
            return EntryState.FAILED
        if self.alive:
            return EntryState.RUNNING
        if self.terminated:
            return EntryState.TERMINATED
        return EntryState.EXITED


class SupervisionTable:
    """Ordered registry of supervised children, one entry per directive line."""

    def __init__(self) -> None:
        self._entries: list[ProcessEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ProcessEntry]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> ProcessEntry:
        return self._entries[index]

    def add_launched(self, command: Command, process: Popen) -> ProcessEntry:
        """Append an entry for a successfully started child."""
        entry = ProcessEntry(
            index=len(self._entries),
            command=command,
            pid=process.pid,
            alive=True,
            process=process,
        )
        self._entries.append(entry)
        return entry

    def add_failed(self, command: Command, reason: "FailureReason") -> ProcessEntry:
        """Append a terminal entry for a directive that could not be launched."""
        entry = ProcessEntry(index=len(self._entries), command=command, failure=reason)
        self._entries.append(entry)
        return entry

    def alive_entries(self) -> list[ProcessEntry]:
        """Entries still believed to be running, in index order."""
        return [entry for entry in self._entries if entry.alive]

    def any_alive(self) -> bool:
        return any(entry.alive for entry in self._entries)


@dataclass(slots=True, frozen=True)
class EntryStatus:
    """Immutable presentation snapshot of one entry."""

    index: int
    pid: int | None
    program: str
    state: EntryState
    cpu_percent: int
    memory_mb: int

    @classmethod
    def from_entry(cls, entry: ProcessEntry) -> "EntryStatus":
        sample = entry.last_sample
        return cls(
            index=entry.index,
            pid=entry.pid,
            program=entry.command.program or "",
            state=entry.state,
            cpu_percent=entry.last_cpu_percent,
            memory_mb=sample.memory_mb if sample else 0,
        )


@dataclass(slots=True, frozen=True)
class CycleSnapshot:
    """State of the whole table at the end of a cycle."""

    elapsed_seconds: float
    entries: tuple[EntryStatus, ...]
    outcome: Outcome | None = None

    @classmethod
    def capture(
        cls,
        table: SupervisionTable,
        elapsed_seconds: float,
        outcome: Outcome | None = None,
    ) -> "CycleSnapshot":
        return cls(
            elapsed_seconds=elapsed_seconds,
            entries=tuple(EntryStatus.from_entry(entry) for entry in table),
            outcome=outcome,
        )
