"""macd - Live Textual dashboard for a supervision run."""

import threading
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from macd.models import CycleSnapshot, EntryState, EntryStatus, Outcome
from macd.monitor import MonitorLoop
from macd.signals import InterruptFlag

OUTCOME_LABELS = {
    Outcome.ALL_EXITED: "all processes exited",
    Outcome.TIMED_OUT: "time limit reached",
    Outcome.INTERRUPTED: "interrupted",
}

COLUMN_KEYS = ("index", "pid", "state", "cpu", "mem", "program")


def format_elapsed(seconds: float) -> str:
    """Format elapsed seconds as HH:MM:SS."""
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class MonitorWorker:
    """
    Runs a MonitorLoop on a daemon thread.

    The loop hands its snapshots to the app through the callback it was
    built with; the worker only owns the thread.
    """

    def __init__(self, loop: MonitorLoop) -> None:
        self._monitor_loop = loop
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        """Check if the loop thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the loop thread."""
        if self.is_running:
            return
        self._thread = threading.Thread(
            target=self._monitor_loop.run,
            daemon=True,
            name="MonitorLoop",
        )
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)


class RunHeader(Static):
    """Header widget showing run progress."""

    DEFAULT_CSS = """
    RunHeader {
        height: auto;
        min-height: 3;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, time_limit_seconds: int | None = None, *args, **kwargs) -> None:
        """Initialize RunHeader."""
        super().__init__(*args, **kwargs)
        self._time_limit = time_limit_seconds
        self._elapsed: float = 0.0
        self._running_count: int = 0
        self._finished_count: int = 0
        self._failed_count: int = 0
        self._outcome: Outcome | None = None

    def on_mount(self) -> None:
        self.update(self._header_text())

    def update_run(self, snapshot: CycleSnapshot) -> None:
        """Update the header from a cycle snapshot."""
        states = [entry.state for entry in snapshot.entries]
        self._elapsed = snapshot.elapsed_seconds
        self._running_count = states.count(EntryState.RUNNING)
        self._finished_count = states.count(EntryState.EXITED) + states.count(EntryState.TERMINATED)
        self._failed_count = states.count(EntryState.FAILED)
        self._outcome = snapshot.outcome
        self.update(self._header_text())

    def _header_text(self) -> str:
        limit = f"{self._time_limit}s" if self._time_limit is not None else "none"
        status = OUTCOME_LABELS[self._outcome] if self._outcome else "supervising"
        return (
            f"Elapsed: {format_elapsed(self._elapsed)}   Time limit: {limit}\n"
            f"Running: {self._running_count}   Finished: {self._finished_count}   "
            f"Failed to start: {self._failed_count}\n"
            f"Status: {status}"
        )


class EntryTable(Container):
    """Container for the supervised process table."""

    DEFAULT_CSS = """
    EntryTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize EntryTable."""
        super().__init__(*args, **kwargs)
        self._current_indices: set[int] = set()

    def compose(self) -> ComposeResult:
        """Compose the entry table."""
        yield DataTable(id="entry-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#entry-table", DataTable)
        table.cursor_type = "row"

        table.add_column("#", key="index", width=4)
        table.add_column("PID", key="pid", width=8)
        table.add_column("STATE", key="state", width=11)
        table.add_column("CPU%", key="cpu", width=6)
        table.add_column("MEM MB", key="mem", width=8)
        table.add_column("Program", key="program")

    def update_entries(self, entries: tuple[EntryStatus, ...]) -> None:
        """
        Update the table with new entry data.

        Entries are never removed, so rows are only added or updated in place.
        """
        table = self.query_one("#entry-table", DataTable)

        for entry in entries:
            row_key = str(entry.index)
            cells = self._cells(entry)
            if entry.index in self._current_indices:
                for column, value in zip(COLUMN_KEYS, cells):
                    table.update_cell(row_key, column, value)
            else:
                table.add_row(*cells, key=row_key)
                self._current_indices.add(entry.index)

    @staticmethod
    def _cells(entry: EntryStatus) -> tuple[str, ...]:
        running = entry.state is EntryState.RUNNING
        return (
            str(entry.index),
            str(entry.pid) if entry.pid is not None else "-",
            entry.state.value,
            f"{entry.cpu_percent}" if running else "-",
            f"{entry.memory_mb}" if running else "-",
            entry.program or "(empty)",
        )


class SupervisorApp(App):
    """Dashboard for a macd supervision run."""

    TITLE = "macd"
    SUB_TITLE = "Process Supervisor"

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        loop: MonitorLoop,
        update_queue: Queue[CycleSnapshot],
        flag: InterruptFlag,
        time_limit_seconds: int | None = None,
    ) -> None:
        """
        Initialize the SupervisorApp.

        Args:
            loop: Monitor loop built with ``on_cycle=update_queue.put``.
            update_queue: Queue the loop publishes snapshots to.
            flag: Interrupt flag shared with the loop.
            time_limit_seconds: Shown in the header.
        """
        super().__init__()
        self._update_queue = update_queue
        self._flag = flag
        self._time_limit = time_limit_seconds
        self._monitor_worker = MonitorWorker(loop)
        self._monitor_loop = loop

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield RunHeader(self._time_limit, id="run-header")
        yield EntryTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the monitor loop when the app is mounted."""
        self._monitor_worker.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent snapshot."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: CycleSnapshot) -> None:
        self.query_one("#run-header", RunHeader).update_run(snapshot)
        self.query_one(EntryTable).update_entries(snapshot.entries)
        if snapshot.outcome is not None:
            self.sub_title = OUTCOME_LABELS[snapshot.outcome]
            self.notify(f"Run finished: {OUTCOME_LABELS[snapshot.outcome]}")

    def action_quit(self) -> None:
        """Interrupt the run; the app exits once the children are killed."""
        self._flag.set()
        self.sub_title = "stopping"
        self.run_worker(self._wait_for_monitor, thread=True, group="quit")

    def _wait_for_monitor(self) -> None:
        """Join the loop thread off the event loop, then exit from it."""
        self._monitor_worker.join(timeout=self._monitor_loop.interval + 5.0)
        self.call_from_thread(self.exit, self._monitor_loop.outcome)
