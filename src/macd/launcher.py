"""Process launching for macd."""

import logging
import subprocess
from enum import Enum

from macd.models import Command, Directives, SupervisionTable
from macd.report import Reporter
from macd.sampler import ResourceSampler
from macd.termination import kill_remaining

logger = logging.getLogger(__name__)

DEFAULT_GRACE = 0.1


class FailureReason(Enum):
    """Why a directive could not be started."""

    EMPTY_COMMAND = "empty command"
    NOT_FOUND = "program not found"
    PERMISSION_DENIED = "permission denied"
    EXEC_FAILED = "could not execute program"
    FORK_FAILED = "could not create process"
    EXITED_DURING_GRACE = "exited immediately"


class LaunchError(Exception):
    """Raised when a command cannot be started."""

    def __init__(self, reason: FailureReason, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        message = reason.value if not detail else f"{reason.value}: {detail}"
        super().__init__(message)


class ProcessLauncher:
    """
    Starts one child process per command.

    Exec failures surface in the parent as exceptions from subprocess that
    carry the program in ``filename``; a fork failure has no filename. After
    a successful start the launcher waits up to ``grace`` seconds so a child
    that dies straight away is reported as a launch failure instead of a
    running process.
    """

    def __init__(self, grace: float = DEFAULT_GRACE, isolate_group: bool = True) -> None:
        """
        Initialize the ProcessLauncher.

        Args:
            grace: Seconds to wait for an immediate failure after start.
            isolate_group: Start each child in its own process group so a
                terminal interrupt reaches only the supervisor.
        """
        self._grace = max(0.0, grace)
        self._isolate_group = isolate_group

    @property
    def grace(self) -> float:
        return self._grace

    def launch(self, command: Command) -> subprocess.Popen:
        """
        Start a child for ``command``.

        Raises:
            LaunchError: If the command is empty, cannot be executed, or
                exits with a failure status inside the grace window.
        """
        if not command.argv:
            raise LaunchError(FailureReason.EMPTY_COMMAND)

        kwargs = {"stdin": subprocess.DEVNULL}
        if self._isolate_group:
            kwargs["process_group"] = 0

        try:
            process = subprocess.Popen(list(command.argv), **kwargs)
        except FileNotFoundError as e:
            raise LaunchError(FailureReason.NOT_FOUND, str(e)) from e
        except PermissionError as e:
            raise LaunchError(FailureReason.PERMISSION_DENIED, str(e)) from e
        except OSError as e:
            if e.filename is not None:
                raise LaunchError(FailureReason.EXEC_FAILED, str(e)) from e
            raise LaunchError(FailureReason.FORK_FAILED, str(e)) from e

        try:
            returncode = process.wait(timeout=self._grace)
        except subprocess.TimeoutExpired:
            return process

        if returncode != 0:
            raise LaunchError(
                FailureReason.EXITED_DURING_GRACE, f"exit status {returncode}"
            )
        # Finished cleanly inside the window; the monitor reports it as exited
        return process


def launch_all(
    directives: Directives,
    launcher: ProcessLauncher,
    sampler: ResourceSampler,
    reporter: Reporter,
) -> SupervisionTable:
    """
    Launch every directive in order and build the supervision table.

    Produces exactly one entry per directive line whatever the launch
    outcome, then records each launched child's baseline CPU ticks. If
    launching is aborted by an exception, the children started so far are
    killed before it propagates.
    """
    table = SupervisionTable()

    try:
        for command in directives.commands:
            try:
                process = launcher.launch(command)
            except LaunchError as e:
                entry = table.add_failed(command, e.reason)
                logger.warning("Failed to start [%d] %r: %s", entry.index, command.line, e)
                reporter.launch_failed(entry)
                continue

            entry = table.add_launched(command, process)
            logger.info("Started [%d] %r as pid %d", entry.index, command.line, entry.pid)
            reporter.launched(entry)
    except BaseException:
        kill_remaining(table)
        raise

    for entry in table.alive_entries():
        if entry.process.returncode is not None:
            # Already reaped; the pid may belong to another process now
            continue
        sample = sampler.sample(entry.pid)
        entry.baseline_cpu_ticks = sample.cpu_ticks if sample else 0
        entry.last_cpu_ticks = entry.baseline_cpu_ticks

    return table
