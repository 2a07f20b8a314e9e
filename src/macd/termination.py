"""Forced termination of the remaining children."""

import logging
import subprocess

from macd.models import ProcessEntry, SupervisionTable
from macd.report import Reporter

logger = logging.getLogger(__name__)

REAP_TIMEOUT = 5.0


def _kill(entry: ProcessEntry) -> None:
    """SIGKILL the entry's child and reap it."""
    logger.info("Killing [%d] pid %d", entry.index, entry.pid)
    try:
        entry.process.kill()
        entry.process.wait(timeout=REAP_TIMEOUT)
    except ProcessLookupError:
        # Exited between poll() and kill()
        pass
    except subprocess.TimeoutExpired:
        logger.warning("pid %d did not exit after SIGKILL", entry.pid)
    entry.terminated = True
    entry.mark_exited()


def terminate_all(
    table: SupervisionTable,
    elapsed_seconds: float,
    reporter: Reporter,
    interrupted: bool = False,
) -> None:
    """
    Kill every child that is still running and print the final summary.

    Entries are visited in index order. Entries that never launched were
    reported once at launch time and are skipped here.
    """
    reporter.terminating(interrupted=interrupted)

    for entry in table:
        if not entry.launched:
            continue

        if entry.process.poll() is None:
            _kill(entry)
            reporter.terminated(entry.index)
        else:
            entry.mark_exited()
            reporter.exited(entry.index)

    reporter.summary(elapsed_seconds)


def kill_remaining(table: SupervisionTable) -> int:
    """
    Kill children left alive by an aborted run, without reporting.

    Returns the number of children killed.
    """
    killed = 0
    for entry in table.alive_entries():
        if entry.process.poll() is None:
            logger.warning("Run aborted, killing [%d] pid %d", entry.index, entry.pid)
            _kill(entry)
            killed += 1
        else:
            entry.mark_exited()
    return killed
