"""macd command-line entry point.

Usage:
    macd -i <directive_file> [--interval SECONDS] [--tui]

The directive file lists one command per line. An optional first line
``timelimit N`` ends the run after N seconds.
"""

import argparse
import sys
import time
from datetime import datetime
from queue import Queue

from macd.directives import DirectiveError, read_directives
from macd.launcher import DEFAULT_GRACE, ProcessLauncher, launch_all
from macd.logging_config import get_logger
from macd.models import CycleSnapshot, Outcome, RunConfig
from macd.monitor import DEFAULT_INTERVAL, DEFAULT_POLL_INTERVAL, MonitorLoop
from macd.report import Reporter
from macd.sampler import SAMPLERS, make_sampler
from macd.signals import InterruptFlag, SignalRelay
from macd.termination import kill_remaining


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="macd",
        description="Launch the processes listed in a directive file and report their resource usage.",
    )
    parser.add_argument("-i", dest="input", required=True, metavar="FILE", help="directive file")
    parser.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_INTERVAL,
        help=f"seconds between reports (default: {DEFAULT_INTERVAL})",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"seconds between termination checks (default: {DEFAULT_POLL_INTERVAL})",
    )
    parser.add_argument(
        "--grace",
        type=float,
        default=DEFAULT_GRACE,
        help=f"seconds to wait for a child to fail on start (default: {DEFAULT_GRACE})",
    )
    parser.add_argument("--sampler", choices=sorted(SAMPLERS), default="psutil")
    parser.add_argument("--log-level", default=None, help="overrides MACD_LOG_LEVEL")
    parser.add_argument("--tui", action="store_true", help="show a live dashboard")
    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the macd CLI.

    Returns:
        Exit code (0 for every supervision outcome, 1 if the directive
        file could not be read)
    """
    args = build_parser().parse_args(argv)
    logger = get_logger(level=args.log_level)

    # Captured before any launch so elapsed time covers the whole run
    config_start = time.monotonic()
    started_at = datetime.now()

    try:
        directives = read_directives(args.input)
    except DirectiveError as e:
        logger.error("Could not read directives: %s", e)
        print(f"macd: {e}", file=sys.stderr)
        return 1

    config = RunConfig(
        start_time=config_start,
        started_at=started_at,
        time_limit_seconds=directives.time_limit_seconds,
    )
    sampler = make_sampler(args.sampler)
    reporter = Reporter(None if args.tui else sys.stdout)
    launcher = ProcessLauncher(grace=args.grace)

    flag = InterruptFlag()
    with SignalRelay(flag):
        reporter.starting()
        table = launch_all(directives, launcher, sampler, reporter)
        logger.info("Supervising %d entries, time limit %s", len(table), config.time_limit_seconds)
        try:
            outcome = _supervise(args, table, config, sampler, reporter, flag)
        finally:
            killed = kill_remaining(table)
            if killed:
                logger.error("Run ended abnormally, killed %d remaining children", killed)

    logger.info("Run finished: %s", outcome)
    return 0


def _supervise(args, table, config, sampler, reporter, flag) -> Outcome | None:
    """Run the monitor loop to completion, in the dashboard when asked."""
    update_queue: Queue[CycleSnapshot] = Queue()
    loop = MonitorLoop(
        table,
        config,
        sampler,
        reporter,
        flag,
        interval=args.interval,
        poll_interval=args.poll_interval,
        on_cycle=update_queue.put if args.tui else None,
    )
    if not args.tui:
        return loop.run()

    from macd.app import SupervisorApp

    # The loop thread is a daemon; if the app exits first, main() kills the survivors
    SupervisorApp(loop, update_queue, flag, config.time_limit_seconds).run()
    return loop.outcome


if __name__ == "__main__":
    sys.exit(main())
