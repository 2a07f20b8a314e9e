"""Tests for process launching."""

import os
import subprocess

import pytest

from conftest import make_command

from macd.directives import parse_directives
from macd.launcher import FailureReason, LaunchError, ProcessLauncher, launch_all
from macd.models import Command
from macd.sampler import PsutilSampler


@pytest.fixture
def cleanup():
    """Kill any process a test leaves behind."""
    processes: list[subprocess.Popen] = []
    yield processes
    for process in processes:
        if process.poll() is None:
            process.kill()
            process.wait()


class TestProcessLauncher:
    """Tests for ProcessLauncher.launch."""

    def test_launch_long_running(self, cleanup):
        """Test a long-running child is returned alive after the grace window."""
        process = ProcessLauncher(grace=0.1).launch(make_command("sleep 5"))
        cleanup.append(process)

        assert process.pid > 0
        assert process.poll() is None

    def test_empty_command(self):
        """Test an empty argv is a launch failure, not a crash."""
        with pytest.raises(LaunchError) as exc_info:
            ProcessLauncher().launch(Command(line="", argv=()))

        assert exc_info.value.reason is FailureReason.EMPTY_COMMAND

    def test_missing_program(self):
        """Test a missing executable is NOT_FOUND."""
        with pytest.raises(LaunchError) as exc_info:
            ProcessLauncher().launch(make_command("definitely-not-a-real-program-xyz"))

        assert exc_info.value.reason is FailureReason.NOT_FOUND

    def test_permission_denied(self, tmp_path):
        """Test a file without execute permission is PERMISSION_DENIED."""
        script = tmp_path / "script.sh"
        script.write_text("#!/bin/sh\nsleep 1\n")
        script.chmod(0o644)

        with pytest.raises(LaunchError) as exc_info:
            ProcessLauncher().launch(Command(line=str(script), argv=(str(script),)))

        assert exc_info.value.reason is FailureReason.PERMISSION_DENIED

    def test_immediate_failure_within_grace(self):
        """Test a child failing inside the grace window is a launch failure."""
        with pytest.raises(LaunchError) as exc_info:
            ProcessLauncher(grace=2.0).launch(make_command("false"))

        assert exc_info.value.reason is FailureReason.EXITED_DURING_GRACE
        assert "exit status 1" in str(exc_info.value)

    def test_clean_exit_within_grace_is_started(self):
        """Test a child that finishes successfully is still reported as started."""
        process = ProcessLauncher(grace=2.0).launch(make_command("true"))

        assert process.returncode == 0

    def test_exec_failure_is_not_fork_failure(self, tmp_path):
        """Test an executable file the kernel cannot run is EXEC_FAILED."""
        binary = tmp_path / "notexec"
        binary.write_bytes(b"\x00\x01\x02garbage")
        binary.chmod(0o755)

        with pytest.raises(LaunchError) as exc_info:
            ProcessLauncher().launch(Command(line=str(binary), argv=(str(binary),)))

        assert exc_info.value.reason is FailureReason.EXEC_FAILED

    def test_fork_failure(self, monkeypatch):
        """Test an OSError other than exec failures is FORK_FAILED."""

        def fail(*args, **kwargs):
            raise BlockingIOError(11, "Resource temporarily unavailable")

        monkeypatch.setattr(subprocess, "Popen", fail)

        with pytest.raises(LaunchError) as exc_info:
            ProcessLauncher().launch(make_command("sleep 1"))

        assert exc_info.value.reason is FailureReason.FORK_FAILED

    def test_negative_grace_clamped(self):
        """Test the grace window is never negative."""
        assert ProcessLauncher(grace=-1).grace == 0.0

    def test_child_in_own_process_group(self, cleanup):
        """Test children are isolated from the supervisor's process group."""
        process = ProcessLauncher(grace=0.0).launch(make_command("sleep 5"))
        cleanup.append(process)

        assert os.getpgid(process.pid) == process.pid
        assert os.getpgid(process.pid) != os.getpgrp()


class TestLaunchAll:
    """Tests for launch_all."""

    def test_one_entry_per_line(self, reporter, stream, cleanup):
        """Test every directive line gets exactly one entry, in order."""
        directives = parse_directives("sleep 5\nbadcommand-xyz\n\nsleep 5\n")

        table = launch_all(directives, ProcessLauncher(grace=0.1), PsutilSampler(), reporter)
        cleanup.extend(entry.process for entry in table if entry.launched)

        assert len(table) == 4
        assert [entry.index for entry in table] == [0, 1, 2, 3]
        assert [entry.alive for entry in table] == [True, False, False, True]
        assert table[1].pid is None
        assert table[1].failure is FailureReason.NOT_FOUND
        assert table[2].failure is FailureReason.EMPTY_COMMAND

    def test_launch_report_lines(self, reporter, stream, cleanup):
        """Test each launch outcome is reported once."""
        directives = parse_directives("sleep 5\nbadcommand-xyz\n\n")

        table = launch_all(directives, ProcessLauncher(grace=0.1), PsutilSampler(), reporter)
        cleanup.extend(entry.process for entry in table if entry.launched)

        assert stream.lines == [
            f"[0] sleep, started successfully (pid: {table[0].pid})",
            "[1] badprogram badcommand-xyz, failed to start",
            "[2] badprogram , failed to start",
        ]

    def test_baseline_ticks(self, reporter, sampler):
        """Test the baseline is the first sample, or 0 when unavailable."""

        class StubLauncher:
            def __init__(self):
                self.next_pid = 100

            def launch(self, command):
                self.next_pid += 1
                return type("P", (), {"pid": self.next_pid, "returncode": None})()

        sampler.script(101, (42, 1))
        directives = parse_directives("a\nb\n")

        table = launch_all(directives, StubLauncher(), sampler, reporter)

        assert table[0].baseline_cpu_ticks == 42
        assert table[0].last_cpu_ticks == 42
        assert table[1].baseline_cpu_ticks == 0
        assert table[1].last_cpu_ticks == 0

    def test_baseline_skips_reaped_child(self, reporter, sampler):
        """Test a child that already exited inside the grace window is not sampled."""
        directives = parse_directives("true\n")

        table = launch_all(directives, ProcessLauncher(grace=2.0), sampler, reporter)

        assert table[0].launched
        assert table[0].process.returncode == 0
        assert sampler.calls == []
        assert table[0].baseline_cpu_ticks == 0

    def test_interrupted_launch_kills_started_children(self, reporter):
        """Test children started before an interrupt do not outlive launch_all."""
        started: list[subprocess.Popen] = []

        class InterruptingLauncher(ProcessLauncher):
            def launch(self, command):
                if started:
                    raise KeyboardInterrupt
                process = super().launch(command)
                started.append(process)
                return process

        directives = parse_directives("sleep 77\nsleep 78\n")

        try:
            with pytest.raises(KeyboardInterrupt):
                launch_all(directives, InterruptingLauncher(grace=0.1), PsutilSampler(), reporter)

            assert len(started) == 1
            assert started[0].poll() is not None
        finally:
            for process in started:
                if process.poll() is None:
                    process.kill()
                    process.wait()
