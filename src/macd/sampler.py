"""Per-process resource sampling for macd."""

import logging
import os
from pathlib import Path
from typing import Protocol

import psutil

from macd.models import ResourceSample

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024
DEFAULT_TICKS_PER_SECOND = 100


def clock_ticks_per_second() -> int:
    """The OS scheduler tick rate (USER_HZ)."""
    try:
        return os.sysconf("SC_CLK_TCK")
    except (AttributeError, ValueError, OSError):
        return DEFAULT_TICKS_PER_SECOND


def page_size() -> int:
    try:
        return os.sysconf("SC_PAGE_SIZE")
    except (AttributeError, ValueError, OSError):
        return 4096


class ResourceSampler(Protocol):
    """Reads cumulative CPU ticks and resident memory for a pid."""

    ticks_per_second: int

    def sample(self, pid: int) -> ResourceSample | None:
        """Return the current reading, or None if the process is gone."""
        ...


class PsutilSampler:
    """
    Sampler backed by psutil.

    Handles NoSuchProcess, ZombieProcess and AccessDenied by reporting the
    process as gone.
    """

    def __init__(self, ticks_per_second: int | None = None) -> None:
        self.ticks_per_second = ticks_per_second or clock_ticks_per_second()

    def sample(self, pid: int) -> ResourceSample | None:
        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                cpu_times = proc.cpu_times()
                mem_info = proc.memory_info()
        except (psutil.NoSuchProcess, psutil.ZombieProcess, psutil.AccessDenied):
            logger.debug("pid %d not available for sampling", pid)
            return None

        seconds = cpu_times.user + cpu_times.system
        return ResourceSample(
            cpu_ticks=round(seconds * self.ticks_per_second),
            memory_mb=mem_info.rss // BYTES_PER_MB,
        )


class ProcfsSampler:
    """
    Sampler that parses /proc/<pid>/stat and /proc/<pid>/statm directly.

    Any missing, truncated or malformed record is reported as a vanished
    process rather than raised.
    """

    # Field positions counted after the ")" that closes the command name.
    # stat(5) numbers utime and stime as fields 14 and 15; state is field 3.
    UTIME_FIELD = 14 - 3
    STIME_FIELD = 15 - 3

    def __init__(
        self,
        root: str | Path = "/proc",
        ticks_per_second: int | None = None,
        page_bytes: int | None = None,
    ) -> None:
        self._root = Path(root)
        self.ticks_per_second = ticks_per_second or clock_ticks_per_second()
        self._page_bytes = page_bytes or page_size()

    def sample(self, pid: int) -> ResourceSample | None:
        try:
            cpu_ticks = self._read_cpu_ticks(pid)
            memory_mb = self._read_memory_mb(pid)
        except (OSError, ValueError, IndexError) as e:
            logger.debug("Could not read accounting for pid %d: %s", pid, e)
            return None
        return ResourceSample(cpu_ticks=cpu_ticks, memory_mb=memory_mb)

    def _read_cpu_ticks(self, pid: int) -> int:
        stat = (self._root / str(pid) / "stat").read_text()
        # The command name may itself contain spaces or parentheses
        _, closing, rest = stat.rpartition(")")
        if not closing:
            raise ValueError("malformed stat record")
        fields = rest.split()
        utime = int(fields[self.UTIME_FIELD])
        stime = int(fields[self.STIME_FIELD])
        return utime + stime

    def _read_memory_mb(self, pid: int) -> int:
        statm = (self._root / str(pid) / "statm").read_text().split()
        resident_pages = int(statm[1])
        return resident_pages * self._page_bytes // BYTES_PER_MB


SAMPLERS = {
    "psutil": PsutilSampler,
    "procfs": ProcfsSampler,
}


def make_sampler(name: str = "psutil") -> ResourceSampler:
    """Create a sampler by name."""
    try:
        factory = SAMPLERS[name]
    except KeyError:
        raise ValueError(f"Unknown sampler: {name}") from None
    return factory()
