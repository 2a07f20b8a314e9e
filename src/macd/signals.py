"""Interrupt capture for the monitor loop."""

import signal
from types import FrameType


class InterruptFlag:
    """
    Process-wide interrupt flag.

    Written at most once, from a signal handler or the dashboard thread, and
    never reset. Setting it is a single attribute store so it is safe to call
    from a signal handler; no lock is taken.
    """

    __slots__ = ("_signum",)

    def __init__(self) -> None:
        self._signum: int | None = None

    def set(self, signum: int = signal.SIGINT) -> None:
        if self._signum is None:
            self._signum = signum

    def is_set(self) -> bool:
        return self._signum is not None

    @property
    def signum(self) -> int | None:
        """The first signal received, if any."""
        return self._signum


class SignalRelay:
    """
    Context manager that routes OS signals into an InterruptFlag.

    The installed handler only sets the flag. Everything else, including
    logging and output, happens in the monitor loop when it next polls.
    Previous handlers are restored on exit.
    """

    def __init__(
        self,
        flag: InterruptFlag,
        signals: tuple[signal.Signals, ...] = (signal.SIGINT,),
    ) -> None:
        self._flag = flag
        self._signals = signals
        self._previous: dict[signal.Signals, object] = {}

    def _handle(self, signum: int, frame: FrameType | None) -> None:
        self._flag.set(signum)

    def install(self) -> None:
        """Register the handler for every configured signal."""
        for sig in self._signals:
            self._previous[sig] = signal.signal(sig, self._handle)

    def restore(self) -> None:
        """Put back whatever handlers were in place before install()."""
        while self._previous:
            sig, handler = self._previous.popitem()
            # None means the previous handler was not installed from Python
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)

    def __enter__(self) -> InterruptFlag:
        self.install()
        return self._flag

    def __exit__(self, *exc_info) -> None:
        self.restore()
