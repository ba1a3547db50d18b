from __future__ import annotations

import logging
import resource
import signal
import sys
import threading
from typing import Iterable, Protocol

log = logging.getLogger(__name__)


class Loop(Protocol):
    def can_continue(self) -> bool:
        ...


def _peak_rss_bytes() -> int:
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is kilobytes on Linux, bytes on macOS
    return usage if sys.platform == "darwin" else usage * 1024


class SimpleLoop:
    """Keeps going until ``stop()`` is called or the memory soft limit is hit."""

    def __init__(self, *, memory_soft_limit: int = 0):
        self.memory_soft_limit = max(0, memory_soft_limit)
        self._stopped = threading.Event()

    def stop(self) -> None:
        self._stopped.set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def memory_limit_reached(self) -> bool:
        if self.memory_soft_limit == 0:
            return False
        return _peak_rss_bytes() >= self.memory_soft_limit

    def can_continue(self) -> bool:
        if self.memory_limit_reached():
            log.info("memory soft limit of %d bytes reached, stopping", self.memory_soft_limit)
            self.stop()
        return not self.stopped


class SignalLoop(SimpleLoop):
    """SimpleLoop that also stops on exit signals.

    SIGTSTP pauses the loop; ``can_continue`` then blocks until SIGCONT or
    an exit signal arrives. Handlers can only be installed from the main
    thread.
    """

    EXIT_SIGNALS = (signal.SIGTERM, signal.SIGINT, signal.SIGHUP)

    def __init__(
        self,
        *,
        memory_soft_limit: int = 0,
        exit_signals: Iterable[int] | None = None,
        pause_resume: bool = True,
        pause_poll_seconds: float = 0.2,
    ):
        super().__init__(memory_soft_limit=memory_soft_limit)
        self.exit_signals = tuple(self.EXIT_SIGNALS if exit_signals is None else exit_signals)
        self.pause_poll_seconds = pause_poll_seconds
        self._resumed = threading.Event()
        self._resumed.set()
        self._previous: dict[int, object] = {}

        for signum in self.exit_signals:
            self._install(signum, self._on_exit)
        if pause_resume:
            self._install(signal.SIGTSTP, self._on_pause)
            self._install(signal.SIGCONT, self._on_resume)

    def _install(self, signum: int, handler) -> None:
        self._previous[signum] = signal.getsignal(signum)
        signal.signal(signum, handler)

    def restore(self) -> None:
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        self._previous.clear()

    def _on_exit(self, signum, frame) -> None:
        log.info("received signal %s, finishing current message", signal.Signals(signum).name)
        self.stop()
        self._resumed.set()

    def _on_pause(self, signum, frame) -> None:
        log.info("paused by signal %s", signal.Signals(signum).name)
        self._resumed.clear()

    def _on_resume(self, signum, frame) -> None:
        log.info("resumed by signal %s", signal.Signals(signum).name)
        self._resumed.set()

    @property
    def paused(self) -> bool:
        return not self._resumed.is_set()

    def can_continue(self) -> bool:
        while self.paused and not self.stopped:
            self._resumed.wait(self.pause_poll_seconds)
        return super().can_continue()
