"""
Process-level reaction to the identity store connection lifecycle.

The :class:`.ConnectionManager` never terminates the process itself. Instead,
the :class:`Supervisor` watches for :attr:`.Event.EXHAUSTED` and for
termination signals, drains the manager exactly once, and then exits through
hooks that tests can replace.
"""

import logging
import os
import signal
import sys
import threading
from types import FrameType
from typing import Any, Callable, Optional, Sequence

from .connection import ConnectionManager, Event

logger = logging.getLogger(__name__)

SIGNALS = tuple(getattr(signal, name) for name in
                ('SIGINT', 'SIGTERM', 'SIGUSR2') if hasattr(signal, name))


class Supervisor(object):
    """Escalates terminal connection states to process shutdown."""

    def __init__(self, connections: ConnectionManager,
                 signals: Sequence[int] = SIGNALS,
                 kill: Callable[[int, int], Any] = os.kill,
                 exit: Callable[[int], Any] = sys.exit) -> None:
        self.connections = connections
        self.signals = signals
        self.exit_code = 0
        self._kill = kill
        self._exit = exit
        connections.subscribe(self.observe)

    def observe(self, event: Event,
                error: Optional[BaseException] = None) -> None:
        """Ask the process to stop once the manager has given up."""
        if event is not Event.EXHAUSTED:
            return
        logger.critical('Identity store is unreachable, stopping: %s', error)
        self.exit_code = 1
        # Signal the main thread; this may be running on a retry timer.
        self._kill(os.getpid(), signal.SIGTERM)

    def handle_signal(self, signum: int, frame: Optional[FrameType]) -> None:
        """Shut the connection manager down, then exit."""
        name = signal.Signals(signum).name
        if self.connections.shutdown(name):
            self._exit(self.exit_code)

    def install(self) -> bool:
        """Install signal handlers; only possible on the main thread."""
        if threading.current_thread() is not threading.main_thread():
            logger.warning('Not on the main thread; signal handlers for the '
                           'identity store were not installed')
            return False
        for signum in self.signals:
            signal.signal(signum, self.handle_signal)
        return True
