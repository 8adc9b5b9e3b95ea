"""Graceful-stop relay for termination signals received during initialization."""

from __future__ import annotations

import logging
import signal
import subprocess
from typing import Callable, Dict, List, Optional, Sequence, Union

from ofbizinit.logger import StageLogger

__all__ = ["ShutdownHandler", "TERMINATION_SIGNALS"]

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ShutdownHandler:
    """
    Turns SIGTERM/SIGINT into a call to the OFBiz stop script.

    The handler launches the stop command and returns immediately; it does
    not wait for the command or for OFBiz to exit, and it does not terminate
    this process. A data load in progress ends when OFBiz honours the stop
    request, which then fails the run through the loader's exit code.

    Python signal handlers do not survive exec, so once control is handed
    off the application receives signals directly.

    Launched stop commands are kept in ``running``; those that have exited
    are reaped on the next signal or by reap(), which the Initializer calls
    before handing off.
    """

    def __init__(
        self,
        stop_command: Union[str, Sequence[str]],
        events: Optional[StageLogger] = None,
        signals: Sequence[signal.Signals] = TERMINATION_SIGNALS,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.stop_command = [stop_command] if isinstance(stop_command, str) else list(stop_command)
        self.events = events or StageLogger()
        self.signals = tuple(signals)
        self._popen = popen
        self._previous: Dict[signal.Signals, object] = {}
        self.running: List[subprocess.Popen] = []

    def install(self) -> None:
        """Register the handler for every termination signal."""
        for signum in self.signals:
            self._previous[signum] = signal.signal(signum, self.handle)

    def uninstall(self) -> None:
        """Restore the handlers that were active before install()."""
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        self._previous.clear()

    def reap(self) -> None:
        """Collect stop commands that have exited; keep the rest."""
        self.running = [process for process in self.running if process.poll() is None]

    def handle(self, signum: int, frame=None) -> None:
        name = signal.Signals(signum).name
        self.events.shutdown_requested(name, " ".join(self.stop_command))
        self.reap()
        try:
            self.running.append(self._popen(self.stop_command))
        except OSError as exc:
            logger.error(f"Cannot run stop command {self.stop_command[0]}: {exc}")
