"""
Run control - cooperative pause/stop signalling for agent loops.
Each agent owns one RunControl; the loop checks it between actions and iterations.
"""

import threading
import time
from typing import Optional

from logger import logger


class StopRequested(Exception):
    """Raised at a checkpoint once a stop has been requested."""


class RunControl:
    """
    Thread-safe stop/pause flags for one agent.

    The host thread calls request_pause/request_resume/request_stop while the
    agent thread calls check_should_stop at its checkpoints.
    """

    def __init__(self, name: str = "agent"):
        self.name = name
        self._stop = threading.Event()
        self._running = threading.Event()
        self._running.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    @property
    def paused(self) -> bool:
        return not self._running.is_set()

    def request_stop(self) -> None:
        """Ask the loop to stop at its next checkpoint (also releases a pause)."""
        self._stop.set()
        self._running.set()

    def request_pause(self) -> None:
        self._running.clear()

    def request_resume(self) -> None:
        self._running.set()

    def reset(self) -> None:
        """Clear both flags before a new run."""
        self._stop.clear()
        self._running.set()

    def check_should_stop(self) -> None:
        """
        Checkpoint: blocks while paused, raises StopRequested once stopped.
        """
        if self.paused:
            logger.info(f"[CONTROL] {self.name} paused, waiting for resume")
            while not self._running.wait(timeout=0.5):
                pass
            if not self._stop.is_set():
                logger.info(f"[CONTROL] {self.name} resumed")

        if self._stop.is_set():
            logger.info(f"[STOP] {self.name} stopped by host")
            raise StopRequested(f"{self.name} stopped")

    def stoppable_sleep(self, duration_s: float, check_interval_s: float = 0.1) -> None:
        """Replacement of time.sleep() that can be interrupted by check_should_stop()."""
        stoppable_sleep(duration_s, self, check_interval_s)


def stoppable_sleep(
    duration_s: float,
    control: Optional[RunControl] = None,
    check_interval_s: float = 0.1,
) -> None:
    """
    Sleep for duration_s, checking the control's flags every check_interval_s.

    Without a control this is a plain sleep.
    """
    if duration_s <= 0:
        return
    if control is None:
        time.sleep(duration_s)
        return

    start_time = time.time()
    while (time.time() - start_time) < duration_s:
        control.check_should_stop()

        # Calculate how much to sleep to avoid going over
        remaining = duration_s - (time.time() - start_time)
        sleep_for = min(check_interval_s, remaining)

        if sleep_for <= 0:
            break

        time.sleep(sleep_for)
