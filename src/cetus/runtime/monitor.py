from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitorTask:
    """Periodic check run on the monitor thread (e.g. replication delay)."""

    name: str
    interval_seconds: float
    run: Callable[[], None]


class BackgroundMonitor:
    """
    One background thread running periodic tasks while the mainloop runs.

    ``stop`` must be called before the service is flagged as shutting
    down; ``is_shutdown`` is a second guard so no task is started against
    a torn-down configuration.
    """

    def __init__(
        self,
        tasks: Optional[List[MonitorTask]] = None,
        is_shutdown: Optional[Callable[[], bool]] = None,
        tick_seconds: float = 0.1,
    ) -> None:
        self.tasks: List[MonitorTask] = list(tasks or [])
        self.is_shutdown = is_shutdown or (lambda: False)
        self.tick_seconds = tick_seconds
        self._next_due: Dict[str, float] = {}
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the thread; returns False when there is nothing to run."""
        if self._thread is not None:
            return True
        if not self.tasks:
            return False

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="cetus-monitor", daemon=True)
        self._thread.start()
        logger.info("monitor thread started with %d task(s)", len(self.tasks))
        return True

    def stop(self, timeout: float = 1.0) -> bool:
        """Signal and join the thread; returns False if it was not running."""
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is None:
            return False
        if thread.is_alive():
            thread.join(timeout=timeout)
        logger.info("monitor thread stopped")
        return True

    def run_pending(self, now: float) -> List[str]:
        """Run every task whose interval elapsed; returns the names that ran."""
        ran: List[str] = []
        for task in self.tasks:
            if self._stop_event.is_set() or self.is_shutdown():
                break
            due = self._next_due.get(task.name, now)
            if now < due:
                continue
            self._next_due[task.name] = now + task.interval_seconds
            try:
                task.run()
            except Exception:
                logger.exception("monitor task '%s' failed", task.name)
            ran.append(task.name)
        return ran

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            self.run_pending(now=time.monotonic())
            self._stop_event.wait(self.tick_seconds)
