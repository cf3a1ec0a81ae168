"""
Background snapshot scheduling for the metric tracker.
"""

import threading
from typing import Callable, List, Optional

from leadtemplates.ab_testing.metric_tracker import MetricTracker
from leadtemplates.utils.logging import get_logger


class SnapshotScheduler:
    """
    Daemon thread taking tracker snapshots every ``interval_seconds``.

    Extra ``tasks`` (retention sweeps and the like) run after each snapshot
    pass. ``run_once`` performs one pass synchronously, which is what tests use.
    """

    def __init__(
        self,
        tracker: MetricTracker,
        interval_seconds: float = 300,
        tasks: Optional[List[Callable[[], object]]] = None,
    ):
        self.tracker = tracker
        self.interval_seconds = interval_seconds
        self.tasks = list(tasks or [])
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.logger = get_logger(f"{__name__}.SnapshotScheduler")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                self.logger.warning("Snapshot scheduler already running")
                return

            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop, name="snapshot-scheduler", daemon=True
            )
            self._thread.start()

        self.logger.info(
            f"Snapshot scheduler started with a {self.interval_seconds}s interval"
        )

    def stop(self, timeout: float = 10) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
        self._thread = None
        self.logger.info("Snapshot scheduler stopped")

    def run_once(self) -> int:
        taken = self.tracker.take_snapshots()
        for task in self.tasks:
            task()
        return taken

    def _loop(self) -> None:
        # Event.wait returns True as soon as stop() is called
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception as e:
                self.logger.error(f"Error in snapshot loop: {e}", extra={"error": str(e)})
