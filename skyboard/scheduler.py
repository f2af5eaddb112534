"""
Background timers.

Each periodic job (live refresh, history prune, file rotation, daily
baseline, response cache sweep) runs in its own daemon thread so a slow
job never delays the others. Exceptions are logged and the loop keeps
going.
"""

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Run a callable every `interval` seconds in a daemon thread.

    The wait between runs is interruptible, so stop() returns promptly
    instead of sleeping out the remaining interval.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], object],
        run_immediately: bool = False,
    ):
        self.name = name
        self.interval = interval
        self.func = func
        self.run_immediately = run_immediately

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.run_count = 0
        self.error_count = 0

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def run_once(self) -> None:
        """Execute one iteration, logging rather than raising errors."""
        try:
            self.func()
        except Exception as e:
            self.error_count += 1
            logger.error(f'Periodic task {self.name} failed: {e}')
        finally:
            self.run_count += 1

    def run_continuous(self) -> None:
        """
        Run until stopped.

        This method blocks - use start_background() for non-blocking.
        """
        logger.info(f'Starting {self.name} (interval={self.interval}s)')

        if self.run_immediately:
            self.run_once()

        while not self._stop_event.wait(self.interval):
            self.run_once()

        logger.info(f'{self.name} stopped')

    def start_background(self) -> None:
        """Start the loop in a background thread."""
        if self.is_running:
            logger.warning(f'{self.name} already running')
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run_continuous,
            name=self.name,
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)

    @property
    def stats(self) -> dict:
        return {
            'name': self.name,
            'interval': self.interval,
            'running': self.is_running,
            'run_count': self.run_count,
            'error_count': self.error_count,
        }


class Scheduler:
    """A named group of periodic tasks started and stopped together."""

    def __init__(self):
        self._tasks: List[PeriodicTask] = []

    def add(
        self,
        name: str,
        interval: float,
        func: Callable[[], object],
        run_immediately: bool = False,
    ) -> PeriodicTask:
        task = PeriodicTask(name, interval, func, run_immediately=run_immediately)
        self._tasks.append(task)
        return task

    def start(self) -> None:
        for task in self._tasks:
            task.start_background()
        logger.info(f'Scheduler started {len(self._tasks)} tasks')

    def stop(self) -> None:
        for task in self._tasks:
            task.stop()

    @property
    def tasks(self) -> List[PeriodicTask]:
        return list(self._tasks)

    @property
    def stats(self) -> List[dict]:
        return [task.stats for task in self._tasks]
