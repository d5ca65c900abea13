"""
Periodic ticks on daemon threading.Timer objects.
"""
import logging
import threading
from datetime import datetime, timedelta, timezone
from threading import Timer
from typing import Any, Callable, Dict, List, Optional


class PeriodicTask:
    """
    Call callback every interval seconds until stopped.

    A tick that is still running when the next one comes due makes the
    newcomer return immediately; ticks are dropped, never queued.
    """

    def __init__(self, name: str, callback: Callable[[], Any], interval: float, run_immediately: bool = True):
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval}")
        self.name = name
        self.callback = callback
        self.interval = interval
        self.run_immediately = run_immediately
        self.logger = logging.getLogger(f"PeriodicTask[{name}]")
        self._tick_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._timer: Optional[Timer] = None
        self._stopped = True
        self.next_run_at: Optional[datetime] = None
        self.last_run_at: Optional[datetime] = None

    def start(self) -> None:
        with self._state_lock:
            if not self._stopped:
                return
            self._stopped = False
        self._schedule(0 if self.run_immediately else self.interval)
        self.logger.info(f"Started, every {self.interval} seconds")

    def stop(self) -> None:
        with self._state_lock:
            self._stopped = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self.next_run_at = None

    @property
    def running(self) -> bool:
        return not self._stopped

    def _schedule(self, delay: float) -> None:
        with self._state_lock:
            if self._stopped:
                return
            timer = Timer(delay, self._run)
            timer.daemon = True
            self._timer = timer
            self.next_run_at = datetime.now(timezone.utc) + timedelta(seconds=delay)
            timer.start()

    def _run(self) -> None:
        try:
            self.run_once()
        finally:
            self._schedule(self.interval)

    def run_once(self) -> bool:
        """Run one tick now. Returns False if another tick was still in progress."""
        if not self._tick_lock.acquire(blocking=False):
            self.logger.warning("Previous tick still running; dropping this one")
            return False
        try:
            self.callback()
        except Exception as e:
            self.logger.exception(f"Tick failed: {e}")
        finally:
            self.last_run_at = datetime.now(timezone.utc)
            self._tick_lock.release()
        return True


class Scheduler:
    """Single place for the process's periodic tasks."""

    def __init__(self):
        self.tasks: Dict[str, PeriodicTask] = {}
        self.logger = logging.getLogger("Scheduler")

    def add(self, name: str, callback: Callable[[], Any], interval: float, run_immediately: bool = True) -> PeriodicTask:
        if name in self.tasks:
            self.logger.info(f"Replacing existing task {name}")
            self.tasks[name].stop()
        task = PeriodicTask(name, callback, interval, run_immediately=run_immediately)
        self.tasks[name] = task
        return task

    def start(self) -> None:
        for task in self.tasks.values():
            task.start()

    def stop(self) -> None:
        """Cancel pending timers. A tick already running finishes on its own."""
        for task in self.tasks.values():
            task.stop()

    def get_active_timers(self) -> List[Dict[str, Any]]:
        return [
            {"name": name, "next_run_at": task.next_run_at, "last_run_at": task.last_run_at}
            for name, task in self.tasks.items()
            if task.running
        ]
