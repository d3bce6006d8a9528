"""
Periodic Scheduler

Runs a tick function on a daemon thread at a fixed interval until stopped.

The tick function reports whether it actually ran. A tick that could not run
(because the engine lock was held by a manual operation or an earlier pass)
is coalesced: it is dropped and counted, never queued. Ticks that fall due
while a long pass is still running are skipped the same way, since the next
wait only starts once the current tick returns.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from secops.automation.observability import Component, get_logger


class SchedulerStatus(Enum):
    """Scheduler lifecycle status."""
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class SchedulerStats:
    ticks_run: int = 0
    ticks_coalesced: int = 0
    tick_errors: int = 0


class PeriodicScheduler:
    """
    Cancellable fixed-interval ticker.

    Example:
        scheduler = PeriodicScheduler(10.0, engine.try_run_pass, name="phishing")
        scheduler.start()
        ...
        scheduler.stop()    # waits for the tick in progress
    """

    def __init__(
        self,
        interval_seconds: float,
        tick: Callable[[], bool],
        name: str = "secops-scheduler",
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self.name = name
        self._tick = tick
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        self._stats = SchedulerStats()
        self.status = SchedulerStatus.STOPPED
        self._log = get_logger(Component.SCHEDULER, name)

    @property
    def running(self) -> bool:
        return self.status is SchedulerStatus.RUNNING

    @property
    def stats(self) -> SchedulerStats:
        with self._state_lock:
            return SchedulerStats(
                ticks_run=self._stats.ticks_run,
                ticks_coalesced=self._stats.ticks_coalesced,
                tick_errors=self._stats.tick_errors,
            )

    def start(self) -> None:
        """Start ticking. A call while running or still stopping is a no-op."""
        with self._state_lock:
            if self.status is not SchedulerStatus.STOPPED:
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._loop, args=(self._stop_event,), daemon=True, name=self.name,
            )
            self.status = SchedulerStatus.RUNNING
            self._thread.start()
        self._log.info("Scheduler started", interval_seconds=self.interval_seconds)

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop ticking and wait for the tick in progress to finish.

        Returns False if the worker thread was still alive after ``timeout``.
        The status then stays STOPPING until the worker exits on its own,
        after which the scheduler is STOPPED and can be started again.
        """
        with self._state_lock:
            if self.status is SchedulerStatus.STOPPED:
                return True
            self.status = SchedulerStatus.STOPPING
            self._stop_event.set()
            thread = self._thread

        if thread is threading.current_thread():
            # Called from a tick; the loop exits when it returns.
            return True
        thread.join(timeout)
        if thread.is_alive():
            self._log.warning("Scheduler did not stop within timeout", timeout=timeout)
            return False
        self._log.info("Scheduler stopped")
        return True

    def _loop(self, stop_event: threading.Event) -> None:
        try:
            while not stop_event.wait(self.interval_seconds):
                try:
                    ran = self._tick()
                except Exception as e:
                    with self._state_lock:
                        self._stats.tick_errors += 1
                    self._log.error("Tick raised", error_code=type(e).__name__, exc_info=True)
                    continue
                with self._state_lock:
                    if ran:
                        self._stats.ticks_run += 1
                    else:
                        self._stats.ticks_coalesced += 1
        finally:
            with self._state_lock:
                if self._thread is threading.current_thread():
                    self._thread = None
                    self.status = SchedulerStatus.STOPPED
