"""
Periodic Scheduler Tests

Copyright (c) 2026 Momentum. All rights reserved.
"""

import threading
import time

import pytest

from secops.automation.scheduler import PeriodicScheduler, SchedulerStatus


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.005)
    return predicate()


class TestPeriodicScheduler:
    """Ticking, coalescing and cancellation."""

    def test_ticks_until_stopped(self):
        ticks = []
        scheduler = PeriodicScheduler(0.01, lambda: ticks.append(1) or True)

        scheduler.start()
        assert scheduler.status == SchedulerStatus.RUNNING
        assert wait_for(lambda: len(ticks) >= 3)
        assert scheduler.stop(timeout=5.0)

        count = len(ticks)
        time.sleep(0.05)
        assert len(ticks) == count
        assert scheduler.status == SchedulerStatus.STOPPED
        assert scheduler.stats.ticks_run == count

    def test_coalesced_ticks_are_counted(self):
        scheduler = PeriodicScheduler(0.01, lambda: False)
        scheduler.start()
        assert wait_for(lambda: scheduler.stats.ticks_coalesced >= 2)
        scheduler.stop(timeout=5.0)
        assert scheduler.stats.ticks_run == 0

    def test_tick_errors_do_not_stop_the_loop(self):
        calls = []

        def tick():
            calls.append(1)
            raise RuntimeError("boom")

        scheduler = PeriodicScheduler(0.01, tick)
        scheduler.start()
        assert wait_for(lambda: len(calls) >= 2)
        scheduler.stop(timeout=5.0)
        assert scheduler.stats.tick_errors >= 2

    def test_stop_waits_for_tick_in_progress(self):
        started = threading.Event()
        finished = []

        def tick():
            started.set()
            time.sleep(0.1)
            finished.append(1)
            return True

        scheduler = PeriodicScheduler(0.01, tick)
        scheduler.start()
        assert started.wait(5.0)
        assert scheduler.stop(timeout=5.0)
        assert finished == [1]

    def test_start_twice_and_stop_idle(self):
        scheduler = PeriodicScheduler(10.0, lambda: True)
        assert scheduler.stop() is True
        scheduler.start()
        scheduler.start()
        assert scheduler.running
        assert scheduler.stop(timeout=5.0)
        assert not scheduler.running

    def test_restart_after_stop_timeout(self):
        release = threading.Event()
        entered = threading.Event()

        def tick():
            entered.set()
            release.wait(5.0)
            return True

        scheduler = PeriodicScheduler(0.01, tick)
        scheduler.start()
        assert entered.wait(5.0)

        assert scheduler.stop(timeout=0.05) is False
        assert scheduler.status == SchedulerStatus.STOPPING
        scheduler.start()
        assert scheduler.status == SchedulerStatus.STOPPING

        release.set()
        assert wait_for(lambda: scheduler.status == SchedulerStatus.STOPPED)

        entered.clear()
        scheduler.start()
        assert scheduler.running
        assert entered.wait(5.0)
        assert scheduler.stop(timeout=5.0)
        assert scheduler.status == SchedulerStatus.STOPPED

    def test_stop_from_inside_a_tick(self):
        holder = {}

        def tick():
            holder["result"] = holder["scheduler"].stop()
            return True

        scheduler = PeriodicScheduler(0.01, tick)
        holder["scheduler"] = scheduler
        scheduler.start()
        assert wait_for(lambda: scheduler.status == SchedulerStatus.STOPPED)
        assert holder["result"] is True
        assert scheduler.stats.ticks_run == 1

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            PeriodicScheduler(0, lambda: True)
