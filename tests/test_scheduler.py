from __future__ import annotations

import threading

from skyboard.scheduler import PeriodicTask, Scheduler


def test_run_once_counts_and_contains_errors() -> None:
    def boom() -> None:
        raise RuntimeError("failed")

    task = PeriodicTask("boom", 60, boom)
    task.run_once()
    task.run_once()

    assert task.run_count == 2
    assert task.error_count == 2


def test_run_immediately_then_stop_promptly() -> None:
    ran = threading.Event()
    task = PeriodicTask("quick", 3600, ran.set, run_immediately=True)

    task.start_background()
    assert ran.wait(2)
    task.stop(timeout=2)

    assert task.is_running is False
    assert task.run_count == 1


def test_scheduler_starts_and_stops_all_tasks() -> None:
    counts = {"a": threading.Event(), "b": threading.Event()}
    scheduler = Scheduler()
    scheduler.add("a", 3600, counts["a"].set, run_immediately=True)
    scheduler.add("b", 3600, counts["b"].set, run_immediately=True)

    scheduler.start()
    try:
        assert all(event.wait(2) for event in counts.values())
    finally:
        scheduler.stop()

    assert [t["name"] for t in scheduler.stats] == ["a", "b"]
    assert not any(t["running"] for t in scheduler.stats)
