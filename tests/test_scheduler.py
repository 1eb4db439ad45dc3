"""Tests for the lease lock and the daily scheduling pass."""

import json
import random
from datetime import datetime

import pytest

from autoblog.config import CATEGORIES
from autoblog.notify import LoggingNotifier
from autoblog.scheduler import DailyScheduler, LeaseLock, try_lock_nonblocking

T0 = datetime(2025, 3, 10, 9, 0).timestamp()
HOUR = 3600


class Clock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def lock_path(tmp_path):
    return tmp_path / "scheduler.lock"


class TestLeaseLock:
    def test_second_owner_blocked_until_release(self, lock_path, clock):
        a = LeaseLock(lock_path, clock=clock, owner="a")
        b = LeaseLock(lock_path, clock=clock, owner="b")
        assert a.acquire()
        assert not b.acquire()
        a.release()
        assert b.acquire()

    def test_owner_can_reacquire(self, lock_path, clock):
        a = LeaseLock(lock_path, clock=clock, owner="a")
        assert a.acquire()
        assert a.acquire()

    def test_expired_lease_can_be_taken(self, lock_path, clock):
        LeaseLock(lock_path, hold=300, clock=clock, owner="a").acquire()
        clock.now += 301
        assert LeaseLock(lock_path, clock=clock, owner="b").acquire()

    def test_stale_lease_force_released_despite_renewals(self, lock_path, clock):
        a = LeaseLock(lock_path, hold=300, stale_after=HOUR, clock=clock, owner="a")
        a.acquire()
        for _ in range(12):
            clock.now += 290
            assert a.renew()
        clock.now = T0 + HOUR
        b = LeaseLock(lock_path, clock=clock, owner="b")
        assert b.acquire()
        assert json.loads(lock_path.read_text())["owner"] == "b"
        assert not a.renew()

    def test_release_by_other_owner_is_ignored(self, lock_path, clock):
        LeaseLock(lock_path, clock=clock, owner="a").acquire()
        LeaseLock(lock_path, clock=clock, owner="b").release()
        assert json.loads(lock_path.read_text())["owner"] == "a"

    def test_corrupt_record_ignored(self, lock_path, clock):
        lock_path.write_text("{oops")
        assert LeaseLock(lock_path, clock=clock, owner="a").acquire()


class TestTryLockNonblocking:
    def test_second_lock_refused(self, tmp_path):
        path = tmp_path / "daily.pid"
        first = try_lock_nonblocking(path)
        assert first is not None
        try:
            assert try_lock_nonblocking(path) is None
        finally:
            first.close()
        again = try_lock_nonblocking(path)
        assert again is not None
        again.close()


@pytest.fixture
def scheduler(tmp_path, clock):
    return DailyScheduler(
        tmp_path / "state.json",
        notifier=LoggingNotifier(),
        rng=random.Random(7),
        clock=clock,
    )


class TestDailyCounter:
    def test_limit_enforced(self, scheduler):
        for _ in range(5):
            assert scheduler.record_generation()
        assert not scheduler.record_generation()
        assert scheduler.generated_today() == 5
        assert not scheduler.can_generate()

    def test_counter_resets_on_new_day(self, scheduler, clock):
        for _ in range(5):
            scheduler.record_generation()
        clock.now += 24 * HOUR
        assert scheduler.generated_today() == 0
        assert scheduler.can_generate()


class TestPlan:
    def test_runs_spaced_with_jitter(self, scheduler):
        runs = scheduler.plan()
        assert len(runs) == 5
        assert runs[0].at == T0
        for earlier, later in zip(runs, runs[1:]):
            gap = later.at - earlier.at
            assert 210 * 60 <= gap <= 330 * 60
        assert all(run.category in CATEGORIES for run in runs)

    def test_only_remaining_runs_planned(self, scheduler):
        scheduler.record_generation()
        scheduler.record_generation()
        assert len(scheduler.plan()) == 3

    def test_nothing_left(self, scheduler):
        for _ in range(5):
            scheduler.record_generation()
        assert scheduler.plan() == []


class TestMaybeRun:
    def test_dispatches_once_per_day(self, scheduler, clock):
        dispatched = []
        runs = scheduler.maybe_run(lambda category, at: dispatched.append((category, at)))
        assert len(runs) == 5
        assert dispatched == [(r.category, r.at) for r in runs]

        clock.now += 23 * HOUR
        assert scheduler.maybe_run(lambda c, a: dispatched.append((c, a))) == []
        assert len(dispatched) == 5

        clock.now += 1 * HOUR
        assert len(scheduler.maybe_run(lambda c, a: None)) == 5

    def test_releases_lease_after_planning(self, scheduler, clock):
        scheduler.maybe_run(lambda c, a: None)
        assert LeaseLock(scheduler.lock.path, clock=clock, owner="other").acquire()

    def test_releases_lease_when_dispatch_fails(self, scheduler, clock):
        def boom(category, at):
            raise RuntimeError("queue down")

        with pytest.raises(RuntimeError):
            scheduler.maybe_run(boom)
        assert LeaseLock(scheduler.lock.path, clock=clock, owner="other").acquire()

    def test_skips_while_another_process_plans(self, scheduler, clock):
        other = LeaseLock(scheduler.lock.path, clock=clock, owner="other")
        assert other.acquire()
        dispatched = []
        assert scheduler.maybe_run(lambda c, a: dispatched.append(c)) == []
        assert dispatched == []

    def test_trigger_waiting_on_lease_does_not_plan_twice(self, scheduler, tmp_path, clock):
        dispatched = []
        first = scheduler

        class LateLease(LeaseLock):
            def acquire(self):
                # the other trigger completes its whole pass while this one waits
                first.maybe_run(lambda c, a: dispatched.append(("a", c)))
                return super().acquire()

        second = DailyScheduler(
            tmp_path / "state.json",
            lock=LateLease(first.lock.path, clock=clock, owner="b"),
            rng=random.Random(8),
            clock=clock,
        )

        assert second.maybe_run(lambda c, a: dispatched.append(("b", c))) == []
        assert len(dispatched) == 5
        assert {who for who, _ in dispatched} == {"a"}
        assert LeaseLock(first.lock.path, clock=clock, owner="other").acquire()

    def test_stalled_scheduler_alerts(self, scheduler, clock):
        scheduler.maybe_run(lambda c, a: None)
        clock.now += 26 * HOUR
        scheduler.maybe_run(lambda c, a: None)
        alerts = [subject for subject, _ in scheduler.notifier.sent]
        assert alerts == ["Blog scheduler stalled"]

    def test_no_alert_within_window(self, scheduler, clock):
        scheduler.maybe_run(lambda c, a: None)
        clock.now += 24.5 * HOUR
        scheduler.maybe_run(lambda c, a: None)
        assert scheduler.notifier.sent == []
