"""
Tests for the sliding-window rate limiter and the abuse tracker.
"""
import asyncio
import threading

import pytest

from coinbot.core.results import ErrorKind
from coinbot.services.rate_limiter import RateLimiter, SuspiciousActivityTracker, run_sweeper
from conftest import FakeClock


class TestSlidingWindow:

    def test_admits_exactly_max_attempts(self, limiter):
        results = [limiter.check_and_record("u1", "roulette", 3, 5) for _ in range(4)]
        assert [r.ok for r in results] == [True, True, True, False]
        assert results[-1].kind == ErrorKind.RATE_LIMITED
        assert "roulette" in results[-1].message

    def test_ok_carries_remaining_attempts(self, limiter):
        assert limiter.check_and_record("u1", "guess", 3, 5).value == 2
        assert limiter.check_and_record("u1", "guess", 3, 5).value == 1
        assert limiter.remaining("u1", "guess", 3, 5) == 1

    def test_window_slides_past_oldest_attempt(self, limiter, clock):
        limiter.check_and_record("u1", "roulette", 3, 5)
        clock.advance(60)
        limiter.check_and_record("u1", "roulette", 3, 5)
        clock.advance(60)
        limiter.check_and_record("u1", "roulette", 3, 5)

        clock.advance(179)
        assert not limiter.check_and_record("u1", "roulette", 3, 5).ok

        # oldest attempt is now exactly 5 minutes old
        clock.advance(1)
        assert limiter.check_and_record("u1", "roulette", 3, 5).ok
        assert not limiter.check_and_record("u1", "roulette", 3, 5).ok

    def test_rejected_attempts_are_not_recorded(self, limiter, clock):
        limiter.check_and_record("u1", "redeem", 1, 5)
        for _ in range(10):
            assert not limiter.check_and_record("u1", "redeem", 1, 5).ok
        clock.advance(300)
        assert limiter.check_and_record("u1", "redeem", 1, 5).ok

    def test_actions_and_users_are_independent(self, limiter):
        assert limiter.check_and_record("u1", "roulette", 1, 5).ok
        assert not limiter.check_and_record("u1", "roulette", 1, 5).ok
        assert limiter.check_and_record("u1", "guess", 1, 5).ok
        assert limiter.check_and_record("u2", "roulette", 1, 5).ok

    def test_concurrent_threads_never_exceed_cap(self):
        limiter = RateLimiter()
        barrier = threading.Barrier(50)
        admitted = []

        def attempt():
            barrier.wait()
            if limiter.check_and_record("racer", "roulette", 10, 5).ok:
                admitted.append(1)

        threads = [threading.Thread(target=attempt) for _ in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(admitted) == 10


class TestSweep:

    def test_sweep_removes_idle_keys(self, clock):
        limiter = RateLimiter(retention_minutes=60, clock=clock)
        limiter.check_and_record("idle", "roulette", 5, 5)
        clock.advance(30 * 60)
        limiter.check_and_record("active", "roulette", 5, 5)
        assert len(limiter) == 2

        clock.advance(31 * 60)
        assert limiter.sweep() == 1
        assert len(limiter) == 1

    def test_sweep_keeps_windows_longer_than_retention(self, clock):
        limiter = RateLimiter(retention_minutes=60, clock=clock)
        assert limiter.check_and_record("u1", "redeem", 2, 120).ok
        assert limiter.check_and_record("u1", "redeem", 2, 120).ok

        clock.advance(90 * 60)
        limiter.sweep()

        result = limiter.check_and_record("u1", "redeem", 2, 120)
        assert result.kind == ErrorKind.RATE_LIMITED

    def test_clear(self, limiter):
        limiter.check_and_record("u1", "roulette", 5, 5)
        limiter.clear()
        assert len(limiter) == 0

    @pytest.mark.asyncio
    async def test_sweeper_task_runs_until_cancelled(self, clock):
        limiter = RateLimiter(retention_minutes=1, clock=clock)
        limiter.check_and_record("u1", "roulette", 5, 5)
        clock.advance(120)

        task = asyncio.create_task(run_sweeper(0.01, limiter))
        await asyncio.sleep(0.05)
        assert len(limiter) == 0

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestSuspiciousActivity:

    def test_flags_after_threshold(self, tracker):
        flags = [tracker.record("u1", "rejected_input") for _ in range(6)]
        assert flags == [False] * 5 + [True]

    def test_entries_expire_after_a_day(self):
        clock = FakeClock()
        tracker = SuspiciousActivityTracker(threshold=2, clock=clock)
        tracker.record("u1", "rejected_input")
        tracker.record("u1", "rejected_input")
        clock.advance(24 * 60 * 60)
        assert tracker.record("u1", "rejected_input") is False
