"""Tests for the request throttle."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from helpers import FakeClock

from mcmapi._config import RateLimitConfig
from mcmapi._throttle import (
    OK,
    CooldownDeadline,
    Limited,
    RateWindowTracker,
    RequestClass,
    RequestThrottle,
    WindowCounter,
    monotonic_millis,
)

# =============================================================================
# WindowCounter
# =============================================================================


class TestWindowCounter:
    """Tests for the rolling window counter."""

    def test_init_fails_with_non_positive_limit(self):
        with pytest.raises(AssertionError, match="limit must be greater than 0"):
            WindowCounter(limit=0, duration=1000)

    def test_init_fails_with_non_positive_duration(self):
        with pytest.raises(AssertionError, match="duration must be greater than 0"):
            WindowCounter(limit=1, duration=0)

    def test_first_use_opens_window_at_now(self):
        """The first consultation should start the window at the current time."""
        window = WindowCounter(limit=2, duration=1000)
        window.increment(now=500)
        assert window.window_start == 500
        assert window.count == 1

    def test_remaining_is_zero_below_limit(self):
        window = WindowCounter(limit=2, duration=1000)
        window.increment(now=0)
        assert window.remaining(now=10) == 0

    def test_remaining_until_window_end_at_limit(self):
        window = WindowCounter(limit=1, duration=1000)
        window.increment(now=0)
        assert window.remaining(now=250) == 750

    def test_roll_resets_after_expiry(self):
        window = WindowCounter(limit=1, duration=1000)
        window.increment(now=0)
        assert window.remaining(now=1000) == 0
        assert window.count == 0
        assert window.window_start == 1000


# =============================================================================
# CooldownDeadline
# =============================================================================


class TestCooldownDeadline:
    """Tests for the server-imposed cool-down."""

    def test_inactive_by_default(self):
        deadline = CooldownDeadline()
        assert not deadline.is_active()
        assert deadline.remaining(now=123) == 0

    def test_remaining_while_active(self):
        deadline = CooldownDeadline()
        deadline.set(retry_after=2000, now=100)
        assert deadline.remaining(now=600) == 1500

    def test_cleared_once_spent(self):
        deadline = CooldownDeadline()
        deadline.set(retry_after=2000, now=0)
        assert deadline.remaining(now=2000) == 0
        assert deadline.retry_after == 0
        assert not deadline.is_active()

    def test_zero_retry_after_is_not_active(self):
        deadline = CooldownDeadline()
        deadline.set(retry_after=0, now=0)
        assert not deadline.is_active()


# =============================================================================
# RateWindowTracker
# =============================================================================


class TestRateWindowTracker:
    """Tests for the per-class tracker."""

    def test_no_windows_never_stalls(self):
        tracker = RateWindowTracker(RequestClass.READ)
        for now in range(0, 100, 10):
            tracker.record_success(now)
            assert tracker.compute_stall(now) == 0

    def test_no_stall_while_under_budget(self):
        """Successes below the limit should never cause a stall."""
        tracker = RateWindowTracker(RequestClass.READ, [WindowCounter(limit=5, duration=1000)])
        for now in (0, 100, 200, 300):
            tracker.record_success(now)
            assert tracker.compute_stall(now) == 0

    def test_enforced_wait_decreases_to_zero(self):
        """Once the budget is consumed the wait should shrink to exactly 0 at window end."""
        tracker = RateWindowTracker(RequestClass.READ, [WindowCounter(limit=3, duration=1000)])
        for now in (0, 10, 20):
            tracker.record_success(now)

        previous = None
        for now in (20, 300, 600, 999):
            stall = tracker.compute_stall(now)
            assert stall == 0 + 1000 - now
            if previous is not None:
                assert stall < previous
            previous = stall

        assert tracker.compute_stall(1000) == 0

    def test_lazy_reset_on_compute_stall(self):
        tracker = RateWindowTracker(RequestClass.READ, [WindowCounter(limit=1, duration=1000)])
        tracker.record_success(0)

        assert tracker.compute_stall(50_000) == 0

        (window,) = tracker.windows
        assert window.count == 0
        assert window.window_start == 50_000

    def test_lazy_reset_on_record_success(self):
        tracker = RateWindowTracker(RequestClass.READ, [WindowCounter(limit=2, duration=1000)])
        tracker.record_success(0)
        tracker.record_success(1)

        tracker.record_success(99_999)

        (window,) = tracker.windows
        assert window.count == 1
        assert window.window_start == 99_999

    def test_cooldown_takes_precedence_over_windows(self):
        """A rejection should stall even with untouched window budgets."""
        tracker = RateWindowTracker(RequestClass.WRITE, [WindowCounter(limit=100, duration=1000)])

        tracker.record_limited(now=0, retry_after=5000)

        assert tracker.compute_stall(0) == 5000
        assert tracker.compute_stall(5000) == 0

    def test_stall_is_max_of_signals(self):
        tracker = RateWindowTracker(RequestClass.WRITE, [WindowCounter(limit=1, duration=10_000)])
        tracker.record_success(0)
        tracker.record_limited(now=0, retry_after=2000)

        assert tracker.compute_stall(1000) == 9000

    def test_record_success_clears_cooldown(self):
        tracker = RateWindowTracker(RequestClass.READ)
        tracker.record_limited(now=0, retry_after=5000)

        tracker.record_success(10)

        assert tracker.compute_stall(10) == 0
        assert not tracker.cooldown.is_active()

    def test_record_success_without_count_keeps_windows(self):
        tracker = RateWindowTracker(RequestClass.READ, [WindowCounter(limit=2, duration=1000)])
        tracker.record_success(0, count=False)
        assert tracker.windows[0].count == 0

    def test_acquire_claims_slot_only_when_free(self):
        tracker = RateWindowTracker(RequestClass.READ, [WindowCounter(limit=1, duration=1000)])

        assert tracker.acquire(0) == 0
        assert tracker.windows[0].count == 1

        assert tracker.acquire(100) == 900
        assert tracker.windows[0].count == 1

    def test_burst_and_normal_windows_are_both_enforced(self):
        tracker = RateWindowTracker(
            RequestClass.READ,
            [WindowCounter(limit=2, duration=1000), WindowCounter(limit=3, duration=60_000)],
        )
        assert tracker.acquire(0) == 0
        assert tracker.acquire(0) == 0
        assert tracker.acquire(0) == 1000  # burst exhausted
        assert tracker.acquire(1000) == 0  # burst rolled
        assert tracker.acquire(1000) == 59_000  # normal exhausted

    def test_two_successes_exhaust_budget(self):
        tracker = RateWindowTracker(RequestClass.READ, [WindowCounter(limit=2, duration=1000)])
        tracker.record_success(0)
        tracker.record_success(100)

        stall = tracker.compute_stall(500)
        assert 0 < stall <= 1000

        assert tracker.compute_stall(1000) == 0

    def test_record_limited_rejects_negative(self):
        tracker = RateWindowTracker(RequestClass.READ)
        with pytest.raises(AssertionError):
            tracker.record_limited(now=0, retry_after=-1)


# =============================================================================
# RequestThrottle
# =============================================================================


class TestRequestThrottle:
    """Tests for the thread-safe throttle facade."""

    def test_default_clock_is_monotonic_millis(self):
        throttle = RequestThrottle()
        before = monotonic_millis()
        assert throttle.now() >= before

    def test_stall_for_claims_slot(self):
        clock = FakeClock()
        throttle = RequestThrottle(read_windows=[WindowCounter(limit=1, duration=1000)], clock=clock)

        assert throttle.stall_for(RequestClass.READ) == 0
        assert throttle.stall_for(RequestClass.READ) == 1000

        clock.advance(400)
        assert throttle.stall_for(RequestClass.READ) == 600

    def test_ok_outcome_does_not_count_twice(self):
        clock = FakeClock()
        throttle = RequestThrottle(read_windows=[WindowCounter(limit=2, duration=1000)], clock=clock)

        assert throttle.stall_for(RequestClass.READ) == 0
        throttle.on_response(RequestClass.READ, OK)

        assert throttle.tracker(RequestClass.READ).windows[0].count == 1
        assert throttle.stall_for(RequestClass.READ) == 0

    def test_limited_outcome_then_cooldown_expiry(self):
        """A 429 with Retry-After: 2 should stall for ~1000ms at t=1000 and 0 at t=2000."""
        clock = FakeClock()
        throttle = RequestThrottle(clock=clock)

        assert throttle.stall_for(RequestClass.READ) == 0
        throttle.on_response(RequestClass.READ, Limited(retry_after=2000))

        clock.advance(1000)
        assert throttle.stall_for(RequestClass.READ) == 1000

        clock.advance(1000)
        assert throttle.stall_for(RequestClass.READ) == 0

    def test_classes_are_independent(self):
        clock = FakeClock()
        throttle = RequestThrottle(
            read_windows=[WindowCounter(limit=1, duration=1000)],
            write_windows=[WindowCounter(limit=1, duration=1000)],
            clock=clock,
        )

        throttle.on_response(RequestClass.READ, Limited(retry_after=9000))
        assert throttle.stall_for(RequestClass.READ) == 9000
        assert throttle.tracker(RequestClass.WRITE).compute_stall(clock()) == 0

        assert throttle.stall_for(RequestClass.WRITE) == 0
        throttle.on_response(RequestClass.WRITE, OK)
        assert throttle.tracker(RequestClass.READ).compute_stall(clock()) == 9000

    def test_unknown_outcome_raises(self):
        throttle = RequestThrottle()
        with pytest.raises(TypeError, match="Unknown outcome"):
            throttle.on_response(RequestClass.READ, "ok")  # type: ignore[arg-type]

    def test_limited_rejects_negative_retry_after(self):
        with pytest.raises(AssertionError, match="retry_after must be non-negative"):
            Limited(retry_after=-5)

    @pytest.mark.parametrize("callers,limit", [(10, 3), (50, 1), (20, 20), (64, 7)])
    def test_concurrent_callers_never_exceed_limit(self, callers: int, limit: int):
        """Exactly `limit` concurrent callers should proceed; the rest must stall."""
        throttle = RequestThrottle(
            write_windows=[WindowCounter(limit=limit, duration=60_000)],
            clock=FakeClock(),
        )
        barrier = threading.Barrier(callers)

        def call() -> int:
            barrier.wait()
            return throttle.stall_for(RequestClass.WRITE)

        with ThreadPoolExecutor(max_workers=callers) as pool:
            stalls = list(pool.map(lambda _: call(), range(callers)))

        assert stalls.count(0) == limit
        assert all(s > 0 for s in stalls if s != 0)
        assert len([s for s in stalls if s > 0]) == callers - limit
        assert throttle.tracker(RequestClass.WRITE).windows[0].count == limit


class TestRequestThrottleFromConfig:
    """Tests for building a throttle from RateLimitConfig."""

    def test_default_config_has_no_windows(self):
        throttle = RequestThrottle.from_config(RateLimitConfig())
        assert throttle.tracker(RequestClass.READ).windows == ()
        assert throttle.tracker(RequestClass.WRITE).windows == ()

    def test_builds_enabled_windows_only(self):
        cfg = RateLimitConfig(
            read_burst_limit=5, read_burst_window=1000,
            read_normal_limit=100, read_normal_window=60_000,
            write_burst_limit=1, write_burst_window=2000,
        )
        throttle = RequestThrottle.from_config(cfg, clock=FakeClock())

        read = throttle.tracker(RequestClass.READ).windows
        write = throttle.tracker(RequestClass.WRITE).windows
        assert [(w.limit, w.duration) for w in read] == [(5, 1000), (100, 60_000)]
        assert [(w.limit, w.duration) for w in write] == [(1, 2000)]
