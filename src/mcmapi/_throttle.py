"""
Request throttling for the mcmapi SDK.

The API enforces undisclosed, dynamic rate limits separately for read and
write traffic. This module keeps the client compliant with two signals:

- Proactive: rolling window counters (e.g. a short burst window and a longer
  normal window) predict when a new request would exceed a local budget.
- Reactive: a cool-down deadline recorded from a server rejection (HTTP 429
  with a Retry-After header) that must be honored until spent.

The required wait is the maximum of both signals.

Available components:
    - RequestClass: READ or WRITE partition of all throttling state.
    - WindowCounter: A single rolling-window request counter.
    - CooldownDeadline: A server-imposed minimum wait.
    - RateWindowTracker: All windows and the cool-down of one request class.
    - RequestThrottle: Thread-safe facade holding one tracker per class.

All durations and timestamps are integer milliseconds.

Example:
    >>> from mcmapi._throttle import Limited, RequestClass, RequestThrottle, WindowCounter
    >>> throttle = RequestThrottle(
    ...     read_windows=[WindowCounter(limit=10, duration=1_000)],
    ... )
    >>> throttle.stall_for(RequestClass.READ)  # claims a slot when 0
    0
    >>> throttle.on_response(RequestClass.READ, Limited(retry_after=2_000))
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mcmapi._config import RateLimitConfig

logger = logging.getLogger(__name__)

# A clock returns the current time as integer milliseconds.
Clock = Callable[[], int]


def monotonic_millis() -> int:
    """Return a monotonic timestamp in milliseconds."""
    return int(time.monotonic() * 1000)


class RequestClass(enum.StrEnum):
    """
    Partition of rate-limit accounting.

    Read and write traffic never share a budget.
    """
    READ = "READ"
    WRITE = "WRITE"

    def __str__(self) -> str:
        return self.value


# =============================================================================
# State
# =============================================================================


@dataclass
class WindowCounter:
    """
    Rolling-window request counter.

    The count is only meaningful inside `[window_start, window_start + duration)`.
    Once the clock reaches the end of that interval the window is rolled
    lazily (count = 0, window_start = now) the next time it is consulted.

    Attributes:
        limit: Maximum requests allowed per window.
        duration: Window length in milliseconds.
        count: Requests counted in the current window.
        window_start: Start of the current window, or None if never used.
    """
    limit: int
    duration: int
    count: int = 0
    window_start: int | None = None

    def __post_init__(self) -> None:
        assert self.limit > 0, "limit must be greater than 0."
        assert self.duration > 0, "duration must be greater than 0."

    def roll(self, now: int) -> None:
        """Reset the window if `now` is past its end."""
        if self.window_start is None or now >= self.window_start + self.duration:
            self.count = 0
            self.window_start = now

    def remaining(self, now: int) -> int:
        """Milliseconds until this window allows another request (0 if it already does)."""
        self.roll(now)
        if self.count < self.limit:
            return 0
        assert self.window_start is not None
        return self.window_start + self.duration - now

    def increment(self, now: int) -> None:
        self.roll(now)
        self.count += 1


@dataclass
class CooldownDeadline:
    """
    Server-imposed minimum wait.

    A `retry_after` of 0 means there is no active cool-down.

    Attributes:
        retry_after: Wait duration in milliseconds signaled by the server.
        recorded_at: Timestamp at which the rejection was recorded.
    """
    retry_after: int = 0
    recorded_at: int = 0

    def is_active(self) -> bool:
        return self.retry_after > 0

    def remaining(self, now: int) -> int:
        """Milliseconds left in the cool-down; clears the deadline once spent."""
        if not self.is_active():
            return 0
        elapsed = max(0, now - self.recorded_at)
        if elapsed < self.retry_after:
            return self.retry_after - elapsed
        self.clear()
        return 0

    def set(self, retry_after: int, now: int) -> None:
        self.retry_after = retry_after
        self.recorded_at = now

    def clear(self) -> None:
        self.retry_after = 0


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True)
class Ok:
    """The request was not rate-limited."""


@dataclass(frozen=True)
class Limited:
    """
    The request was rejected with HTTP 429.

    Attributes:
        retry_after: Cool-down in milliseconds taken from the Retry-After header.
    """
    retry_after: int

    def __post_init__(self) -> None:
        assert self.retry_after >= 0, "retry_after must be non-negative."


Outcome = Ok | Limited

OK = Ok()


# =============================================================================
# Tracker
# =============================================================================


class RateWindowTracker:
    """
    Rate-limit state of a single request class.

    Holds zero or more window counters plus one cool-down deadline. Every
    operation runs under one lock, so each of them is indivisible to
    concurrent callers of the same class.

    Args:
        request_class: The class whose traffic this tracker accounts for.
        windows: Window counters enforced simultaneously (may be empty).
    """

    def __init__(
        self,
        request_class: RequestClass,
        windows: Iterable[WindowCounter] = (),
    ):
        assert request_class is not None, "request_class cannot be None."

        self.request_class = request_class
        self._windows = list(windows)
        self._cooldown = CooldownDeadline()
        self._lock = threading.Lock()

    def _stall(self, now: int) -> int:
        stall = self._cooldown.remaining(now)
        for window in self._windows:
            stall = max(stall, window.remaining(now))
        return stall

    def _count(self, now: int) -> None:
        for window in self._windows:
            window.increment(now)

    def compute_stall(self, now: int) -> int:
        """
        Milliseconds to wait before the next request of this class is compliant.

        Rolls expired windows and clears a spent cool-down as a side effect.

        Returns:
            0 if a request may be sent immediately, otherwise the wait in ms.
        """
        with self._lock:
            return self._stall(now)

    def acquire(self, now: int) -> int:
        """
        Compute the stall and, when it is 0, count the request right away.

        The check and the increment happen in the same critical section so
        two callers can never both take the last slot of a window.

        Returns:
            0 if a slot was claimed, otherwise the wait in ms (nothing claimed).
        """
        with self._lock:
            stall = self._stall(now)
            if stall == 0:
                self._count(now)
            return stall

    def record_success(self, now: int, count: bool = True) -> None:
        """
        Record a request that was not rate-limited.

        Args:
            now: Current timestamp.
            count: Whether to increment the window counters. Requests whose
                slot was claimed through `acquire()` are already counted.
        """
        with self._lock:
            if count:
                self._count(now)
            self._cooldown.clear()

    def record_limited(self, now: int, retry_after: int) -> None:
        """
        Record a rejection with the server-mandated cool-down (ms).

        The cool-down takes precedence over window math until it is spent.
        """
        assert retry_after >= 0, "retry_after must be non-negative."
        with self._lock:
            self._cooldown.set(retry_after, now)

    @property
    def windows(self) -> tuple[WindowCounter, ...]:
        """Copies of the window counters (for inspection only)."""
        with self._lock:
            return tuple(replace(w) for w in self._windows)

    @property
    def cooldown(self) -> CooldownDeadline:
        """Copy of the cool-down deadline (for inspection only)."""
        with self._lock:
            return replace(self._cooldown)

    def __repr__(self) -> str:
        return f"RateWindowTracker(request_class={self.request_class}, windows={len(self._windows)})"


# =============================================================================
# Throttle
# =============================================================================


class RequestThrottle:
    """
    Shared, thread-safe rate-limit state for one client.

    Owns exactly one RateWindowTracker per RequestClass. READ and WRITE
    trackers are fully independent and never contend for the same lock.

    Example:
        >>> throttle = RequestThrottle(
        ...     read_windows=[WindowCounter(limit=3, duration=1_000)],
        ...     write_windows=[WindowCounter(limit=1, duration=1_000)],
        ... )
        >>> while (stall := throttle.stall_for(RequestClass.WRITE)) > 0:
        ...     time.sleep(stall / 1000)

    Args:
        read_windows: Window counters for READ requests.
        write_windows: Window counters for WRITE requests.
        clock: Time source in milliseconds (default: monotonic_millis).
    """

    def __init__(
        self,
        read_windows: Iterable[WindowCounter] = (),
        write_windows: Iterable[WindowCounter] = (),
        clock: Clock | None = None,
    ):
        self._clock: Clock = clock or monotonic_millis
        self._trackers: dict[RequestClass, RateWindowTracker] = {
            RequestClass.READ: RateWindowTracker(RequestClass.READ, read_windows),
            RequestClass.WRITE: RateWindowTracker(RequestClass.WRITE, write_windows),
        }

    @classmethod
    def from_config(cls, cfg: RateLimitConfig, clock: Clock | None = None) -> RequestThrottle:
        """
        Build a throttle from the `rate_limit` config section.

        Windows whose limit is 0 are disabled and not created.
        """
        return cls(
            read_windows=_build_windows(
                (cfg.read_burst_limit, cfg.read_burst_window),
                (cfg.read_normal_limit, cfg.read_normal_window),
            ),
            write_windows=_build_windows(
                (cfg.write_burst_limit, cfg.write_burst_window),
                (cfg.write_normal_limit, cfg.write_normal_window),
            ),
            clock=clock,
        )

    def now(self) -> int:
        return self._clock()

    def tracker(self, request_class: RequestClass) -> RateWindowTracker:
        return self._trackers[request_class]

    def stall_for(self, request_class: RequestClass) -> int:
        """
        Milliseconds the caller must wait before sending a request of this class.

        A return value of 0 means the caller may send now and that its slot
        has already been counted against every window of the class.
        """
        stall = self._trackers[request_class].acquire(self._clock())
        if stall > 0:
            logger.debug(f"Throttle | {request_class} | stalling for {stall}ms")
        return stall

    def on_response(self, request_class: RequestClass, outcome: Outcome) -> None:
        """
        Feed the outcome of a sent request back into the tracker of its class.

        Args:
            request_class: Class of the request that was sent.
            outcome: OK, or Limited(retry_after) when the server returned 429.
        """
        tracker = self._trackers[request_class]
        now = self._clock()
        if isinstance(outcome, Limited):
            tracker.record_limited(now, outcome.retry_after)
        elif isinstance(outcome, Ok):
            # Slot was counted when stall_for() returned 0.
            tracker.record_success(now, count=False)
        else:
            raise TypeError(f"Unknown outcome: {outcome!r}")


def _build_windows(*specs: tuple[int, int]) -> list[WindowCounter]:
    return [
        WindowCounter(limit=limit, duration=duration)
        for limit, duration in specs
        if limit > 0
    ]
