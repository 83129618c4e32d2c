"""
Sliding-window rate limiting and abuse tracking.

State lives in process memory, split over a fixed number of shards. Each
shard has its own lock, so the prune-check-append sequence for a key is one
atomic step while distinct keys proceed in parallel. Nothing inside a
critical section awaits, so the locks are safe to take from coroutines and
from worker threads alike.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from typing import Callable, Hashable, Protocol

from coinbot.core.results import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

DEFAULT_SHARDS = 16


class _Shard:
    __slots__ = ("lock", "windows")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.windows: dict[Hashable, deque[float]] = {}


class _ShardedWindows:
    def __init__(self, retention_seconds: float, shards: int = DEFAULT_SHARDS, clock: Callable[[], float] = time.monotonic):
        self._shards = [_Shard() for _ in range(shards)]
        self._retention = retention_seconds
        self._clock = clock

    def _shard(self, key: Hashable) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    def sweep(self) -> int:
        """Drop timestamps older than the retention horizon and keys left empty."""
        cutoff = self._clock() - self._retention
        removed = 0
        for shard in self._shards:
            with shard.lock:
                for key in list(shard.windows):
                    history = shard.windows[key]
                    while history and history[0] <= cutoff:
                        history.popleft()
                    if not history:
                        del shard.windows[key]
                        removed += 1
        if removed:
            logger.debug("%s swept %d idle keys", type(self).__name__, removed)
        return removed

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                shard.windows.clear()

    def __len__(self) -> int:
        return sum(len(shard.windows) for shard in self._shards)


class RateLimiter(_ShardedWindows):
    def __init__(self, retention_minutes: int = 60, shards: int = DEFAULT_SHARDS, clock: Callable[[], float] = time.monotonic):
        super().__init__(retention_minutes * 60, shards=shards, clock=clock)

    def check_and_record(self, user_id: str, action: str, max_attempts: int, window_minutes: int) -> Result[int]:
        """Admit and record one attempt, or refuse without recording. Ok carries the attempts left."""
        key = (user_id, action)
        window = window_minutes * 60
        if window > self._retention:
            # the sweep must never cut into a live window
            self._retention = window
        shard = self._shard(key)
        with shard.lock:
            now = self._clock()
            history = shard.windows.setdefault(key, deque())
            while history and now - history[0] >= window:
                history.popleft()

            if len(history) >= max_attempts:
                logger.info("rate limit hit: user=%s action=%s attempts=%d", user_id, action, len(history))
                return Err(
                    ErrorKind.RATE_LIMITED,
                    f"Too many {action} attempts. Please wait {window_minutes} minutes.",
                )

            history.append(now)
            return Ok(max_attempts - len(history))

    def remaining(self, user_id: str, action: str, max_attempts: int, window_minutes: int) -> int:
        key = (user_id, action)
        shard = self._shard(key)
        with shard.lock:
            now = self._clock()
            history = shard.windows.get(key, ())
            recent = sum(1 for ts in history if now - ts < window_minutes * 60)
        return max(0, max_attempts - recent)


class SuspiciousActivityTracker(_ShardedWindows):
    """Counts rejected inputs per user over the last 24 hours."""

    def __init__(self, threshold: int = 5, shards: int = DEFAULT_SHARDS, clock: Callable[[], float] = time.monotonic):
        super().__init__(24 * 60 * 60, shards=shards, clock=clock)
        self.threshold = threshold

    def record(self, user_id: str, activity: str) -> bool:
        shard = self._shard(user_id)
        with shard.lock:
            now = self._clock()
            history = shard.windows.setdefault(user_id, deque())
            while history and now - history[0] >= self._retention:
                history.popleft()
            history.append(now)
            count = len(history)

        logger.info("suspicious activity from %s: %s", user_id, activity)
        if count > self.threshold:
            logger.warning("user %s has %d suspicious activities in 24h", user_id, count)
            return True
        return False


class Sweepable(Protocol):
    def sweep(self) -> int: ...


async def run_sweeper(interval_seconds: float, *targets: Sweepable) -> None:
    """Periodically sweep in-memory windows until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        for target in targets:
            target.sweep()
