"""Fixed-window rate limiting keyed by ``(identity, operation class)``.

Buckets are created on first use and reset in full when their window
ends. Each key has its own lock, so unrelated callers never contend.
Buckets whose window has ended are swept at most once per window so idle
identities do not accumulate.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from mategate.config.models import RateLimitConfig
from mategate.infrastructure.locks import KeyedLocks


@dataclass
class _Bucket:
    window_start: float
    used: int = 0


@dataclass(frozen=True)
class Decision:
    """Outcome of one ``try_consume`` call."""

    allowed: bool
    retry_after: int = 0


class RateLimiter:
    """Per-identity, per-operation-class request budget."""

    def __init__(
        self,
        config: RateLimitConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._clock = clock
        self._buckets: dict[tuple[str, str], _Bucket] = {}
        self._buckets_lock = threading.Lock()
        self._locks = KeyedLocks()
        self._next_prune = clock() + config.window_seconds

    def class_for(self, domain: str) -> str:
        return self._config.class_for(domain)

    def _bucket(self, key: tuple[str, str], now: float) -> _Bucket:
        with self._buckets_lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = self._buckets[key] = _Bucket(window_start=now)
            return bucket

    def _retain(self, key: tuple[str, str], bucket: _Bucket) -> None:
        # Undo a sweep that raced with this holder; the key lock is held.
        with self._buckets_lock:
            self._buckets.setdefault(key, bucket)

    def __len__(self) -> int:
        with self._buckets_lock:
            return len(self._buckets)

    def prune(self) -> int:
        """Drop buckets whose window has ended. Returns how many went."""
        window = float(self._config.window_seconds)
        now = self._clock()
        with self._buckets_lock:
            stale = [k for k, b in self._buckets.items() if now - b.window_start >= window]
            for key in stale:
                del self._buckets[key]
            self._next_prune = now + window
        return len(stale)

    def try_consume(self, identity: str, operation_class: str) -> Decision:
        """Take one request from the bucket, or report when it refills."""
        limit = self._config.limit_for(operation_class)
        if limit <= 0:
            return Decision(allowed=True)

        if self._clock() >= self._next_prune:
            self.prune()

        window = float(self._config.window_seconds)
        key = (identity, operation_class)
        with self._locks.hold(key):
            now = self._clock()
            bucket = self._bucket(key, now)
            if now - bucket.window_start >= window:
                bucket.window_start = now
                bucket.used = 0
            if bucket.used < limit:
                bucket.used += 1
                decision = Decision(allowed=True)
            else:
                remaining = bucket.window_start + window - now
                decision = Decision(allowed=False, retry_after=max(1, math.ceil(remaining)))
            self._retain(key, bucket)
        return decision
