from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from mftgateway.logging import get_logger

logger = get_logger(__name__)

SWEEP_BATCH_SIZE = 500


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class _WindowEntry:
    count: int
    reset_at: int
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    evicted: bool = False


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one admission check, with the numbers for response headers."""

    allowed: bool
    limit: int
    remaining: int
    reset_after_ms: int

    @property
    def reset_seconds(self) -> int:
        return max(0, -(-self.reset_after_ms // 1000))


class FixedWindowRateLimiter:
    """Fixed-window request counter keyed by caller identity.

    A window opens on the first request for a key and rolls forward from the
    request that finds it expired, not from a wall-clock boundary. Each entry
    has its own lock, so callers with different keys never wait on each other;
    the table lock is only held for lookup, insert and sweep batches.

    Lifecycle: created by the runtime at startup, swept in the background by
    :meth:`run_sweeper`, and cleared by :meth:`close` at shutdown.
    """

    def __init__(
        self,
        *,
        window_ms: int,
        max_requests: int,
        grace_ms: int = 60_000,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.window_ms = window_ms
        self.max_requests = max_requests
        self.grace_ms = grace_ms
        self._clock = clock
        self._entries: Dict[str, _WindowEntry] = {}
        self._table_lock = threading.Lock()

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._entries)

    def _entry_for(self, key: str, now: int, window_ms: int) -> _WindowEntry:
        with self._table_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _WindowEntry(count=0, reset_at=now + window_ms)
                self._entries[key] = entry
            return entry

    def check(
        self,
        key: str,
        now: Optional[int] = None,
        window_ms: Optional[int] = None,
        max_requests: Optional[int] = None,
    ) -> RateLimitDecision:
        now = self._clock() if now is None else now
        window_ms = self.window_ms if window_ms is None else window_ms
        max_requests = self.max_requests if max_requests is None else max_requests

        while True:
            entry = self._entry_for(key, now, window_ms)
            with entry.lock:
                # A sweep may have dropped this entry between lookup and lock
                if entry.evicted:
                    continue
                if now > entry.reset_at:
                    entry.count = 0
                    entry.reset_at = now + window_ms
                reset_after_ms = max(0, entry.reset_at - now)
                if entry.count >= max_requests:
                    return RateLimitDecision(False, max_requests, 0, reset_after_ms)
                entry.count += 1
                return RateLimitDecision(
                    True, max_requests, max_requests - entry.count, reset_after_ms
                )

    def allow(
        self,
        key: str,
        now: Optional[int] = None,
        window_ms: Optional[int] = None,
        max_requests: Optional[int] = None,
    ) -> bool:
        return self.check(key, now, window_ms, max_requests).allowed

    def sweep(self, now: Optional[int] = None) -> int:
        """Drop entries whose window closed more than ``grace_ms`` ago.

        Works through the table in batches, releasing the table lock between
        them so admission checks are never stalled behind a full scan.
        """
        now = self._clock() if now is None else now
        with self._table_lock:
            keys: List[str] = list(self._entries.keys())

        removed = 0
        for start in range(0, len(keys), SWEEP_BATCH_SIZE):
            with self._table_lock:
                for key in keys[start:start + SWEEP_BATCH_SIZE]:
                    entry = self._entries.get(key)
                    if entry is None:
                        continue
                    with entry.lock:
                        if now - entry.reset_at > self.grace_ms:
                            entry.evicted = True
                            del self._entries[key]
                            removed += 1
        if removed:
            logger.info("rate_limit_sweep", removed=removed, remaining=len(self))
        return removed

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Background loop that sweeps expired windows until cancelled."""
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                try:
                    self.sweep()
                except Exception as exc:  # pragma: no cover - best-effort cleanup
                    logger.warning("rate_limit_sweep_failed", error=str(exc))
        except asyncio.CancelledError:
            logger.info("rate_limit_sweeper_cancelled")
            raise

    def close(self) -> None:
        with self._table_lock:
            for entry in self._entries.values():
                entry.evicted = True
            self._entries.clear()
