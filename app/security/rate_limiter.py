"""Fixed-window rate limiter for EventDesk mutating operations.

A request is counted against ``"<operation>:<client>"`` under one of four rate
classes. Each class is a ``limits`` rate string (e.g. ``"60/minute"``):

  DEFAULT  60/minute   general mutations
  STRICT   10/minute   destructive operations (event delete)
  LENIENT  120/minute  read/export operations
  UPLOAD   5/minute    operations that embed uploads or bulk key generation

Counting is delegated to ``limits.strategies.FixedWindowRateLimiter`` over a
``MemoryStorage`` owned by each RateLimiter instance. The window opens on the
first hit and a call arriving at or after its reset time starts a fresh one.
Fixed window, not sliding: a burst of up to 2× the limit is possible across a
window boundary.

The storage only expires counters lazily, when a key is touched again. A
background task therefore sweeps the identifiers seen so far on a fixed
interval, independent of request traffic.

State is process-local. Multiple replicas enforce limits independently.

Disabled entirely in development (``enabled=False``) — every call is allowed.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from limits import RateLimitItem
from limits import parse as parse_rate_limit
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from app.constants import (
    DEFAULT_RATE_LIMIT,
    LENIENT_RATE_LIMIT,
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
    STRICT_RATE_LIMIT,
    UNKNOWN_CLIENT,
    UPLOAD_RATE_LIMIT,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)


class RateLimitClass(str, Enum):
    DEFAULT = "DEFAULT"
    STRICT = "STRICT"
    LENIENT = "LENIENT"
    UPLOAD = "UPLOAD"


DEFAULT_RATE_TABLE: dict[RateLimitClass, str] = {
    RateLimitClass.DEFAULT: DEFAULT_RATE_LIMIT,
    RateLimitClass.STRICT: STRICT_RATE_LIMIT,
    RateLimitClass.LENIENT: LENIENT_RATE_LIMIT,
    RateLimitClass.UPLOAD: UPLOAD_RATE_LIMIT,
}


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a check. reset_at is epoch seconds (None when disabled)."""

    allowed: bool
    remaining: int
    reset_at: Optional[float] = None


def build_identifier(operation: str, client_id: Optional[str]) -> str:
    """Namespace a client identifier by operation so budgets are not shared."""
    return f"{operation}:{client_id or UNKNOWN_CLIENT}"


class RateLimiter:
    """Per-instance fixed-window limiter keyed by namespaced identifier.

    Args:
        rate_table: Mapping of rate class → limits rate string. Missing classes
                    fall back to DEFAULT_RATE_TABLE.
        enabled:    False disables all checks (development mode).
        sweep_interval_seconds: Period of the background expiry sweep.
    """

    def __init__(
        self,
        rate_table: Optional[Mapping[RateLimitClass, str]] = None,
        *,
        enabled: bool = True,
        sweep_interval_seconds: float = RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        table = dict(DEFAULT_RATE_TABLE)
        if rate_table:
            table.update(rate_table)
        self._items: dict[RateLimitClass, RateLimitItem] = {
            limit_class: parse_rate_limit(rate) for limit_class, rate in table.items()
        }
        self.enabled = enabled
        self._sweep_interval = sweep_interval_seconds
        self._storage = MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self._storage)
        # (identifier, class) pairs with a live window, for sweep and len()
        self._active: set[tuple[str, RateLimitClass]] = set()
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task[None]] = None

    # ── Limits ────────────────────────────────────────────────────────────────

    def limit_for(self, limit_class: RateLimitClass) -> tuple[int, int]:
        """Return ``(max_requests, window_seconds)`` for a rate class."""
        item = self._items[limit_class]
        return item.amount, item.get_expiry()

    # ── Check path ────────────────────────────────────────────────────────────

    def check_and_consume(
        self,
        identifier: str,
        limit_class: RateLimitClass = RateLimitClass.DEFAULT,
    ) -> RateLimitDecision:
        """Count one request for ``identifier`` and decide whether to allow it.

        Never raises. A rejected call is not counted, so the window's count and
        reset time are returned unchanged.
        """
        item = self._items[limit_class]
        if not self.enabled:
            return RateLimitDecision(allowed=True, remaining=item.amount)

        with self._lock:
            allowed = self._strategy.test(item, identifier)
            if allowed:
                self._strategy.hit(item, identifier)
                self._active.add((identifier, limit_class))
            stats = self._strategy.get_window_stats(item, identifier)

        return RateLimitDecision(
            allowed=allowed,
            remaining=stats.remaining if allowed else 0,
            reset_at=float(stats.reset_time),
        )

    def reset(self, identifier: Optional[str] = None) -> None:
        """Drop one identifier's windows, or every window when identifier is None."""
        with self._lock:
            if identifier is None:
                self._storage.reset()
                self._active.clear()
                return
            for item in self._items.values():
                self._strategy.clear(item, identifier)
            self._active = {pair for pair in self._active if pair[0] != identifier}

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)

    # ── Background sweep ──────────────────────────────────────────────────────

    def sweep_expired(self) -> int:
        """Remove windows that have elapsed. Returns the number removed."""
        with self._lock:
            expired = []
            for identifier, limit_class in self._active:
                item = self._items[limit_class]
                # reading an elapsed window drops it from the storage
                if self._strategy.get_window_stats(item, identifier).remaining >= item.amount:
                    expired.append((identifier, limit_class))
            for pair in expired:
                self._active.discard(pair)
        if expired:
            logger.debug("Rate limit entries swept", removed=len(expired))
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep_expired()

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop. Idempotent."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop())
        logger.debug("Rate limit sweeper started", interval_s=self._sweep_interval)

    async def stop_sweeper(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
