"""
Symbol Lock Service

Prevents duplicate intent/execution creation when several signals for the
same ticker arrive at once. Locks live in process memory with a TTL, so a
holder that dies mid-way frees the ticker on its own after a few seconds.

This is a single-process mutex. It does not coordinate multiple workers.

Usage:
    if not symbol_lock.acquire("AAPL", "order"):
        ...  # someone else is creating an order for AAPL - abort or retry

    async with symbol_lock.held("AAPL", "exit"):
        ...  # raises SymbolLockedError if already held
"""

import logging
import threading
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from execution_wall.config import settings
from execution_wall.constants import LOCK_KINDS, LOCK_ORDER
from execution_wall.exceptions import SymbolLockedError

logger = logging.getLogger(__name__)


@dataclass
class LockEntry:
    locked_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.locked_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) >= self.ttl


class SymbolLock:
    """
    TTL lock map keyed by (TICKER, kind).

    Lock kinds partition the key space so an EXIT for AAPL never waits on a
    WALL update for AAPL. Expired entries are treated as absent and evicted
    lazily on access; cleanup_expired() is only for memory hygiene.
    """

    def __init__(self, default_ttl: float = None, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl if default_ttl is not None else settings.symbol_lock_ttl_seconds
        self._clock = clock
        self._locks: Dict[Tuple[str, str], LockEntry] = {}
        self._mutex = threading.Lock()

    @staticmethod
    def _key(ticker: str, kind: str) -> Tuple[str, str]:
        if kind not in LOCK_KINDS:
            raise ValueError(f"Unknown lock kind '{kind}' (expected one of {', '.join(LOCK_KINDS)})")
        return ticker.upper(), kind

    def acquire(self, ticker: str, kind: str = LOCK_ORDER, ttl: Optional[float] = None) -> bool:
        """
        Try to take the lock for a ticker.

        Returns:
            True if the lock was acquired, False if an unexpired lock exists.
            Never blocks.
        """
        key = self._key(ticker, kind)
        ttl = ttl if ttl is not None else self.default_ttl

        with self._mutex:
            now = self._clock()
            existing = self._locks.get(key)
            if existing:
                if not existing.is_expired(now):
                    logger.info(
                        f"🔒 Symbol lock active for {key[0]}:{kind} "
                        f"({existing.age(now):.2f}s old, TTL: {existing.ttl}s)"
                    )
                    return False
                del self._locks[key]

            self._locks[key] = LockEntry(locked_at=now, ttl=ttl)

        logger.debug(f"🔓 Acquired lock for {key[0]}:{kind} (TTL: {ttl}s)")
        return True

    def release(self, ticker: str, kind: str = LOCK_ORDER) -> None:
        """Release a lock before its TTL runs out. Releasing a free key is a no-op."""
        key = self._key(ticker, kind)
        with self._mutex:
            removed = self._locks.pop(key, None)
        if removed:
            logger.debug(f"🔓 Released lock for {key[0]}:{kind}")

    def is_locked(self, ticker: str, kind: str = LOCK_ORDER) -> bool:
        key = self._key(ticker, kind)
        with self._mutex:
            existing = self._locks.get(key)
            if not existing:
                return False
            if existing.is_expired(self._clock()):
                del self._locks[key]
                return False
            return True

    def cleanup_expired(self) -> int:
        """Drop every aged-out entry. Returns the number removed."""
        with self._mutex:
            now = self._clock()
            expired = [key for key, entry in self._locks.items() if entry.is_expired(now)]
            for key in expired:
                del self._locks[key]

        if expired:
            logger.info(f"🧹 Cleaned up {len(expired)} expired symbol lock(s)")
        return len(expired)

    def get_status(self) -> List[dict]:
        """Snapshot of currently held (unexpired) locks for monitoring."""
        with self._mutex:
            now = self._clock()
            return [
                {
                    "symbol": ticker,
                    "lock_type": kind,
                    "age_seconds": round(entry.age(now), 3),
                    "ttl_seconds": entry.ttl,
                }
                for (ticker, kind), entry in self._locks.items()
                if not entry.is_expired(now)
            ]

    @asynccontextmanager
    async def held(self, ticker: str, kind: str = LOCK_ORDER, ttl: Optional[float] = None):
        """Hold the lock for the duration of the block, releasing it on exit."""
        if not self.acquire(ticker, kind, ttl):
            raise SymbolLockedError(ticker.upper(), kind)
        try:
            yield
        finally:
            self.release(ticker, kind)


# Global instance shared by intake handlers
symbol_lock = SymbolLock()
