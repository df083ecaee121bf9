"""Sliding-window rate limiting with pluggable storage."""
from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from collections import OrderedDict, deque
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable, NamedTuple

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from helpline import db
from helpline.config import get_settings
from helpline.models.rate_limit import RateLimitHit
from helpline.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class RateLimitDecision(NamedTuple):
    allowed: bool
    retry_after: int = 0


class RateLimitStore(ABC):
    """Counts calls per key over a sliding window.

    A rejected call is never recorded, so a caller that keeps retrying while
    blocked does not push its own window further out.
    """

    backend: str = "abstract"

    @abstractmethod
    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        """Record one call for ``key`` if it fits within ``limit`` per window."""

    @abstractmethod
    def reset(self) -> None:
        """Forget every recorded call."""


class MemoryRateLimitStore(RateLimitStore):
    """Process-local store.

    Each key keeps at most ``limit`` timestamps and the number of keys is capped
    at ``max_keys``; the least recently used key is evicted first.
    """

    backend = "memory"

    def __init__(self, *, max_keys: int = 10_000, clock: Callable[[], float] = time.monotonic) -> None:
        if max_keys < 1:
            raise ValueError("max_keys must be positive")
        self.max_keys = max_keys
        self._clock = clock
        self._buckets: OrderedDict[str, deque[float]] = OrderedDict()
        self._lock = Lock()

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        now = self._clock()
        cutoff = now - window_seconds
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or bucket.maxlen != limit:
                bucket = deque(bucket or (), maxlen=limit)
                self._buckets[key] = bucket
            self._buckets.move_to_end(key)
            while len(self._buckets) > self.max_keys:
                evicted, _ = self._buckets.popitem(last=False)
                logger.debug("Rate limit key evicted", extra={"key": evicted})

            while bucket and bucket[0] <= cutoff:
                bucket.popleft()
            if len(bucket) >= limit:
                retry_after = max(1, math.ceil(bucket[0] + window_seconds - now))
                return RateLimitDecision(False, retry_after)
            bucket.append(now)
            return RateLimitDecision(True, 0)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)


class DatabaseRateLimitStore(RateLimitStore):
    """Store shared by every replica through the ``rate_limit_hits`` table.

    When a ``db_session`` is supplied the store only flushes and leaves the
    transaction to the caller; otherwise it opens, commits and closes its own.
    """

    backend = "database"

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    def _session(self, db_session: Session | None) -> tuple[Session, bool]:
        if db_session is not None:
            return db_session, False
        return db.get_sessionmaker()(), True

    def hit(
        self,
        key: str,
        limit: int,
        window_seconds: int,
        *,
        db_session: Session | None = None,
    ) -> RateLimitDecision:
        session, owned = self._session(db_session)
        now = self._clock()
        cutoff = now - timedelta(seconds=window_seconds)
        try:
            session.execute(
                delete(RateLimitHit)
                .where(RateLimitHit.key == key, RateLimitHit.hit_at <= cutoff)
                .execution_options(synchronize_session=False)
            )
            count, oldest = session.execute(
                select(func.count(RateLimitHit.id), func.min(RateLimitHit.hit_at)).where(
                    RateLimitHit.key == key
                )
            ).one()
            if count >= limit:
                expires = ensure_utc(oldest) + timedelta(seconds=window_seconds)
                decision = RateLimitDecision(False, max(1, math.ceil((expires - now).total_seconds())))
            else:
                session.add(RateLimitHit(key=key, hit_at=now))
                decision = RateLimitDecision(True, 0)
            if owned:
                session.commit()
            else:
                session.flush()
            return decision
        except Exception:
            if owned:
                session.rollback()
            raise
        finally:
            if owned:
                session.close()

    def reset(self, *, db_session: Session | None = None) -> None:
        session, owned = self._session(db_session)
        try:
            session.execute(delete(RateLimitHit).execution_options(synchronize_session=False))
            if owned:
                session.commit()
            else:
                session.flush()
        finally:
            if owned:
                session.close()


_store: RateLimitStore | None = None
_store_lock = Lock()


def build_rate_limit_store(backend: str | None = None) -> RateLimitStore:
    settings = get_settings()
    selected = (backend or settings.RATE_LIMIT_BACKEND).lower()
    if selected == "memory":
        return MemoryRateLimitStore(max_keys=settings.RATE_LIMIT_MAX_KEYS)
    if selected == "database":
        return DatabaseRateLimitStore()
    raise ValueError(f"Unknown rate limit backend: {selected}")


def get_rate_limit_store() -> RateLimitStore:
    """Return the process-wide store selected by ``RATE_LIMIT_BACKEND``."""

    global _store
    with _store_lock:
        if _store is None:
            _store = build_rate_limit_store()
            logger.info("Rate limit store initialised", extra={"backend": _store.backend})
        return _store


def set_rate_limit_store(store: RateLimitStore | None) -> None:
    global _store
    with _store_lock:
        _store = store


def reset_rate_limit_store() -> None:
    """Drop the in-process store so the next call rebuilds it from settings."""

    set_rate_limit_store(None)


__all__ = [
    "RateLimitDecision",
    "RateLimitStore",
    "MemoryRateLimitStore",
    "DatabaseRateLimitStore",
    "build_rate_limit_store",
    "get_rate_limit_store",
    "set_rate_limit_store",
    "reset_rate_limit_store",
]
