"""
Per-Company Rate Limiting

Fixed-window counters keyed by company id. A window starts with the first
request after the previous window expired and resets only on expiry (not
sliding). Expired windows are detected by timestamp comparison at hit time;
there is no background sweep.

STORES:
- InMemoryRateLimitStore: process-local dict. Correct only for a single
  app instance.
- DatabaseRateLimitStore: rate_limit_counters table updated with atomic
  conditional UPDATEs, so every instance sharing the database sees the same
  counts.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import RateLimitCounter


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: float


class InMemoryRateLimitStore:
    def __init__(self):
        self._windows: dict[int, list] = {}  # company_id -> [count, reset_at]
        self._lock = threading.Lock()

    def hit(self, key: int, max_requests: int, window_seconds: float, now: float) -> RateLimitDecision:
        with self._lock:
            window = self._windows.get(key)
            if window is None or now > window[1]:
                self._windows[key] = [1, now + window_seconds]
                return RateLimitDecision(True, max_requests - 1, 0.0)

            if window[0] >= max_requests:
                return RateLimitDecision(False, 0, max(window[1] - now, 0.0))

            window[0] += 1
            return RateLimitDecision(True, max_requests - window[0], 0.0)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


def _to_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, timezone.utc).replace(tzinfo=None)


class DatabaseRateLimitStore:
    """Shared counter store; every statement commits on its own."""

    def hit(self, key: int, max_requests: int, window_seconds: float, now: float) -> RateLimitDecision:
        now_dt = _to_datetime(now)
        reset_dt = now_dt + timedelta(seconds=window_seconds)
        table = RateLimitCounter.__table__

        # 1. Count inside a live window, only while under the limit
        result = db.session.execute(
            update(table)
            .where(
                table.c.company_id == key,
                table.c.window_resets_at >= now_dt,
                table.c.count < max_requests,
            )
            .values(count=table.c.count + 1)
        )
        if result.rowcount == 1:
            db.session.commit()
            row = db.session.get(RateLimitCounter, key, populate_existing=True)
            return RateLimitDecision(True, max(max_requests - row.count, 0), 0.0)

        # 2. Restart an expired window
        result = db.session.execute(
            update(table)
            .where(table.c.company_id == key, table.c.window_resets_at < now_dt)
            .values(count=1, window_resets_at=reset_dt)
        )
        if result.rowcount == 1:
            db.session.commit()
            return RateLimitDecision(True, max_requests - 1, 0.0)
        db.session.commit()

        row = db.session.get(RateLimitCounter, key, populate_existing=True)
        if row is None:
            # 3. First request ever for this company
            try:
                db.session.add(RateLimitCounter(company_id=key, count=1, window_resets_at=reset_dt))
                db.session.commit()
                return RateLimitDecision(True, max_requests - 1, 0.0)
            except IntegrityError:
                # Another instance created it first; count against its window
                db.session.rollback()
                return self.hit(key, max_requests, window_seconds, now)

        retry_after = (row.window_resets_at - now_dt).total_seconds()
        return RateLimitDecision(False, 0, max(retry_after, 0.0))

    def reset(self) -> None:
        db.session.query(RateLimitCounter).delete()
        db.session.commit()


class CompanyRateLimiter:
    def __init__(self, max_requests: int, window_seconds: float, store=None, clock=time.time):
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.store = store or InMemoryRateLimitStore()
        self._clock = clock

    def hit(self, company_id: int) -> RateLimitDecision:
        return self.store.hit(company_id, self.max_requests, self.window_seconds, self._clock())


def build_store(backend: str):
    if backend == "memory":
        return InMemoryRateLimitStore()
    if backend == "database":
        return DatabaseRateLimitStore()
    raise ValueError(f"Unknown RATE_LIMIT_BACKEND: {backend}")
