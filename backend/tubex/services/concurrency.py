# Overview: Transaction primitive, row-lock helpers and the caller-side retry policy.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransactionConflict
from ..extensions import db


logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATEs for serialization failure, deadlock and lock timeout
_CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}
_CONFLICT_MARKERS = ("deadlock", "database is locked", "could not serialize", "lock timeout")


def lock_for_update(query):
    """
    Pessimistic write lock (SELECT ... FOR UPDATE).

    NOTE: SQLite ignores row locks, PostgreSQL/MySQL honour them.
    """
    return query.with_for_update()


def lock_for_read(query):
    """Pessimistic read lock (SELECT ... FOR SHARE): blocks writers, not readers."""
    return query.with_for_update(read=True)


def apply_lock(query, mode: str | None):
    if mode is None:
        return query
    if mode == "pessimistic_read":
        return lock_for_read(query)
    if mode == "pessimistic_write":
        return lock_for_update(query)
    raise ValueError(f"unknown lock mode: {mode}")


def is_conflict_error(exc: BaseException) -> bool:
    """True when a DB error is a lost lock/serialization race rather than a bug."""
    if isinstance(exc, StaleDataError):
        return True
    if not isinstance(exc, DBAPIError):
        return False
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _CONFLICT_SQLSTATES:
        return True
    message = str(orig or exc).lower()
    return any(marker in message for marker in _CONFLICT_MARKERS)


def run_in_transaction(func):
    """
    Run func() as one atomic unit of work on the current session.

    Commits on success. On any exception the session is rolled back fully,
    so no partial write survives. Lock/serialization losers are re-raised as
    TransactionConflict; everything else propagates unchanged.

    No retry happens here; see run_with_retry for the caller-side policy.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except Exception as exc:
        db.session.rollback()
        if is_conflict_error(exc):
            logger.warning("Transaction conflict, rolled back: %s", exc)
            raise TransactionConflict("Concurrent update conflict, please retry") from exc
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Caller-side retry for TransactionConflict only.

    Domain errors (InsufficientStock, NotFound, ...) are never retried.
    """
    for attempt in range(attempts):
        try:
            return func()
        except TransactionConflict:
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
