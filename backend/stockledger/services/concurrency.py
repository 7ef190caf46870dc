# Overview: Service-layer helpers for concurrency; atomic increments, row locks and retries.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def increment(instance, field: str, delta) -> None:
    """
    Additive update of a counter column (`col = col + delta` in SQL).

    The value is computed by the database, never read-modify-written in
    Python, so concurrent writers cannot lose each other's deltas. The
    attribute is expired by the flush and reloads on next access.
    """
    if not delta:
        return
    column = getattr(type(instance), field)
    setattr(instance, field, column + delta)
    db.session.flush()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (database locked) and StaleDataError.
    The whole operation is re-run from the start after a rollback, so
    `func` must be a complete unit of work. Any other failure rolls the
    unit of work back and propagates.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
