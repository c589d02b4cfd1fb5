# Overview: Row locking and bounded retry for settlement and register operations.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConcurrencyConflict


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the version_id column on the
    locked rows still detects lost updates there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a unit of work as one transaction, retrying on lock/version conflicts.

    Every failure rolls the session back, so nothing from a failed attempt is
    ever committed. Business errors propagate immediately; only
    OperationalError (locks, deadlocks) and StaleDataError (optimistic
    version mismatch) are retried. Once attempts are exhausted the conflict
    surfaces as ConcurrencyConflict.
    """
    if attempts is None:
        attempts = current_app.config.get("SETTLEMENT_RETRY_ATTEMPTS", 3)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConcurrencyConflict(
                    "Concurrent update detected, please retry the operation"
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
