# Overview: Transaction boundary helpers; every ledger write goes through run_in_transaction.

from __future__ import annotations

import random
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflict
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    populate_existing() forces a fresh read even when the row is already in
    the identity map, so balances are never taken from a stale cached object.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id column
    turns a lost update into StaleDataError, which run_in_transaction retries.
    """
    return query.with_for_update().populate_existing()


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run func() and commit, as one atomic unit.

    - OperationalError (locks, deadlocks) and StaleDataError (optimistic
      locking conflicts) roll back and re-run func from scratch, so every
      retry re-reads balances.
    - Any other exception rolls back and propagates unchanged.
    - When the retry budget is spent, ConcurrencyConflict is raised.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF", 0.05)
    attempts = max(1, int(attempts))

    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.error("Transaction retry budget exhausted after %d attempts: %s", attempts, exc)
                raise ConcurrencyConflict(
                    "The account was modified concurrently; please retry",
                    attempts=attempts,
                ) from exc
            current_app.logger.warning("Concurrent write detected (attempt %d/%d), retrying", attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt) * (1 + random.random()))
        except Exception:
            db.session.rollback()
            raise
