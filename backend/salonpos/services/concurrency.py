# Overview: Retry and locking helpers shared by the ledger write paths.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Lock the selected ledger rows until commit.

    SQLite ignores SELECT ... FOR UPDATE (its writes are serialized anyway);
    Postgres honors it, so two refunds of one sale queue up.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Run one write unit, retrying on lock contention and version conflicts.

    `func` must do its own commit. Between attempts the session is rolled
    back so each retry starts from fresh rows. Domain errors raised by
    `func` are not retried.
    """
    if attempts is None:
        attempts = current_app.config.get("WRITE_RETRY_ATTEMPTS", 3)

    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts:
                raise
            current_app.logger.warning(
                "Ledger write conflict (%s), retry %s/%s",
                type(exc).__name__, attempt, attempts - 1,
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
