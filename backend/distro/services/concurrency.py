# Overview: Service-layer operations for concurrency; transaction boundaries, row locks and retry.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    takes the database write lock up front instead.
    Locked rows are re-read even if the session already holds them.
    """
    return query.with_for_update().populate_existing()


def begin_write_transaction() -> None:
    """
    Open the transaction as a writer before the first read.

    On SQLite this issues BEGIN IMMEDIATE so that two concurrent writers
    serialize on the database lock instead of both reading a stale balance.
    Other dialects rely on lock_for_update() row locks.
    """
    if db.engine.dialect.name != "sqlite":
        return
    # The ORM transaction may already be open from earlier reads (identity
    # lookups) while the driver connection is still in autocommit.
    dbapi_connection = db.session.connection().connection.dbapi_connection
    if not dbapi_connection.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def _retry_settings(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    config = current_app.config
    if attempts is None:
        attempts = config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = config.get("LEDGER_RETRY_BACKOFF", 0.1)
    return max(1, int(attempts)), float(backoff_base)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Any failure rolls the session back so no partial stock or ledger write
    survives. OperationalError (locks, deadlocks) and StaleDataError
    (optimistic version_id conflicts) are retried; when attempts run out the
    caller gets a retryable ConflictError.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConflictError(
                    "Concurrent modification detected, please retry",
                    details={"attempts": attempts, "reason": exc.__class__.__name__},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
