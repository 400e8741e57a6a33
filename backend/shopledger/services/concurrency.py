# Overview: Transaction helpers shared by the ledger services: row locks, write
# transactions, and bounded retries on lock contention and identifier collisions.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, DuplicateIdentifierError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Open the current transaction as a writer.

    On SQLite this issues BEGIN IMMEDIATE so concurrent writers serialize on
    the database lock up front instead of failing at COMMIT time. A no-op on
    other dialects and when the connection already holds a transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_conn = db.session.connection().connection.dbapi_connection
    if not getattr(dbapi_conn, "in_transaction", False):
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
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
            current_app.logger.warning("Retrying after concurrency failure (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_write(func, *, attempts: int = 3):
    """run_with_retry for a self-committing write; any failure leaves the session rolled back."""
    try:
        return run_with_retry(func, attempts=attempts)
    except Exception:
        db.session.rollback()
        raise


def is_unique_violation(exc: IntegrityError, *markers: str) -> bool:
    """True when the IntegrityError names one of the given columns/constraints."""
    message = str(getattr(exc, "orig", exc)).lower()
    if "unique" not in message and "duplicate" not in message:
        return False
    return any(marker.lower() in message for marker in markers)


def flush_unique(namespace: str, *markers: str, identifier: str | None = None) -> None:
    """
    Flush pending rows, translating a unique violation on one of the
    identifier columns into DuplicateIdentifierError.
    """
    try:
        db.session.flush()
    except IntegrityError as exc:
        if is_unique_violation(exc, *markers):
            raise DuplicateIdentifierError(namespace, identifier) from exc
        raise


def run_with_identifier_retry(func, *, on_collision=None, attempts: int | None = None):
    """
    Run a whole write transaction, retrying it when a generated identifier
    collides with an existing row.

    `func` must be re-runnable from scratch (it opens, fills and commits its
    own transaction). `on_collision(exc)` runs after the rollback and before
    the next attempt, typically to resync the sequence counter. After the
    last attempt the collision surfaces as ConflictError.
    """
    if attempts is None:
        attempts = int(current_app.config.get("SEQUENCE_RETRY_ATTEMPTS", 3))
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return run_with_retry(func)
        except DuplicateIdentifierError as exc:
            db.session.rollback()
            current_app.logger.warning(
                "Identifier collision in %s (%s), attempt %s of %s",
                exc.namespace, exc.identifier, attempt + 1, attempts,
            )
            if attempt >= attempts - 1:
                raise ConflictError(
                    "Could not allocate a unique identifier, please retry",
                    details={"namespace": exc.namespace},
                ) from exc
            if on_collision is not None:
                on_collision(exc)
        except Exception:
            db.session.rollback()
            raise
