# Overview: Transaction template, row locking, and retry helpers shared by services.

from __future__ import annotations

import time
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import Conflict, Internal, OrderEaseError
from ..extensions import db

T = TypeVar("T")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; with_transaction(immediate=True)
    takes the database write lock up front there instead.
    """
    return query.with_for_update()


def _begin_immediate() -> None:
    """On SQLite, grab the write lock before the first read of the transaction."""
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.driver_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def with_transaction(func: Callable[[], T], *, immediate: bool = False) -> T:
    """
    Run func inside one database transaction.

    Commits when func returns, rolls back on any exception and re-raises.
    Domain errors propagate unchanged; unique-key violations become
    Conflict; any other database failure is logged and becomes Internal.
    """
    try:
        if immediate:
            _begin_immediate()
        result = func()
        db.session.commit()
        return result
    except OrderEaseError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.warning("Integrity violation: %s", exc.orig)
        raise Conflict("Resource already exists or is still referenced") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Database failure inside transaction")
        raise Internal() from exc
    except BaseException:
        db.session.rollback()
        raise


def run_with_retry(func: Callable[[], T], *, attempts: int = 3, backoff_base: float = 0.1) -> T:
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, busy database) and StaleDataError.
    Internal errors raised by with_transaction are retried when their cause
    is one of those.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, Internal) as exc:
            cause = exc.__cause__ if isinstance(exc, Internal) else exc
            if not isinstance(cause, (OperationalError, StaleDataError)):
                raise
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
