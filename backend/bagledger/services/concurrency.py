# Overview: Transaction scope and row locking shared by every ledger mutation.

from __future__ import annotations

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ContentionError
from ..extensions import db

# PostgreSQL lock_not_available, MySQL lock wait timeout
_LOCK_TIMEOUT_PGCODES = {"55P03"}
_LOCK_TIMEOUT_MARKERS = ("database is locked", "lock timeout", "lock wait timeout")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id columns and the single-writer database lock
    provide the same protection.
    """
    return query.with_for_update()


def _apply_lock_timeout() -> None:
    """Bound how long the current transaction may wait on a row lock."""
    timeout_ms = int(current_app.config.get("BAG_LOCK_TIMEOUT_MS", 5000))
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        db.session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))
    elif dialect in ("mysql", "mariadb"):
        seconds = max(1, timeout_ms // 1000)
        db.session.execute(text(f"SET SESSION innodb_lock_wait_timeout = {seconds}"))
    # SQLite: the driver's busy timeout already bounds the wait.


def is_lock_timeout(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in _LOCK_TIMEOUT_PGCODES:
        return True
    message = str(orig if orig is not None else exc).lower()
    return any(marker in message for marker in _LOCK_TIMEOUT_MARKERS)


def run_atomic(func):
    """
    Execute a ledger mutation in one transaction.

    Commits when func returns, rolls back on any error. Lock timeouts and
    optimistic version conflicts surface as ContentionError; nothing is
    retried here because a mutating call may not be safe to repeat.
    """
    try:
        _apply_lock_timeout()
        result = func()
        db.session.commit()
        return result
    except StaleDataError as exc:
        db.session.rollback()
        raise ContentionError(
            "The bag ledger was changed by another request; refresh and try again"
        ) from exc
    except OperationalError as exc:
        db.session.rollback()
        if is_lock_timeout(exc):
            raise ContentionError(
                "The bag ledger is busy; check the current balance before retrying"
            ) from exc
        raise
    except Exception:
        db.session.rollback()
        raise
