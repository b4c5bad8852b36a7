# Overview: Pytest coverage for the shared transaction scope.

"""
Transaction Scope Tests

run_atomic commits on success, rolls back on any error, and reports lock
timeouts and optimistic version conflicts as ContentionError.
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from bagledger.errors import ContentionError, InsufficientStockError
from bagledger.models import Organization
from bagledger.services.concurrency import is_lock_timeout, run_atomic


class _PgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


def _operational(message, pgcode=None):
    orig = _PgError(message, pgcode) if pgcode else Exception(message)
    return OperationalError("UPDATE organization_stock SET available_bags=?", {}, orig)


def _add_org_then_raise(db_session, exc):
    def _op():
        db_session.add(Organization(name="Never Saved", code="GHOST"))
        db_session.flush()
        raise exc
    return _op


def _ghost_count(db_session):
    return db_session.query(Organization).filter_by(code="GHOST").count()


class TestRunAtomic:

    def test_commits_on_success(self, db_session):
        def _op():
            org = Organization(name="Saved", code="SAVED")
            db_session.add(org)
            return org

        org = run_atomic(_op)
        db_session.rollback()

        assert org.id is not None
        assert db_session.query(Organization).filter_by(code="SAVED").count() == 1

    def test_stale_data_is_contention(self, db_session):
        with pytest.raises(ContentionError) as exc:
            run_atomic(_add_org_then_raise(db_session, StaleDataError("version mismatch")))

        assert isinstance(exc.value.__cause__, StaleDataError)
        assert exc.value.status_code == 503
        assert _ghost_count(db_session) == 0

    def test_sqlite_busy_is_contention(self, db_session):
        with pytest.raises(ContentionError):
            run_atomic(_add_org_then_raise(db_session, _operational("database is locked")))
        assert _ghost_count(db_session) == 0

    def test_postgres_lock_not_available_is_contention(self, db_session):
        error = _operational("canceling statement due to lock timeout", pgcode="55P03")
        with pytest.raises(ContentionError):
            run_atomic(_add_org_then_raise(db_session, error))
        assert _ghost_count(db_session) == 0

    def test_other_operational_errors_pass_through(self, db_session):
        error = _operational("disk I/O error")
        with pytest.raises(OperationalError) as exc:
            run_atomic(_add_org_then_raise(db_session, error))

        assert exc.value is error
        assert _ghost_count(db_session) == 0

    def test_ledger_errors_roll_back_unchanged(self, db_session):
        error = InsufficientStockError("Insufficient bags in stock. Available: 0, requested: 1")
        with pytest.raises(InsufficientStockError) as exc:
            run_atomic(_add_org_then_raise(db_session, error))

        assert exc.value is error
        assert _ghost_count(db_session) == 0


class TestIsLockTimeout:

    @pytest.mark.parametrize("message", ["database is locked", "Lock wait timeout exceeded; try restarting"])
    def test_lock_messages(self, message):
        assert is_lock_timeout(_operational(message)) is True

    def test_pgcode(self):
        assert is_lock_timeout(_operational("could not obtain lock", pgcode="55P03")) is True

    def test_unrelated_error(self):
        assert is_lock_timeout(_operational("no such table: bag_issues")) is False
