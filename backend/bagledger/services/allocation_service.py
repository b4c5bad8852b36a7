"""
Driver bag allocation ledger.

WHY: Drivers carry a finite stock of reusable bags. Each allocation from the
organization opens a new period for the driver; whatever the driver still
holds is carried into it.

DESIGN:
- DriverBalance is the per-driver aggregate and the lock target
- DriverAllocation rows are its periods: one "recent", the rest "previous"
- available_bags = allocated_bags - used_bags, never stored, never negative
- Transfers and returns adjust allocated_bags of the recent period
- Issuance consumption increments used_bags of the recent period

LOCK ORDER: organization stock before driver balances; several balances in
ascending driver_id order.
"""

from __future__ import annotations

from datetime import datetime

from ..errors import InsufficientDriverStockError
from ..extensions import db
from ..models import Driver, DriverAllocation, DriverBalance
from ..time_utils import utcnow
from ..validation import like_pattern, require_positive_count
from .concurrency import lock_for_update, run_atomic
from .movement_service import MOVEMENT_ALLOCATE, MOVEMENT_ISSUE, append_movement
from .stock_service import debit_stock, ensure_stock
from .tenant_service import require_driver_in_org


ALLOCATION_STATUS_RECENT = "recent"
ALLOCATION_STATUS_PREVIOUS = "previous"
ALLOCATION_STATUSES = {ALLOCATION_STATUS_RECENT, ALLOCATION_STATUS_PREVIOUS}


def get_balance(driver_id: int, *, lock: bool = False) -> DriverBalance | None:
    query = db.session.query(DriverBalance).filter_by(driver_id=driver_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def ensure_balance(org_id: int, driver_id: int, *, lock: bool = True) -> DriverBalance:
    balance = get_balance(driver_id, lock=lock)
    if balance is None:
        balance = DriverBalance(org_id=org_id, driver_id=driver_id)
        db.session.add(balance)
        db.session.flush()
    return balance


def get_available_bags(driver_id: int) -> int:
    balance = get_balance(driver_id)
    return balance.available_bags if balance else 0


def _touch(balance: DriverBalance, now: datetime) -> None:
    # Bumps version_id so concurrent writers to the same driver conflict.
    balance.updated_at = now


def _open_period(
    balance: DriverBalance,
    *,
    allocated_bags: int,
    bags_from_previous: int,
    now: datetime,
    actor: str | None,
) -> DriverAllocation:
    """Archive the recent period (if any) and start a new one."""
    current = balance.current_period
    if current is not None:
        current.status = ALLOCATION_STATUS_PREVIOUS
        current.archived_at = now

    period = DriverAllocation(
        org_id=balance.org_id,
        driver_id=balance.driver_id,
        balance=balance,
        allocated_bags=allocated_bags,
        used_bags=0,
        bags_from_previous=bags_from_previous,
        status=ALLOCATION_STATUS_RECENT,
        created_at=now,
        created_by=actor,
    )
    db.session.add(period)
    db.session.flush()

    balance.current_period_id = period.id
    _touch(balance, now)
    return period


def require_driver_available(balance: DriverBalance | None, count: int) -> DriverAllocation:
    """Return the recent period if it can cover count bags."""
    period = balance.current_period if balance is not None else None
    available = period.available_bags if period is not None else 0
    if period is None or count > available:
        raise InsufficientDriverStockError(
            f"Driver has insufficient bags. Available: {available}, requested: {count}"
        )
    return period


def debit_driver(balance: DriverBalance | None, count: int, now: datetime) -> DriverAllocation:
    """Move bags out of the driver's custody (transfer out, return)."""
    period = require_driver_available(balance, count)
    period.allocated_bags -= count
    _touch(balance, now)
    return period


def credit_driver(balance: DriverBalance, count: int, now: datetime, actor: str | None = None) -> DriverAllocation:
    """
    Move bags into the driver's custody (transfer in, reversed transfer).

    A driver who never had an allocation gets an empty recent period first.
    """
    period = balance.current_period
    if period is None:
        period = _open_period(balance, allocated_bags=0, bags_from_previous=0, now=now, actor=actor)
    period.allocated_bags += count
    _touch(balance, now)
    return period


def apply_consumption(balance: DriverBalance | None, count: int, now: datetime) -> DriverAllocation:
    """Mark bags of the recent period as used (handed to a client)."""
    period = require_driver_available(balance, count)
    period.used_bags += count
    _touch(balance, now)
    return period


def allocate_bags(
    org_id: int,
    driver_id: int,
    count,
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> DriverAllocation:
    """
    Allocate bags from organization stock to a driver.

    Archives the driver's recent period and opens a new one whose
    bags_from_previous is the archived period's leftover and whose
    allocated_bags is count + bags_from_previous.

    Raises:
        InvalidArgumentError: If count is not a positive integer
        NotFoundError: If the driver is not in the organization
        InsufficientStockError: If count exceeds organization stock
    """
    count = require_positive_count(count)

    def _op():
        moment = now or utcnow()
        require_driver_in_org(driver_id, org_id)

        stock = ensure_stock(org_id, lock=True)
        debit_stock(stock, count)

        balance = ensure_balance(org_id, driver_id, lock=True)
        carried = balance.available_bags
        period = _open_period(
            balance,
            allocated_bags=count + carried,
            bags_from_previous=carried,
            now=moment,
            actor=actor,
        )

        append_movement(
            org_id=org_id,
            movement_type=MOVEMENT_ALLOCATE,
            stock_delta=-count,
            driver_delta=count,
            driver_id=driver_id,
            allocation_id=period.id,
            actor=actor,
            occurred_at=moment,
        )
        return period

    return run_atomic(_op)


def consume_for_issuance(
    org_id: int,
    driver_id: int,
    count,
    *,
    issue_id: int | None = None,
    actor: str | None = None,
    now: datetime | None = None,
) -> DriverAllocation:
    """
    Consume bags from a driver's recent period in a transaction of its own.

    Verification uses apply_consumption inside its own transaction instead,
    so that consumption and the verified flag commit together.

    Raises:
        InsufficientDriverStockError: If count exceeds the driver's available bags
    """
    count = require_positive_count(count)

    def _op():
        moment = now or utcnow()
        require_driver_in_org(driver_id, org_id)
        balance = get_balance(driver_id, lock=True)
        period = apply_consumption(balance, count, moment)
        append_movement(
            org_id=org_id,
            movement_type=MOVEMENT_ISSUE,
            driver_delta=-count,
            driver_id=driver_id,
            allocation_id=period.id,
            issue_id=issue_id,
            actor=actor,
            occurred_at=moment,
        )
        return period

    return run_atomic(_op)


def allocations_query(org_id: int, *, search: str | None = None, status: str | None = None):
    """Allocation periods of an organization, newest first, optionally filtered."""
    query = (
        db.session.query(DriverAllocation)
        .join(Driver, Driver.id == DriverAllocation.driver_id)
        .filter(DriverAllocation.org_id == org_id)
    )
    if search:
        query = query.filter(Driver.name.ilike(like_pattern(search), escape="\\"))
    if status:
        query = query.filter(DriverAllocation.status == status)
    return query.order_by(DriverAllocation.created_at.desc(), DriverAllocation.id.desc())


def get_allocations_for_organization(org_id: int, search: str | None = None) -> list[DriverAllocation]:
    """All allocation periods (recent and previous), filtered by driver name."""
    return allocations_query(org_id, search=search).all()
