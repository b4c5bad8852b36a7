# Overview: Append-only bag movement log and the conservation audit built on it.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select

from ..extensions import db
from ..models import BagIssue, BagMovement, BagTransfer, DriverAllocation, DriverBalance, OrganizationStock
"""
Bag Movement Invariants (authoritative)

- Append-only: no updates or deletes of existing movements.
- Movements are written inside the same DB transaction as the mutation they record.
- SUM(stock_delta) for an organization equals its OrganizationStock.available_bags.
- SUM(driver_delta) for a driver equals the available bags of that driver's recent period.
- Only ADD and REMOVE change the organization's total bag count.
"""

MOVEMENT_ADD = "ADD"
MOVEMENT_REMOVE = "REMOVE"
MOVEMENT_ALLOCATE = "ALLOCATE"
MOVEMENT_ISSUE = "ISSUE"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_TRANSFER_REVERSED = "TRANSFER_REVERSED"
MOVEMENT_RETURN = "RETURN"

MOVEMENT_TYPES = {
    MOVEMENT_ADD,
    MOVEMENT_REMOVE,
    MOVEMENT_ALLOCATE,
    MOVEMENT_ISSUE,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_REVERSED,
    MOVEMENT_RETURN,
}


def append_movement(
    *,
    org_id: int,
    movement_type: str,
    stock_delta: int = 0,
    driver_delta: int = 0,
    driver_id: int | None = None,
    allocation_id: int | None = None,
    issue_id: int | None = None,
    transfer_id: int | None = None,
    reason: str | None = None,
    actor: str | None = None,
    occurred_at: datetime | None = None,
) -> BagMovement:
    """
    Append one movement row.

    - No domain logic here; callers have already validated and applied the change.
    - occurred_at is business time; created_at is system time (db default).
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"Unknown movement type {movement_type}")

    movement = BagMovement(
        org_id=org_id,
        movement_type=movement_type,
        stock_delta=stock_delta,
        driver_delta=driver_delta,
        driver_id=driver_id,
        allocation_id=allocation_id,
        issue_id=issue_id,
        transfer_id=transfer_id,
        reason=reason,
        actor=actor,
    )
    if occurred_at is not None:
        movement.occurred_at = occurred_at
    db.session.add(movement)
    db.session.flush()  # ensures movement.id is assigned without committing
    return movement


def stock_from_movements(org_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(BagMovement.stock_delta), 0)
    ).filter(BagMovement.org_id == org_id).scalar()
    return int(total or 0)


def driver_available_from_movements(driver_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(BagMovement.driver_delta), 0)
    ).filter(BagMovement.driver_id == driver_id).scalar()
    return int(total or 0)


def net_added_bags(org_id: int) -> int:
    """Bags that entered minus bags that left the organization through ADD/REMOVE."""
    total = db.session.query(
        func.coalesce(func.sum(BagMovement.stock_delta), 0)
    ).filter(
        BagMovement.org_id == org_id,
        BagMovement.movement_type.in_([MOVEMENT_ADD, MOVEMENT_REMOVE]),
    ).scalar()
    return int(total or 0)


def audit_organization(org_id: int) -> dict:
    """
    Reconcile cached balances against the movement log.

    Checks:
    - cached stock equals SUM(stock_delta)
    - each driver's recent period equals SUM(driver_delta) for that driver
    - conservation: bags added minus removed equals stock + driver custody
      + bags in pending transfers + bags consumed (SUM(used_bags))
    - SUM(used_bags) equals the bags taken by ISSUE movements
    - every verified issue has its ISSUE movement
    """
    stock_row = db.session.query(OrganizationStock).filter_by(org_id=org_id).first()
    cached_stock = stock_row.available_bags if stock_row else 0
    ledger_stock = stock_from_movements(org_id)

    driver_mismatches = []
    driver_custody = 0
    balances = db.session.query(DriverBalance).filter_by(org_id=org_id).all()
    for balance in balances:
        cached = balance.available_bags
        derived = driver_available_from_movements(balance.driver_id)
        driver_custody += cached
        if cached != derived:
            driver_mismatches.append({
                "driver_id": balance.driver_id,
                "cached_available_bags": cached,
                "movement_available_bags": derived,
            })

    in_transit = int(db.session.query(
        func.coalesce(func.sum(BagTransfer.number_of_bags), 0)
    ).filter(BagTransfer.org_id == org_id, BagTransfer.status == "pending").scalar() or 0)
    issued = int(db.session.query(
        func.coalesce(func.sum(BagIssue.number_of_bags_issued), 0)
    ).filter(BagIssue.org_id == org_id, BagIssue.is_verified.is_(True)).scalar() or 0)
    used = int(db.session.query(
        func.coalesce(func.sum(DriverAllocation.used_bags), 0)
    ).filter(DriverAllocation.org_id == org_id).scalar() or 0)
    consumed = -int(db.session.query(
        func.coalesce(func.sum(BagMovement.driver_delta), 0)
    ).filter(BagMovement.org_id == org_id, BagMovement.movement_type == MOVEMENT_ISSUE).scalar() or 0)

    issue_movements = select(BagMovement.issue_id).where(
        BagMovement.org_id == org_id,
        BagMovement.movement_type == MOVEMENT_ISSUE,
        BagMovement.issue_id.is_not(None),
    )
    unlinked_issues = [
        issue_id for (issue_id,) in db.session.query(BagIssue.id).filter(
            BagIssue.org_id == org_id,
            BagIssue.is_verified.is_(True),
            BagIssue.id.not_in(issue_movements),
        ).order_by(BagIssue.id)
    ]

    net_added = net_added_bags(org_id)
    accounted = cached_stock + driver_custody + in_transit + used

    return {
        "organization_id": org_id,
        "cached_stock": cached_stock,
        "movement_stock": ledger_stock,
        "driver_custody": driver_custody,
        "in_transit": in_transit,
        "issued_bags": issued,
        "used_bags": used,
        "consumed_bags": consumed,
        "net_added": net_added,
        "accounted": accounted,
        "driver_mismatches": driver_mismatches,
        "unlinked_issues": unlinked_issues,
        "consistent": (
            cached_stock == ledger_stock
            and not driver_mismatches
            and accounted == net_added
            and used == consumed
            and not unlinked_issues
        ),
    }
