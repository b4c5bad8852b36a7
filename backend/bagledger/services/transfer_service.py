# backend/bagledger/services/transfer_service.py
"""
Driver-to-driver bag transfer service.

WHY: Drivers hand bags to each other in the field without returning them to
the depot. The source driver is charged when the transfer is initiated so the
bags cannot be issued twice while the move is in flight.

LIFECYCLE:
1. PENDING: Source driver's available bags reduced provisionally
2. COMPLETED: Destination driver credited (terminal)
3. FAILED: Provisional deduction returned to the source driver (terminal)
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select

from ..errors import InvalidArgumentError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import BagTransfer, Driver
from ..time_utils import utcnow
from ..validation import coerce_int, like_pattern, optional_text, require_positive_count
from .allocation_service import credit_driver, debit_driver, ensure_balance, get_balance
from .concurrency import lock_for_update, run_atomic
from .movement_service import (
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_TRANSFER_REVERSED,
    append_movement,
)
from .tenant_service import require_driver_in_org


# Transfer status constants
TRANSFER_STATUS_PENDING = "pending"
TRANSFER_STATUS_COMPLETED = "completed"
TRANSFER_STATUS_FAILED = "failed"
TRANSFER_STATUSES = {TRANSFER_STATUS_PENDING, TRANSFER_STATUS_COMPLETED, TRANSFER_STATUS_FAILED}


def _get_transfer_for_update(org_id: int, transfer_id: int) -> BagTransfer:
    transfer = lock_for_update(
        db.session.query(BagTransfer).filter_by(id=transfer_id, org_id=org_id)
    ).first()
    if not transfer:
        raise NotFoundError(f"Transfer {transfer_id} not found")
    if transfer.status != TRANSFER_STATUS_PENDING:
        raise InvalidStateError(f"Cannot change transfer in {transfer.status} status")
    return transfer


def initiate_transfer(
    org_id: int,
    from_driver_id,
    to_driver_id,
    count,
    *,
    notes: str | None = None,
    actor: str | None = None,
    now: datetime | None = None,
) -> BagTransfer:
    """
    Create a pending transfer and deduct the bags from the source driver.

    Args:
        org_id: Organization both drivers belong to
        from_driver_id: Driver giving the bags
        to_driver_id: Driver receiving the bags
        count: Number of bags

    Returns:
        BagTransfer: The pending transfer

    Raises:
        InvalidArgumentError: Same driver on both sides or non-positive count
        NotFoundError: Unknown driver
        InsufficientDriverStockError: Source driver cannot cover count
    """
    from_driver_id = coerce_int(from_driver_id, "from_driver_id")
    to_driver_id = coerce_int(to_driver_id, "to_driver_id")
    count = require_positive_count(count)
    if from_driver_id == to_driver_id:
        raise InvalidArgumentError("Cannot transfer bags to the same driver")

    def _op():
        moment = now or utcnow()
        require_driver_in_org(from_driver_id, org_id)
        require_driver_in_org(to_driver_id, org_id)

        balance = get_balance(from_driver_id, lock=True)
        period = debit_driver(balance, count, moment)

        transfer = BagTransfer(
            org_id=org_id,
            from_driver_id=from_driver_id,
            to_driver_id=to_driver_id,
            number_of_bags=count,
            status=TRANSFER_STATUS_PENDING,
            notes=optional_text(notes),
            created_by=actor,
            created_at=moment,
        )
        db.session.add(transfer)
        db.session.flush()  # Get ID

        append_movement(
            org_id=org_id,
            movement_type=MOVEMENT_TRANSFER_OUT,
            driver_delta=-count,
            driver_id=from_driver_id,
            allocation_id=period.id,
            transfer_id=transfer.id,
            actor=actor,
            occurred_at=moment,
        )
        return transfer

    return run_atomic(_op)


def complete_transfer(
    org_id: int,
    transfer_id: int,
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> BagTransfer:
    """
    Credit the destination driver and close the transfer.

    Raises:
        NotFoundError: Unknown transfer
        InvalidStateError: Transfer is not pending (never applied twice)
    """
    def _op():
        moment = now or utcnow()
        transfer = _get_transfer_for_update(org_id, transfer_id)

        balance = ensure_balance(org_id, transfer.to_driver_id, lock=True)
        period = credit_driver(balance, transfer.number_of_bags, moment, actor)

        transfer.status = TRANSFER_STATUS_COMPLETED
        transfer.completed_at = moment

        append_movement(
            org_id=org_id,
            movement_type=MOVEMENT_TRANSFER_IN,
            driver_delta=transfer.number_of_bags,
            driver_id=transfer.to_driver_id,
            allocation_id=period.id,
            transfer_id=transfer.id,
            actor=actor,
            occurred_at=moment,
        )
        return transfer

    return run_atomic(_op)


def fail_transfer(
    org_id: int,
    transfer_id: int,
    notes: str | None = None,
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> BagTransfer:
    """
    Mark a pending transfer failed and give the bags back to the source driver.

    Raises:
        NotFoundError: Unknown transfer
        InvalidStateError: Transfer is not pending
    """
    def _op():
        moment = now or utcnow()
        transfer = _get_transfer_for_update(org_id, transfer_id)

        balance = ensure_balance(org_id, transfer.from_driver_id, lock=True)
        period = credit_driver(balance, transfer.number_of_bags, moment, actor)

        transfer.status = TRANSFER_STATUS_FAILED
        transfer.failed_at = moment
        note = optional_text(notes)
        if note:
            transfer.notes = f"{transfer.notes}\n{note}" if transfer.notes else note

        append_movement(
            org_id=org_id,
            movement_type=MOVEMENT_TRANSFER_REVERSED,
            driver_delta=transfer.number_of_bags,
            driver_id=transfer.from_driver_id,
            allocation_id=period.id,
            transfer_id=transfer.id,
            reason=note,
            actor=actor,
            occurred_at=moment,
        )
        return transfer

    return run_atomic(_op)


def transfers_query(
    org_id: int,
    *,
    status: str | None = None,
    driver_id: int | None = None,
    search: str | None = None,
):
    """Transfers of an organization, newest first."""
    query = db.session.query(BagTransfer).filter(BagTransfer.org_id == org_id)
    if status:
        query = query.filter(BagTransfer.status == status)
    if driver_id:
        query = query.filter(or_(BagTransfer.from_driver_id == driver_id, BagTransfer.to_driver_id == driver_id))
    if search:
        matching = select(Driver.id).where(
            Driver.org_id == org_id,
            Driver.name.ilike(like_pattern(search), escape="\\"),
        )
        query = query.filter(or_(BagTransfer.from_driver_id.in_(matching), BagTransfer.to_driver_id.in_(matching)))
    return query.order_by(BagTransfer.created_at.desc(), BagTransfer.id.desc())
