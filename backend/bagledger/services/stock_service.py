# Overview: Organization-level bag stock (add, remove, read).

from __future__ import annotations

from datetime import datetime

from ..errors import InsufficientStockError
from ..extensions import db
from ..models import OrganizationStock
from ..time_utils import utcnow
from ..validation import require_positive_count, require_text
from .concurrency import lock_for_update, run_atomic
from .movement_service import MOVEMENT_ADD, MOVEMENT_REMOVE, append_movement
from .tenant_service import require_organization


def get_stock(org_id: int) -> OrganizationStock | None:
    return db.session.query(OrganizationStock).filter_by(org_id=org_id).first()


def get_available_bags(org_id: int) -> int:
    stock = get_stock(org_id)
    return stock.available_bags if stock else 0


def ensure_stock(org_id: int, *, lock: bool = False) -> OrganizationStock:
    """
    Return the organization's stock row, creating an empty one on first use.

    With lock=True the row is read with SELECT ... FOR UPDATE so the caller can
    check-then-act against a stable balance.
    """
    query = db.session.query(OrganizationStock).filter_by(org_id=org_id)
    if lock:
        query = lock_for_update(query)
    stock = query.first()
    if stock is None:
        require_organization(org_id)
        stock = OrganizationStock(org_id=org_id, available_bags=0)
        db.session.add(stock)
        db.session.flush()
    return stock


def debit_stock(stock: OrganizationStock, count: int) -> None:
    """Take bags out of a locked stock row, refusing to go negative."""
    if count > stock.available_bags:
        raise InsufficientStockError(
            f"Insufficient bags in stock. Available: {stock.available_bags}, requested: {count}"
        )
    stock.available_bags -= count


def credit_stock(stock: OrganizationStock, count: int) -> None:
    stock.available_bags += count


def add_bags(
    org_id: int,
    count,
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> OrganizationStock:
    """
    Add bags to organization stock.

    Args:
        org_id: Organization receiving the bags
        count: Positive number of bags
        actor: Who performed the change (audit)

    Returns:
        OrganizationStock: The updated stock row

    Raises:
        InvalidArgumentError: If count is not a positive integer
    """
    count = require_positive_count(count)

    def _op():
        stock = ensure_stock(org_id, lock=True)
        credit_stock(stock, count)
        append_movement(
            org_id=org_id,
            movement_type=MOVEMENT_ADD,
            stock_delta=count,
            actor=actor,
            occurred_at=now or utcnow(),
        )
        return stock

    return run_atomic(_op)


def remove_bags(
    org_id: int,
    count,
    reason,
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> OrganizationStock:
    """
    Remove bags from organization stock (damaged, lost, written off).

    Raises:
        InvalidArgumentError: If count is not positive or reason is empty
        InsufficientStockError: If count exceeds available stock (stock unchanged)
    """
    count = require_positive_count(count)
    reason = require_text(reason, "reason")

    def _op():
        stock = ensure_stock(org_id, lock=True)
        debit_stock(stock, count)
        append_movement(
            org_id=org_id,
            movement_type=MOVEMENT_REMOVE,
            stock_delta=-count,
            reason=reason,
            actor=actor,
            occurred_at=now or utcnow(),
        )
        return stock

    return run_atomic(_op)
