"""
Bag Return Processor

WHY: Bags come back from drivers at the end of a route, damaged or unused.
A return moves them out of the driver's custody and back into organization
stock in one step, so the total number of bags never changes.

DESIGN PRINCIPLES:
- Reason is mandatory (audit)
- One movement row carries both sides: stock_delta = +n, driver_delta = -n
- Stock and driver balance locked in the standard order (stock first)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..models import DriverAllocation, OrganizationStock
from ..time_utils import to_utc_z, utcnow
from ..validation import require_positive_count, require_text
from .allocation_service import debit_driver, get_balance
from .concurrency import run_atomic
from .movement_service import MOVEMENT_RETURN, append_movement
from .stock_service import credit_stock, ensure_stock
from .tenant_service import require_driver_in_org


@dataclass
class ReturnResult:
    stock: OrganizationStock
    allocation: DriverAllocation
    number_of_bags: int
    reason: str
    processed_at: datetime

    def to_dict(self) -> dict:
        return {
            "driver_id": self.allocation.driver_id,
            "number_of_bags": self.number_of_bags,
            "reason": self.reason,
            "processed_at": to_utc_z(self.processed_at),
            "stock": self.stock.to_dict(),
            "allocation": self.allocation.to_dict(),
        }


def process_return(
    org_id: int,
    driver_id: int,
    count,
    reason,
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> ReturnResult:
    """
    Return bags from a driver to organization stock.

    Args:
        org_id: Organization receiving the bags back
        driver_id: Driver returning the bags
        count: Number of bags returned
        reason: Why the bags came back (e.g. "damaged", "end of route")

    Returns:
        ReturnResult: Updated stock and driver allocation

    Raises:
        InvalidArgumentError: If count is not positive or reason is empty
        NotFoundError: If the driver is not in the organization
        InsufficientDriverStockError: If count exceeds the driver's available bags
    """
    count = require_positive_count(count)
    reason = require_text(reason, "reason")

    def _op():
        moment = now or utcnow()
        require_driver_in_org(driver_id, org_id)

        stock = ensure_stock(org_id, lock=True)
        balance = get_balance(driver_id, lock=True)
        period = debit_driver(balance, count, moment)
        credit_stock(stock, count)

        append_movement(
            org_id=org_id,
            movement_type=MOVEMENT_RETURN,
            stock_delta=count,
            driver_delta=-count,
            driver_id=driver_id,
            allocation_id=period.id,
            reason=reason,
            actor=actor,
            occurred_at=moment,
        )
        return ReturnResult(
            stock=stock,
            allocation=period,
            number_of_bags=count,
            reason=reason,
            processed_at=moment,
        )

    return run_atomic(_op)
