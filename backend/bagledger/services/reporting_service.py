# Overview: Read-only views over the bag ledgers for the organization console.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, or_, select

from ..errors import InvalidArgumentError
from ..extensions import db
from ..models import BagIssue, BagMovement, BagTransfer, Client, Driver, DriverAllocation
from ..time_utils import utcnow
from ..validation import like_pattern
from .allocation_service import ALLOCATION_STATUS_RECENT, ALLOCATION_STATUSES, allocations_query
from .movement_service import MOVEMENT_TYPES
from .stock_service import get_stock
from .transfer_service import TRANSFER_STATUS_PENDING, TRANSFER_STATUSES, transfers_query
"""
Reporting Facade (authoritative)

- No mutation capability; reads may run without locks and tolerate brief staleness.
- Every list is paginated: page is 1-indexed, limit is clamped to BAG_MAX_PAGE_SIZE.
- Issuance summary counters are computed from the rows of the returned page,
  not from the whole filtered set. The organization-wide figures live in
  get_bag_overview().
"""

ISSUE_STATUS_VERIFIED = "verified"
ISSUE_STATUS_PENDING = "pending"
ISSUE_STATUS_EXPIRED = "expired"
ISSUE_STATUSES = {ISSUE_STATUS_VERIFIED, ISSUE_STATUS_PENDING, ISSUE_STATUS_EXPIRED}


def _page_args(page: int | None, limit: int | None) -> tuple[int, int]:
    default_limit = int(current_app.config.get("BAG_DEFAULT_PAGE_SIZE", 20))
    max_limit = int(current_app.config.get("BAG_MAX_PAGE_SIZE", 100))
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or default_limit), 1), max_limit)
    return page, limit


def paginate(query, page: int | None, limit: int | None) -> tuple[list, dict]:
    page, limit = _page_args(page, limit)
    total = query.order_by(None).count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, {
        "currentPage": page,
        "totalPages": total_pages,
        "totalItems": total,
        "limit": limit,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }


def _require_choice(value: str | None, choices: set[str], field: str, *, upper: bool = False) -> str | None:
    if value is None or not value.strip():
        return None
    value = value.strip().upper() if upper else value.strip().lower()
    if value not in choices:
        raise InvalidArgumentError(f"{field} must be one of: {', '.join(sorted(choices))}")
    return value


def issue_summary(issues: list[BagIssue]) -> dict:
    """Counters over the given rows only (the current page)."""
    return {
        "scope": "page",
        "total_issues": len(issues),
        "total_bags": sum(issue.number_of_bags_issued for issue in issues),
        "verified_count": sum(1 for issue in issues if issue.is_verified),
        "pending_count": sum(1 for issue in issues if not issue.is_verified),
    }


def list_issuances(
    org_id: int,
    *,
    page: int | None = None,
    limit: int | None = None,
    search: str | None = None,
    status: str | None = None,
    client_id: int | None = None,
    driver_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Bag distribution history.

    status: "verified", "pending" (not verified, whatever the expiry) or
    "expired" (not verified and past otp_expires_at).
    search: substring of driver name, client name, recipient email or code.
    """
    status = _require_choice(status, ISSUE_STATUSES, "status")
    moment = now or utcnow()

    query = (
        db.session.query(BagIssue)
        .join(Driver, Driver.id == BagIssue.driver_id)
        .join(Client, Client.id == BagIssue.client_id)
        .filter(BagIssue.org_id == org_id)
    )
    if status == ISSUE_STATUS_VERIFIED:
        query = query.filter(BagIssue.is_verified.is_(True))
    elif status == ISSUE_STATUS_PENDING:
        query = query.filter(BagIssue.pending_clause())
    elif status == ISSUE_STATUS_EXPIRED:
        query = query.filter(BagIssue.expired_clause(moment))
    if client_id:
        query = query.filter(BagIssue.client_id == client_id)
    if driver_id:
        query = query.filter(BagIssue.driver_id == driver_id)
    if start_date is not None:
        query = query.filter(BagIssue.created_at >= start_date)
    if end_date is not None:
        query = query.filter(BagIssue.created_at <= end_date)
    if search:
        pattern = like_pattern(search)
        query = query.filter(or_(
            Driver.name.ilike(pattern, escape="\\"),
            Client.name.ilike(pattern, escape="\\"),
            BagIssue.client_email.ilike(pattern, escape="\\"),
            BagIssue.otp_code.ilike(pattern, escape="\\"),
        ))

    query = query.order_by(BagIssue.created_at.desc(), BagIssue.id.desc())
    issues, pagination = paginate(query, page, limit)
    return {
        "data": [issue.to_dict(now=moment, include_code=True) for issue in issues],
        "pagination": pagination,
        "summary": issue_summary(issues),
    }


def list_allocations(
    org_id: int,
    *,
    page: int | None = None,
    limit: int | None = None,
    search: str | None = None,
    status: str | None = None,
) -> dict:
    status = _require_choice(status, ALLOCATION_STATUSES, "status")
    allocations, pagination = paginate(allocations_query(org_id, search=search, status=status), page, limit)
    return {
        "data": [allocation.to_dict() for allocation in allocations],
        "pagination": pagination,
    }


def list_transfers(
    org_id: int,
    *,
    page: int | None = None,
    limit: int | None = None,
    status: str | None = None,
    driver_id: int | None = None,
    search: str | None = None,
) -> dict:
    status = _require_choice(status, TRANSFER_STATUSES, "status")
    transfers, pagination = paginate(
        transfers_query(org_id, status=status, driver_id=driver_id, search=search), page, limit
    )
    return {
        "data": [transfer.to_dict() for transfer in transfers],
        "pagination": pagination,
    }


def list_movements(
    org_id: int,
    *,
    page: int | None = None,
    limit: int | None = None,
    movement_type: str | None = None,
    driver_id: int | None = None,
) -> dict:
    """Stock and allocation history from the movement log, newest first."""
    movement_type = _require_choice(movement_type, MOVEMENT_TYPES, "type", upper=True)
    query = db.session.query(BagMovement).filter(BagMovement.org_id == org_id)
    if movement_type:
        query = query.filter(BagMovement.movement_type == movement_type)
    if driver_id:
        query = query.filter(BagMovement.driver_id == driver_id)
    query = query.order_by(BagMovement.occurred_at.desc(), BagMovement.id.desc())
    movements, pagination = paginate(query, page, limit)
    return {
        "data": [movement.to_dict() for movement in movements],
        "pagination": pagination,
    }


def get_bag_overview(org_id: int, *, now: datetime | None = None) -> dict:
    """Organization-wide bag figures (not page-scoped)."""
    moment = now or utcnow()
    stock = get_stock(org_id)

    recent = select(
        func.count(DriverAllocation.id),
        func.coalesce(func.sum(DriverAllocation.available_bags), 0),
    ).where(
        DriverAllocation.org_id == org_id,
        DriverAllocation.status == ALLOCATION_STATUS_RECENT,
    )
    drivers_allocated, bags_with_drivers = db.session.execute(recent).one()

    in_transit = db.session.query(
        func.count(BagTransfer.id),
        func.coalesce(func.sum(BagTransfer.number_of_bags), 0),
    ).filter(BagTransfer.org_id == org_id, BagTransfer.status == TRANSFER_STATUS_PENDING).one()

    verified = db.session.query(
        func.count(BagIssue.id),
        func.coalesce(func.sum(BagIssue.number_of_bags_issued), 0),
    ).filter(BagIssue.org_id == org_id, BagIssue.is_verified.is_(True)).one()

    issues = db.session.query(BagIssue).filter(BagIssue.org_id == org_id)
    expired_count = issues.filter(BagIssue.expired_clause(moment)).count()
    pending_count = issues.filter(BagIssue.pending_clause()).count() - expired_count

    return {
        "stock": stock.to_dict() if stock else {"organization_id": org_id, "available_bags": 0, "updated_at": None},
        "drivers_with_allocations": int(drivers_allocated or 0),
        "bags_with_drivers": int(bags_with_drivers or 0),
        "pending_transfers": int(in_transit[0] or 0),
        "bags_in_transit": int(in_transit[1] or 0),
        "verified_issues": int(verified[0] or 0),
        "total_issued_bags": int(verified[1] or 0),
        "pending_issues": pending_count,
        "expired_issues": expired_count,
    }
