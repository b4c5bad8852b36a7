"""
Bag issuance to clients, confirmed by a one-time code (OTP).

LIFECYCLE:
1. request_issuance: BagIssue created unverified, code sent to the client
2. verify_issuance: matching, unexpired code -> verified, driver bags consumed
3. expired: never verified before otp_expires_at (computed, never written)

Verification and consumption commit together or not at all: a failed
consumption leaves the issue pending_verification.
"""

from __future__ import annotations

import hmac
import secrets
from datetime import datetime, timedelta

from flask import current_app

from ..errors import (
    AlreadyVerifiedError,
    ExpiredError,
    InvalidArgumentError,
    InvalidCodeError,
    NotFoundError,
)
from ..extensions import db
from ..models import BagIssue
from ..time_utils import utcnow
from ..validation import optional_text, require_positive_count, require_text
from .allocation_service import apply_consumption, get_balance, require_driver_available
from .concurrency import lock_for_update, run_atomic
from .movement_service import MOVEMENT_ISSUE, append_movement
from .notification_service import dispatch_issue_otp
from .tenant_service import require_client_in_org, require_driver_in_org


def generate_otp(length: int | None = None) -> str:
    """Numeric one-time code from a cryptographically secure source."""
    length = length or int(current_app.config.get("BAG_OTP_LENGTH", 6))
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def otp_ttl() -> timedelta:
    return timedelta(minutes=int(current_app.config.get("BAG_OTP_TTL_MINUTES", 15)))


def is_issue_expired(issue: BagIssue, now: datetime | None = None) -> bool:
    """Single expiry rule used by verification and by every listing."""
    return issue.is_expired(now)


def _get_issue(org_id: int, issue_id: int, *, lock: bool = False) -> BagIssue:
    query = db.session.query(BagIssue).filter_by(id=issue_id, org_id=org_id)
    if lock:
        query = lock_for_update(query)
    issue = query.first()
    if issue is None:
        raise NotFoundError(f"Bag issue {issue_id} not found")
    return issue


def request_issuance(
    org_id: int,
    driver_id: int,
    client_id: int,
    count,
    *,
    client_email: str | None = None,
    notes: str | None = None,
    actor: str | None = None,
    now: datetime | None = None,
) -> BagIssue:
    """
    Record a driver's request to hand bags to a client and send the code.

    The driver's bags are checked here but only consumed on verification.

    Raises:
        InvalidArgumentError: If count is not positive or no recipient email is known
        NotFoundError: If driver or client is not in the organization
        InsufficientDriverStockError: If count exceeds the driver's available bags
    """
    count = require_positive_count(count)

    def _op():
        moment = now or utcnow()
        require_driver_in_org(driver_id, org_id)
        client = require_client_in_org(client_id, org_id)

        recipient = optional_text(client_email) or optional_text(client.email)
        if not recipient:
            raise InvalidArgumentError("client_email is required for clients without an email address")

        require_driver_available(get_balance(driver_id), count)

        issue = BagIssue(
            org_id=org_id,
            driver_id=driver_id,
            client_id=client_id,
            client_email=recipient,
            number_of_bags_issued=count,
            otp_code=generate_otp(),
            otp_expires_at=moment + otp_ttl(),
            is_verified=False,
            notes=optional_text(notes),
            created_by=actor,
            created_at=moment,
        )
        db.session.add(issue)
        db.session.flush()
        return issue

    issue = run_atomic(_op)
    dispatch_issue_otp(issue)
    return issue


def verify_issuance(
    org_id: int,
    issue_id: int,
    otp_code,
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> BagIssue:
    """
    Verify an issue with its one-time code and consume the driver's bags.

    Checks run in this order: exists, not yet verified, not expired, code
    matches. Then the driver's recent period is charged in the same
    transaction.

    Raises:
        NotFoundError, AlreadyVerifiedError, ExpiredError, InvalidCodeError,
        InsufficientDriverStockError
    """
    otp_code = require_text(otp_code, "otp_code")

    def _op():
        moment = now or utcnow()
        issue = _get_issue(org_id, issue_id, lock=True)

        if issue.is_verified:
            raise AlreadyVerifiedError(f"Bag issue {issue_id} is already verified")
        if is_issue_expired(issue, moment):
            raise ExpiredError(f"The code for bag issue {issue_id} has expired")
        if not hmac.compare_digest(issue.otp_code.encode(), otp_code.encode()):
            raise InvalidCodeError("The verification code is incorrect")

        balance = get_balance(issue.driver_id, lock=True)
        period = apply_consumption(balance, issue.number_of_bags_issued, moment)

        issue.is_verified = True
        issue.issued_at = moment
        issue.allocation_id = period.id
        issue.verified_by = actor

        append_movement(
            org_id=org_id,
            movement_type=MOVEMENT_ISSUE,
            driver_delta=-issue.number_of_bags_issued,
            driver_id=issue.driver_id,
            allocation_id=period.id,
            issue_id=issue.id,
            actor=actor,
            occurred_at=moment,
        )
        return issue

    return run_atomic(_op)


def resend_issue_otp(
    org_id: int,
    issue_id: int,
    *,
    now: datetime | None = None,
) -> BagIssue:
    """
    Replace the code of an unverified issue and restart its expiry window.

    Raises:
        NotFoundError, AlreadyVerifiedError
    """
    def _op():
        moment = now or utcnow()
        issue = _get_issue(org_id, issue_id, lock=True)
        if issue.is_verified:
            raise AlreadyVerifiedError(f"Bag issue {issue_id} is already verified")
        issue.otp_code = generate_otp()
        issue.otp_expires_at = moment + otp_ttl()
        return issue

    issue = run_atomic(_op)
    dispatch_issue_otp(issue)
    return issue
