from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_
from sqlalchemy.ext.hybrid import hybrid_property

from ..extensions import db
from ..time_utils import as_utc_naive, to_utc_z, utcnow

class OrganizationStock(db.Model):
    """
    Bags owned by an organization and not yet allocated to any driver.

    WHY: One row per organization acts as the lock target for every mutation
    that touches central stock (add, remove, allocate, return).

    DESIGN:
    - available_bags is a materialized cache of SUM(bag_movements.stock_delta)
    - Only the stock service and the return processor write it
    - version_id guards against lost updates where row locks are not honoured
    """
    __tablename__ = "organization_stock"
    __table_args__ = (
        db.UniqueConstraint("org_id", name="uq_organization_stock_org"),
        db.CheckConstraint("available_bags >= 0", name="ck_organization_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    available_bags = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("bag_stock", uselist=False))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "organization_id": self.org_id,
            "available_bags": self.available_bags,
            "updated_at": to_utc_z(self.updated_at),
        }

class DriverBalance(db.Model):
    """
    Bag custody aggregate for one driver.

    WHY: A single row per driver answers "which allocation period is current"
    without relying on a status flag alone, and serializes concurrent
    allocation, issuance, transfer and return requests for that driver.

    The periods list is the tagged history of allocations; exactly one period
    (current_period_id) is "recent", every other one is "previous".
    """
    __tablename__ = "driver_balances"
    __table_args__ = (
        db.UniqueConstraint("driver_id", name="uq_driver_balances_driver"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=False)
    # Plain pointer into periods; driver_allocations already references this table.
    current_period_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    driver = db.relationship("Driver", backref=db.backref("bag_balance", uselist=False))
    periods = db.relationship(
        "DriverAllocation",
        back_populates="balance",
        order_by="DriverAllocation.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def current_period(self) -> "DriverAllocation | None":
        if self.current_period_id is None:
            return None
        for period in self.periods:
            if period.id == self.current_period_id:
                return period
        return None

    @property
    def available_bags(self) -> int:
        if self.current_period is None:
            return 0
        return self.current_period.available_bags

class DriverAllocation(db.Model):
    """
    One allocation period for a driver.

    available_bags is derived (allocated - used) and never stored. Transfers
    and returns move bags in or out of the recent period by adjusting
    allocated_bags; issuance consumption increments used_bags.
    """
    __tablename__ = "driver_allocations"
    __table_args__ = (
        db.CheckConstraint("used_bags >= 0", name="ck_driver_allocations_used_non_negative"),
        db.CheckConstraint("allocated_bags >= used_bags", name="ck_driver_allocations_available_non_negative"),
        db.Index("ix_driver_allocations_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=False, index=True)
    balance_id = db.Column(db.Integer, db.ForeignKey("driver_balances.id"), nullable=False, index=True)

    allocated_bags = db.Column(db.Integer, nullable=False, default=0)
    used_bags = db.Column(db.Integer, nullable=False, default=0)
    bags_from_previous = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="recent", index=True)  # recent, previous

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(120), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    balance = db.relationship("DriverBalance", back_populates="periods")
    driver = db.relationship("Driver")

    __mapper_args__ = {"version_id_col": version_id}

    @hybrid_property
    def available_bags(self) -> int:
        return self.allocated_bags - self.used_bags

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.org_id,
            "driver_id": self.driver_id,
            "driver": self.driver.to_summary() if self.driver else None,
            "allocated_bags": self.allocated_bags,
            "used_bags": self.used_bags,
            "available_bags": self.available_bags,
            "bags_from_previous": self.bags_from_previous,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "archived_at": to_utc_z(self.archived_at),
        }

class BagMovement(db.Model):
    """
    Append-only movement log for the bag ledger.

    - One row per ledger mutation, written in the same DB transaction.
    - stock_delta is the change to organization stock, driver_delta the change
      to the driver's available bags; a return carries both.
    - SUM(stock_delta) per organization equals OrganizationStock.available_bags.
    - No updates or deletes.
    """
    __tablename__ = "bag_movements"
    __table_args__ = (
        db.Index("ix_bag_movements_org_occurred", "org_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=True, index=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)
    stock_delta = db.Column(db.Integer, nullable=False, default=0)
    driver_delta = db.Column(db.Integer, nullable=False, default=0)

    allocation_id = db.Column(db.Integer, db.ForeignKey("driver_allocations.id"), nullable=True, index=True)
    issue_id = db.Column(db.Integer, db.ForeignKey("bag_issues.id"), nullable=True, index=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("bag_transfers.id"), nullable=True, index=True)

    reason = db.Column(db.Text, nullable=True)
    actor = db.Column(db.String(120), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    driver = db.relationship("Driver")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.org_id,
            "driver_id": self.driver_id,
            "driver": self.driver.to_summary() if self.driver else None,
            "type": self.movement_type,
            "count": abs(self.stock_delta or self.driver_delta),
            "stock_delta": self.stock_delta,
            "driver_delta": self.driver_delta,
            "allocation_id": self.allocation_id,
            "issue_id": self.issue_id,
            "transfer_id": self.transfer_id,
            "reason": self.reason,
            "actor": self.actor,
            "timestamp": to_utc_z(self.occurred_at),
        }

class BagIssue(db.Model):
    """
    Driver-to-client bag handoff, confirmed by a one-time code.

    LIFECYCLE:
    1. pending_verification: created with is_verified = false
    2. verified: matching code supplied before otp_expires_at (terminal)
    3. expired: never verified before otp_expires_at (terminal, computed)

    Expiry is never written; is_expired() and expired_clause() are the only
    definitions of it, shared by verification and listings.
    """
    __tablename__ = "bag_issues"
    __table_args__ = (
        db.CheckConstraint("number_of_bags_issued > 0", name="ck_bag_issues_positive"),
        db.Index("ix_bag_issues_org_created", "org_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    client_email = db.Column(db.String(255), nullable=False)

    number_of_bags_issued = db.Column(db.Integer, nullable=False)

    otp_code = db.Column(db.String(12), nullable=False)
    otp_expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_verified = db.Column(db.Boolean, nullable=False, default=False, index=True)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=True)  # set only on verification
    allocation_id = db.Column(db.Integer, db.ForeignKey("driver_allocations.id"), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(120), nullable=True)
    verified_by = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    driver = db.relationship("Driver")
    client = db.relationship("Client")

    __mapper_args__ = {"version_id_col": version_id}

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.is_verified:
            return False
        now = as_utc_naive(now) if now is not None else utcnow()
        return now > as_utc_naive(self.otp_expires_at)

    @classmethod
    def expired_clause(cls, now: datetime):
        return and_(cls.is_verified.is_(False), cls.otp_expires_at < now)

    @classmethod
    def pending_clause(cls):
        # Pending means not yet verified, whatever the expiry.
        return cls.is_verified.is_(False)

    def state(self, now: datetime | None = None) -> str:
        if self.is_verified:
            return "verified"
        if self.is_expired(now):
            return "expired"
        return "pending_verification"

    def to_dict(self, *, now: datetime | None = None, include_code: bool = False) -> dict:
        data = {
            "id": self.id,
            "organization_id": self.org_id,
            "driver_id": self.driver_id,
            "client_id": self.client_id,
            "driver": self.driver.to_summary() if self.driver else None,
            "client": self.client.to_summary() if self.client else None,
            "client_email": self.client_email,
            "number_of_bags_issued": self.number_of_bags_issued,
            "otp_expires_at": to_utc_z(self.otp_expires_at),
            "is_verified": self.is_verified,
            "state": self.state(now),
            "issued_at": to_utc_z(self.issued_at),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
        if include_code:
            data["otp_code"] = self.otp_code
        return data

class BagTransfer(db.Model):
    """
    Driver-to-driver bag move.

    LIFECYCLE:
    1. pending: bags deducted from the source driver provisionally
    2. completed: bags credited to the destination driver (terminal)
    3. failed: provisional deduction reversed to the source driver (terminal)
    """
    __tablename__ = "bag_transfers"
    __table_args__ = (
        db.CheckConstraint("number_of_bags > 0", name="ck_bag_transfers_positive"),
        db.CheckConstraint("from_driver_id <> to_driver_id", name="ck_bag_transfers_distinct_drivers"),
        db.Index("ix_bag_transfers_org_status_created", "org_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    from_driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=False, index=True)
    to_driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=False, index=True)
    number_of_bags = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, completed, failed
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    failed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    from_driver = db.relationship("Driver", foreign_keys=[from_driver_id])
    to_driver = db.relationship("Driver", foreign_keys=[to_driver_id])

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.org_id,
            "from_driver_id": self.from_driver_id,
            "to_driver_id": self.to_driver_id,
            "from_driver": self.from_driver.to_summary() if self.from_driver else None,
            "to_driver": self.to_driver.to_summary() if self.to_driver else None,
            "number_of_bags": self.number_of_bags,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "failed_at": to_utc_z(self.failed_at),
        }
