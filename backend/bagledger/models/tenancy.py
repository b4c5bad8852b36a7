from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class Organization(db.Model):
    """
    Multi-tenant root: every waste-collection company is an Organization.

    Drivers, clients and every bag ledger row belong to exactly one
    organization. No ledger data may cross organization boundaries.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)  # Short code for lookups

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

class Driver(db.Model):
    """
    Collection driver within an organization.

    Driver records are owned by the driver management backend; the ledger only
    needs identity for tenant checks and for joining names into listings.
    """
    __tablename__ = "drivers"
    __table_args__ = (
        db.Index("ix_drivers_org_name", "org_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    organization = db.relationship("Organization", backref=db.backref("drivers", lazy=True))

    def __repr__(self) -> str:
        return f"<Driver id={self.id} name={self.name!r} org_id={self.org_id}>"

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}

class Client(db.Model):
    """End client that receives collection bags from drivers."""
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_org_name", "org_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    account_number = db.Column(db.String(64), nullable=True, index=True)

    organization = db.relationship("Organization", backref=db.backref("clients", lazy=True))

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r} org_id={self.org_id}>"

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
        }
