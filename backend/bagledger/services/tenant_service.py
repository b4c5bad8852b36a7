"""
Tenant validation and scoping helpers for the bag ledger.

Every request is scoped to one organization (g.org_id). Ids supplied by the
caller are checked against it before any ledger row is touched; ids that
belong to another organization are reported exactly like unknown ids so
their existence is not revealed.
"""

from ..errors import NotFoundError
from ..extensions import db
from ..models import Client, Driver, Organization


def require_organization(org_id: int) -> Organization:
    org = db.session.get(Organization, org_id)
    if org is None:
        raise NotFoundError(f"Organization {org_id} not found")
    return org


def require_driver_in_org(driver_id: int, org_id: int) -> Driver:
    driver = db.session.query(Driver).filter_by(id=driver_id, org_id=org_id).first()
    if driver is None:
        raise NotFoundError(f"Driver {driver_id} not found")
    return driver


def require_client_in_org(client_id: int, org_id: int) -> Client:
    client = db.session.query(Client).filter_by(id=client_id, org_id=org_id).first()
    if client is None:
        raise NotFoundError(f"Client {client_id} not found")
    return client
