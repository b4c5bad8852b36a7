from .tenancy import Organization, Driver, Client
from .bags import OrganizationStock, DriverBalance, DriverAllocation, BagMovement, BagIssue, BagTransfer

__all__ = [
    'Organization', 'Driver', 'Client',
    'OrganizationStock', 'DriverBalance', 'DriverAllocation',
    'BagMovement', 'BagIssue', 'BagTransfer',
]
