# Overview: Typed ledger errors surfaced to API callers.

"""
Every failure a ledger operation can report is a BagLedgerError subclass.

Each class carries the HTTP status the routes answer with and a stable
machine-readable code the console can branch on. Messages are written to be
shown to the user as-is.
"""

from __future__ import annotations


class BagLedgerError(Exception):
    """Base class for user-displayable ledger failures."""

    status_code = 400
    code = "bag_ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class InvalidArgumentError(BagLedgerError, ValueError):
    """400-level input problem (non-positive counts, missing reason)."""

    status_code = 400
    code = "invalid_argument"


class NotFoundError(BagLedgerError):
    status_code = 404
    code = "not_found"


class InsufficientStockError(BagLedgerError):
    """Organization stock cannot cover the requested bags."""

    status_code = 409
    code = "insufficient_stock"


class InsufficientDriverStockError(BagLedgerError):
    """A driver's available bags cannot cover the requested bags."""

    status_code = 409
    code = "insufficient_driver_stock"


class AlreadyVerifiedError(BagLedgerError):
    status_code = 409
    code = "already_verified"


class ExpiredError(BagLedgerError):
    status_code = 410
    code = "expired"


class InvalidCodeError(BagLedgerError):
    status_code = 400
    code = "invalid_code"


class InvalidStateError(BagLedgerError):
    """Operation not allowed in the entity's current lifecycle state."""

    status_code = 409
    code = "invalid_state"


class ContentionError(BagLedgerError):
    """A row lock could not be acquired within the configured wait."""

    status_code = 503
    code = "contention"
