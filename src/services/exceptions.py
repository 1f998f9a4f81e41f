"""Service layer exception classes for Belt Tracker.

This module defines all custom exceptions used by the ledger services to
provide consistent error handling across the application.

Exception Hierarchy:
    LedgerError (base)
    ├── ValidationError
    ├── NotFoundError
    │   ├── CompoundMasterNotFoundError
    │   ├── CompoundBatchNotFoundError
    │   └── BeltNotFoundError
    ├── CapacityExhaustedError
    ├── ConcurrencyConflictError
    ├── CompoundCodesChangedError
    ├── DateCollisionError
    ├── LedgerIntegrityError
    └── DatabaseError
"""

from datetime import date
from decimal import Decimal
from typing import Optional


class LedgerError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class ValidationError(LedgerError):
    """Raised when data validation fails."""

    def __init__(self, errors: list):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")


class NotFoundError(LedgerError):
    """Raised when a referenced record does not exist."""

    pass


class CompoundMasterNotFoundError(NotFoundError):
    """Raised when a compound code has no CompoundMaster.

    Example:
        >>> raise CompoundMasterNotFoundError("nk5")
        CompoundMasterNotFoundError: Compound master 'nk5' not found
    """

    def __init__(self, compound_code: str):
        self.compound_code = compound_code
        super().__init__(f"Compound master '{compound_code}' not found")


class CompoundBatchNotFoundError(NotFoundError):
    """Raised when a compound batch cannot be found by ID."""

    def __init__(self, batch_id: int):
        self.batch_id = batch_id
        super().__init__(f"Compound batch with ID {batch_id} not found")


class BeltNotFoundError(NotFoundError):
    """Raised when a belt cannot be found by ID or belt number."""

    def __init__(self, identifier):
        self.identifier = identifier
        if isinstance(identifier, int):
            super().__init__(f"Belt with ID {identifier} not found")
        else:
            super().__init__(f"Belt '{identifier}' not found")


class CapacityExhaustedError(LedgerError):
    """Raised when a bounded search or generation loop runs out of room.

    Args:
        what: Short description of the exhausted resource
        limit: The bound that was hit
    """

    def __init__(self, what: str, limit: int):
        self.what = what
        self.limit = limit
        super().__init__(f"Capacity exhausted: {what} (limit {limit})")


class ConcurrencyConflictError(LedgerError):
    """Raised when a conditional batch update keeps losing to other writers."""

    def __init__(self, batch_id: int, attempts: int, requested_kg: Optional[Decimal] = None):
        self.batch_id = batch_id
        self.attempts = attempts
        self.requested_kg = requested_kg
        super().__init__(
            f"Could not update compound batch {batch_id} after {attempts} attempts"
        )


class CompoundCodesChangedError(LedgerError):
    """Raised when a belt's compound codes keep changing under a cascade's locks."""

    def __init__(self, belt_id: int, attempts: int):
        self.belt_id = belt_id
        self.attempts = attempts
        super().__init__(
            f"Compound codes of belt {belt_id} changed while locking ({attempts} attempts)"
        )


class DateCollisionError(LedgerError):
    """Raised when cover and skim production dates cannot be separated."""

    def __init__(self, requested: date, message: Optional[str] = None):
        self.requested = requested
        super().__init__(
            message or f"Cannot separate cover/skim production dates near {requested}"
        )


class LedgerIntegrityError(LedgerError):
    """Raised when an operation would break a ledger invariant."""

    pass


class DatabaseError(LedgerError):
    """Raised when a database operation fails."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
