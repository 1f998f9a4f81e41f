"""Services package - Business logic layer for Belt Tracker.

This package contains the service modules that implement the compound
batch inventory ledger and the belt lifecycle on top of it.

Architecture:
- Services: Stateless functions organized by ledger concern
- Transactions: Managed via session_scope() context manager
- Exceptions: Consistent error handling via the LedgerError hierarchy
- Validation: Input validation before database operations

Service Modules:
- compound_catalog_service: CompoundMaster reference data
- compound_batch_service: Batch store (FIFO lookup, batch generation, maintenance)
- compound_consumption_service: FIFO consumption and reversal
- production_date_service: Cover/skim production-date allocation
- belt_service: Belt create/update/delete with cascading recompute
- history_service: Audit snapshots
- ledger_audit_service: Invariant checks

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- compound_locks: Per-compound-code locks
- logging_utils: Structured service logging
"""

from . import (
    database,
    compound_catalog_service,
    compound_batch_service,
    compound_consumption_service,
    production_date_service,
    belt_service,
    history_service,
    ledger_audit_service,
)

from .exceptions import (
    LedgerError,
    ValidationError,
    NotFoundError,
    CompoundMasterNotFoundError,
    CompoundBatchNotFoundError,
    BeltNotFoundError,
    CapacityExhaustedError,
    CompoundCodesChangedError,
    ConcurrencyConflictError,
    DateCollisionError,
    LedgerIntegrityError,
    DatabaseError,
)

from .compound_consumption_service import (
    consume_compound,
    revert_consumption,
    consume_from_selected_batches,
)
from .production_date_service import resolve_production_dates
from .belt_service import (
    create_belt,
    create_manual_belt,
    update_belt,
    delete_belt,
    delete_belt_by_number,
    get_belt,
    get_belt_by_number,
    list_belts,
)
from .ledger_audit_service import audit_ledger

__all__ = [
    # Modules
    "database",
    "compound_catalog_service",
    "compound_batch_service",
    "compound_consumption_service",
    "production_date_service",
    "belt_service",
    "history_service",
    "ledger_audit_service",
    # Exceptions
    "LedgerError",
    "ValidationError",
    "NotFoundError",
    "CompoundMasterNotFoundError",
    "CompoundBatchNotFoundError",
    "BeltNotFoundError",
    "CapacityExhaustedError",
    "CompoundCodesChangedError",
    "ConcurrencyConflictError",
    "DateCollisionError",
    "LedgerIntegrityError",
    "DatabaseError",
    # Ledger operations
    "consume_compound",
    "revert_consumption",
    "consume_from_selected_batches",
    "resolve_production_dates",
    "create_belt",
    "create_manual_belt",
    "update_belt",
    "delete_belt",
    "delete_belt_by_number",
    "get_belt",
    "get_belt_by_number",
    "list_belts",
    "audit_ledger",
]
