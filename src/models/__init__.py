"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .enums import CompoundRole, BeltStatus, EntryType
from .compound_master import CompoundMaster
from .compound_batch import CompoundBatch
from .belt import Belt, BeltBatchUsage
from .compound_history import CompoundHistory
from .belt_history import BeltHistory

__all__ = [
    "Base",
    "BaseModel",
    # Enums
    "CompoundRole",
    "BeltStatus",
    "EntryType",
    # Reference data
    "CompoundMaster",
    # Ledger
    "CompoundBatch",
    "Belt",
    "BeltBatchUsage",
    # Audit snapshots
    "CompoundHistory",
    "BeltHistory",
]
