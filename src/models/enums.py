"""
Enumerations for the compound ledger and belt records.

This module contains enums used across the ledger models:
- CompoundRole: Which part of a belt a compound is consumed for
- BeltStatus: Production status of a belt
- EntryType: How a belt's compound usage was recorded
"""

from enum import Enum


class CompoundRole(str, Enum):
    """
    Material role of a compound within a belt.

    Cover and skim are ledgered separately even when both use the same
    compound code.

    Values:
        COVER: Top/bottom cover rubber
        SKIM: Skim coat between fabric plies
    """

    COVER = "cover"
    SKIM = "skim"


class BeltStatus(str, Enum):
    """Production status of a belt."""

    IN_PRODUCTION = "In Production"
    DISPATCHED = "Dispatched"


class EntryType(str, Enum):
    """
    How a belt's compound consumption was recorded.

    Values:
        AUTO: Batches allocated by FIFO consumption
        MANUAL: Batches picked explicitly by the operator
    """

    AUTO = "Auto"
    MANUAL = "Manual"
