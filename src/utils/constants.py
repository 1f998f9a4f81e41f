"""
Constants and enumerations for the Belt Tracker application.

This module defines all system-wide constants including:
- Application metadata
- Compound ledger tuning defaults (batch generation, retries, search bounds)
- The static holiday calendar
- Working-day gaps of the belt process schedule
- Validation limits and error messages
"""

from decimal import Decimal
from typing import List

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Belt Tracker"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"

# ============================================================================
# Database Constants
# ============================================================================

DATABASE_FILENAME = "belt_tracker.db"

# ============================================================================
# Compound Roles and Categories
# ============================================================================

ROLE_COVER = "cover"
ROLE_SKIM = "skim"
COMPOUND_ROLES: List[str] = [ROLE_COVER, ROLE_SKIM]

# CompoundMaster.category uses the same vocabulary as the roles
COMPOUND_CATEGORIES: List[str] = [ROLE_COVER, ROLE_SKIM]

# ============================================================================
# Quantity Handling
# ============================================================================

# Kilograms are stored with three decimal places (grams)
KG_QUANTUM = Decimal("0.001")

# Stock below one quantum is treated as empty (avoids float dust on SQLite)
MIN_BATCH_REMAINING_KG = Decimal("0.001")

# Slack allowed when comparing stored REAL values against Decimal requests
KG_COMPARISON_TOLERANCE = Decimal("0.0000005")

# Belt usage sums must match the stored requirement within this bound
USAGE_SUM_TOLERANCE = Decimal("0.000001")

# ============================================================================
# Ledger Tuning Defaults
# ============================================================================

# Auto-created batches pick a batch count in this inclusive range
DEFAULT_BATCH_COUNT_MIN = 100
DEFAULT_BATCH_COUNT_MAX = 110

# Upper bound on batches auto-created by a single consume call
DEFAULT_MAX_BATCHES_PER_CONSUME = 30

# Optimistic-update retries before ConcurrencyConflictError
DEFAULT_MAX_CONFLICT_RETRIES = 8

# Backoff between retries is base * attempt seconds
DEFAULT_RETRY_BACKOFF_SECONDS = 0.05

# Days scanned for a globally free batch date (and duplicate-date retries)
DEFAULT_MAX_FREE_DATE_SEARCH_DAYS = 365

# Days scanned in either direction when separating cover/skim dates
DEFAULT_MAX_PRODUCTION_DATE_SEARCH_DAYS = 60

# Compound production precedes calendaring by this many working days
COMPOUND_LEAD_WORKING_DAYS = 7

# Window (in working days before calendaring) for find_available_compound_date
AVAILABLE_DATE_MIN_WORKING_DAYS = 3
AVAILABLE_DATE_MAX_WORKING_DAYS = 30

# ============================================================================
# Working-Day Calendar
# ============================================================================

# Sundays are never working days; these dates are also closed
HOLIDAYS: List[str] = [
    "2025-01-26",  # Republic Day
    "2025-08-15",  # Independence Day
    "2025-10-02",  # Gandhi Jayanti
    "2025-11-01",  # Diwali
    "2025-12-25",  # Christmas
]

# ============================================================================
# Process Schedule
# ============================================================================

# Working-day gaps between belt process steps, as inclusive (min, max) ranges
# drawn at random. Each step precedes the one named after "BEFORE".
PACKAGING_BEFORE_DISPATCH = 1
PDI_BEFORE_DISPATCH = (4, 5)
INSPECTION_BEFORE_PDI = (4, 10)
CURING_BEFORE_INSPECTION = (2, 2)
GREEN_BELT_BEFORE_CURING = (1, 1)
CALENDARING_BEFORE_GREEN_BELT = (0, 1)  # 0 = same day
COMPOUND_BEFORE_CALENDARING = (7, 10)

# ============================================================================
# Belt Status / Entry Type
# ============================================================================

BELT_STATUS_IN_PRODUCTION = "In Production"
BELT_STATUS_DISPATCHED = "Dispatched"
BELT_STATUSES: List[str] = [BELT_STATUS_IN_PRODUCTION, BELT_STATUS_DISPATCHED]

ENTRY_TYPE_AUTO = "Auto"
ENTRY_TYPE_MANUAL = "Manual"

# ============================================================================
# Validation Constants
# ============================================================================

MAX_CODE_LENGTH = 50
MAX_NAME_LENGTH = 200
MAX_BELT_NUMBER_LENGTH = 100
MAX_NOTES_LENGTH = 2000

MAX_KG = Decimal("999999.999")

DATE_FORMAT = "%Y-%m-%d"

# ============================================================================
# Error Messages
# ============================================================================

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_NUMBER = "Must be a valid number"
ERROR_INVALID_POSITIVE = "Must be a positive number"
ERROR_INVALID_DATE = "Must be a date in YYYY-MM-DD format"
ERROR_INVALID_ROLE = "Must be 'cover' or 'skim'"
