"""
Input validation functions for the Belt Tracker application.

Validators return a (is_valid, error_message) tuple like the rest of the
utils layer; the coerce_* helpers raise ValueError and are used by the
service layer, which turns them into ValidationError.
"""

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional, Tuple

from .constants import (
    COMPOUND_ROLES,
    ERROR_INVALID_DATE,
    ERROR_INVALID_NUMBER,
    ERROR_INVALID_POSITIVE,
    ERROR_INVALID_ROLE,
    ERROR_REQUIRED_FIELD,
    KG_QUANTUM,
    MAX_CODE_LENGTH,
    MAX_KG,
)
from .working_days import parse_date


def validate_required_string(value: Optional[str], field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a string field is not empty.

    Args:
        value: The string value to validate
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    return True, ""


def validate_compound_code(value: Optional[str], field_name: str = "Compound code") -> Tuple[bool, str]:
    """Validate a compound code: non-empty, no whitespace, bounded length."""
    is_valid, error = validate_required_string(value, field_name)
    if not is_valid:
        return is_valid, error
    if not isinstance(value, str):
        return False, f"{field_name}: Must be a string"
    if any(ch.isspace() for ch in value.strip()):
        return False, f"{field_name}: Must not contain whitespace"
    if len(value.strip()) > MAX_CODE_LENGTH:
        return False, f"{field_name}: Must be {MAX_CODE_LENGTH} characters or less"
    return True, ""


def validate_positive_kg(value: Any, field_name: str = "Quantity") -> Tuple[bool, str]:
    """Validate that a value is a positive kilogram amount within limits."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if not amount.is_finite():
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if amount.quantize(KG_QUANTUM, rounding=ROUND_HALF_UP) <= 0:
        return False, f"{field_name}: {ERROR_INVALID_POSITIVE}"
    if amount > MAX_KG:
        return False, f"{field_name}: Must be at most {MAX_KG}"
    return True, ""


def validate_date(value: Any, field_name: str = "Date") -> Tuple[bool, str]:
    """Validate a date or YYYY-MM-DD string."""
    try:
        parse_date(value)
    except (TypeError, ValueError):
        return False, f"{field_name}: {ERROR_INVALID_DATE}"
    return True, ""


def validate_role(value: Any, field_name: str = "Role") -> Tuple[bool, str]:
    if value not in COMPOUND_ROLES:
        return False, f"{field_name}: {ERROR_INVALID_ROLE}"
    return True, ""


def coerce_kg(value: Any, field_name: str = "Quantity") -> Decimal:
    """
    Convert a positive kilogram value to a Decimal quantised to grams.

    Raises:
        ValueError: If the value is not a positive number
    """
    is_valid, error = validate_positive_kg(value, field_name)
    if not is_valid:
        raise ValueError(error)
    return Decimal(str(value)).quantize(KG_QUANTUM, rounding=ROUND_HALF_UP)


def coerce_optional_date(value: Any, field_name: str = "Date") -> Optional[date]:
    """Parse an optional date; None and empty strings pass through as None."""
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    is_valid, error = validate_date(value, field_name)
    if not is_valid:
        raise ValueError(error)
    return parse_date(value)
