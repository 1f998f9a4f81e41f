"""Compound Consumption Service - FIFO consumption and reversal.

This module moves kilograms between a batch's inventory_remaining and
consumed columns. Every change is a conditional UPDATE (compare-and-swap on
the stock level), so concurrent writers can never drive a batch negative.

All public functions follow the session pattern:
- If session provided: caller owns transaction, don't commit
- If session is None: create own transaction via session_scope()

Key Features:
- FIFO consumption - oldest batch with stock first
- Batches auto-created when a compound runs out (bounded per call)
- Bounded retry with linear backoff when a conditional update loses a race
- First consumption per role stamps the batch's produced-on date, never overwritten
- Exact reversal of a usage list

Example Usage:
    >>> result = consume_compound("nk5", Decimal("200"), "2025-03-03")
    >>> sum(u["consumed_kg"] for u in result["batches_used"])
    Decimal('200.000')
"""

import logging
import random
import time
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import CompoundBatch
from ..models.enums import CompoundRole
from ..utils.config import get_ledger_settings
from ..utils.constants import KG_COMPARISON_TOLERANCE, MIN_BATCH_REMAINING_KG
from ..utils.validators import coerce_kg, coerce_optional_date, validate_compound_code
from ..utils.working_days import format_date, parse_date
from .compound_batch_service import generate_compound_batch, get_batch, get_next_available_batch
from .database import session_scope
from .exceptions import (
    CapacityExhaustedError,
    CompoundBatchNotFoundError,
    ConcurrencyConflictError,
    DatabaseError,
    LedgerError,
    LedgerIntegrityError,
    ValidationError,
)
from .history_service import record_production_date_stamped
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

_PRODUCED_ON_ATTR = {
    CompoundRole.COVER: "cover_compound_produced_on",
    CompoundRole.SKIM: "skim_compound_produced_on",
}


def _kg(value) -> Decimal:
    return Decimal(str(value))


def _non_negative(expression):
    return case((expression < 0, 0), else_=expression)


def _usage_parts(entry) -> tuple:
    """Accept usage dicts or BeltBatchUsage rows."""
    if isinstance(entry, dict):
        return entry["batch_id"], _kg(entry["consumed_kg"])
    return entry.batch_id, _kg(entry.consumed_kg)


def _apply_consumption(
    batch_id: int,
    kg: Decimal,
    session: Session,
    produced_on: Optional[date] = None,
    role: Optional[CompoundRole] = None,
) -> bool:
    """
    Conditionally move `kg` from stock to consumed on one batch.

    Returns:
        True if the batch had enough stock and was updated, False otherwise
    """
    values = {
        "inventory_remaining": _non_negative(CompoundBatch.inventory_remaining - kg),
        "consumed": CompoundBatch.consumed + kg,
    }
    attr = _PRODUCED_ON_ATTR.get(role) if produced_on is not None else None
    if attr:
        column = getattr(CompoundBatch, attr)
        values[attr] = func.coalesce(column, produced_on)

    result = session.execute(
        update(CompoundBatch)
        .where(
            CompoundBatch.id == batch_id,
            CompoundBatch.inventory_remaining >= kg - KG_COMPARISON_TOLERANCE,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    batch = session.get(CompoundBatch, batch_id, populate_existing=True)
    return batch is not None


def _stamp_history_if_first(
    batch: CompoundBatch, previous_stamp, role: Optional[CompoundRole], session: Session
) -> None:
    attr = _PRODUCED_ON_ATTR.get(role)
    if attr and previous_stamp is None and getattr(batch, attr) is not None:
        record_production_date_stamped(batch, session)
        log_operation(
            logger,
            operation="stamp_production_date",
            outcome="success",
            level=logging.DEBUG,
            batch_id=batch.id,
            role=role.value,
            produced_on=format_date(getattr(batch, attr)),
        )


def _take_from_batch(
    batch: CompoundBatch,
    remaining: Decimal,
    session: Session,
    produced_on: Optional[date],
    role: Optional[CompoundRole],
) -> Optional[Decimal]:
    """
    Take up to `remaining` kg from one batch, retrying on lost races.

    Returns:
        Kilograms taken, or None if the batch ran dry before we got any

    Raises:
        CompoundBatchNotFoundError: If the batch vanished mid-retry
        ConcurrencyConflictError: If the retry bound was exhausted
    """
    settings = get_ledger_settings()
    attr = _PRODUCED_ON_ATTR.get(role)
    current = batch

    for attempt in range(1, settings.max_conflict_retries + 1):
        available = _kg(current.inventory_remaining)
        if available < MIN_BATCH_REMAINING_KG:
            return None
        to_consume = min(remaining, available)
        previous_stamp = getattr(current, attr) if attr else None

        if _apply_consumption(current.id, to_consume, session, produced_on, role):
            _stamp_history_if_first(current, previous_stamp, role, session)
            return to_consume

        log_operation(
            logger,
            operation="consume_compound",
            outcome="conflict_retry",
            level=logging.WARNING,
            batch_id=current.id,
            attempt=attempt,
            requested_kg=str(to_consume),
        )
        refreshed = session.get(CompoundBatch, current.id, populate_existing=True)
        if refreshed is None:
            raise CompoundBatchNotFoundError(current.id)
        current = refreshed
        if current.is_depleted:
            return None
        if settings.retry_backoff_seconds > 0:
            time.sleep(settings.retry_backoff_seconds * attempt)

    raise ConcurrencyConflictError(current.id, settings.max_conflict_retries, remaining)


def _consume_compound_impl(
    compound_code: str,
    required_kg: Decimal,
    preferred_date: date,
    session: Session,
    produced_on: Optional[date] = None,
    role: Optional[CompoundRole] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """Implementation for consume_compound (inputs already validated)."""
    settings = get_ledger_settings()
    remaining = required_kg
    batches_used: List[Dict[str, Any]] = []
    batches_created = 0

    while remaining > 0:
        batch = get_next_available_batch(compound_code, session)

        if batch is None:
            if batches_created >= settings.max_batches_per_consume:
                raise CapacityExhaustedError(
                    f"auto-created batches for '{compound_code}' in one call",
                    settings.max_batches_per_consume,
                )
            batch = generate_compound_batch(compound_code, preferred_date, session, rng)
            batches_created += 1
            preferred_date = batch.date + timedelta(days=1)

        taken = _take_from_batch(batch, remaining, session, produced_on, role)
        if taken is None:
            # Drained by another writer; FIFO picks the next batch
            continue

        batches_used.append({"batch_id": batch.id, "consumed_kg": taken})
        remaining -= taken
        log_operation(
            logger,
            operation="consume_compound",
            outcome="batch_used",
            level=logging.DEBUG,
            compound_code=compound_code,
            batch_id=batch.id,
            consumed_kg=str(taken),
        )

    log_operation(
        logger,
        operation="consume_compound",
        outcome="success",
        compound_code=compound_code,
        required_kg=str(required_kg),
        batch_count=len(batches_used),
        batches_created=batches_created,
    )
    return {
        "compound_code": compound_code,
        "total_consumed": required_kg,
        "batches_used": batches_used,
        "batches_created": batches_created,
    }


def consume_compound(
    compound_code: str,
    required_kg,
    preferred_date,
    produced_on=None,
    role: Optional[CompoundRole] = None,
    session: Optional[Session] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """
    Consume compound across batches (FIFO) until required_kg is satisfied.

    Batches are drained oldest first. When no batch has stock, a new one is
    generated on the next globally free working day at or after
    preferred_date (then the day after the previous new batch).

    Args:
        compound_code: Compound to consume
        required_kg: Kilograms required (> 0, quantised to grams)
        preferred_date: Earliest date for auto-created batches
        produced_on: Production date to stamp on batches first used for `role`
        role: CompoundRole the consumption is for ("cover" or "skim")
        session: Optional database session
        rng: Optional random source for auto-created batch counts

    Returns:
        Dict with keys:
            - "compound_code": str
            - "total_consumed": Decimal equal to required_kg
            - "batches_used": list of {"batch_id", "consumed_kg"} in FIFO order
            - "batches_created": int

    Raises:
        ValidationError: Bad code, quantity, date or role
        CompoundMasterNotFoundError: A batch had to be created for an unknown code
        CapacityExhaustedError: Auto-creation or free-day search bound exceeded
        ConcurrencyConflictError: Conditional update retries exhausted
    """
    errors = []
    is_valid, error = validate_compound_code(compound_code)
    if not is_valid:
        errors.append(error)
    kg = None
    try:
        kg = coerce_kg(required_kg, "Required kg")
    except ValueError as e:
        errors.append(str(e))
    preferred = None
    try:
        preferred = parse_date(preferred_date)
    except (TypeError, ValueError):
        errors.append("Preferred date: Must be a date in YYYY-MM-DD format")
    stamp = None
    try:
        stamp = coerce_optional_date(produced_on, "Produced on")
    except ValueError as e:
        errors.append(str(e))
    role_value = None
    if role is not None:
        try:
            role_value = CompoundRole(role)
        except ValueError:
            errors.append("Role: Must be 'cover' or 'skim'")
    if errors:
        raise ValidationError(errors)

    code = compound_code.strip()
    try:
        if session is not None:
            return _consume_compound_impl(code, kg, preferred, session, stamp, role_value, rng)
        with session_scope() as sess:
            return _consume_compound_impl(code, kg, preferred, sess, stamp, role_value, rng)
    except LedgerError:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to consume compound {code}", original_error=e) from e


def _revert_consumption_impl(entries: Iterable, session: Session) -> Decimal:
    total = Decimal("0")
    for entry in entries:
        batch_id, kg = _usage_parts(entry)
        result = session.execute(
            update(CompoundBatch)
            .where(
                CompoundBatch.id == batch_id,
                CompoundBatch.consumed >= kg - KG_COMPARISON_TOLERANCE,
            )
            .values(
                inventory_remaining=CompoundBatch.inventory_remaining + kg,
                consumed=_non_negative(CompoundBatch.consumed - kg),
            )
            .execution_options(synchronize_session=False)
        )
        batch = session.get(CompoundBatch, batch_id, populate_existing=True)
        if result.rowcount != 1:
            if batch is None:
                raise CompoundBatchNotFoundError(batch_id)
            raise LedgerIntegrityError(
                f"Reverting {kg} kg from compound batch {batch_id} would make consumed "
                f"negative (consumed {batch.consumed} kg)"
            )
        total += kg
        log_operation(
            logger,
            operation="revert_consumption",
            outcome="batch_restored",
            level=logging.DEBUG,
            batch_id=batch_id,
            restored_kg=str(kg),
        )
    return total


def revert_consumption(batches_used: Iterable, session: Optional[Session] = None) -> Decimal:
    """
    Return previously consumed kilograms to the batches they came from.

    Args:
        batches_used: Usage entries ({"batch_id", "consumed_kg"} dicts or
            BeltBatchUsage rows)
        session: Optional database session

    Returns:
        Total kilograms restored

    Raises:
        CompoundBatchNotFoundError: If an entry points at a missing batch
        LedgerIntegrityError: If a batch's consumed would go negative
    """
    entries = list(batches_used)
    try:
        if session is not None:
            return _revert_consumption_impl(entries, session)
        with session_scope() as sess:
            return _revert_consumption_impl(entries, sess)
    except LedgerError:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to revert compound consumption", original_error=e) from e


def _normalize_selections(selections: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    errors = []
    normalized = []
    for index, selection in enumerate(selections, start=1):
        batch_id = selection.get("batch_id")
        if not isinstance(batch_id, int) or isinstance(batch_id, bool):
            errors.append(f"Selection {index}: batch_id must be an integer")
            continue
        try:
            kg = coerce_kg(selection.get("consumed_kg"), f"Selection {index} consumed_kg")
        except ValueError as e:
            errors.append(str(e))
            continue
        normalized.append({"batch_id": batch_id, "consumed_kg": kg})
    if not normalized and not errors:
        errors.append("At least one batch selection is required")
    if errors:
        raise ValidationError(errors)
    return normalized


def _consume_from_selected_impl(
    selections: List[Dict[str, Any]],
    compound_code: Optional[str],
    produced_on: Optional[date],
    role: Optional[CompoundRole],
    session: Session,
) -> Dict[str, Any]:
    # Validate everything before touching any batch
    requested: Dict[int, Decimal] = {}
    for selection in selections:
        requested[selection["batch_id"]] = (
            requested.get(selection["batch_id"], Decimal("0")) + selection["consumed_kg"]
        )

    errors = []
    for batch_id, kg in requested.items():
        batch = get_batch(batch_id, session)
        if compound_code and batch.compound_code != compound_code:
            errors.append(
                f"Batch {batch_id} holds '{batch.compound_code}', not '{compound_code}'"
            )
        elif _kg(batch.inventory_remaining) + KG_COMPARISON_TOLERANCE < kg:
            errors.append(
                f"Not enough inventory. Batch {batch.compound_code} ({format_date(batch.date)}) "
                f"has {batch.inventory_remaining} kg remaining, but {kg} kg is required"
            )
    if errors:
        raise ValidationError(errors)

    batches_used = []
    total = Decimal("0")
    for selection in selections:
        batch_id = selection["batch_id"]
        kg = selection["consumed_kg"]
        batch = get_batch(batch_id, session)
        attr = _PRODUCED_ON_ATTR.get(role)
        previous_stamp = getattr(batch, attr) if attr else None
        if not _apply_consumption(batch_id, kg, session, produced_on, role):
            raise ConcurrencyConflictError(batch_id, 1, kg)
        _stamp_history_if_first(batch, previous_stamp, role, session)
        batches_used.append({"batch_id": batch_id, "consumed_kg": kg})
        total += kg

    log_operation(
        logger,
        operation="consume_from_selected_batches",
        outcome="success",
        compound_code=compound_code,
        batch_count=len(batches_used),
        total_kg=str(total),
    )
    return {
        "compound_code": compound_code,
        "total_consumed": total,
        "batches_used": batches_used,
        "batches_created": 0,
    }


def consume_from_selected_batches(
    selections: Iterable[Dict[str, Any]],
    compound_code: Optional[str] = None,
    produced_on=None,
    role: Optional[CompoundRole] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Consume explicit quantities from explicitly chosen batches.

    Every selection is validated (batch exists, belongs to compound_code
    when given, enough stock) before any batch is modified.

    Args:
        selections: Iterable of {"batch_id": int, "consumed_kg": number}
        compound_code: Optional code every selected batch must belong to
        produced_on: Optional production date to stamp for `role`
        role: Optional CompoundRole
        session: Optional database session

    Returns:
        Same shape as consume_compound

    Raises:
        ValidationError: Bad selection, wrong compound or insufficient stock
        CompoundBatchNotFoundError: A selected batch does not exist
        ConcurrencyConflictError: Stock changed between validation and update
    """
    normalized = _normalize_selections(selections)
    try:
        stamp = coerce_optional_date(produced_on, "Produced on")
        role_value = CompoundRole(role) if role is not None else None
    except ValueError as e:
        raise ValidationError([str(e)]) from e

    try:
        if session is not None:
            return _consume_from_selected_impl(
                normalized, compound_code, stamp, role_value, session
            )
        with session_scope() as sess:
            return _consume_from_selected_impl(normalized, compound_code, stamp, role_value, sess)
    except LedgerError:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to consume from selected batches", original_error=e) from e
